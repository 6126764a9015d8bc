"""Report models - generated report content and share links."""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pha.models.base import BaseModel, JSONType, utcnow

if TYPE_CHECKING:
    from pha.models.assessment import Assessment

REPORT_TYPES = ("standard", "detailed", "summary")


class Report(BaseModel):
    """Report derived from a completed assessment. Rebuildable at any time."""

    __tablename__ = "reports"

    assessment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    practice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("practices.id", ondelete="SET NULL"),
        nullable=True,
    )
    report_type: Mapped[str] = mapped_column(String(20), default="standard", nullable=False)
    content: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    assessment: Mapped["Assessment"] = relationship("Assessment", back_populates="reports")
    shares: Mapped[List["ReportShare"]] = relationship(
        "ReportShare", back_populates="report", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("assessment_id", "report_type", name="uq_report_assessment_type"),
        CheckConstraint(
            "report_type IN ('standard', 'detailed', 'summary')",
            name="ck_report_valid_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, assessment={self.assessment_id}, type={self.report_type})>"


class ReportShare(BaseModel):
    """Share link giving anonymous read access to a report."""

    __tablename__ = "report_shares"

    report_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    share_token: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    share_method: Mapped[str] = mapped_column(String(20), default="direct_link", nullable=False)
    recipient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    report: Mapped["Report"] = relationship("Report", back_populates="shares")

    __table_args__ = (
        CheckConstraint(
            "share_method IN ('email', 'sms', 'social', 'direct_link')",
            name="ck_report_share_valid_method",
        ),
    )
