"""Assessment models - assessments and their survey responses."""
import enum
import uuid
from datetime import datetime
from typing import Any, List, Optional, TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pha.models.base import BaseModel, JSONType, utcnow

# Forward references for type hints
if TYPE_CHECKING:
    from pha.models.practice import Child, Practice
    from pha.models.report import Report


class AssessmentStatus(str, enum.Enum):
    CREATED = "created"
    STARTED = "started"
    COMPLETED = "completed"


class Assessment(BaseModel):
    """One instance of a child completing the health survey."""

    __tablename__ = "assessments"

    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("children.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    practice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("practices.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20), default=AssessmentStatus.STARTED.value, nullable=False, index=True
    )

    # Lifecycle timestamps
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Normalized 0-100 score, written together with completed_at
    brain_o_meter_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Relationships
    child: Mapped["Child"] = relationship("Child")
    practice: Mapped[Optional["Practice"]] = relationship("Practice")
    responses: Mapped[List["SurveyResponse"]] = relationship(
        "SurveyResponse", back_populates="assessment", cascade="all, delete-orphan"
    )
    reports: Mapped[List["Report"]] = relationship(
        "Report", back_populates="assessment", cascade="all, delete-orphan"
    )

    # Constraints
    __table_args__ = (
        CheckConstraint(
            "status IN ('created', 'started', 'completed')",
            name="ck_assessment_valid_status",
        ),
        CheckConstraint(
            "brain_o_meter_score IS NULL OR (brain_o_meter_score >= 0 AND brain_o_meter_score <= 100)",
            name="ck_assessment_valid_brain_o_meter_score",
        ),
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL AND brain_o_meter_score IS NOT NULL) "
            "OR (status <> 'completed' AND completed_at IS NULL AND brain_o_meter_score IS NULL)",
            name="ck_assessment_completion_fields",
        ),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == AssessmentStatus.COMPLETED.value

    def __repr__(self) -> str:
        return f"<Assessment(id={self.id}, status={self.status}, score={self.brain_o_meter_score})>"


class SurveyResponse(BaseModel):
    """Answer to one survey question within an assessment."""

    __tablename__ = "survey_responses"

    assessment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Not a foreign key: the question catalog is only joined when reports are built
    question_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Scalar or list, never interpreted by the submission workflow
    response_value: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    response_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Submission attempt that last wrote this row
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )

    # Relationships
    assessment: Mapped["Assessment"] = relationship(
        "Assessment", back_populates="responses"
    )

    __table_args__ = (
        UniqueConstraint(
            "assessment_id", "question_id", name="uq_survey_response_assessment_question"
        ),
    )

    def __repr__(self) -> str:
        return f"<SurveyResponse(assessment={self.assessment_id}, question={self.question_id})>"
