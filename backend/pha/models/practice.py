"""Practice and child models. Managed by the intake flow, read here for ownership and reports."""
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import CheckConstraint, Date, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pha.models.base import BaseModel


class Practice(BaseModel):
    """Practice that may brand the reports of its assessments."""

    __tablename__ = "practices"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    primary_color: Mapped[str] = mapped_column(String(7), default="#3B82F6", nullable=False)

    def __repr__(self) -> str:
        return f"<Practice(name={self.name})>"


class Child(BaseModel):
    """Child profile owned by a parent user."""

    __tablename__ = "children"

    parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "gender IS NULL OR gender IN ('male', 'female', 'other', 'prefer_not_to_say')",
            name="ck_child_valid_gender",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<Child(id={self.id}, parent={self.parent_id})>"
