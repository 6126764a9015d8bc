"""
Survey question catalog.

The catalog is reference data: submissions never check question ids against it,
report building joins it to group and interpret responses.
"""
from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pha.models.base import BaseModel, JSONType

QUESTION_TYPES = ("multiple_choice", "text", "number", "boolean", "scale", "date")


class SurveyQuestionDefinition(BaseModel):
    """Definition of a single survey question."""
    __tablename__ = "survey_question_definitions"

    # Question ids are strings so that both UUIDs and slugs are usable
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)
    options: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    validation_rules: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    __table_args__ = (
        CheckConstraint(
            "question_type IN ('multiple_choice', 'text', 'number', 'boolean', 'scale', 'date')",
            name="ck_question_valid_type",
        ),
    )

    def __repr__(self):
        return f"<SurveyQuestionDefinition {self.id} ({self.question_type})>"
