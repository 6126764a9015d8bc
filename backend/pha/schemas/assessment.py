"""Pydantic schemas for assessment API endpoints.

The HTTP API speaks camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema with camelCase aliases, accepting either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Request schemas
class StartAssessmentRequest(CamelModel):
    child_id: UUID
    practice_id: Optional[UUID] = None


class SubmittedResponseItem(CamelModel):
    """One answer. Question id format is checked by the submission engine."""

    question_id: str
    response_value: Any = None
    response_text: Optional[str] = None


class SubmitAssessmentRequest(CamelModel):
    """Submission body. Score validation is left to the engine so it fails as a 400."""

    responses: List[SubmittedResponseItem] = Field(default_factory=list)
    brain_o_meter_score: Any = None
    practice_id: Optional[UUID] = None


# Response schemas
class StartAssessmentResponse(CamelModel):
    assessment_id: UUID
    child_id: UUID
    status: str
    started_at: datetime


class AssessmentResponse(CamelModel):
    """Assessment state."""

    id: UUID
    child_id: UUID
    practice_id: Optional[UUID] = None
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    brain_o_meter_score: Optional[int] = None
    responses_count: int = 0


class SurveyResponseItem(CamelModel):
    question_id: str
    response_value: Any = None
    response_text: Optional[str] = None
    updated_at: datetime


class SubmissionResultResponse(CamelModel):
    """Outcome of a successful submission."""

    assessment_id: UUID
    report_id: Optional[UUID] = None
    status: str
    brain_o_meter_score: int
    completed_at: datetime
    responses_count: int
    report_generation_failed: bool = False
    share_token: Optional[str] = None
    share_url: Optional[str] = None


class ErrorResponse(CamelModel):
    """Error response schema."""

    detail: str
    error_code: Optional[str] = None
