"""Pydantic schemas for API requests and responses."""

from .assessment import (
    AssessmentResponse,
    CamelModel,
    ErrorResponse,
    StartAssessmentRequest,
    StartAssessmentResponse,
    SubmissionResultResponse,
    SubmitAssessmentRequest,
    SubmittedResponseItem,
    SurveyResponseItem,
)
from .report import ReportResponse

__all__ = [
    "AssessmentResponse",
    "CamelModel",
    "ErrorResponse",
    "StartAssessmentRequest",
    "StartAssessmentResponse",
    "SubmissionResultResponse",
    "SubmitAssessmentRequest",
    "SubmittedResponseItem",
    "SurveyResponseItem",
    "ReportResponse",
]
