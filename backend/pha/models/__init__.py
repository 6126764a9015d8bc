"""Import all models so that relationships resolve and metadata is complete."""
from pha.models.base import Base, BaseModel
from pha.models.practice import Child, Practice
from pha.models.reference import SurveyQuestionDefinition
from pha.models.assessment import Assessment, AssessmentStatus, SurveyResponse
from pha.models.report import Report, ReportShare

__all__ = [
    "Base",
    "BaseModel",
    "Child",
    "Practice",
    "SurveyQuestionDefinition",
    "Assessment",
    "AssessmentStatus",
    "SurveyResponse",
    "Report",
    "ReportShare",
]
