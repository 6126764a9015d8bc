"""Repository layer for data access."""

from .assessment import AssessmentRepository
from .base import BaseRepository
from .practice import ChildRepository, PracticeRepository
from .report import ReportRepository, ReportShareRepository
from .survey_response import SurveyResponseRepository

__all__ = [
    "BaseRepository",
    "AssessmentRepository",
    "ChildRepository",
    "PracticeRepository",
    "ReportRepository",
    "ReportShareRepository",
    "SurveyResponseRepository",
]
