"""Pydantic schemas for report API endpoints."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pha.schemas.assessment import CamelModel


class ReportResponse(CamelModel):
    """Stored report. ``content`` keeps its own snake_case keys."""

    id: UUID
    assessment_id: UUID
    practice_id: Optional[UUID] = None
    report_type: str
    content: Dict[str, Any]
    generated_at: datetime
