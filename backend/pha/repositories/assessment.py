"""Assessment repository for data access operations."""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pha.models.assessment import Assessment, AssessmentStatus, SurveyResponse
from pha.models.base import utcnow
from pha.models.report import Report
from pha.repositories.base import BaseRepository


class AssessmentRepository(BaseRepository[Assessment]):
    """Repository for assessment reads and status transitions.

    Status is never cached: every read goes back to the store and overwrites
    whatever the session's identity map holds for the row.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(db, Assessment)

    async def get_by_id(self, assessment_id: uuid.UUID) -> Optional[Assessment]:
        """Get the current stored state of an assessment."""
        query = (
            select(Assessment)
            .where(Assessment.id == assessment_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_with_child(self, assessment_id: uuid.UUID) -> Optional[Assessment]:
        """Get assessment with child and practice loaded."""
        query = (
            select(Assessment)
            .options(
                selectinload(Assessment.child),
                selectinload(Assessment.practice),
            )
            .where(Assessment.id == assessment_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def claim_for_write(self, assessment_id: uuid.UUID) -> bool:
        """Touch a not-yet-completed assessment row inside the current transaction.

        The touch takes the row lock (PostgreSQL) or the database write lock
        (SQLite) until commit, which serializes submissions of one assessment.
        Returns ``False`` when the row is missing or already completed.
        """
        stmt = (
            update(Assessment)
            .where(
                and_(
                    Assessment.id == assessment_id,
                    Assessment.status != AssessmentStatus.COMPLETED.value,
                )
            )
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def conditional_complete_if_not_completed(
        self,
        assessment_id: uuid.UUID,
        score: int,
        completed_at: datetime,
        practice_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Compare-and-set the assessment to completed.

        Status, completion time and score are written by one statement that only
        matches while the stored status is not completed. Returns ``True`` when
        this call performed the transition.
        """
        values = {
            "status": AssessmentStatus.COMPLETED.value,
            "completed_at": completed_at,
            "brain_o_meter_score": score,
            "updated_at": utcnow(),
        }
        if practice_id is not None:
            values["practice_id"] = practice_id

        stmt = (
            update(Assessment)
            .where(
                and_(
                    Assessment.id == assessment_id,
                    Assessment.status != AssessmentStatus.COMPLETED.value,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def get_completed_without_report(self, report_type: str) -> List[Assessment]:
        """Completed assessments that have no report of the given type."""
        has_report = exists().where(
            and_(Report.assessment_id == Assessment.id, Report.report_type == report_type)
        )
        query = (
            select(Assessment)
            .where(
                and_(
                    Assessment.status == AssessmentStatus.COMPLETED.value,
                    ~has_report,
                )
            )
            .order_by(Assessment.completed_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_completed_without_responses(self) -> List[Assessment]:
        """Completed assessments with an empty response set."""
        has_responses = exists().where(SurveyResponse.assessment_id == Assessment.id)
        query = (
            select(Assessment)
            .where(
                and_(
                    Assessment.status == AssessmentStatus.COMPLETED.value,
                    ~has_responses,
                )
            )
            .order_by(Assessment.completed_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
