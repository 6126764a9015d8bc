"""Report repository - derived report content and share links."""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pha.core.exceptions import StorageError
from pha.models.base import utcnow
from pha.models.report import Report, ReportShare
from pha.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ReportRepository(BaseRepository[Report]):
    """Repository for generated reports."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Report)

    async def upsert(
        self,
        assessment_id: uuid.UUID,
        report_type: str,
        content: Dict[str, Any],
        practice_id: Optional[uuid.UUID] = None,
    ) -> Report:
        """Insert or replace the report of one type for an assessment."""
        insert = _INSERT_BY_DIALECT.get(self.dialect_name)
        if insert is None:
            raise StorageError(
                f"Report upsert is not supported for dialect {self.dialect_name!r}",
                details={"dialect": self.dialect_name},
            )

        now = utcnow()
        stmt = insert(Report).values(
            id=uuid.uuid4(),
            assessment_id=assessment_id,
            practice_id=practice_id,
            report_type=report_type,
            content=content,
            generated_at=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Report.assessment_id, Report.report_type],
            set_={
                "content": stmt.excluded.content,
                "practice_id": stmt.excluded.practice_id,
                "generated_at": stmt.excluded.generated_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt.execution_options(synchronize_session=False))

        report = await self.get_by_assessment(assessment_id, report_type)
        logger.debug(f"[REPORT_REPO] Upserted {report_type} report {report.id} for assessment {assessment_id}")
        return report

    async def get_by_id(self, report_id: uuid.UUID) -> Optional[Report]:
        query = (
            select(Report)
            .where(Report.id == report_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_assessment(
        self, assessment_id: uuid.UUID, report_type: str
    ) -> Optional[Report]:
        """Get the report of one type for an assessment."""
        query = (
            select(Report)
            .where(
                and_(
                    Report.assessment_id == assessment_id,
                    Report.report_type == report_type,
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()


class ReportShareRepository(BaseRepository[ReportShare]):
    """Repository for report share links."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ReportShare)

    async def get_by_token(self, share_token: str) -> Optional[ReportShare]:
        """Get a share with its report loaded."""
        query = (
            select(ReportShare)
            .options(selectinload(ReportShare.report))
            .where(ReportShare.share_token == share_token)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_for_report(
        self, report_id: uuid.UUID, share_method: str
    ) -> Optional[ReportShare]:
        """Get the oldest share of a report created with the given method."""
        query = (
            select(ReportShare)
            .where(
                and_(
                    ReportShare.report_id == report_id,
                    ReportShare.share_method == share_method,
                )
            )
            .order_by(ReportShare.created_at)
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def mark_viewed(self, share_token: str, viewed_at: datetime) -> bool:
        """Record the first view of a share. Later views leave ``viewed_at`` unchanged."""
        stmt = (
            update(ReportShare)
            .where(
                and_(
                    ReportShare.share_token == share_token,
                    ReportShare.viewed_at.is_(None),
                )
            )
            .values(viewed_at=viewed_at, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
