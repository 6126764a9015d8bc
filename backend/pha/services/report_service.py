"""Report read path: lazy regeneration, refresh and share links."""
import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pha.core.config import settings
from pha.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ReportBuildError,
    StorageError,
    ValidationError,
)
from pha.models.assessment import Assessment
from pha.models.base import utcnow
from pha.models.report import REPORT_TYPES, Report, ReportShare
from pha.repositories.assessment import AssessmentRepository
from pha.repositories.report import ReportRepository, ReportShareRepository
from pha.services.report_assembler import ReportAssembler

logger = logging.getLogger(__name__)

DIRECT_LINK = "direct_link"


def generate_share_token() -> str:
    """64 hex characters from the OS CSPRNG."""
    return secrets.token_hex(32)


def check_report_type(report_type: str) -> str:
    if report_type not in REPORT_TYPES:
        raise ValidationError(
            f"Unknown report type: {report_type}",
            field="report_type",
            details={"allowed": list(REPORT_TYPES)},
        )
    return report_type


def share_url(share_token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/reports/view/{share_token}"


class ReportService:
    """Report reads. Regeneration never changes the assessment or its responses.

    Methods flush only, except where noted; the request session commits.
    """

    def __init__(self, db: AsyncSession, report_assembler: Optional[ReportAssembler] = None):
        self.db = db
        self.assessment_repository = AssessmentRepository(db)
        self.report_repository = ReportRepository(db)
        self.share_repository = ReportShareRepository(db)
        self.report_assembler = report_assembler or ReportAssembler(db)

    async def _get_owned_assessment(
        self, assessment_id: uuid.UUID, caller_id: Optional[uuid.UUID]
    ) -> Assessment:
        assessment = await self.assessment_repository.get_with_child(assessment_id)
        if not assessment:
            raise NotFoundError(f"Assessment {assessment_id} not found")
        if caller_id is not None and (assessment.child is None or assessment.child.parent_id != caller_id):
            raise AuthorizationError("Not authorized to access this report")
        return assessment

    async def regenerate(self, assessment: Assessment, report_type: str) -> Report:
        """Rebuild and upsert the report of one type for a completed assessment."""
        content = await self.report_assembler.assemble(assessment.id, report_type)
        return await self.report_assembler.persist(
            assessment.id, content, report_type, assessment.practice_id
        )

    async def get_or_generate(
        self,
        assessment_id: uuid.UUID,
        report_type: Optional[str] = None,
        caller_id: Optional[uuid.UUID] = None,
    ) -> Report:
        """Get the report of an assessment, building it if it is missing.

        Raises:
            NotFoundError: unknown assessment.
            AuthorizationError: caller does not own the assessment.
            ConflictError: the assessment is not completed yet.
            ReportBuildError: the missing report could not be built.
        """
        report_type = check_report_type(report_type or settings.DEFAULT_REPORT_TYPE)
        assessment = await self._get_owned_assessment(assessment_id, caller_id)

        report = await self.report_repository.get_by_assessment(assessment_id, report_type)
        if report:
            return report

        if not assessment.is_completed:
            raise ConflictError(
                f"Assessment {assessment_id} is not completed",
                details={"status": assessment.status},
            )

        logger.info(f"[REPORTS] Generating missing {report_type} report for assessment {assessment_id}")
        return await self.regenerate(assessment, report_type)

    async def get_report(
        self,
        report_id: uuid.UUID,
        caller_id: Optional[uuid.UUID] = None,
        refresh: bool = False,
    ) -> Report:
        """Get a report by id, optionally rebuilding its content first."""
        report = await self.report_repository.get_by_id(report_id)
        if not report:
            raise NotFoundError(f"Report {report_id} not found")

        assessment = await self._get_owned_assessment(report.assessment_id, caller_id)
        if refresh:
            logger.info(f"[REPORTS] Refreshing report {report_id}")
            report = await self.regenerate(assessment, report.report_type)
        return report

    async def get_by_share_token(self, share_token: str) -> Report:
        """Resolve a share link to its report and record the first view."""
        share = await self.share_repository.get_by_token(share_token)
        if not share:
            raise NotFoundError("Shared report not found")

        now = utcnow()
        if share.expires_at is not None and _as_aware(share.expires_at) < now:
            raise NotFoundError("Shared report link has expired")

        if share.viewed_at is None:
            await self.share_repository.mark_viewed(share_token, now)
        return share.report

    async def create_share(
        self, report: Report, recipient_email: Optional[str] = None
    ) -> ReportShare:
        """Direct-link share of a report. Returns the existing one if there is one."""
        existing = await self.share_repository.get_for_report(report.id, DIRECT_LINK)
        if existing:
            return existing

        share = await self.share_repository.create(
            report_id=report.id,
            share_token=generate_share_token(),
            share_method=DIRECT_LINK,
            recipient_email=recipient_email,
        )
        logger.info(f"[REPORTS] Created share link for report {report.id}")
        return share

    async def repair_missing_reports(self, report_type: Optional[str] = None) -> List[uuid.UUID]:
        """Build reports for completed assessments that have none. Commits per report.

        Returns the ids of the assessments that were repaired. Assessments whose
        report still fails to build are logged and skipped.
        """
        report_type = check_report_type(report_type or settings.DEFAULT_REPORT_TYPE)
        missing = await self.assessment_repository.get_completed_without_report(report_type)
        logger.info(f"[REPORTS] {len(missing)} completed assessments without a {report_type} report")

        # Rollback expires loaded rows, so keep plain ids
        targets = [(a.id, a.practice_id) for a in missing]
        await self.db.commit()

        repaired = []
        for assessment_id, practice_id in targets:
            try:
                content = await self.report_assembler.assemble(assessment_id, report_type)
                await self.report_assembler.persist(assessment_id, content, report_type, practice_id)
                await self.db.commit()
            except (ReportBuildError, StorageError) as e:
                await self.db.rollback()
                logger.error(f"[REPORTS] Could not repair report for assessment {assessment_id}: {e.message}")
                continue
            repaired.append(assessment_id)
        return repaired


def _as_aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
