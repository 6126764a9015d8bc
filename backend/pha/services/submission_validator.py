"""Preconditions checked before a submission writes anything."""
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pha.core.exceptions import (
    AlreadyCompletedError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from pha.models.assessment import Assessment
from pha.repositories.assessment import AssessmentRepository
from pha.repositories.practice import PracticeRepository

logger = logging.getLogger(__name__)


class SubmissionValidator:
    """Existence, ownership and completion-state checks. Read only."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.assessment_repository = AssessmentRepository(db)
        self.practice_repository = PracticeRepository(db)

    async def validate(
        self,
        assessment_id: uuid.UUID,
        caller_id: Optional[uuid.UUID] = None,
        practice_id: Optional[uuid.UUID] = None,
    ) -> Assessment:
        """Return the assessment if it may be submitted by ``caller_id``.

        Ownership is checked before completion state, so a caller who does not
        own the assessment cannot learn whether it was completed.

        Raises:
            NotFoundError: no such assessment.
            AuthorizationError: ``caller_id`` given and the assessment's child
                belongs to someone else (or no longer exists).
            AlreadyCompletedError: the assessment is already completed.
            ValidationError: ``practice_id`` given and no such practice exists.
        """
        if caller_id is not None:
            assessment = await self.assessment_repository.get_with_child(assessment_id)
        else:
            assessment = await self.assessment_repository.get_by_id(assessment_id)

        if not assessment:
            raise NotFoundError(
                f"Assessment {assessment_id} not found",
                details={"assessment_id": str(assessment_id)},
            )

        if caller_id is not None:
            child = assessment.child
            if child is None or child.parent_id != caller_id:
                logger.warning(
                    f"[SUBMISSION] Caller {caller_id} does not own assessment {assessment_id}"
                )
                raise AuthorizationError(
                    "Not authorized to submit this assessment",
                    details={"assessment_id": str(assessment_id)},
                )

        if assessment.is_completed:
            raise AlreadyCompletedError(
                f"Assessment {assessment_id} is already completed",
                details={
                    "assessment_id": str(assessment_id),
                    "completed_at": assessment.completed_at.isoformat()
                    if assessment.completed_at
                    else None,
                },
            )

        if practice_id is not None and not await self.practice_repository.get_by_id(practice_id):
            raise ValidationError(
                f"Practice {practice_id} not found",
                field="practice_id",
                details={"practice_id": str(practice_id)},
            )

        return assessment
