"""Assessment intake and reads."""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from pha.core.exceptions import AuthorizationError, NotFoundError
from pha.models.assessment import Assessment, AssessmentStatus, SurveyResponse
from pha.models.base import utcnow
from pha.repositories.assessment import AssessmentRepository
from pha.repositories.practice import ChildRepository, PracticeRepository
from pha.repositories.survey_response import SurveyResponseRepository

logger = logging.getLogger(__name__)


class AssessmentService:
    """
    Starts assessments and serves their current state.

    Completion is not done here; see ``AssessmentSubmissionService``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.assessment_repository = AssessmentRepository(db)
        self.response_repository = SurveyResponseRepository(db)
        self.child_repository = ChildRepository(db)
        self.practice_repository = PracticeRepository(db)

    async def start_assessment(
        self,
        child_id: uuid.UUID,
        practice_id: Optional[uuid.UUID] = None,
        caller_id: Optional[uuid.UUID] = None,
    ) -> Assessment:
        """Create a started assessment for a child."""
        child = await self.child_repository.get_by_id(child_id)
        if not child:
            raise NotFoundError(f"Child {child_id} not found")
        if caller_id is not None and child.parent_id != caller_id:
            raise AuthorizationError("Not authorized to start an assessment for this child")

        if practice_id is not None and not await self.practice_repository.get_by_id(practice_id):
            raise NotFoundError(f"Practice {practice_id} not found")

        assessment = await self.assessment_repository.create(
            child_id=child_id,
            practice_id=practice_id,
            status=AssessmentStatus.STARTED.value,
            started_at=utcnow(),
        )
        logger.info(f"[ASSESSMENT] Started assessment {assessment.id} for child {child_id}")
        return assessment

    async def _get_owned(self, assessment_id: uuid.UUID, caller_id: Optional[uuid.UUID]) -> Assessment:
        assessment = await self.assessment_repository.get_with_child(assessment_id)
        if not assessment:
            raise NotFoundError(f"Assessment {assessment_id} not found")
        if caller_id is not None and (assessment.child is None or assessment.child.parent_id != caller_id):
            raise AuthorizationError("Not authorized to access this assessment")
        return assessment

    async def get_assessment(
        self, assessment_id: uuid.UUID, caller_id: Optional[uuid.UUID] = None
    ) -> Tuple[Assessment, int]:
        """Current assessment state and the number of persisted responses."""
        assessment = await self._get_owned(assessment_id, caller_id)
        count = await self.response_repository.count_for_assessment(assessment_id)
        return assessment, count

    async def list_responses(
        self, assessment_id: uuid.UUID, caller_id: Optional[uuid.UUID] = None
    ) -> List[SurveyResponse]:
        await self._get_owned(assessment_id, caller_id)
        return await self.response_repository.get_all_for_assessment(assessment_id)
