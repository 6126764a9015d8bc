"""Survey response repository - bulk idempotent writes keyed by assessment and question."""
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pha.core.exceptions import StorageError
from pha.models.assessment import SurveyResponse
from pha.models.base import utcnow
from pha.models.reference import SurveyQuestionDefinition
from pha.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SurveyResponseRepository(BaseRepository[SurveyResponse]):
    """Repository for the response set of an assessment."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, SurveyResponse)

    async def upsert_bulk(
        self,
        assessment_id: uuid.UUID,
        responses: Sequence[Dict[str, Any]],
        submission_id: uuid.UUID,
    ) -> int:
        """Make the stored response set of an assessment equal to ``responses``.

        Rows for questions outside the set are deleted, every submitted row is
        inserted or overwritten on ``(assessment_id, question_id)`` and stamped
        with ``submission_id``. Re-applying the same input converges to the same
        rows. Flushes only; the caller owns the transaction.
        """
        insert = _INSERT_BY_DIALECT.get(self.dialect_name)
        if insert is None:
            raise StorageError(
                f"Bulk upsert is not supported for dialect {self.dialect_name!r}",
                details={"dialect": self.dialect_name},
            )

        question_ids = [r["question_id"] for r in responses]
        removed = await self.db.execute(
            delete(SurveyResponse)
            .where(
                and_(
                    SurveyResponse.assessment_id == assessment_id,
                    SurveyResponse.question_id.notin_(question_ids),
                )
            )
            .execution_options(synchronize_session=False)
        )
        if removed.rowcount:
            logger.info(
                f"[RESPONSE_REPO] Removed {removed.rowcount} stale responses for assessment {assessment_id}"
            )

        now = utcnow()
        rows = [
            {
                "id": uuid.uuid4(),
                "assessment_id": assessment_id,
                "question_id": r["question_id"],
                "response_value": r.get("response_value"),
                "response_text": r.get("response_text"),
                "submission_id": submission_id,
                "created_at": now,
                "updated_at": now,
            }
            for r in responses
        ]

        stmt = insert(SurveyResponse).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SurveyResponse.assessment_id, SurveyResponse.question_id],
            set_={
                "response_value": stmt.excluded.response_value,
                "response_text": stmt.excluded.response_text,
                "submission_id": stmt.excluded.submission_id,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt.execution_options(synchronize_session=False))
        logger.debug(
            f"[RESPONSE_REPO] Upserted {len(rows)} responses for assessment {assessment_id} "
            f"(submission {submission_id})"
        )
        return len(rows)

    async def count_for_assessment(self, assessment_id: uuid.UUID) -> int:
        """Count persisted responses of an assessment."""
        result = await self.db.execute(
            select(func.count(SurveyResponse.id)).where(
                SurveyResponse.assessment_id == assessment_id
            )
        )
        return result.scalar_one()

    async def count_for_submission(
        self, assessment_id: uuid.UUID, submission_id: uuid.UUID
    ) -> int:
        """Count responses of an assessment last written by one submission attempt."""
        result = await self.db.execute(
            select(func.count(SurveyResponse.id)).where(
                and_(
                    SurveyResponse.assessment_id == assessment_id,
                    SurveyResponse.submission_id == submission_id,
                )
            )
        )
        return result.scalar_one()

    async def count_foreign_rows(
        self, assessment_id: uuid.UUID, submission_id: uuid.UUID
    ) -> int:
        """Count responses of an assessment written by any other submission attempt."""
        result = await self.db.execute(
            select(func.count(SurveyResponse.id)).where(
                and_(
                    SurveyResponse.assessment_id == assessment_id,
                    SurveyResponse.submission_id != submission_id,
                )
            )
        )
        return result.scalar_one()

    async def get_all_for_assessment(self, assessment_id: uuid.UUID) -> List[SurveyResponse]:
        """Get all responses of an assessment ordered by question id."""
        query = (
            select(SurveyResponse)
            .where(SurveyResponse.assessment_id == assessment_id)
            .order_by(SurveyResponse.question_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_with_questions(
        self, assessment_id: uuid.UUID
    ) -> List[Tuple[SurveyResponse, Optional[SurveyQuestionDefinition]]]:
        """Responses joined to their catalog definition, in questionnaire order.

        Responses whose question is missing from the catalog come last with ``None``.
        """
        query = (
            select(SurveyResponse, SurveyQuestionDefinition)
            .outerjoin(
                SurveyQuestionDefinition,
                SurveyQuestionDefinition.id == SurveyResponse.question_id,
            )
            .where(SurveyResponse.assessment_id == assessment_id)
            .order_by(
                SurveyQuestionDefinition.order_index.is_(None),
                SurveyQuestionDefinition.order_index,
                SurveyResponse.question_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return [(response, question) for response, question in result.all()]
