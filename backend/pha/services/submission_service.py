"""
Assessment submission engine.

Submitting an assessment writes the response set, completes the assessment
and generates its report. The writes span several tables, so the workflow is
made logically atomic by ordering rather than by one long transaction:

1. Preconditions are checked before anything is written.
2. Responses are upserted on ``(assessment_id, question_id)`` and stamped
   with a fresh submission id. Re-running the same input converges to the
   same rows, so a failed write is recovered by retrying the submission.
3. The assessment is completed with a compare-and-set on its status. The
   completion is fenced to the submission whose responses are persisted.
4. The report is derived data. A failure here leaves the assessment
   completed and is reported through ``report_generation_failed``.

Each step is its own short transaction bounded by
``settings.STORE_TIMEOUT_SECONDS``. Every step that writes first claims the
assessment row, which serializes concurrent submissions of the same
assessment and leaves different assessments independent.
"""
import asyncio
import logging
import re
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pha.core.config import settings
from pha.core.exceptions import (
    AlreadyCompletedError,
    ApplicationError,
    NotFoundError,
    ReportBuildError,
    StorageError,
    SubmissionSupersededError,
    ValidationError,
)
from pha.models.assessment import AssessmentStatus
from pha.models.base import utcnow
from pha.models.report import Report
from pha.repositories.assessment import AssessmentRepository
from pha.repositories.survey_response import SurveyResponseRepository
from pha.services.report_assembler import ReportAssembler
from pha.services.report_service import ReportService
from pha.services.scoring import normalize_brain_o_meter_score
from pha.services.submission_validator import SubmissionValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUESTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,63}$")

_KEY_ALIASES = {
    "question_id": ("question_id", "questionId"),
    "response_value": ("response_value", "responseValue"),
    "response_text": ("response_text", "responseText"),
}


@dataclass(frozen=True)
class SubmittedResponse:
    question_id: str
    response_value: Any = None
    response_text: Optional[str] = None


@dataclass
class SubmissionResult:
    assessment_id: uuid.UUID
    status: str
    brain_o_meter_score: int
    completed_at: datetime
    responses_count: int
    report_id: Optional[uuid.UUID] = None
    report_generation_failed: bool = False
    share_token: Optional[str] = None


def _field(raw: Dict[str, Any], name: str) -> Any:
    for key in _KEY_ALIASES[name]:
        if key in raw:
            return raw[key]
    return None


def _is_json_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, bool, int, float)):
        return True
    if isinstance(value, list):
        return all(_is_json_value(v) for v in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_json_value(v) for k, v in value.items())
    return False


def parse_responses(responses: Any) -> List[SubmittedResponse]:
    """Validate the raw response list of a submission. Pure, no I/O.

    Accepts dicts with snake_case or camelCase keys, or ``SubmittedResponse``
    instances. Question ids are checked for format only.

    Raises:
        ValidationError: on the first malformed entry.
    """
    if not isinstance(responses, (list, tuple)) or not responses:
        raise ValidationError("At least one response is required", field="responses")

    parsed = []
    seen = set()
    for index, raw in enumerate(responses):
        if isinstance(raw, SubmittedResponse):
            item = raw
        elif isinstance(raw, dict):
            item = SubmittedResponse(
                question_id=_field(raw, "question_id"),
                response_value=_field(raw, "response_value"),
                response_text=_field(raw, "response_text"),
            )
        else:
            raise ValidationError(
                f"Response {index} must be an object", field=f"responses[{index}]"
            )

        if not isinstance(item.question_id, str) or not QUESTION_ID_PATTERN.match(item.question_id):
            raise ValidationError(
                f"Response {index} has an invalid question id",
                field=f"responses[{index}].question_id",
                details={"question_id": repr(item.question_id)},
            )
        if item.question_id in seen:
            raise ValidationError(
                f"Duplicate response for question {item.question_id}",
                field=f"responses[{index}].question_id",
            )
        if item.response_text is not None and not isinstance(item.response_text, str):
            raise ValidationError(
                f"Response {index} text must be a string",
                field=f"responses[{index}].response_text",
            )
        if not _is_json_value(item.response_value):
            raise ValidationError(
                f"Response {index} value must be a scalar, a list or null",
                field=f"responses[{index}].response_value",
            )

        seen.add(item.question_id)
        parsed.append(item)
    return parsed


def find_recipient_email(responses: Sequence[SubmittedResponse]) -> Optional[str]:
    """Parent email answer of the survey, if one was given."""
    for response in responses:
        if response.question_id != settings.PARENT_EMAIL_QUESTION_ID:
            continue
        value = response.response_value
        if isinstance(value, str) and "@" in value:
            return value.strip()
    return None


class AssessmentSubmissionService:
    """Runs the submission workflow for one request."""

    def __init__(
        self,
        db: AsyncSession,
        report_assembler: Optional[ReportAssembler] = None,
        store_timeout: Optional[float] = None,
    ):
        self.db = db
        self.validator = SubmissionValidator(db)
        self.assessment_repository = AssessmentRepository(db)
        self.response_repository = SurveyResponseRepository(db)
        self.report_assembler = report_assembler or ReportAssembler(db)
        self.report_service = ReportService(db, report_assembler=self.report_assembler)
        self.store_timeout = store_timeout if store_timeout is not None else settings.STORE_TIMEOUT_SECONDS

    async def submit(
        self,
        assessment_id: uuid.UUID,
        responses: Any,
        score: Any,
        practice_id: Optional[uuid.UUID] = None,
        caller_id: Optional[uuid.UUID] = None,
        report_type: Optional[str] = None,
    ) -> SubmissionResult:
        """Submit a completed survey for an assessment.

        Raises:
            ValidationError: malformed responses or score, or unknown practice.
                Nothing is written.
            NotFoundError: unknown assessment. Nothing is written.
            AuthorizationError: caller does not own the assessment. Nothing is written.
            AlreadyCompletedError: completed before or during this call
                (``SubmissionSupersededError`` when a concurrent submission
                replaced this one's responses).
            StorageError: a store step failed or timed out. Safe to retry.
        """
        submitted = parse_responses(responses)
        normalized_score = normalize_brain_o_meter_score(score)
        report_type = report_type or settings.DEFAULT_REPORT_TYPE
        submission_id = uuid.uuid4()

        logger.info(
            f"[SUBMISSION] Submitting assessment {assessment_id}: "
            f"{len(submitted)} responses, score {normalized_score}, submission {submission_id}"
        )

        assessment = await self._run_step(
            "validate", self._validate, assessment_id, caller_id, practice_id
        )
        effective_practice_id = practice_id or assessment.practice_id

        await self._run_step(
            "persist_responses", self._persist_responses, assessment_id, submitted, submission_id
        )

        completed_at = utcnow()
        await self._run_step(
            "complete",
            self._complete,
            assessment_id,
            submission_id,
            len(submitted),
            normalized_score,
            completed_at,
            practice_id,
        )
        logger.info(f"[SUBMISSION] Assessment {assessment_id} completed with score {normalized_score}")

        result = SubmissionResult(
            assessment_id=assessment_id,
            status=AssessmentStatus.COMPLETED.value,
            brain_o_meter_score=normalized_score,
            completed_at=completed_at,
            responses_count=len(submitted),
        )

        try:
            report = await self._run_step(
                "report", self._generate_report, assessment_id, report_type, effective_practice_id
            )
        except (ReportBuildError, StorageError) as e:
            logger.error(
                f"[SUBMISSION] Report generation failed for completed assessment {assessment_id}: {e.message}"
            )
            result.report_generation_failed = True
            return result

        result.report_id = report.id
        try:
            share = await self._run_step(
                "share", self._create_share, report, find_recipient_email(submitted)
            )
            result.share_token = share.share_token
        except StorageError as e:
            logger.warning(
                f"[SUBMISSION] Could not create share link for report {result.report_id}: {e.message}"
            )

        return result

    # ------------------------------------------------------------------
    # Steps. Each runs inside ``_run_step`` and ends its own transaction.
    # ------------------------------------------------------------------

    async def _validate(
        self,
        assessment_id: uuid.UUID,
        caller_id: Optional[uuid.UUID],
        practice_id: Optional[uuid.UUID],
    ):
        assessment = await self.validator.validate(assessment_id, caller_id, practice_id)
        await self.db.commit()
        return assessment

    async def _persist_responses(
        self,
        assessment_id: uuid.UUID,
        submitted: List[SubmittedResponse],
        submission_id: uuid.UUID,
    ) -> int:
        await self._claim(assessment_id)
        await self.response_repository.upsert_bulk(
            assessment_id, [asdict(r) for r in submitted], submission_id
        )
        await self.db.commit()

        # Read back what this submission left in the store
        persisted = await self.response_repository.count_for_submission(assessment_id, submission_id)
        foreign = await self.response_repository.count_foreign_rows(assessment_id, submission_id)
        await self.db.commit()

        if persisted != len(submitted):
            if foreign:
                raise SubmissionSupersededError(
                    f"Responses of assessment {assessment_id} were replaced by a concurrent submission",
                    details={"assessment_id": str(assessment_id)},
                )
            logger.error(
                f"[SUBMISSION] Partial response write for assessment {assessment_id}: "
                f"expected {len(submitted)}, found {persisted}"
            )
            raise StorageError(
                "Response write was incomplete",
                details={
                    "assessment_id": str(assessment_id),
                    "expected": len(submitted),
                    "persisted": persisted,
                },
            )
        return persisted

    async def _complete(
        self,
        assessment_id: uuid.UUID,
        submission_id: uuid.UUID,
        expected_count: int,
        score: int,
        completed_at: datetime,
        practice_id: Optional[uuid.UUID],
    ) -> None:
        await self._claim(assessment_id)

        own = await self.response_repository.count_for_submission(assessment_id, submission_id)
        foreign = await self.response_repository.count_foreign_rows(assessment_id, submission_id)
        if foreign or own != expected_count:
            raise SubmissionSupersededError(
                f"Responses of assessment {assessment_id} were replaced by a concurrent submission",
                details={"assessment_id": str(assessment_id)},
            )

        completed = await self.assessment_repository.conditional_complete_if_not_completed(
            assessment_id, score, completed_at, practice_id
        )
        if not completed:
            raise AlreadyCompletedError(
                f"Assessment {assessment_id} was completed concurrently",
                details={"assessment_id": str(assessment_id)},
            )
        await self.db.commit()

    async def _generate_report(
        self,
        assessment_id: uuid.UUID,
        report_type: str,
        practice_id: Optional[uuid.UUID],
    ) -> Report:
        content = await self.report_assembler.assemble(assessment_id, report_type)
        report = await self.report_assembler.persist(assessment_id, content, report_type, practice_id)
        await self.db.commit()
        return report

    async def _create_share(self, report: Report, recipient_email: Optional[str]):
        share = await self.report_service.create_share(report, recipient_email)
        await self.db.commit()
        return share

    # ------------------------------------------------------------------

    async def _claim(self, assessment_id: uuid.UUID) -> None:
        """Claim the assessment row or raise why it cannot be written."""
        if await self.assessment_repository.claim_for_write(assessment_id):
            return

        await self.db.rollback()
        assessment = await self.assessment_repository.get_by_id(assessment_id)
        await self.db.commit()
        if assessment is None:
            raise NotFoundError(
                f"Assessment {assessment_id} not found",
                details={"assessment_id": str(assessment_id)},
            )
        raise AlreadyCompletedError(
            f"Assessment {assessment_id} is already completed",
            details={"assessment_id": str(assessment_id)},
        )

    async def _run_step(self, name: str, step: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run one store step under the timeout, rolling back on any failure."""
        try:
            return await asyncio.wait_for(step(*args), timeout=self.store_timeout)
        except ApplicationError:
            await self._rollback(name)
            raise
        except asyncio.TimeoutError as e:
            await self._rollback(name)
            logger.error(f"[SUBMISSION] Step '{name}' timed out after {self.store_timeout}s")
            raise StorageError(
                f"Store step '{name}' timed out",
                details={"step": name, "timeout": self.store_timeout},
            ) from e
        except SQLAlchemyError as e:
            await self._rollback(name)
            logger.error(f"[SUBMISSION] Step '{name}' failed: {str(e)}")
            raise StorageError(
                f"Store step '{name}' failed",
                details={"step": name},
            ) from e

    async def _rollback(self, name: str) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"[SUBMISSION] Rollback after step '{name}' failed: {str(e)}")
