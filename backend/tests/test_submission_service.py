"""Tests for the assessment submission workflow."""

import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from fixtures import A1_RESPONSES, create_assessment, create_child, seed_started_assessment
from pha.core.config import settings
from pha.core.exceptions import (
    AlreadyCompletedError,
    AuthorizationError,
    NotFoundError,
    ReportBuildError,
    StorageError,
    SubmissionSupersededError,
    ValidationError,
)
from pha.models import AssessmentStatus
from pha.repositories import (
    AssessmentRepository,
    ReportRepository,
    ReportShareRepository,
    SurveyResponseRepository,
)
from pha.services.report_assembler import ReportAssembler
from pha.services.submission_service import (
    AssessmentSubmissionService,
    SubmittedResponse,
    find_recipient_email,
    parse_responses,
)


class FailingAssembler(ReportAssembler):
    async def assemble(self, assessment_id, report_type="standard"):
        raise ReportBuildError("Report template missing")


class SlowAssembler(ReportAssembler):
    async def assemble(self, assessment_id, report_type="standard"):
        await asyncio.sleep(5)
        return await super().assemble(assessment_id, report_type)


async def _stored_state(session_factory, assessment_id):
    async with session_factory() as session:
        assessment = await AssessmentRepository(session).get_by_id(assessment_id)
        rows = await SurveyResponseRepository(session).get_all_for_assessment(assessment_id)
        report = await ReportRepository(session).get_by_assessment(assessment_id, "standard")
        await session.commit()
    return assessment, rows, report


# ----------------------------------------------------------------------------
# Input parsing
# ----------------------------------------------------------------------------

def test_parse_responses_accepts_camel_case_keys():
    parsed = parse_responses(
        [{"questionId": "q1", "responseValue": 8, "responseText": "8"}, SubmittedResponse("q2", "male")]
    )

    assert parsed == [SubmittedResponse("q1", 8, "8"), SubmittedResponse("q2", "male", None)]


@pytest.mark.parametrize(
    "responses",
    [
        [],
        None,
        "q1",
        [{"question_id": ""}],
        [{"question_id": "has space"}],
        [{"question_id": 12}],
        [{"question_id": "q1"}, {"question_id": "q1"}],
        [{"question_id": "q1", "response_text": 5}],
        [{"question_id": "q1", "response_value": {"nested": object()}}],
        ["not-an-object"],
    ],
)
def test_parse_responses_rejects_malformed_input(responses):
    with pytest.raises(ValidationError):
        parse_responses(responses)


def test_find_recipient_email():
    email_question = settings.PARENT_EMAIL_QUESTION_ID

    assert find_recipient_email([SubmittedResponse(email_question, " parent@example.com ")]) == "parent@example.com"
    assert find_recipient_email([SubmittedResponse(email_question, "not an email")]) is None
    assert find_recipient_email([SubmittedResponse("q1", "parent@example.com")]) is None


# ----------------------------------------------------------------------------
# Workflow
# ----------------------------------------------------------------------------

async def test_submit_completes_assessment(db_session, session_factory):
    practice, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    result = await AssessmentSubmissionService(db_session).submit(assessment_id, A1_RESPONSES, 75)

    assert result.status == AssessmentStatus.COMPLETED.value
    assert result.brain_o_meter_score == 75
    assert result.responses_count == 2
    assert result.report_generation_failed is False
    assert result.report_id is not None
    assert len(result.share_token) == 64

    stored, rows, report = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.COMPLETED.value
    assert stored.brain_o_meter_score == 75
    assert stored.completed_at is not None
    assert stored.completed_at.replace(tzinfo=None) == result.completed_at.replace(tzinfo=None)
    assert [(r.question_id, r.response_value) for r in rows] == [("q1", "8"), ("q2", "male")]
    assert report.id == result.report_id
    assert report.practice_id == practice.id
    assert report.content["assessment"]["brain_o_meter_score"] == 75


async def test_second_submit_is_rejected_and_changes_nothing(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    service = AssessmentSubmissionService(db_session)
    await service.submit(assessment_id, A1_RESPONSES, 75)

    with pytest.raises(AlreadyCompletedError):
        await service.submit(assessment_id, [{"question_id": "q1", "response_value": "2"}], 10)

    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.brain_o_meter_score == 75
    assert [(r.question_id, r.response_value) for r in rows] == [("q1", "8"), ("q2", "male")]


async def test_score_is_normalized_before_storing(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    result = await AssessmentSubmissionService(db_session).submit(assessment_id, A1_RESPONSES, 74.5)

    stored, _, _ = await _stored_state(session_factory, assessment_id)
    assert result.brain_o_meter_score == 75
    assert stored.brain_o_meter_score == 75


async def test_share_link_carries_parent_email(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    responses = A1_RESPONSES + [
        {"question_id": settings.PARENT_EMAIL_QUESTION_ID, "response_value": "parent@example.com"}
    ]

    result = await AssessmentSubmissionService(db_session).submit(assessment_id, responses, 60)

    async with session_factory() as session:
        share = await ReportShareRepository(session).get_by_token(result.share_token)
        await session.commit()
    assert share.recipient_email == "parent@example.com"
    assert share.report.id == result.report_id
    assert result.responses_count == 3


# ----------------------------------------------------------------------------
# Preconditions
# ----------------------------------------------------------------------------

async def test_unknown_assessment_writes_nothing(db_session, session_factory):
    missing = uuid.uuid4()

    with pytest.raises(NotFoundError):
        await AssessmentSubmissionService(db_session).submit(missing, A1_RESPONSES, 75)

    async with session_factory() as session:
        assert await SurveyResponseRepository(session).count_for_assessment(missing) == 0
        await session.commit()


async def test_completed_assessment_writes_nothing(db_session, session_factory):
    child = await create_child(db_session)
    done = await create_assessment(db_session, child, status=AssessmentStatus.COMPLETED.value)
    await db_session.commit()
    done_id = done.id

    with pytest.raises(AlreadyCompletedError):
        await AssessmentSubmissionService(db_session).submit(done_id, A1_RESPONSES, 90)

    stored, rows, report = await _stored_state(session_factory, done_id)
    assert stored.brain_o_meter_score == 60
    assert rows == []
    assert report is None


@pytest.mark.parametrize("score", ["75", None, True, float("nan")])
async def test_invalid_score_writes_nothing(db_session, session_factory, score):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    with pytest.raises(ValidationError):
        await AssessmentSubmissionService(db_session).submit(assessment_id, A1_RESPONSES, score)

    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert rows == []


async def test_foreign_caller_writes_nothing(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    with pytest.raises(AuthorizationError):
        await AssessmentSubmissionService(db_session).submit(
            assessment_id, A1_RESPONSES, 75, caller_id=uuid.uuid4()
        )

    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert rows == []


async def test_unknown_practice_writes_nothing(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    with pytest.raises(ValidationError):
        await AssessmentSubmissionService(db_session).submit(
            assessment_id, A1_RESPONSES, 75, practice_id=uuid.uuid4()
        )

    stored, rows, report = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert stored.brain_o_meter_score is None
    assert rows == []
    assert report is None


async def test_owner_may_submit(db_session):
    _, child, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    result = await AssessmentSubmissionService(db_session).submit(
        assessment_id, A1_RESPONSES, 75, caller_id=child.parent_id
    )

    assert result.status == AssessmentStatus.COMPLETED.value


# ----------------------------------------------------------------------------
# Report decoupling
# ----------------------------------------------------------------------------

async def test_report_failure_does_not_undo_completion(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    result = await AssessmentSubmissionService(
        db_session, report_assembler=FailingAssembler(db_session)
    ).submit(assessment_id, A1_RESPONSES, 75)

    assert result.status == AssessmentStatus.COMPLETED.value
    assert result.report_generation_failed is True
    assert result.report_id is None
    assert result.share_token is None

    stored, rows, report = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.COMPLETED.value
    assert len(rows) == 2
    assert report is None

    # The report can be built later from persisted state
    async with session_factory() as session:
        content = await ReportAssembler(session).assemble(assessment_id)
        await session.commit()
    assert content["metadata"]["total_responses"] == 2


async def test_report_timeout_is_soft(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id

    result = await AssessmentSubmissionService(
        db_session, report_assembler=SlowAssembler(db_session), store_timeout=1.0
    ).submit(assessment_id, A1_RESPONSES, 75)

    assert result.report_generation_failed is True
    stored, _, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.COMPLETED.value


# ----------------------------------------------------------------------------
# Store failures and concurrency
# ----------------------------------------------------------------------------

async def test_response_write_timeout_is_retryable(db_session, session_factory, monkeypatch):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    service = AssessmentSubmissionService(db_session, store_timeout=0.5)

    async def stalled_upsert(*args, **kwargs):
        await asyncio.sleep(5)

    monkeypatch.setattr(service.response_repository, "upsert_bulk", stalled_upsert)

    with pytest.raises(StorageError):
        await service.submit(assessment_id, A1_RESPONSES, 75)

    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert rows == []

    # Retrying with a healthy store succeeds
    async with session_factory() as session:
        result = await AssessmentSubmissionService(session).submit(assessment_id, A1_RESPONSES, 75)
    assert result.status == AssessmentStatus.COMPLETED.value


async def test_partial_response_write_is_detected(db_session, session_factory, monkeypatch):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    service = AssessmentSubmissionService(db_session)
    original_upsert = service.response_repository.upsert_bulk

    async def lossy_upsert(assessment_id, responses, submission_id):
        return await original_upsert(assessment_id, responses[:1], submission_id)

    monkeypatch.setattr(service.response_repository, "upsert_bulk", lossy_upsert)

    with pytest.raises(StorageError) as exc_info:
        await service.submit(assessment_id, A1_RESPONSES, 75)

    assert exc_info.value.details["expected"] == 2
    assert exc_info.value.details["persisted"] == 1
    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert [r.question_id for r in rows] == ["q1"]

    async with session_factory() as session:
        result = await AssessmentSubmissionService(session).submit(assessment_id, A1_RESPONSES, 75)
    assert result.status == AssessmentStatus.COMPLETED.value
    _, rows, _ = await _stored_state(session_factory, assessment_id)
    assert [(r.question_id, r.response_value) for r in rows] == [("q1", "8"), ("q2", "male")]


async def test_database_error_becomes_storage_error(db_session, session_factory, monkeypatch):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    service = AssessmentSubmissionService(db_session)

    async def locked_claim(assessment_id):
        raise OperationalError("UPDATE assessments", {}, Exception("database is locked"))

    monkeypatch.setattr(service.assessment_repository, "claim_for_write", locked_claim)

    with pytest.raises(StorageError) as exc_info:
        await service.submit(assessment_id, A1_RESPONSES, 75)

    assert exc_info.value.details["step"] == "persist_responses"
    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert rows == []


async def test_replaced_responses_supersede_submission(db_session, session_factory, monkeypatch):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    service = AssessmentSubmissionService(db_session)
    original_complete = service._complete

    async def complete_after_concurrent_write(*args):
        async with session_factory() as other:
            await SurveyResponseRepository(other).upsert_bulk(
                assessment_id, [{"question_id": "q1", "response_value": "3"}], uuid.uuid4()
            )
            await other.commit()
        return await original_complete(*args)

    monkeypatch.setattr(service, "_complete", complete_after_concurrent_write)

    with pytest.raises(SubmissionSupersededError):
        await service.submit(assessment_id, A1_RESPONSES, 75)

    stored, rows, _ = await _stored_state(session_factory, assessment_id)
    assert stored.status == AssessmentStatus.STARTED.value
    assert [(r.question_id, r.response_value) for r in rows] == [("q1", "3")]


async def test_concurrent_submits_complete_once(db_session, session_factory):
    _, _, assessment = await seed_started_assessment(db_session)
    assessment_id = assessment.id
    attempts = 5

    async def submit(score):
        async with session_factory() as session:
            return await AssessmentSubmissionService(session).submit(
                assessment_id,
                [
                    {"question_id": "q1", "response_value": str(score)},
                    {"question_id": "q2", "response_value": "female"},
                ],
                score,
            )

    outcomes = await asyncio.gather(*(submit(s) for s in range(1, attempts + 1)), return_exceptions=True)

    successes = [o for o in outcomes if not isinstance(o, BaseException)]
    failures = [o for o in outcomes if isinstance(o, BaseException)]
    assert len(successes) == 1
    assert len(failures) == attempts - 1
    assert all(isinstance(f, AlreadyCompletedError) for f in failures)

    winner = successes[0]
    stored, rows, report = await _stored_state(session_factory, assessment_id)
    assert stored.brain_o_meter_score == winner.brain_o_meter_score
    assert [(r.question_id, r.response_value) for r in rows] == [
        ("q1", str(winner.brain_o_meter_score)),
        ("q2", "female"),
    ]
    assert report.content["assessment"]["brain_o_meter_score"] == winner.brain_o_meter_score


async def test_different_assessments_submit_independently(db_session, session_factory):
    _, child, first = await seed_started_assessment(db_session)
    second = await create_assessment(db_session, child)
    await db_session.commit()

    async def submit(assessment_id):
        async with session_factory() as session:
            return await AssessmentSubmissionService(session).submit(assessment_id, A1_RESPONSES, 50)

    results = await asyncio.gather(submit(first.id), submit(second.id))

    assert [r.status for r in results] == [AssessmentStatus.COMPLETED.value] * 2
