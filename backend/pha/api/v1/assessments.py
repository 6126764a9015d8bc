"""Assessment API endpoints: intake, reads and submission."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from pha.api.deps import caller_id, get_async_session, get_optional_user, to_http_exception
from pha.core.auth import User
from pha.core.exceptions import ApplicationError
from pha.schemas.assessment import (
    AssessmentResponse,
    ErrorResponse,
    StartAssessmentRequest,
    StartAssessmentResponse,
    SubmissionResultResponse,
    SubmitAssessmentRequest,
    SurveyResponseItem,
)
from pha.schemas.report import ReportResponse
from pha.services.assessment_service import AssessmentService
from pha.services.report_service import ReportService, share_url
from pha.services.submission_service import AssessmentSubmissionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assessments", tags=["assessments"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/start",
    response_model=StartAssessmentResponse,
    status_code=http_status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Start assessment",
)
async def start_assessment(
    request: StartAssessmentRequest,
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> StartAssessmentResponse:
    """Create a started assessment for a child."""
    service = AssessmentService(db)
    try:
        assessment = await service.start_assessment(
            request.child_id, request.practice_id, caller_id(current_user)
        )
        await db.commit()
    except ApplicationError as e:
        raise to_http_exception(e)

    return StartAssessmentResponse(
        assessment_id=assessment.id,
        child_id=assessment.child_id,
        status=assessment.status,
        started_at=assessment.started_at,
    )


@router.get(
    "/{assessment_id}",
    response_model=AssessmentResponse,
    responses=ERROR_RESPONSES,
    summary="Get assessment",
)
async def get_assessment(
    assessment_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> AssessmentResponse:
    service = AssessmentService(db)
    try:
        assessment, responses_count = await service.get_assessment(
            assessment_id, caller_id(current_user)
        )
    except ApplicationError as e:
        raise to_http_exception(e)

    response = AssessmentResponse.model_validate(assessment)
    response.responses_count = responses_count
    return response


@router.get(
    "/{assessment_id}/responses",
    response_model=List[SurveyResponseItem],
    responses=ERROR_RESPONSES,
    summary="List persisted responses",
)
async def list_responses(
    assessment_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> List[SurveyResponseItem]:
    service = AssessmentService(db)
    try:
        responses = await service.list_responses(assessment_id, caller_id(current_user))
    except ApplicationError as e:
        raise to_http_exception(e)

    return [SurveyResponseItem.model_validate(r) for r in responses]


@router.post(
    "/{assessment_id}/submit",
    response_model=SubmissionResultResponse,
    responses=ERROR_RESPONSES,
    summary="Submit assessment",
    description=(
        "Persist the survey responses, complete the assessment and generate its report. "
        "A second submission of a completed assessment fails with 409."
    ),
)
async def submit_assessment(
    assessment_id: UUID,
    request: SubmitAssessmentRequest,
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> SubmissionResultResponse:
    logger.info(f"[SUBMISSION] Submit request for assessment {assessment_id}")
    service = AssessmentSubmissionService(db)
    try:
        result = await service.submit(
            assessment_id,
            [item.model_dump() for item in request.responses],
            request.brain_o_meter_score,
            practice_id=request.practice_id,
            caller_id=caller_id(current_user),
        )
    except ApplicationError as e:
        raise to_http_exception(e)

    return SubmissionResultResponse(
        assessment_id=result.assessment_id,
        report_id=result.report_id,
        status=result.status,
        brain_o_meter_score=result.brain_o_meter_score,
        completed_at=result.completed_at,
        responses_count=result.responses_count,
        report_generation_failed=result.report_generation_failed,
        share_token=result.share_token,
        share_url=share_url(result.share_token) if result.share_token else None,
    )


@router.get(
    "/{assessment_id}/report",
    response_model=ReportResponse,
    responses=ERROR_RESPONSES,
    summary="Get assessment report",
    description="Returns the report, generating it first if a completed assessment has none.",
)
async def get_assessment_report(
    assessment_id: UUID,
    report_type: Optional[str] = Query(None, alias="reportType"),
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> ReportResponse:
    service = ReportService(db)
    try:
        report = await service.get_or_generate(assessment_id, report_type, caller_id(current_user))
        await db.commit()
    except ApplicationError as e:
        raise to_http_exception(e)

    return ReportResponse.model_validate(report)
