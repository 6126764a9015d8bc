"""Report API endpoints."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from pha.api.deps import caller_id, get_async_session, get_optional_user, to_http_exception
from pha.core.auth import User
from pha.core.exceptions import ApplicationError
from pha.schemas.assessment import ErrorResponse
from pha.schemas.report import ReportResponse
from pha.services.pdf_export_service import PDFExportService
from pha.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])

ERROR_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# Declared before "/{report_id}" so that "view" is not parsed as a report id
@router.get(
    "/view/{share_token}",
    response_model=ReportResponse,
    responses=ERROR_RESPONSES,
    summary="View shared report",
)
async def view_shared_report(
    share_token: str,
    db: AsyncSession = Depends(get_async_session),
) -> ReportResponse:
    """Anonymous access to a report through its share link."""
    service = ReportService(db)
    try:
        report = await service.get_by_share_token(share_token)
        await db.commit()
    except ApplicationError as e:
        raise to_http_exception(e)

    return ReportResponse.model_validate(report)


@router.get(
    "/{report_id}",
    response_model=ReportResponse,
    responses=ERROR_RESPONSES,
    summary="Get report",
)
async def get_report(
    report_id: UUID,
    refresh: bool = Query(False, description="Rebuild the report content from the stored responses"),
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> ReportResponse:
    service = ReportService(db)
    try:
        report = await service.get_report(report_id, caller_id(current_user), refresh=refresh)
        await db.commit()
    except ApplicationError as e:
        raise to_http_exception(e)

    return ReportResponse.model_validate(report)


@router.get(
    "/{report_id}/download",
    responses={**ERROR_RESPONSES, 200: {"content": {"application/pdf": {}}}},
    summary="Download report as PDF",
)
async def download_report(
    report_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> Response:
    service = ReportService(db)
    try:
        report = await service.get_report(report_id, caller_id(current_user))
    except ApplicationError as e:
        raise to_http_exception(e)

    pdf_bytes = await run_in_threadpool(PDFExportService().generate_report_pdf, report.content)
    filename = f"assessment-report-{report.assessment_id}.pdf"
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
