"""
Application lifecycle endpoints.

Reading applications and their timelines, moving them between statuses,
withdrawing and (admin only) deleting them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_pagination, require_active_user
from api.schemas.applications import (
    ApplicationDetailResponse,
    ApplicationResponse,
    StatusUpdate,
    TimelineEntryResponse,
    WithdrawRequest,
)
from api.schemas.common import PaginatedResponse, PaginationParams
from api.services import applications as application_service
from api.services import lifecycle
from database.engine import get_db
from database.models.users import User

router = APIRouter(prefix="/applications", tags=["applications"])


@router.get(
    "/mine",
    response_model=PaginatedResponse[ApplicationResponse],
    summary="List My Applications",
)
async def list_my_applications(
    status: Optional[str] = Query(None, description="Filter by application status"),
    pagination: PaginationParams = Depends(get_pagination),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await application_service.list_talent_applications(
        db,
        current_user,
        status=lifecycle.parse_status(status) if status else None,
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return PaginatedResponse.create(
        [ApplicationResponse.from_model(a) for a in items], total, pagination
    )


@router.get(
    "/{application_id}",
    response_model=ApplicationDetailResponse,
    summary="Get Application",
)
async def get_application(
    application_id: int = Path(..., description="Application ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Application details including the full status timeline."""
    application = await application_service.get_application(db, application_id, current_user)
    return ApplicationDetailResponse.from_model(application)


@router.get(
    "/{application_id}/timeline",
    response_model=list[TimelineEntryResponse],
    summary="Get Application Timeline",
)
async def get_application_timeline(
    application_id: int = Path(..., description="Application ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    application = await application_service.get_application(db, application_id, current_user)
    return [TimelineEntryResponse.model_validate(entry) for entry in application.timeline]


@router.patch(
    "/{application_id}/status",
    response_model=ApplicationDetailResponse,
    summary="Update Application Status",
    description=(
        "Move an application to a new status. Recruiters and admins may set "
        "reviewed, shortlisted, interviewed, offered, accepted or rejected; "
        "only the applicant may withdraw."
    ),
)
async def update_application_status(
    payload: StatusUpdate,
    application_id: int = Path(..., description="Application ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    application = await lifecycle.transition(
        db,
        application_id,
        payload.status,
        current_user,
        notes=payload.notes,
        expected_version=payload.expected_version,
    )
    return ApplicationDetailResponse.from_model(application)


@router.post(
    "/{application_id}/withdraw",
    response_model=ApplicationDetailResponse,
    summary="Withdraw Application",
)
async def withdraw_application(
    payload: Optional[WithdrawRequest] = None,
    application_id: int = Path(..., description="Application ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    payload = payload or WithdrawRequest()
    application = await lifecycle.withdraw(
        db,
        application_id,
        current_user,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    return ApplicationDetailResponse.from_model(application)


@router.delete(
    "/{application_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Delete Application",
    description="Hard-delete an application and adjust the job's counters. Admin only.",
)
async def delete_application(
    application_id: int = Path(..., description="Application ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    await application_service.delete_application(db, application_id, current_user)
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
