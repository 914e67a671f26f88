"""
Job application endpoints.

Applying to a job, listing a job's applications and reading or repairing the
job's cached application counters.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_pagination, require_active_user
from api.schemas.applications import (
    ApplicationCountsResponse,
    ApplicationCreate,
    ApplicationDetailResponse,
    ApplicationResponse,
)
from api.schemas.common import PaginatedResponse, PaginationParams
from api.services import applications as application_service
from api.services.lifecycle import parse_status
from database.engine import get_db
from database.models.users import User

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post(
    "/{job_id}/apply",
    response_model=ApplicationDetailResponse,
    status_code=http_status.HTTP_201_CREATED,
    summary="Apply to Job",
    description="Submit an application to an active job. Requires a talent profile.",
)
async def apply_to_job(
    payload: ApplicationCreate,
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a pending application, bump the job's total and notify the recruiter."""
    application = await application_service.apply(
        db,
        job_id,
        current_user,
        cover_letter=payload.cover_letter,
        expected_salary=payload.expected_salary.model_dump() if payload.expected_salary else None,
        availability=payload.availability.model_dump() if payload.availability else None,
    )
    return ApplicationDetailResponse.from_model(application)


@router.get(
    "/{job_id}/applications",
    response_model=PaginatedResponse[ApplicationResponse],
    summary="List Job Applications",
    description="List applications to a job. Job owner or admin only.",
)
async def list_job_applications(
    job_id: int = Path(..., description="Job ID"),
    status: Optional[str] = Query(None, description="Filter by application status"),
    pagination: PaginationParams = Depends(get_pagination),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await application_service.list_job_applications(
        db,
        job_id,
        current_user,
        status=parse_status(status) if status else None,
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return PaginatedResponse.create(
        [ApplicationResponse.from_model(a) for a in items], total, pagination
    )


@router.get(
    "/{job_id}/application-counts",
    response_model=ApplicationCountsResponse,
    summary="Get Application Counters",
)
async def get_application_counts(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    counts = await application_service.get_job_counts(db, job_id, current_user)
    return ApplicationCountsResponse(job_id=job_id, **counts.as_dict())


@router.post(
    "/{job_id}/application-counts/recount",
    response_model=ApplicationCountsResponse,
    summary="Recount Application Counters",
    description="Rebuild the cached counters from the job's applications. Admin only.",
)
async def recount_application_counts(
    job_id: int = Path(..., description="Job ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    counts = await application_service.recount(db, job_id, current_user)
    return ApplicationCountsResponse(job_id=job_id, **counts.as_dict())
