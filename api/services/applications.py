"""
Application intake and application read paths.

``apply`` is the entry point of the lifecycle: it checks eligibility, creates
the pending application with its first timeline entry, bumps the job's
``total`` counter and notifies the recruiter, all in one transaction.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from api.services import counters, notifications
from api.services.lifecycle import load_application
from api.services.store import is_duplicate_application, unit_of_work
from api.services.talents import find_by_user
from core.errors import (
    DuplicateApplication,
    Forbidden,
    JobNotAcceptingApplications,
    JobNotFound,
    TalentProfileRequired,
)
from database.models.applications import (
    Application,
    ApplicationStatus,
    SalaryPeriod,
)
from database.models.jobs import ApplicationCounts, Job
from database.models.users import User

logger = logging.getLogger(__name__)

SUBMITTED_NOTE = "Application submitted"


async def _get_job(session: AsyncSession, job_id: int, with_recruiter: bool = False) -> Job:
    query = select(Job).where(Job.id == job_id)
    if with_recruiter:
        query = query.options(selectinload(Job.recruiter))
    result = await session.execute(query.execution_options(populate_existing=True))
    job = result.scalar_one_or_none()
    if job is None:
        raise JobNotFound(job_id=job_id)
    return job


async def has_active_application(
    session: AsyncSession, job_id: int, applicant_id: int
) -> bool:
    """True if the applicant holds a non-withdrawn application on the job."""
    result = await session.execute(
        select(Application.id).where(
            Application.job_id == job_id,
            Application.applicant_id == applicant_id,
            Application.is_withdrawn.is_(False),
        )
    )
    return result.first() is not None


def _salary_columns(expected_salary: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not expected_salary:
        return {}
    period = expected_salary.get("period") or SalaryPeriod.MONTHLY
    return {
        "expected_salary_amount": expected_salary.get("amount"),
        "expected_salary_currency": expected_salary.get("currency") or "USD",
        "expected_salary_period": SalaryPeriod(period),
    }


def _availability_columns(availability: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not availability:
        return {}
    start_date: Optional[date] = availability.get("start_date")
    return {
        "available_from": start_date,
        "notice_period_days": availability.get("notice_period_days") or 0,
    }


async def apply(
    session: AsyncSession,
    job_id: int,
    applicant: User,
    cover_letter: Optional[str] = None,
    expected_salary: Optional[Dict[str, Any]] = None,
    availability: Optional[Dict[str, Any]] = None,
) -> Application:
    """
    Submit ``applicant``'s application to a job.

    Args:
        session: Database session; the call commits or rolls it back
        job_id: Job to apply to
        applicant: Applying user
        cover_letter: Optional cover letter
        expected_salary: ``{"amount", "currency", "period"}``
        availability: ``{"start_date", "notice_period_days"}``

    Returns:
        The new pending application

    Raises:
        JobNotFound: the job does not exist
        JobNotAcceptingApplications: the job is not active
        DuplicateApplication: the applicant already has an active application
        TalentProfileRequired: the applicant has no talent profile
    """
    # A failed flush expires everything in the session, the caller included
    applicant_id = applicant.id

    async with unit_of_work(session):
        job = await _get_job(session, job_id, with_recruiter=True)
        if not job.status.accepts_applications:
            raise JobNotAcceptingApplications(
                f"Job is {job.status.value} and not accepting applications",
                job_id=job_id,
            )
        if not applicant.is_active:
            raise Forbidden("Inactive users cannot apply")
        if await has_active_application(session, job_id, applicant_id):
            raise DuplicateApplication(job_id=job_id, applicant_id=applicant_id)

        talent = await find_by_user(session, applicant_id)
        if talent is None:
            raise TalentProfileRequired(applicant_id=applicant_id)

        application = Application(
            job_id=job.id,
            applicant_id=applicant_id,
            talent_id=talent.id,
            cover_letter=cover_letter,
            **_salary_columns(expected_salary),
            **_availability_columns(availability),
        )
        application.record(ApplicationStatus.PENDING, applicant_id, notes=SUBMITTED_NOTE)
        session.add(application)

        # The unique index is the real guard; the check above only saves a round trip
        try:
            await session.flush()
        except IntegrityError as exc:
            if is_duplicate_application(exc):
                logger.warning(
                    f"Concurrent duplicate application by user {applicant_id} on job {job_id}"
                )
                raise DuplicateApplication(
                    job_id=job_id, applicant_id=applicant_id
                ) from exc
            raise

        await counters.on_application_created(session, job.id)
        dispatch = await notifications.notify_on_apply(session, job, application, applicant)

    logger.info(f"User {applicant.id} applied to job {job_id} (application {application.id})")
    notifications.deliver(dispatch)
    return application


def can_view(application: Application, viewer: User) -> bool:
    return (
        viewer.is_admin
        or viewer.id == application.applicant_id
        or viewer.id == application.job.recruiter_id
    )


async def get_application(
    session: AsyncSession, application_id: int, viewer: User
) -> Application:
    """Application with its timeline, visible to its applicant, the job owner and admins."""
    application = await load_application(session, application_id)
    if not can_view(application, viewer):
        raise Forbidden("You cannot view this application", application_id=application_id)
    return application


async def list_job_applications(
    session: AsyncSession,
    job_id: int,
    viewer: User,
    status: Optional[ApplicationStatus] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Application], int]:
    """
    List a job's applications, newest first. Job owner and admins only.

    Returns:
        (page of applications, total matching)
    """
    job = await _get_job(session, job_id)
    if not job.is_managed_by(viewer):
        raise Forbidden("Only the job's recruiter can list its applications", job_id=job_id)

    query = select(Application).where(Application.job_id == job_id)
    if status is not None:
        query = query.where(Application.status == status)
    return await _paginate(session, query, limit, offset)


async def list_talent_applications(
    session: AsyncSession,
    applicant: User,
    status: Optional[ApplicationStatus] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Application], int]:
    """List the applicant's own applications, newest first."""
    query = select(Application).where(Application.applicant_id == applicant.id)
    if status is not None:
        query = query.where(Application.status == status)
    return await _paginate(session, query, limit, offset)


async def _paginate(
    session: AsyncSession, query, limit: int, offset: int
) -> Tuple[List[Application], int]:
    total = (
        await session.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    result = await session.execute(
        query.options(selectinload(Application.job))
        .order_by(Application.created_at.desc(), Application.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def get_job_counts(
    session: AsyncSession, job_id: int, viewer: User
) -> ApplicationCounts:
    """Cached counters of a job, as stored."""
    job = await _get_job(session, job_id)
    if not job.is_managed_by(viewer):
        raise Forbidden("Only the job's recruiter can view its counters", job_id=job_id)
    return job.application_counts


async def delete_application(
    session: AsyncSession, application_id: int, actor: User
) -> None:
    """
    Hard-delete an application and take it out of its job's counters.

    Admin only; the normal lifecycle never deletes applications.
    """
    if not actor.is_admin:
        raise Forbidden("Only admins can delete applications")

    async with unit_of_work(session):
        application = await load_application(session, application_id)
        job_id, status = application.job_id, application.status
        await session.delete(application)
        await session.flush()
        await counters.on_application_deleted(session, job_id, status)

    logger.info(f"Application {application_id} deleted by admin {actor.id}")


async def recount(session: AsyncSession, job_id: int, actor: User) -> ApplicationCounts:
    """Admin repair: rebuild a job's cached counters from its applications."""
    if not actor.is_admin:
        raise Forbidden("Only admins can recount job counters")

    async with unit_of_work(session):
        counts = await counters.recount_job_counters(session, job_id)
    return counts
