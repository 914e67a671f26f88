"""
Counter synchronizer for the cached per-job application counters.

All adjustments are single ``UPDATE jobs SET col = col + n`` statements, so
concurrent adjustments on the same job both land instead of one overwriting
the other. Callers run these inside the same transaction as the application
write they account for.
"""

from typing import Dict
import logging

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFound
from database.models.applications import (
    Application,
    ApplicationStatus,
    SHORTLISTED_FAMILY,
)
from database.models.jobs import ApplicationCounts, Job

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = {
    "total": Job.applications_total,
    "shortlisted": Job.applications_shortlisted,
    "rejected": Job.applications_rejected,
}


def _bucket_membership(status: ApplicationStatus) -> Dict[str, bool]:
    return {
        "shortlisted": status in SHORTLISTED_FAMILY,
        "rejected": status == ApplicationStatus.REJECTED,
    }


def status_change_deltas(
    old_status: ApplicationStatus, new_status: ApplicationStatus
) -> Dict[str, int]:
    """
    Bucket adjustments implied by moving one application between statuses.

    ``total`` never changes on a status move. Moving within the
    shortlisted family (e.g. shortlisted -> offered) is a no-op.
    """
    before = _bucket_membership(old_status)
    after = _bucket_membership(new_status)
    deltas = {}
    for bucket in ("shortlisted", "rejected"):
        if before[bucket] and not after[bucket]:
            deltas[bucket] = -1
        elif after[bucket] and not before[bucket]:
            deltas[bucket] = 1
    return deltas


async def _adjust(session: AsyncSession, job_id: int, deltas: Dict[str, int]) -> None:
    if not deltas:
        return
    values = {
        COUNTER_COLUMNS[bucket]: COUNTER_COLUMNS[bucket] + delta
        for bucket, delta in deltas.items()
    }
    result = await session.execute(
        update(Job)
        .where(Job.id == job_id)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Job not found", job_id=job_id)
    logger.info(f"Adjusted counters for job {job_id}: {deltas}")


async def on_application_created(session: AsyncSession, job_id: int) -> None:
    await _adjust(session, job_id, {"total": 1})


async def on_status_changed(
    session: AsyncSession,
    job_id: int,
    old_status: ApplicationStatus,
    new_status: ApplicationStatus,
) -> None:
    await _adjust(session, job_id, status_change_deltas(old_status, new_status))


async def on_application_deleted(
    session: AsyncSession, job_id: int, status: ApplicationStatus
) -> None:
    """Undo everything an application contributed to its job's counters."""
    deltas = {"total": -1}
    for bucket, member in _bucket_membership(status).items():
        if member:
            deltas[bucket] = -1
    await _adjust(session, job_id, deltas)


async def count_applications(session: AsyncSession, job_id: int) -> ApplicationCounts:
    """Count the job's applications per bucket from the Application rows."""
    result = await session.execute(
        select(
            func.count(Application.id),
            func.coalesce(
                func.sum(case((Application.status.in_(list(SHORTLISTED_FAMILY)), 1), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(
                    case((Application.status == ApplicationStatus.REJECTED, 1), else_=0)
                ),
                0,
            ),
        ).where(Application.job_id == job_id)
    )
    total, shortlisted, rejected = result.one()
    return ApplicationCounts(
        total=int(total), shortlisted=int(shortlisted), rejected=int(rejected)
    )


async def recount_job_counters(session: AsyncSession, job_id: int) -> ApplicationCounts:
    """
    Overwrite the cached counters with freshly counted values.

    Repair tool for admins; the normal lifecycle never needs it.
    """
    counts = await count_applications(session, job_id)
    result = await session.execute(
        update(Job)
        .where(Job.id == job_id)
        .values(
            applications_total=counts.total,
            applications_shortlisted=counts.shortlisted,
            applications_rejected=counts.rejected,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Job not found", job_id=job_id)
    logger.info(f"Recounted counters for job {job_id}: {counts.as_dict()}")
    return counts
