"""
Application state machine.

``transition`` is the only writer of ``Application.status``. One call sets the
status, appends the timeline entry, adjusts the job's counters and records
the counterpart's notification in a single transaction; the notification's
email is queued after that transaction commits.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from api.services import counters, notifications
from api.services.store import unit_of_work
from core.errors import (
    Conflict,
    Forbidden,
    InvalidStatus,
    InvalidTransition,
    NotFound,
)
from database.models.applications import (
    APPLICANT_STATUSES,
    RECRUITER_STATUSES,
    Application,
    ApplicationStatus,
)
from database.models.jobs import Job
from database.models.users import User

logger = logging.getLogger(__name__)

DEFAULT_WITHDRAW_NOTE = "Application withdrawn by applicant"


def parse_status(value) -> ApplicationStatus:
    """
    Coerce ``value`` to an ApplicationStatus.

    Raises:
        InvalidStatus: ``value`` names no known status
    """
    if isinstance(value, ApplicationStatus):
        return value
    status = ApplicationStatus.try_parse(value)
    if status is None:
        raise InvalidStatus(f"Unrecognized application status: {value!r}", status=value)
    return status


def allowed_statuses(application: Application, actor: User) -> frozenset:
    """Target statuses ``actor`` may set on ``application``."""
    allowed = frozenset()
    if actor.is_admin or actor.id == application.job.recruiter_id:
        allowed |= RECRUITER_STATUSES
    if actor.id == application.applicant_id:
        allowed |= APPLICANT_STATUSES
    return allowed


def check_transition(
    application: Application,
    target: ApplicationStatus,
    actor: User,
) -> None:
    """
    Validate a move without touching the store.

    Raises:
        InvalidTransition: the application is already terminal
        Forbidden: ``actor`` may not set ``target``
    """
    if application.status.is_terminal():
        raise InvalidTransition(
            f"Application is already {application.status.value}",
            application_id=application.id,
            status=application.status.value,
        )
    if not actor.is_active:
        raise Forbidden("Inactive users cannot update applications")
    if target not in allowed_statuses(application, actor):
        raise Forbidden(
            f"You are not allowed to set status '{target.value}'",
            application_id=application.id,
            status=target.value,
        )


async def load_application(session: AsyncSession, application_id: int) -> Application:
    """Load an application with the job, recruiter and applicant the lifecycle needs."""
    result = await session.execute(
        select(Application)
        .options(
            selectinload(Application.job).selectinload(Job.recruiter),
            selectinload(Application.applicant),
        )
        .where(Application.id == application_id)
    )
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFound("Application not found", application_id=application_id)
    return application


async def transition(
    session: AsyncSession,
    application_id: int,
    target_status,
    actor: User,
    notes: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Application:
    """
    Move an application to ``target_status``.

    Args:
        session: Database session; the call commits or rolls it back
        application_id: Application to move
        target_status: Target status, as enum or string
        actor: User performing the move
        notes: Optional timeline note
        expected_version: If given, the application version the caller last saw

    Returns:
        The updated application

    Raises:
        InvalidStatus, NotFound, Conflict, InvalidTransition, Forbidden, Unavailable
    """
    target = parse_status(target_status)

    async with unit_of_work(session):
        application = await load_application(session, application_id)
        if expected_version is not None and application.version != expected_version:
            raise Conflict(
                application_id=application_id,
                expected_version=expected_version,
                version=application.version,
            )
        check_transition(application, target, actor)

        old_status = application.status
        now = datetime.now(timezone.utc)
        if target == ApplicationStatus.WITHDRAWN:
            notes = notes or DEFAULT_WITHDRAW_NOTE
            application.is_withdrawn = True
            application.withdrawn_at = now
            application.withdrawn_reason = notes
        application.record(target, actor.id, notes=notes, at=now)

        # Version check happens here; a concurrent writer surfaces as Conflict
        await session.flush()

        await counters.on_status_changed(session, application.job_id, old_status, target)
        dispatch = await notifications.notify_on_status_change(
            session, application, target, actor
        )

    logger.info(
        f"Application {application.id} moved {old_status.value} -> {target.value} "
        f"by user {actor.id}"
    )
    notifications.deliver(dispatch)
    return application


async def withdraw(
    session: AsyncSession,
    application_id: int,
    applicant: User,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Application:
    """Withdraw the applicant's own application."""
    return await transition(
        session,
        application_id,
        ApplicationStatus.WITHDRAWN,
        applicant,
        notes=reason or DEFAULT_WITHDRAW_NOTE,
        expected_version=expected_version,
    )
