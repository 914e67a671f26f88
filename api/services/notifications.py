"""
Notification dispatcher and notification read path.

The dispatcher turns a lifecycle event into exactly one Notification for the
counterpart of whoever triggered it. The notification is written inside a
SAVEPOINT of the caller's transaction so a failure to record it is logged and
dropped without undoing the lifecycle change. Email is handed to Celery only
after the caller has committed, see ``deliver``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple
import logging

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import NotFound
from core.integrations.email import EmailTemplates
from database.models.applications import Application, ApplicationStatus
from database.models.jobs import Job
from database.models.notifications import (
    Notification,
    NotificationPriority,
    NotificationType,
)
from database.models.users import User

logger = logging.getLogger(__name__)


# ==================== Priorities ===================== #
PRIORITY_BY_TYPE = {
    NotificationType.JOB_OFFERED: NotificationPriority.HIGH,
    NotificationType.INTERVIEW_SCHEDULED: NotificationPriority.HIGH,
    NotificationType.JOB_SHORTLISTED: NotificationPriority.MEDIUM,
    NotificationType.NEW_JOB_MATCH: NotificationPriority.MEDIUM,
    NotificationType.SYSTEM_MESSAGE: NotificationPriority.LOW,
    NotificationType.WELCOME: NotificationPriority.LOW,
}

# Status moves that are announced with high priority
HIGH_PRIORITY_STATUSES = frozenset(
    {
        ApplicationStatus.INTERVIEWED,
        ApplicationStatus.OFFERED,
        ApplicationStatus.ACCEPTED,
    }
)

# Status moves that also email the applicant
EMAIL_TEMPLATES_BY_STATUS = {
    ApplicationStatus.SHORTLISTED: EmailTemplates.shortlisted,
    ApplicationStatus.INTERVIEWED: EmailTemplates.interviewed,
    ApplicationStatus.OFFERED: EmailTemplates.offered,
}


def default_priority(
    notification_type: NotificationType,
    status: Optional[ApplicationStatus] = None,
) -> NotificationPriority:
    """Priority for a notification of ``notification_type``, raised for key status moves."""
    if status is not None and status in HIGH_PRIORITY_STATUSES:
        return NotificationPriority.HIGH
    return PRIORITY_BY_TYPE.get(notification_type, NotificationPriority.MEDIUM)


def default_expiry(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=settings.notification_ttl_days)


def action_url(path: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/{path.lstrip('/')}"


# ==================== Outbound email ===================== #
@dataclass(frozen=True)
class OutboundEmail:
    notification_id: int
    to: str
    subject: str
    body: str


@dataclass(frozen=True)
class Dispatch:
    """A recorded notification and the email to send once the caller commits."""

    notification: Notification
    email: Optional[OutboundEmail] = None


class EmailQueue(Protocol):
    def enqueue(self, email: OutboundEmail) -> None: ...


class CeleryEmailQueue:
    """Publishes outbound emails to the ``emails`` Celery queue."""

    def enqueue(self, email: OutboundEmail) -> None:
        from workers.tasks.emails import send_notification_email

        send_notification_email.delay(
            email.notification_id, email.to, email.subject, email.body
        )


email_queue: EmailQueue = CeleryEmailQueue()


def deliver(dispatch: Optional[Dispatch]) -> bool:
    """
    Queue the email of a committed dispatch. Never raises.

    Returns:
        True if an email was queued
    """
    if dispatch is None or dispatch.email is None or not settings.email_enabled:
        return False
    try:
        email_queue.enqueue(dispatch.email)
    except Exception:
        logger.error(
            f"Failed to queue email for notification {dispatch.email.notification_id}",
            exc_info=True,
        )
        return False
    logger.info(f"Queued email for notification {dispatch.email.notification_id}")
    return True


# ==================== Dispatch ===================== #
async def _record(session: AsyncSession, notification: Notification) -> Optional[Notification]:
    try:
        async with session.begin_nested():
            session.add(notification)
    except SQLAlchemyError:
        logger.error(
            f"Failed to record {notification.type.value} notification "
            f"for user {notification.recipient_id}",
            exc_info=True,
        )
        return None
    logger.info(
        f"Notification {notification.id} ({notification.type.value}) "
        f"created for user {notification.recipient_id}"
    )
    return notification


async def notify_on_apply(
    session: AsyncSession,
    job: Job,
    application: Application,
    applicant: User,
) -> Optional[Dispatch]:
    """
    Tell the job's recruiter about a new application.

    ``job.recruiter`` must be loaded.

    Returns:
        The dispatch, or None if the notification could not be recorded
    """
    notification = Notification(
        recipient_id=job.recruiter_id,
        sender_id=applicant.id,
        type=NotificationType.JOB_APPLICATION,
        title="New Job Application",
        message=f"{applicant.full_name} has applied to your job: {job.title}",
        priority=default_priority(NotificationType.JOB_APPLICATION),
        job_id=job.id,
        application_id=application.id,
        action_url=action_url(f"recruiter/applications/{application.id}"),
        expires_at=default_expiry(),
    )
    if await _record(session, notification) is None:
        return None

    template = EmailTemplates.job_application(
        job.title, job.company_name, applicant.full_name
    )
    return Dispatch(
        notification=notification,
        email=OutboundEmail(
            notification_id=notification.id,
            to=job.recruiter.email,
            subject=template["subject"],
            body=template["body"],
        ),
    )


async def notify_on_status_change(
    session: AsyncSession,
    application: Application,
    new_status: ApplicationStatus,
    actor: User,
) -> Optional[Dispatch]:
    """
    Tell the counterpart of ``actor`` that ``application`` moved to ``new_status``.

    Recruiter/admin moves notify the applicant. A withdrawal by the applicant
    notifies the job's recruiter. ``application.job``, ``application.job.recruiter``
    and ``application.applicant`` must be loaded.
    """
    job = application.job
    applicant = application.applicant
    notification_type = NotificationType.APPLICATION_STATUS_CHANGE

    if new_status == ApplicationStatus.WITHDRAWN and actor.id == application.applicant_id:
        notification = Notification(
            recipient_id=job.recruiter_id,
            sender_id=actor.id,
            type=notification_type,
            title="Application Withdrawn",
            message=f"{applicant.full_name} has withdrawn their application for {job.title}",
            priority=default_priority(notification_type, new_status),
            job_id=job.id,
            application_id=application.id,
            action_url=action_url(f"recruiter/applications/{application.id}"),
            expires_at=default_expiry(),
        )
        return Dispatch(notification) if await _record(session, notification) else None

    notification = Notification(
        recipient_id=application.applicant_id,
        sender_id=actor.id,
        type=notification_type,
        title="Application Status Updated",
        message=f"Your application for {job.title} has been {new_status.value}",
        priority=default_priority(notification_type, new_status),
        job_id=job.id,
        application_id=application.id,
        action_url=action_url("talent/applications"),
        expires_at=default_expiry(),
    )
    if await _record(session, notification) is None:
        return None

    render = EMAIL_TEMPLATES_BY_STATUS.get(new_status)
    if render is None:
        return Dispatch(notification)
    template = render(job.title, job.company_name)
    return Dispatch(
        notification=notification,
        email=OutboundEmail(
            notification_id=notification.id,
            to=applicant.email,
            subject=template["subject"],
            body=template["body"],
        ),
    )


# ==================== Read path ===================== #
async def list_notifications(
    session: AsyncSession,
    recipient_id: int,
    notification_type: Optional[NotificationType] = None,
    is_read: Optional[bool] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Notification], int]:
    """
    List a recipient's notifications, newest first.

    Returns:
        (page of notifications, total matching)
    """
    query = select(Notification).where(Notification.recipient_id == recipient_id)
    if notification_type is not None:
        query = query.where(Notification.type == notification_type)
    if is_read is not None:
        query = query.where(Notification.is_read == is_read)

    total = (
        await session.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0

    result = await session.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def unread_count(session: AsyncSession, recipient_id: int) -> int:
    result = await session.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        )
    )
    return result.scalar() or 0


async def mark_as_read(
    session: AsyncSession, notification_id: int, recipient_id: int
) -> Notification:
    """Flip one notification to read. Only its recipient may do this."""
    result = await session.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFound("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await session.commit()
    return notification


async def mark_all_as_read(session: AsyncSession, recipient_id: int) -> int:
    result = await session.execute(
        update(Notification)
        .where(
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount


async def delete_notification(
    session: AsyncSession, notification_id: int, recipient_id: int
) -> None:
    result = await session.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
    )
    if result.rowcount == 0:
        await session.rollback()
        raise NotFound("Notification not found")
    await session.commit()


async def mark_email_sent(session: AsyncSession, notification_id: int) -> bool:
    """Record that the notification's email went out. Used by the email worker."""
    result = await session.execute(
        update(Notification)
        .where(Notification.id == notification_id)
        .values(is_email_sent=True, email_sent_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount > 0


async def purge_expired(
    session: AsyncSession, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Delete notifications past their expiry, and read ones older than the
    retention window.
    """
    now = now or datetime.now(timezone.utc)
    read_cutoff = now - timedelta(days=settings.notification_read_retention_days)
    result = await session.execute(
        delete(Notification).where(
            or_(
                Notification.expires_at < now,
                and_(
                    Notification.is_read.is_(True),
                    Notification.created_at < read_cutoff,
                ),
            )
        )
    )
    await session.commit()
    logger.info(f"Purged {result.rowcount} notifications")
    return {"deleted": result.rowcount, "purged_at": now.isoformat()}
