"""Email delivery tasks."""

from celery import shared_task
import logging

from api.services.notifications import mark_email_sent
from core.integrations.email import EmailDeliveryError, get_email_service
from workers.db import run_with_session

logger = logging.getLogger(__name__)


@shared_task(name="workers.tasks.emails.send_notification_email", bind=True, max_retries=5)
def send_notification_email(
    self, notification_id: int, to: str, subject: str, body: str
) -> dict:
    """
    Send the email attached to a notification and flag it as sent.

    Args:
        notification_id (int): Notification the email belongs to
        to (str): Recipient address
        subject (str): Email subject
        body (str): HTML body

    Returns:
        dict: Delivery result
    """
    try:
        logger.info(f"Sending email for notification {notification_id}")
        get_email_service().send(to, subject, body)
    except EmailDeliveryError as exc:
        logger.error(f"Email for notification {notification_id} failed: {exc}")
        # Retry with exponential backoff
        raise self.retry(exc=exc, countdown=2**self.request.retries * 30)

    marked = run_with_session(lambda session: mark_email_sent(session, notification_id))
    if not marked:
        logger.warning(f"Notification {notification_id} was gone before it could be marked sent")

    return {"status": "sent", "notification_id": notification_id, "marked": marked}
