"""Notification housekeeping tasks."""

from celery import shared_task
import logging

from api.services.notifications import purge_expired
from workers.db import run_with_session

logger = logging.getLogger(__name__)


@shared_task(name="workers.tasks.notifications.purge_expired_notifications")
def purge_expired_notifications() -> dict:
    """Delete expired notifications and read ones past the retention window."""
    result = run_with_session(purge_expired)
    logger.info(f"Notification purge finished: {result['deleted']} removed")
    return result
