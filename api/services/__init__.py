"""
API Services Layer.

Database operations behind the API endpoints and Celery tasks.
"""

from api.services.applications import (
    apply,
    get_application,
    list_job_applications,
    list_talent_applications,
    get_job_counts,
    delete_application,
    recount,
)

from api.services.lifecycle import (
    transition,
    withdraw,
)

from api.services.counters import (
    on_application_created,
    on_status_changed,
    on_application_deleted,
    recount_job_counters,
)

from api.services.notifications import (
    notify_on_apply,
    notify_on_status_change,
    list_notifications,
    unread_count,
    mark_as_read,
    mark_all_as_read,
    delete_notification,
    purge_expired,
)

__all__ = [
    # Intake and reads
    "apply",
    "get_application",
    "list_job_applications",
    "list_talent_applications",
    "get_job_counts",
    "delete_application",
    "recount",
    # State machine
    "transition",
    "withdraw",
    # Counters
    "on_application_created",
    "on_status_changed",
    "on_application_deleted",
    "recount_job_counters",
    # Notifications
    "notify_on_apply",
    "notify_on_status_change",
    "list_notifications",
    "unread_count",
    "mark_as_read",
    "mark_all_as_read",
    "delete_notification",
    "purge_expired",
]
