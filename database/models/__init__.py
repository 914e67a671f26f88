"""Model registry; importing this package registers every table on Base.metadata."""

from database.models.users import User, UserRole
from database.models.talents import Talent
from database.models.jobs import Job, JobStatus, JobVisibility, ApplicationCounts
from database.models.applications import (
    Application,
    ApplicationStatus,
    ApplicationTimelineEntry,
    SalaryPeriod,
)
from database.models.notifications import (
    Notification,
    NotificationPriority,
    NotificationType,
)

__all__ = [
    "User",
    "UserRole",
    "Talent",
    "Job",
    "JobStatus",
    "JobVisibility",
    "ApplicationCounts",
    "Application",
    "ApplicationStatus",
    "ApplicationTimelineEntry",
    "SalaryPeriod",
    "Notification",
    "NotificationPriority",
    "NotificationType",
]
