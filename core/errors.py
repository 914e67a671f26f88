"""
Error taxonomy for the application lifecycle.

Every error carries a stable ``code`` and a human readable ``message``.
The HTTP layer maps them to status codes in
``core.middleware.error_handling.setup_error_handlers``.
"""

from typing import Any


class LifecycleError(Exception):
    """Base class for all recoverable lifecycle failures."""

    code: str = "LIFECYCLE_ERROR"
    status_code: int = 400
    retryable: bool = False
    default_message: str = "The operation could not be completed"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class NotFound(LifecycleError):
    """Job, application, talent profile or user does not exist."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class JobNotAcceptingApplications(LifecycleError):
    code = "JOB_NOT_ACCEPTING_APPLICATIONS"
    status_code = 400
    default_message = "Job is not accepting applications"


class DuplicateApplication(LifecycleError):
    code = "DUPLICATE_APPLICATION"
    status_code = 409
    default_message = "You have already applied to this job"


class TalentProfileRequired(LifecycleError):
    code = "TALENT_PROFILE_REQUIRED"
    status_code = 400
    default_message = "A talent profile is required to apply"


class InvalidTransition(LifecycleError):
    """Raised when transitioning out of a terminal status."""

    code = "INVALID_TRANSITION"
    status_code = 409
    default_message = "Application is in a terminal status"


class InvalidStatus(LifecycleError):
    code = "INVALID_STATUS"
    status_code = 422
    default_message = "Unrecognized application status"


class Forbidden(LifecycleError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class Conflict(LifecycleError):
    """Stale write detected; re-read the application and retry."""

    code = "CONFLICT"
    status_code = 409
    retryable = True
    default_message = "Application was modified concurrently, please retry"


class Unavailable(LifecycleError):
    """Store or transport failure. Transient and safe to retry."""

    code = "UNAVAILABLE"
    status_code = 503
    retryable = True
    default_message = "Service temporarily unavailable"


class JobNotFound(NotFound, JobNotAcceptingApplications):
    """A job that does not exist cannot accept applications either."""

    default_message = "Job not found"
