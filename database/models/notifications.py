"""
Notification Models

In-app notifications addressed to a single recipient. Created once per
lifecycle event by ``api.services.notifications``; afterwards only the
recipient flips the read state, and the email worker flips the email state.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    BigInteger,
    DateTime,
    func,
    Enum as SQLEnum,
    Index,
)
from database.engine import Base, IdType
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from database.models.users import User


# ============ Notification Enums =============== #
class NotificationType(str, PyEnum):
    """Types of notifications."""

    JOB_APPLICATION = "job_application"
    APPLICATION_STATUS_CHANGE = "application_status_change"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    JOB_SHORTLISTED = "job_shortlisted"
    JOB_REJECTED = "job_rejected"
    JOB_OFFERED = "job_offered"
    PROFILE_VIEWED = "profile_viewed"
    NEW_JOB_MATCH = "new_job_match"
    SYSTEM_MESSAGE = "system_message"
    WELCOME = "welcome"


class NotificationPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ============ Notification Model =============== #
class Notification(Base):
    """An immutable lifecycle fact owned by its recipient."""

    __tablename__ = "notifications"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    recipient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL")
    )

    # Notification details
    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, native_enum=False, length=50),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    priority: Mapped[NotificationPriority] = mapped_column(
        SQLEnum(NotificationPriority, native_enum=False, length=20),
        nullable=False,
        default=NotificationPriority.MEDIUM,
        index=True,
    )

    # Context
    job_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("jobs.id", ondelete="SET NULL")
    )
    application_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("applications.id", ondelete="SET NULL")
    )
    action_url: Mapped[str | None] = mapped_column(String(500))

    # Read state
    is_read: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Email state
    is_email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    recipient: Mapped["User"] = relationship("User", foreign_keys=[recipient_id])

    __table_args__ = (
        Index("idx_notification_recipient_read", "recipient_id", "is_read"),
        Index("idx_notification_recipient_created", "recipient_id", "created_at"),
        Index("idx_notification_recipient_type", "recipient_id", "type"),
    )
