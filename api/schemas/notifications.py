"""Notification-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from database.models.notifications import NotificationPriority, NotificationType


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    id: int
    recipient_id: int
    sender_id: Optional[int] = None
    type: NotificationType
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)
    priority: NotificationPriority
    job_id: Optional[int] = None
    application_id: Optional[int] = None
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    is_email_sent: bool
    email_sent_at: Optional[datetime] = None
    expires_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    unread: int = Field(ge=0)


class MarkAllReadResponse(BaseModel):
    updated: int = Field(ge=0, description="Notifications flipped to read")
