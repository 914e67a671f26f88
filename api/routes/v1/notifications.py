"""Notification inbox endpoints for the calling user."""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_pagination, require_active_user
from api.schemas.common import PaginatedResponse, PaginationParams
from api.schemas.notifications import (
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from api.services import notifications as notification_service
from database.engine import get_db
from database.models.notifications import NotificationType
from database.models.users import User

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=PaginatedResponse[NotificationResponse], summary="List Notifications")
async def list_notifications(
    type: Optional[NotificationType] = Query(None, description="Filter by notification type"),
    is_read: Optional[bool] = Query(None, description="Filter by read state"),
    pagination: PaginationParams = Depends(get_pagination),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's notifications, newest first."""
    items, total = await notification_service.list_notifications(
        db,
        current_user.id,
        notification_type=type,
        is_read=is_read,
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return PaginatedResponse.create(
        [NotificationResponse.model_validate(n) for n in items], total, pagination
    )


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread Count")
async def get_unread_count(
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(unread=await notification_service.unread_count(db, current_user.id))


@router.post("/read-all", response_model=MarkAllReadResponse, summary="Mark All Read")
async def mark_all_read(
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await notification_service.mark_all_as_read(db, current_user.id)
    return MarkAllReadResponse(updated=updated)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark Notification Read",
)
async def mark_read(
    notification_id: int = Path(..., description="Notification ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await notification_service.mark_as_read(db, notification_id, current_user.id)
    return NotificationResponse.model_validate(notification)


@router.delete(
    "/{notification_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    summary="Delete Notification",
)
async def delete_notification(
    notification_id: int = Path(..., description="Notification ID"),
    current_user: User = Depends(require_active_user),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.delete_notification(db, notification_id, current_user.id)
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
