"""API endpoints for in-app notifications."""
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from orderhub.api.deps import DB
from orderhub.models.notifications import RecipientType
from orderhub.schemas.notifications import (
    MarkReadResult,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from orderhub.services.notification_service import NotificationService


router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    db: DB,
    recipient_type: RecipientType = RecipientType.ADMIN,
    recipient_id: Optional[str] = None,
    is_read: Optional[bool] = None,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=100),
):
    """
    Notifications for one recipient.

    Admin notifications are shared (no recipient_id); store notifications
    use the store id and customer notifications the customer phone.
    """
    service = NotificationService(db)
    items, total, unread_count = await service.list_notifications(
        recipient_type, recipient_id, is_read=is_read, page=page, size=size
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        unread_count=unread_count,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    db: DB,
    recipient_type: RecipientType = RecipientType.ADMIN,
    recipient_id: Optional[str] = None,
):
    service = NotificationService(db)
    return UnreadCountResponse(unread_count=await service.unread_count(recipient_type, recipient_id))


@router.post("/read-all", response_model=MarkReadResult)
async def mark_all_read(
    db: DB,
    recipient_type: RecipientType = RecipientType.ADMIN,
    recipient_id: Optional[str] = None,
):
    service = NotificationService(db)
    return MarkReadResult(updated=await service.mark_all_read(recipient_type, recipient_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: UUID, db: DB):
    service = NotificationService(db)
    notification = await service.mark_read(notification_id)
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification
