"""Pydantic schemas for in-app notifications."""
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID
from pydantic import BaseModel

from orderhub.schemas.base import BaseResponseSchema


class NotificationResponse(BaseResponseSchema):
    """Response schema for Notification."""
    id: UUID
    recipient_type: str
    recipient_id: Optional[str] = None
    notification_type: str
    priority: Optional[str] = "MEDIUM"
    title: str
    message: str
    order_id: Optional[UUID] = None
    extra_data: Optional[Dict[str, Any]] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    """Response for listing notifications."""
    items: List[NotificationResponse]
    total: int
    unread_count: int
    page: int = 1
    size: int = 50
    pages: int = 1


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResult(BaseModel):
    updated: int
