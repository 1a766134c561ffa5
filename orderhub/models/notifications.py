"""Database models for in-app notifications."""
from datetime import datetime, timezone
from uuid import uuid4
from enum import Enum

from sqlalchemy import Column, String, Text, DateTime, Boolean, Index

from orderhub.database import Base
from orderhub.db_types import JSONType, UUIDType


class RecipientType(str, Enum):
    """Who a notification is addressed to."""
    ADMIN = "admin"
    STORE = "store"
    CUSTOMER = "customer"


class NotificationType(str, Enum):
    """Types of notifications."""
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_ASSIGNED = "ORDER_ASSIGNED"
    ORDER_REJECTED = "ORDER_REJECTED"

    # Divisions
    DIVISION_ASSIGNED = "DIVISION_ASSIGNED"
    DIVISION_CONFIRMED = "DIVISION_CONFIRMED"
    DIVISION_DECLINED = "DIVISION_DECLINED"
    ALL_DIVISIONS_COMPLETED = "ALL_DIVISIONS_COMPLETED"

    # Delivery
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_RETURNED = "ORDER_RETURNED"
    CUSTOMER_REJECTED = "CUSTOMER_REJECTED"


class NotificationPriority(str, Enum):
    """Priority levels for notifications."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Notification(Base):
    """
    Notification model - one row per recipient per lifecycle event.

    Admin notifications with recipient_id NULL are visible to every admin.
    Store notifications carry the store id, customer notifications the phone.
    """
    __tablename__ = "notifications"

    id = Column(UUIDType, primary_key=True, default=uuid4)

    # Recipient
    recipient_type = Column(String(20), nullable=False, index=True, comment="admin, store, customer")
    recipient_id = Column(String(64), nullable=True, index=True)

    # Notification content
    notification_type = Column(String(50), nullable=False, index=True)
    priority = Column(String(20), default="MEDIUM", nullable=False, comment="LOW, MEDIUM, HIGH, URGENT")

    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)

    # Related order (no FK: divisions outlive their original)
    order_id = Column(UUIDType, nullable=True, index=True)

    extra_data = Column(JSONType, default=dict)

    # Set for announcements that must reach a recipient once per original order
    dedupe_key = Column(String(200), nullable=True, unique=True)

    # Status
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('ix_notifications_recipient_unread', 'recipient_type', 'recipient_id', 'is_read'),
        Index('ix_notifications_created', 'created_at'),
    )
