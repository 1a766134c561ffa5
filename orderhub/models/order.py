import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderhub.database import Base
from orderhub.db_types import JSONType, UUIDType
from orderhub.core.division_marker import is_division, extract_original_order_id


class OrderStatus(str, Enum):
    """Order status enumeration - marketplace order flow."""
    PENDING = "pending"                       # Received, not yet routed to a store
    ASSIGNED = "assigned"                     # Routed to a store
    PREPARING = "preparing"                   # Store is preparing the order
    READY = "ready"                           # Ready for hand-off
    DELIVERED = "delivered"                   # Delivered to the customer
    CANCELLED = "cancelled"
    RETURNED = "returned"                     # Returned by the store with a reason
    REJECTED = "rejected"                     # Rejected by admin / all stores declined
    CUSTOMER_REJECTED = "customer_rejected"   # Refused by the customer (terminal)


class StoreResponseStatus(str, Enum):
    """A store's answer to an order routed to it."""
    PENDING = "pending"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CUSTOMER_REJECTED = "customer_rejected"


CONFIRMED_RESPONSES = frozenset({StoreResponseStatus.AVAILABLE.value, StoreResponseStatus.ACCEPTED.value})
DECLINED_RESPONSES = frozenset({StoreResponseStatus.UNAVAILABLE.value, StoreResponseStatus.REJECTED.value})

TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.DELIVERED.value,
    OrderStatus.RETURNED.value,
    OrderStatus.CUSTOMER_REJECTED.value,
    OrderStatus.CANCELLED.value,
})


class Order(Base):
    """
    Order model for both original customer orders and per-store divisions.

    A division is an order created by splitting a multi-store original. It
    points back at the original through original_order_id/original_order_code;
    the same reference is also written into details as the legacy marker.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'order_status', 'created_at'),
        Index('ix_order_store_status', 'assigned_store_id', 'order_status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order Identification
    order_code: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        index=True,
        comment="Human readable code, not guaranteed unique"
    )

    # Customer
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, index=True)
    customer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Line item snapshot (present on originals before a split)
    items: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True, default=list)

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Sum of item totals at creation/split time"
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    # Status
    order_status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, assigned, preparing, ready, delivered, cancelled, returned, rejected, customer_rejected"
    )

    # Routing
    assigned_store_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("stores.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    main_store_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Store the order/division belongs to (denormalized)"
    )

    # Store response
    store_response_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="pending, available, unavailable, accepted, rejected, customer_rejected"
    )
    store_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Division linkage. No FK: the original row is deleted after a split.
    original_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True,
        comment="Original order this division was split from"
    )
    original_order_code: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Token written into the split marker (order_code or id)"
    )

    # Free text notes; also carries the split marker
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    order_items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at"
    )

    @property
    def is_division(self) -> bool:
        """True when this row was produced by splitting another order."""
        return self.original_order_id is not None or self.original_order_code is not None or is_division(self.details)

    @property
    def original_order_ref(self) -> Optional[str]:
        """Reference to the original order, as used for completion lookups."""
        if self.original_order_code:
            return self.original_order_code
        if self.original_order_id:
            return str(self.original_order_id)
        return extract_original_order_id(self.details)

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_ORDER_STATUSES

    @property
    def items_count(self) -> int:
        return len(self.items or [])

    def __repr__(self) -> str:
        return f"<Order(code='{self.order_code}', status='{self.order_status}')>"


class OrderItem(Base):
    """Line item row created for a division."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Product snapshot (stored for historical record)
    product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Quantity & Pricing
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discounted_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Store stamp used for display
    store_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    availability_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="order_items")

    @property
    def effective_price(self) -> Decimal:
        return self.discounted_price if self.discounted_price is not None else self.unit_price

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """Order status change history."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)

    changed_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="admin, store:<id>, customer, system"
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(from='{self.from_status}', to='{self.to_status}')>"
