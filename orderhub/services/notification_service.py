"""
Order Notification Service

Turns order lifecycle events into in-app notification rows for the three
audiences of the marketplace:
- Admin bell (recipient_id NULL, visible to every admin)
- Store dashboard (recipient_id = store id)
- Customer (recipient_id = customer phone)

Push, e-mail and sound delivery read these rows; they are not handled here.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.models.notifications import (
    Notification,
    NotificationType,
    NotificationPriority,
    RecipientType,
)
from orderhub.services.order_events import OrderEvent, OrderEventKind


logger = logging.getLogger(__name__)


@dataclass
class NotificationSpec:
    recipient_type: RecipientType
    recipient_id: Optional[str]
    notification_type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM


def _display_code(event: OrderEvent) -> str:
    if event.order_code:
        return event.order_code
    if event.order_id:
        return str(event.order_id)[:8]
    return "unknown"


def build_notifications(event: OrderEvent) -> List[NotificationSpec]:
    """Map one lifecycle event to the notifications it produces."""
    code = _display_code(event)
    store = event.store_name or "a store"
    store_id = str(event.store_id) if event.store_id else None
    reason = event.payload.get("reason")
    specs: List[NotificationSpec] = []

    def admin(ntype, title, message, priority=NotificationPriority.MEDIUM):
        specs.append(NotificationSpec(RecipientType.ADMIN, None, ntype, title, message, priority))

    def to_store(ntype, title, message, priority=NotificationPriority.MEDIUM):
        if store_id:
            specs.append(NotificationSpec(RecipientType.STORE, store_id, ntype, title, message, priority))

    def customer(ntype, title, message):
        if event.customer_phone:
            specs.append(NotificationSpec(RecipientType.CUSTOMER, event.customer_phone, ntype, title, message))

    kind = event.kind
    if kind == OrderEventKind.ORDER_CREATED:
        customer_name = event.payload.get("customer_name") or "a customer"
        items_count = event.payload.get("items_count", 0)
        admin(NotificationType.ORDER_CREATED, "New order",
              f"New order {code} from {customer_name} ({items_count} items)", NotificationPriority.HIGH)

    elif kind == OrderEventKind.ORDER_ASSIGNED:
        to_store(NotificationType.ORDER_ASSIGNED, "New order assigned",
                 f"Order {code} has been assigned to your store", NotificationPriority.HIGH)

    elif kind == OrderEventKind.DIVISION_ASSIGNED:
        original = event.original_order_id or "unknown"
        to_store(NotificationType.DIVISION_ASSIGNED, "New split order",
                 f"Order {code} (part of original order {original}) has been assigned to your store",
                 NotificationPriority.HIGH)
        admin(NotificationType.DIVISION_ASSIGNED, "Order split",
              f"Division for {store} created from original order {original}")

    elif kind == OrderEventKind.DIVISION_CONFIRMED:
        admin(NotificationType.DIVISION_CONFIRMED, "Store confirmed availability",
              f"{store} confirmed availability for order {code}")

    elif kind == OrderEventKind.DIVISION_DECLINED:
        admin(NotificationType.DIVISION_DECLINED, "Store declined order",
              f"{store} declined order {code}: {reason or 'no reason given'}", NotificationPriority.HIGH)

    elif kind == OrderEventKind.ALL_DIVISIONS_COMPLETED:
        original = event.original_order_id or code
        admin(NotificationType.ALL_DIVISIONS_COMPLETED, "Split order complete",
              f"All stores confirmed original order {original}")
        for sibling_store_id in dict.fromkeys(event.payload.get("store_ids", [])):
            specs.append(NotificationSpec(
                RecipientType.STORE, str(sibling_store_id), NotificationType.ALL_DIVISIONS_COMPLETED,
                "Ready for delivery",
                f"Every store confirmed original order {original}; you can deliver your part now",
            ))
        customer(NotificationType.ALL_DIVISIONS_COMPLETED, "Order confirmed",
                 f"All stores confirmed your order {original}")

    elif kind == OrderEventKind.ORDER_DELIVERED:
        admin(NotificationType.ORDER_DELIVERED, "Order delivered", f"Order {code} was delivered by {store}")
        customer(NotificationType.ORDER_DELIVERED, "Order delivered", f"Your order {code} was delivered successfully")

    elif kind == OrderEventKind.ORDER_RETURNED:
        admin(NotificationType.ORDER_RETURNED, "Order returned",
              f"Order {code} was returned by {store}: {reason}", NotificationPriority.HIGH)
        customer(NotificationType.ORDER_RETURNED, "Order returned", f"Your order {code} was returned - reason: {reason}")

    elif kind == OrderEventKind.CUSTOMER_REJECTED:
        admin(NotificationType.CUSTOMER_REJECTED, "Customer rejected order",
              f"The customer rejected order {code}", NotificationPriority.HIGH)
        to_store(NotificationType.CUSTOMER_REJECTED, "Customer rejected order",
                 f"The customer rejected order {code}; do not deliver it", NotificationPriority.URGENT)

    elif kind == OrderEventKind.ORDER_REJECTED:
        customer(NotificationType.ORDER_REJECTED, "Order rejected",
                 f"Your order {code} was rejected: {reason}")

    return specs


ONCE_PER_ORIGINAL = {OrderEventKind.ALL_DIVISIONS_COMPLETED}


def dedupe_key(event: OrderEvent, spec: NotificationSpec) -> Optional[str]:
    """Key shared by repeats of a once-per-original announcement, else None."""
    if event.kind not in ONCE_PER_ORIGINAL or not event.original_order_id:
        return None
    return f"{event.kind.value}:{event.original_order_id}:{spec.recipient_type.value}:{spec.recipient_id or ''}"


class OrderNotifier:
    """
    Event bus listener that persists notifications in its own session.

    Two stores confirming the last divisions at the same moment can both see
    the completed verdict and announce it. The unique dedupe_key keeps the
    second announcement from writing a second set of rows.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def handle(self, event: OrderEvent) -> None:
        specs = build_notifications(event)
        if not specs:
            return

        async with self.session_factory() as session:
            for spec in specs:
                session.add(Notification(
                    recipient_type=spec.recipient_type.value,
                    recipient_id=spec.recipient_id,
                    notification_type=spec.notification_type.value,
                    priority=spec.priority.value,
                    title=spec.title,
                    message=spec.message,
                    order_id=event.division_id or event.order_id,
                    extra_data={
                        "event": event.kind.value,
                        "original_order_id": event.original_order_id,
                        "store_name": event.store_name,
                    },
                    dedupe_key=dedupe_key(event, spec),
                ))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    f"[NOTIFICATION] {event.kind.value} for original order {event.original_order_id} already sent"
                )
                return

        logger.info(f"[NOTIFICATION] {event.kind.value}: {len(specs)} notification(s) for order {event.order_id}")


class NotificationService:
    """Read side of notifications for the admin bell, store and customer views."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _recipient_filter(self, recipient_type: RecipientType, recipient_id: Optional[str]):
        filters = [Notification.recipient_type == recipient_type.value]
        if recipient_type == RecipientType.ADMIN:
            filters.append(Notification.recipient_id.is_(None))
        else:
            filters.append(Notification.recipient_id == recipient_id)
        return and_(*filters)

    async def list_notifications(
        self,
        recipient_type: RecipientType,
        recipient_id: Optional[str] = None,
        is_read: Optional[bool] = None,
        page: int = 1,
        size: int = 50,
    ) -> Tuple[List[Notification], int, int]:
        """Return (notifications, total, unread_count) for one recipient."""
        base = self._recipient_filter(recipient_type, recipient_id)

        query = select(Notification).where(base)
        count_query = select(func.count(Notification.id)).where(base)
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
            count_query = count_query.where(Notification.is_read == is_read)

        total = (await self.db.execute(count_query)).scalar() or 0
        unread_count = await self.unread_count(recipient_type, recipient_id)

        query = query.order_by(Notification.created_at.desc()).offset((page - 1) * size).limit(size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total, unread_count

    async def unread_count(self, recipient_type: RecipientType, recipient_id: Optional[str] = None) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id))
            .where(self._recipient_filter(recipient_type, recipient_id))
            .where(Notification.is_read == False)
        )
        return result.scalar() or 0

    async def mark_read(self, notification_id) -> Optional[Notification]:
        notification = await self.db.get(Notification, notification_id)
        if not notification:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await self.db.commit()
        return notification

    async def mark_all_read(self, recipient_type: RecipientType, recipient_id: Optional[str] = None) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(self._recipient_filter(recipient_type, recipient_id))
            .where(Notification.is_read == False)
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        await self.db.commit()
        return result.rowcount or 0
