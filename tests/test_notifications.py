"""Tests for the event bus and the notifications written from its events."""
import uuid

import pytest
from sqlalchemy import select

from orderhub.models.notifications import Notification, RecipientType
from orderhub.services.notification_service import NotificationService, OrderNotifier, build_notifications
from orderhub.services.order_events import OrderEvent, OrderEventBus, OrderEventKind


def _event(kind, **fields):
    defaults = {
        "order_id": uuid.uuid4(),
        "order_code": "ORD-20260101-0001-1",
        "store_id": uuid.uuid4(),
        "store_name": "Store A",
        "customer_phone": "+919800000001",
    }
    defaults.update(fields)
    return OrderEvent(kind=kind, **defaults)


# ─── Event bus ─────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_stopped_bus_drops_events():
    received = []

    async def listener(event):
        received.append(event)

    bus = OrderEventBus()
    bus.subscribe(listener)
    await bus.publish(_event(OrderEventKind.ORDER_CREATED))
    assert received == []

    bus.start()
    await bus.publish(_event(OrderEventKind.ORDER_CREATED))
    assert len(received) == 1
    assert bus.published == 1


@pytest.mark.asyncio
async def test_failing_listener_does_not_reach_publisher():
    received = []

    async def broken(event):
        raise RuntimeError("push gateway down")

    async def listener(event):
        received.append(event.kind)

    bus = OrderEventBus()
    bus.subscribe(broken)
    bus.subscribe(listener)
    bus.start()

    await bus.publish(_event(OrderEventKind.DIVISION_CONFIRMED))
    assert received == [OrderEventKind.DIVISION_CONFIRMED]


# ─── Templates ─────────────────────────────────────────────────────────────────
def test_division_assigned_notifies_store_and_admin():
    event = _event(OrderEventKind.DIVISION_ASSIGNED, original_order_id="ORD-20260101-0001")
    specs = build_notifications(event)

    assert [s.recipient_type for s in specs] == [RecipientType.STORE, RecipientType.ADMIN]
    assert specs[0].recipient_id == str(event.store_id)
    assert "part of original order ORD-20260101-0001" in specs[0].message


def test_unassigned_division_only_notifies_admin():
    specs = build_notifications(_event(OrderEventKind.DIVISION_ASSIGNED, store_id=None))
    assert [s.recipient_type for s in specs] == [RecipientType.ADMIN]


def test_all_divisions_completed_reaches_every_store_and_customer():
    store_ids = [str(uuid.uuid4()), str(uuid.uuid4())]
    event = _event(
        OrderEventKind.ALL_DIVISIONS_COMPLETED,
        original_order_id="ORD-20260101-0001",
        payload={"store_ids": store_ids, "total_divisions": 2},
    )
    specs = build_notifications(event)

    store_specs = [s for s in specs if s.recipient_type == RecipientType.STORE]
    assert sorted(s.recipient_id for s in store_specs) == sorted(store_ids)
    assert any(s.recipient_type == RecipientType.ADMIN for s in specs)
    customer = [s for s in specs if s.recipient_type == RecipientType.CUSTOMER]
    assert customer[0].recipient_id == "+919800000001"


def test_declined_message_carries_reason():
    specs = build_notifications(_event(OrderEventKind.DIVISION_DECLINED, payload={"reason": "out of stock"}))
    assert specs[0].message == "Store A declined order ORD-20260101-0001-1: out of stock"


# ─── Persistence and read side ─────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_notifier_writes_rows(db_session, session_factory):
    notifier = OrderNotifier(session_factory)
    event = _event(OrderEventKind.ORDER_DELIVERED)

    await notifier.handle(event)

    result = await db_session.execute(select(Notification).order_by(Notification.recipient_type))
    rows = list(result.scalars().all())
    assert [r.recipient_type for r in rows] == ["admin", "customer"]
    assert all(r.order_id == event.order_id for r in rows)
    assert rows[0].recipient_id is None
    assert rows[0].extra_data["event"] == "order_delivered"


@pytest.mark.asyncio
async def test_list_and_mark_read(db_session, session_factory):
    notifier = OrderNotifier(session_factory)
    store_id = uuid.uuid4()
    await notifier.handle(_event(OrderEventKind.ORDER_ASSIGNED, store_id=store_id))
    await notifier.handle(_event(OrderEventKind.CUSTOMER_REJECTED, store_id=store_id))

    service = NotificationService(db_session)
    items, total, unread = await service.list_notifications(RecipientType.STORE, str(store_id))
    assert total == 2
    assert unread == 2

    await service.mark_read(items[0].id)
    assert await service.unread_count(RecipientType.STORE, str(store_id)) == 1

    # Admin bell only sees the shared admin row
    admin_items, admin_total, _ = await service.list_notifications(RecipientType.ADMIN)
    assert admin_total == 1
    assert admin_items[0].notification_type == "CUSTOMER_REJECTED"

    assert await service.mark_all_read(RecipientType.STORE, str(store_id)) == 1
    assert await service.unread_count(RecipientType.STORE, str(store_id)) == 0


@pytest.mark.asyncio
async def test_completion_announced_twice_writes_rows_once(db_session, session_factory):
    notifier = OrderNotifier(session_factory)
    store_ids = [str(uuid.uuid4()), str(uuid.uuid4())]
    event = _event(
        OrderEventKind.ALL_DIVISIONS_COMPLETED,
        original_order_id="ORD-20260101-0001",
        payload={"store_ids": store_ids, "total_divisions": 2},
    )

    # Both of the last two confirmations saw the completed verdict
    await notifier.handle(event)
    await notifier.handle(event)
    # Other events are never deduplicated
    delivered = _event(OrderEventKind.ORDER_DELIVERED)
    await notifier.handle(delivered)
    await notifier.handle(delivered)

    result = await db_session.execute(
        select(Notification).where(Notification.notification_type == "ALL_DIVISIONS_COMPLETED")
    )
    rows = list(result.scalars().all())
    assert sorted(r.recipient_type for r in rows) == ["admin", "customer", "store", "store"]
    assert all(r.dedupe_key.startswith("all_divisions_completed:ORD-20260101-0001:") for r in rows)

    result = await db_session.execute(
        select(Notification).where(Notification.notification_type == "ORDER_DELIVERED")
    )
    assert len(result.scalars().all()) == 4
