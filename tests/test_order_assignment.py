"""Tests for order creation, routing orders to stores and the store dashboard."""
import uuid
from decimal import Decimal

import pytest

from orderhub.core.exceptions import InvalidInputError, NotFoundError
from orderhub.models.order import OrderStatus, StoreResponseStatus
from orderhub.schemas.order import OrderCreate
from orderhub.services.order_assignment_service import OrderAssignmentService
from orderhub.services.order_service import OrderService


def _order_payload(*stores, customer_name="Ravi Kumar"):
    return OrderCreate(
        customer_name=customer_name,
        customer_phone="+919811111111",
        items=[
            {"product_name": f"Item {i}", "quantity": 2, "unit_price": "10.00", "store_name": store}
            for i, store in enumerate(stores)
        ],
    )


# ─── Order creation ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_create_order_generates_code_and_totals(db_session, event_bus, recorder):
    service = OrderService(db_session, event_bus)

    first = await service.create_order(_order_payload("Store A"))
    second = await service.create_order(_order_payload("Store A", "Store B"))

    assert first.order_code.startswith("ORD-")
    assert first.order_code.endswith("-0001")
    assert second.order_code.endswith("-0002")
    assert first.total_amount == Decimal("20.00")
    assert second.total_amount == Decimal("40.00")
    assert first.main_store_name == "Store A"
    assert second.main_store_name is None
    assert first.order_status == OrderStatus.PENDING.value
    assert recorder.kinds() == ["order_created", "order_created"]
    assert recorder.events[1].payload["store_count"] == 2


@pytest.mark.asyncio
async def test_admin_reject_only_pending(db_session, add_order, event_bus, recorder):
    order = await add_order(customer_notes="ring twice")
    service = OrderService(db_session, event_bus)

    with pytest.raises(InvalidInputError):
        await service.admin_reject(order.id, "   ")

    rejected = await service.admin_reject(order.id, "duplicate order")
    assert rejected.order_status == OrderStatus.REJECTED.value
    assert rejected.customer_notes == "[rejected by admin] duplicate order\nring twice"
    assert recorder.kinds() == ["order_rejected"]

    with pytest.raises(InvalidInputError):
        await service.admin_reject(order.id, "again")


# ─── Manual assignment ─────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_assign_order_to_store(db_session, add_store, add_order, event_bus, recorder):
    store = await add_store("Store A")
    order = await add_order()

    response = await OrderAssignmentService(db_session, event_bus).assign_order_to_store(order.id, store.id)

    assert response.success is True
    assert response.store_name == "Store A"
    assert order.assigned_store_id == store.id
    assert order.order_status == OrderStatus.ASSIGNED.value
    assert order.store_response_status == StoreResponseStatus.PENDING.value
    assert recorder.events[-1].kind.value == "order_assigned"
    assert recorder.events[-1].store_id == store.id


@pytest.mark.asyncio
async def test_assign_rejects_inactive_store_and_final_order(db_session, add_store, add_order):
    inactive = await add_store("Closed Store", status="inactive")
    active = await add_store("Store A")
    pending = await add_order()
    delivered = await add_order(order_code="ORD-20260101-0002", order_status=OrderStatus.DELIVERED.value)
    service = OrderAssignmentService(db_session)

    with pytest.raises(InvalidInputError):
        await service.assign_order_to_store(pending.id, inactive.id)
    with pytest.raises(InvalidInputError):
        await service.assign_order_to_store(delivered.id, active.id)
    with pytest.raises(NotFoundError):
        await service.assign_order_to_store(pending.id, uuid.uuid4())
    with pytest.raises(NotFoundError):
        await service.assign_order_to_store(uuid.uuid4(), active.id)


@pytest.mark.asyncio
async def test_unassign(db_session, add_store, add_order):
    store = await add_store("Store A")
    order = await add_order()
    service = OrderAssignmentService(db_session)
    await service.assign_order_to_store(order.id, store.id)

    response = await service.unassign_order(order.id)
    assert response.order_status == OrderStatus.PENDING.value
    assert order.assigned_store_id is None
    assert order.store_response_status is None


# ─── Auto assignment ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_auto_assign_matches_store_names(db_session, add_store, add_order):
    store = await add_store("Green Grocer")
    matched = await add_order(order_code="ORD-20260101-0001", main_store_name="  green grocer ")
    unmatched = await add_order(order_code="ORD-20260101-0002", main_store_name="Nowhere Mart")
    await add_order(order_code="ORD-20260101-0003", order_status=OrderStatus.DELIVERED.value,
                    main_store_name="Green Grocer")

    result = await OrderAssignmentService(db_session).auto_assign_orders()

    assert result.assigned_count == 1
    assert result.unmatched_count == 1
    assert result.error_count == 0
    by_order = {r.order_id: r for r in result.results}
    assert by_order[matched.id].status == "assigned"
    assert by_order[matched.id].store_name == "Green Grocer"
    assert by_order[unmatched.id].status == "unmatched"
    assert matched.assigned_store_id == store.id


@pytest.mark.asyncio
async def test_auto_assign_needs_active_stores(db_session, add_order):
    await add_order(main_store_name="Store A")
    with pytest.raises(InvalidInputError):
        await OrderAssignmentService(db_session).auto_assign_orders()


@pytest.mark.asyncio
async def test_assignment_stats(db_session, add_store, add_order):
    store = await add_store("Store A")
    await add_order(order_code="ORD-1")
    await add_order(order_code="ORD-2", order_status=OrderStatus.DELIVERED.value, assigned_store_id=store.id)

    stats = await OrderAssignmentService(db_session).get_assignment_stats()
    assert stats.total == 2
    assert stats.pending == 1
    assert stats.delivered == 1
    assert stats.assigned == 1


# ─── Store dashboard ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_store_orders_hide_declined(db_session, add_store, add_division):
    store = await add_store("Store A")
    await add_division("ORD-1", store=store, response="pending", order_code="ORD-1-1")
    await add_division("ORD-2", store=store, response="unavailable", order_code="ORD-2-1")
    await add_division("ORD-3", store=store, response="available", order_code="ORD-3-1",
                       order_status=OrderStatus.DELIVERED.value)

    orders, stats = await OrderService(db_session).get_store_orders(store.id)

    assert sorted(o.order_code for o in orders) == ["ORD-1-1", "ORD-3-1"]
    assert stats.total == 2
    assert stats.assigned == 1
    assert stats.delivered == 1
    assert stats.without_order_items == 2
