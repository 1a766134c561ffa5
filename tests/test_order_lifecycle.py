"""Tests for store responses, delivery, returns and customer rejection."""
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from orderhub.core.exceptions import InvalidInputError, NotFoundError, TransientDataError
from orderhub.models.order import OrderStatus, StoreResponseStatus
from orderhub.services.delivery_gate import DeliveryGateService
from orderhub.services.division_completion_service import DivisionCompletionService
from orderhub.services.order_delivery_service import OrderDeliveryService


@pytest.fixture
def two_store_split(add_store, add_division):
    async def _build(original_ref="ORD-20260101-0001", response_a="pending", response_b="pending"):
        store_a = await add_store("Store A")
        store_b = await add_store("Store B")
        division_a = await add_division(original_ref, store=store_a, response=response_a, order_code=f"{original_ref}-1")
        division_b = await add_division(original_ref, store=store_b, response=response_b, order_code=f"{original_ref}-2")
        return store_a, store_b, division_a, division_b
    return _build


# ─── Store response ────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_confirm_stamps_response(db_session, two_store_split, event_bus, recorder):
    store_a, _, division_a, _ = await two_store_split()

    order = await OrderDeliveryService(db_session, event_bus).respond(division_a.id, store_a.id, available=True)

    assert order.store_response_status == StoreResponseStatus.AVAILABLE.value
    assert order.store_response_at is not None
    assert order.rejection_reason is None
    assert recorder.kinds() == ["division_confirmed"]


@pytest.mark.asyncio
async def test_decline_requires_reason(db_session, two_store_split):
    store_a, _, division_a, _ = await two_store_split()
    service = OrderDeliveryService(db_session)

    with pytest.raises(InvalidInputError):
        await service.respond(division_a.id, store_a.id, available=False, rejection_reason="  ")

    order = await service.respond(division_a.id, store_a.id, available=False, rejection_reason=" out of stock ")
    assert order.store_response_status == StoreResponseStatus.UNAVAILABLE.value
    assert order.rejection_reason == "out of stock"


@pytest.mark.asyncio
async def test_cannot_respond_twice(db_session, two_store_split):
    store_a, _, division_a, _ = await two_store_split(response_a="available")
    with pytest.raises(InvalidInputError):
        await OrderDeliveryService(db_session).respond(division_a.id, store_a.id, available=False, rejection_reason="x")


@pytest.mark.asyncio
async def test_store_can_only_touch_its_own_division(db_session, two_store_split):
    _, store_b, division_a, _ = await two_store_split()
    with pytest.raises(NotFoundError):
        await OrderDeliveryService(db_session).respond(division_a.id, store_b.id, available=True)


@pytest.mark.asyncio
async def test_last_confirmation_announces_completion_once(db_session, two_store_split, event_bus, recorder):
    store_a, store_b, division_a, division_b = await two_store_split()
    service = OrderDeliveryService(db_session, event_bus)

    await service.respond(division_a.id, store_a.id, available=True)
    assert "all_divisions_completed" not in recorder.kinds()

    await service.respond(division_b.id, store_b.id, available=True)
    assert recorder.kinds() == ["division_confirmed", "division_confirmed", "all_divisions_completed"]

    completed = recorder.events[-1]
    assert completed.original_order_id == "ORD-20260101-0001"
    assert set(completed.payload["store_ids"]) == {str(store_a.id), str(store_b.id)}
    assert completed.payload["total_divisions"] == 2


# ─── Delivery and return ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_deliver_requires_confirmation(db_session, two_store_split):
    store_a, _, division_a, _ = await two_store_split()
    with pytest.raises(InvalidInputError):
        await OrderDeliveryService(db_session).mark_delivered(division_a.id, store_a.id)


@pytest.mark.asyncio
async def test_deliver_blocked_until_siblings_accept(db_session, two_store_split, event_bus):
    store_a, store_b, division_a, division_b = await two_store_split(response_a="available")
    service = OrderDeliveryService(db_session, event_bus)

    with pytest.raises(InvalidInputError) as exc_info:
        await service.mark_delivered(division_a.id, store_a.id)
    assert "every store" in exc_info.value.message

    await service.respond(division_b.id, store_b.id, available=True)
    order = await service.mark_delivered(division_a.id, store_a.id)

    assert order.order_status == OrderStatus.DELIVERED.value
    assert order.completed_at is not None


@pytest.mark.asyncio
async def test_deliver_surfaces_division_read_failure(db_session, two_store_split, monkeypatch):
    store_a, _, division_a, _ = await two_store_split(response_a="available", response_b="available")

    async def broken_fetch(self, original_ref):
        raise OperationalError("SELECT orders", {}, Exception("connection reset"))

    monkeypatch.setattr(DivisionCompletionService, "_fetch_divisions", broken_fetch)
    service = OrderDeliveryService(db_session)

    with pytest.raises(TransientDataError) as exc_info:
        await service.mark_delivered(division_a.id, store_a.id)
    assert exc_info.value.operation == "mark_delivered"
    assert exc_info.value.details["order_id"] == str(division_a.id)

    with pytest.raises(TransientDataError):
        await service.mark_returned(division_a.id, store_a.id, "customer not home")

    # The read-only gate degrades to a closed gate instead
    gate = await DeliveryGateService(db_session).evaluate(division_a.id)
    assert gate.can_deliver is False
    assert gate.completion.status_label == "error determining status"

    monkeypatch.undo()
    order = await service.mark_delivered(division_a.id, store_a.id)
    assert order.order_status == OrderStatus.DELIVERED.value


@pytest.mark.asyncio
async def test_return_requires_reason_and_appends_it(db_session, two_store_split):
    store_a, _, division_a, _ = await two_store_split(response_a="available", response_b="accepted")
    service = OrderDeliveryService(db_session)

    with pytest.raises(InvalidInputError):
        await service.mark_returned(division_a.id, store_a.id, "")

    order = await service.mark_returned(division_a.id, store_a.id, "customer not home")
    assert order.order_status == OrderStatus.RETURNED.value
    assert order.details.endswith("Return reason: customer not home")
    assert order.details.startswith("split from original order ORD-20260101-0001")


@pytest.mark.asyncio
async def test_delivered_order_cannot_be_returned(db_session, two_store_split):
    store_a, _, division_a, _ = await two_store_split(response_a="available", response_b="available")
    service = OrderDeliveryService(db_session)
    await service.mark_delivered(division_a.id, store_a.id)

    with pytest.raises(InvalidInputError):
        await service.mark_returned(division_a.id, store_a.id, "changed mind")


# ─── Customer rejection ────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_customer_rejection_is_final(db_session, two_store_split, event_bus, recorder):
    store_a, _, division_a, _ = await two_store_split(response_a="available", response_b="available")
    service = OrderDeliveryService(db_session, event_bus)

    order = await service.customer_reject(division_a.id, "ordered by mistake")
    assert order.order_status == OrderStatus.CUSTOMER_REJECTED.value
    assert order.store_response_status == StoreResponseStatus.CUSTOMER_REJECTED.value
    assert "Customer rejection reason: ordered by mistake" in order.details
    assert recorder.kinds()[-1] == "customer_rejected"

    with pytest.raises(InvalidInputError):
        await service.mark_delivered(division_a.id, store_a.id)
    with pytest.raises(InvalidInputError):
        await service.mark_returned(division_a.id, store_a.id, "late")
    with pytest.raises(InvalidInputError):
        await service.customer_reject(division_a.id)


@pytest.mark.asyncio
async def test_customer_reject_unknown_order(db_session):
    with pytest.raises(NotFoundError):
        await OrderDeliveryService(db_session).customer_reject(uuid.uuid4())
