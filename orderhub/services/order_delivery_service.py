"""
Order Delivery Service

Store-side lifecycle of an order or division:
- confirm / decline availability
- mark delivered / returned (behind the delivery gate)
- customer rejection (terminal)

A store can only act on orders assigned to it. Every transition writes a
status history row and publishes an event after the commit.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import NotFoundError, TransientDataError
from orderhub.core.lifecycle import (
    LifecycleEvent,
    check_customer_reject,
    check_delivery,
    check_store_response,
    target_order_status,
)
from orderhub.models.order import Order, OrderStatusHistory, StoreResponseStatus
from orderhub.schemas.division import CompletionStatus
from orderhub.services.delivery_gate import DeliveryGateService
from orderhub.services.division_completion_service import DivisionCompletionService
from orderhub.services.order_events import OrderEvent, OrderEventBus, OrderEventKind


logger = logging.getLogger(__name__)


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class OrderDeliveryService:
    """Store responses, delivery and returns for orders and divisions."""

    def __init__(self, db: AsyncSession, event_bus: Optional[OrderEventBus] = None):
        self.db = db
        self.event_bus = event_bus
        self.gate = DeliveryGateService(db)

    async def _get_store_order(self, order_id: uuid.UUID, store_id: uuid.UUID, operation: str) -> Order:
        result = await self.db.execute(
            select(Order).where(Order.id == order_id, Order.assigned_store_id == store_id)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError(
                "Order not found or not assigned to this store",
                details={"order_id": str(order_id), "store_id": str(store_id)},
                operation=operation,
            )
        return order

    def _record(self, order: Order, from_status: Optional[str], to_status: str, changed_by: str, notes: str = None):
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            notes=notes,
        ))

    async def _commit(self, order: Order, operation: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[DELIVERY] {operation} failed for order {order.id}: {e}")
            raise TransientDataError(
                "Failed to update order",
                details={"order_id": str(order.id)},
                operation=operation,
            ) from e

    def _event(self, kind: OrderEventKind, order: Order, **payload) -> OrderEvent:
        return OrderEvent(
            kind=kind,
            order_id=order.id,
            original_order_id=order.original_order_ref if order.is_division else None,
            division_id=order.id if order.is_division else None,
            store_id=order.assigned_store_id,
            store_name=order.main_store_name,
            order_code=order.order_code,
            customer_phone=order.customer_phone,
            payload=payload,
        )

    async def _publish(self, event: OrderEvent) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event)

    async def respond(
        self,
        order_id: uuid.UUID,
        store_id: uuid.UUID,
        available: bool,
        rejection_reason: Optional[str] = None,
    ) -> Order:
        """Store confirms (available) or declines (unavailable) an order."""
        operation = "store_response"
        order = await self._get_store_order(order_id, store_id, operation)
        reason = check_store_response(order, available, rejection_reason)

        previous = order.store_response_status or StoreResponseStatus.PENDING.value
        new_response = StoreResponseStatus.AVAILABLE.value if available else StoreResponseStatus.UNAVAILABLE.value
        now = datetime.now(timezone.utc)

        order.store_response_status = new_response
        order.store_response_at = now
        order.rejection_reason = reason
        order.updated_at = now
        self._record(order, previous, new_response, f"store:{store_id}", reason)
        await self._commit(order, operation)

        logger.info(f"[DELIVERY] Store {store_id} responded '{new_response}' for order {order.id}")

        if available:
            await self._publish(self._event(OrderEventKind.DIVISION_CONFIRMED, order))
            if order.is_division:
                await self._announce_if_completed(order)
        else:
            await self._publish(self._event(OrderEventKind.DIVISION_DECLINED, order, reason=reason))

        return order

    async def _announce_if_completed(self, order: Order) -> None:
        """Publish all_divisions_completed when this confirmation completed the set."""
        original_ref = order.original_order_ref
        if not original_ref:
            return

        completion = DivisionCompletionService(self.db)
        details = await completion.get_divisions_with_completion(original_ref)
        # Close the read transaction before listeners write
        await self.db.commit()
        if details.completion.status != CompletionStatus.COMPLETED:
            return

        logger.info(f"[DELIVERY] All {details.completion.total_divisions} divisions of {original_ref} accepted")
        event = self._event(
            OrderEventKind.ALL_DIVISIONS_COMPLETED,
            order,
            store_ids=[str(d.assigned_store_id) for d in details.divisions if d.assigned_store_id],
            total_divisions=details.completion.total_divisions,
        )
        await self._publish(event)

    async def mark_delivered(self, order_id: uuid.UUID, store_id: uuid.UUID) -> Order:
        operation = "mark_delivered"
        order = await self._get_store_order(order_id, store_id, operation)
        gate = await self.gate.evaluate_order(order, operation)
        check_delivery(order, gate.can_deliver, LifecycleEvent.DELIVER)

        previous = order.order_status
        now = datetime.now(timezone.utc)
        order.order_status = target_order_status(LifecycleEvent.DELIVER)
        order.completed_at = now
        order.updated_at = now
        self._record(order, previous, order.order_status, f"store:{store_id}")
        await self._commit(order, operation)

        logger.info(f"[DELIVERY] Order {order.id} delivered by store {store_id}")
        await self._publish(self._event(OrderEventKind.ORDER_DELIVERED, order))
        return order

    async def mark_returned(self, order_id: uuid.UUID, store_id: uuid.UUID, return_reason: Optional[str]) -> Order:
        operation = "mark_returned"
        order = await self._get_store_order(order_id, store_id, operation)
        gate = await self.gate.evaluate_order(order, operation)
        reason = check_delivery(order, gate.can_deliver, LifecycleEvent.RETURN, return_reason)

        previous = order.order_status
        order.order_status = target_order_status(LifecycleEvent.RETURN)
        order.details = _append_note(order.details, f"Return reason: {reason}")
        order.updated_at = datetime.now(timezone.utc)
        self._record(order, previous, order.order_status, f"store:{store_id}", reason)
        await self._commit(order, operation)

        logger.info(f"[DELIVERY] Order {order.id} returned by store {store_id}: {reason}")
        await self._publish(self._event(OrderEventKind.ORDER_RETURNED, order, reason=reason))
        return order

    async def customer_reject(self, order_id: uuid.UUID, reason: Optional[str] = None) -> Order:
        """Customer refuses the order. Final: it can never be delivered or returned."""
        operation = "customer_reject"
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": str(order_id)}, operation=operation)
        check_customer_reject(order)

        previous = order.order_status
        cleaned = reason.strip() if reason and reason.strip() else None
        order.order_status = target_order_status(LifecycleEvent.CUSTOMER_REJECT)
        order.store_response_status = StoreResponseStatus.CUSTOMER_REJECTED.value
        if cleaned:
            order.details = _append_note(order.details, f"Customer rejection reason: {cleaned}")
        order.updated_at = datetime.now(timezone.utc)
        self._record(order, previous, order.order_status, "customer", cleaned)
        await self._commit(order, operation)

        logger.info(f"[DELIVERY] Order {order.id} rejected by customer")
        await self._publish(self._event(OrderEventKind.CUSTOMER_REJECTED, order, reason=cleaned))
        return order
