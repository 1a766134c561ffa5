"""
Order Assignment Service

Routes orders to stores:
- Manual assignment by an admin
- Auto-assignment by matching the order's main_store_name to an active store
- Unassignment back to the pending queue
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import InvalidInputError, NotFoundError, OrderHubError, TransientDataError
from orderhub.models.order import Order, OrderStatus, OrderStatusHistory, StoreResponseStatus
from orderhub.models.store import Store, StoreStatus
from orderhub.schemas.order import (
    AssignmentStats,
    AssignOrderResponse,
    AutoAssignItemResult,
    AutoAssignResponse,
)
from orderhub.services.order_events import OrderEvent, OrderEventBus, OrderEventKind


logger = logging.getLogger(__name__)

UNASSIGNABLE_STATUSES = (OrderStatus.DELIVERED.value, OrderStatus.RETURNED.value)


def _normalize_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


class OrderAssignmentService:
    """Service for assigning orders to stores."""

    def __init__(self, db: AsyncSession, event_bus: Optional[OrderEventBus] = None):
        self.db = db
        self.event_bus = event_bus

    async def assign_order_to_store(
        self,
        order_id: uuid.UUID,
        store_id: uuid.UUID,
        assigned_by: str = "admin",
        mode: str = "manual",
    ) -> AssignOrderResponse:
        """Assign one order to an active store."""
        operation = "assign_order"
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": str(order_id)}, operation=operation)

        store = await self.db.get(Store, store_id)
        if not store:
            raise NotFoundError("Store not found", details={"store_id": str(store_id)}, operation=operation)

        if store.status != StoreStatus.ACTIVE.value:
            raise InvalidInputError(
                f"Store '{store.name}' is not active",
                details={"store_id": str(store_id)},
                operation=operation,
            )

        if order.order_status in UNASSIGNABLE_STATUSES:
            raise InvalidInputError(
                f"Cannot assign an order with status {order.order_status}",
                details={"order_id": str(order_id)},
                operation=operation,
            )

        previous = order.order_status
        now = datetime.now(timezone.utc)
        order.assigned_store_id = store.id
        order.main_store_name = store.name
        order.order_status = OrderStatus.ASSIGNED.value
        if order.store_response_status is None:
            order.store_response_status = StoreResponseStatus.PENDING.value
        order.updated_at = now
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=previous,
            to_status=OrderStatus.ASSIGNED.value,
            changed_by=assigned_by,
            notes=f"Assigned to {store.name} ({mode})",
        ))

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to assign order {order_id} to store {store_id}: {e}")
            raise TransientDataError("Failed to assign order", details={"order_id": str(order_id)}, operation=operation) from e

        logger.info(f"Order {order.order_code or order.id} assigned to {store.name} ({mode}, previous: {previous})")

        if self.event_bus is not None:
            await self.event_bus.publish(OrderEvent(
                kind=OrderEventKind.ORDER_ASSIGNED,
                order_id=order.id,
                store_id=store.id,
                store_name=store.name,
                order_code=order.order_code,
                customer_phone=order.customer_phone,
                payload={"assigned_by": assigned_by, "mode": mode},
            ))

        return AssignOrderResponse(
            success=True,
            message=f"Order {order.order_code or order.id} assigned to store '{store.name}'",
            order_status=order.order_status,
            store_name=store.name,
            assigned_at=now,
        )

    async def auto_assign_orders(self, order_id: Optional[uuid.UUID] = None) -> AutoAssignResponse:
        """
        Match orders to active stores by main_store_name.

        With order_id only that order is processed; otherwise every pending
        order is.
        """
        stores_result = await self.db.execute(select(Store).where(Store.status == StoreStatus.ACTIVE.value))
        stores_by_name: Dict[str, Store] = {}
        for store in stores_result.scalars().all():
            stores_by_name.setdefault(_normalize_name(store.name), store)

        if not stores_by_name:
            raise InvalidInputError("No active stores", operation="auto_assign")

        query = select(Order)
        if order_id:
            query = query.where(Order.id == order_id)
        else:
            query = query.where(Order.order_status == OrderStatus.PENDING.value).order_by(Order.created_at.asc())
        orders = list((await self.db.execute(query)).scalars().all())

        if not orders:
            return AutoAssignResponse(success=True, message="No orders to process")

        results: List[AutoAssignItemResult] = []
        for order in orders:
            store = stores_by_name.get(_normalize_name(order.main_store_name))
            if not store or not order.main_store_name:
                results.append(AutoAssignItemResult(
                    order_id=order.id,
                    status="unmatched",
                    error_message=f"No store matches '{order.main_store_name}'",
                ))
                continue

            try:
                await self.assign_order_to_store(order.id, store.id, assigned_by="auto-system", mode="auto")
            except OrderHubError as e:
                results.append(AutoAssignItemResult(order_id=order.id, status="error", error_message=e.message))
                continue

            results.append(AutoAssignItemResult(order_id=order.id, status="assigned", store_name=store.name))

        assigned = sum(1 for r in results if r.status == "assigned")
        unmatched = sum(1 for r in results if r.status == "unmatched")
        errors = sum(1 for r in results if r.status == "error")

        logger.info(f"Auto-assignment: {len(orders)} orders, {assigned} assigned, {unmatched} unmatched, {errors} errors")

        return AutoAssignResponse(
            success=True,
            message=f"Processed {len(orders)} orders: {assigned} assigned, {unmatched} unmatched, {errors} errors",
            assigned_count=assigned,
            unmatched_count=unmatched,
            error_count=errors,
            results=results,
        )

    async def unassign_order(self, order_id: uuid.UUID) -> AssignOrderResponse:
        operation = "unassign_order"
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": str(order_id)}, operation=operation)
        if order.is_terminal:
            raise InvalidInputError(
                f"Cannot unassign an order with status {order.order_status}",
                details={"order_id": str(order_id)},
                operation=operation,
            )

        previous = order.order_status
        order.assigned_store_id = None
        order.order_status = OrderStatus.PENDING.value
        order.store_response_status = None
        order.store_response_at = None
        order.updated_at = datetime.now(timezone.utc)
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=previous,
            to_status=OrderStatus.PENDING.value,
            changed_by="admin",
            notes="Unassigned",
        ))

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to unassign order {order_id}: {e}")
            raise TransientDataError("Failed to unassign order", details={"order_id": str(order_id)}, operation=operation) from e

        logger.info(f"Order {order.order_code or order.id} unassigned")
        return AssignOrderResponse(success=True, message="Order unassigned", order_status=order.order_status)

    async def get_assignment_stats(self) -> AssignmentStats:
        result = await self.db.execute(
            select(Order.order_status, func.count(Order.id)).group_by(Order.order_status)
        )
        by_status = {status: count for status, count in result.all()}

        assigned_result = await self.db.execute(
            select(func.count(Order.id)).where(Order.assigned_store_id.isnot(None))
        )

        return AssignmentStats(
            total=sum(by_status.values()),
            assigned=assigned_result.scalar() or 0,
            pending=by_status.get(OrderStatus.PENDING.value, 0),
            delivered=by_status.get(OrderStatus.DELIVERED.value, 0),
            returned=by_status.get(OrderStatus.RETURNED.value, 0),
        )
