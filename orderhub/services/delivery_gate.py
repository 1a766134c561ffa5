"""
Delivery gate for stores.

Deliver and return are enabled only when the store confirmed availability
and, for a division, every sibling division was accepted as well. Sibling
divisions change state independently, so the verdict is recomputed on every
evaluation and never cached.
"""
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import NotFoundError, TransientDataError
from orderhub.core.lifecycle import is_confirmed
from orderhub.models.order import Order, OrderStatus, StoreResponseStatus, TERMINAL_ORDER_STATUSES
from orderhub.schemas.division import (
    CompletionStatus,
    CompletionVerdict,
    DeliveryMessageCode,
    DeliveryStatusMessage,
)
from orderhub.services.division_completion_service import DivisionCompletionService, build_completion_verdict


def can_deliver(
    store_response_status: Optional[str],
    is_division: bool,
    verdict: Optional[CompletionVerdict] = None,
) -> bool:
    if not is_confirmed(store_response_status):
        return False
    if not is_division:
        return True
    return verdict is not None and verdict.status == CompletionStatus.COMPLETED


def delivery_status_message(
    store_response_status: Optional[str],
    is_division: bool,
    verdict: Optional[CompletionVerdict] = None,
    order_status: Optional[str] = None,
    order_id: Optional[uuid.UUID] = None,
) -> DeliveryStatusMessage:
    """Explain to the acting store whether it can deliver, and if not, why."""

    def message(code: DeliveryMessageCode, text: str, allowed: bool = False) -> DeliveryStatusMessage:
        return DeliveryStatusMessage(
            order_id=order_id,
            can_deliver=allowed,
            code=code,
            message=text,
            is_division=is_division,
            completion=verdict,
        )

    if (
        order_status == OrderStatus.CUSTOMER_REJECTED.value
        or store_response_status == StoreResponseStatus.CUSTOMER_REJECTED.value
    ):
        return message(DeliveryMessageCode.CUSTOMER_REJECTED, "the customer rejected this order")

    if order_status in TERMINAL_ORDER_STATUSES:
        return message(DeliveryMessageCode.ALREADY_FINAL, f"order is already {order_status}")

    if not is_confirmed(store_response_status):
        return message(DeliveryMessageCode.CONFIRM_AVAILABILITY_FIRST, "confirm availability first")

    if not can_deliver(store_response_status, is_division, verdict):
        label = verdict.status_label if verdict is not None else "status unknown"
        return message(
            DeliveryMessageCode.WAITING_FOR_SIBLING_DIVISIONS,
            f"wait for split order completion: {label}",
        )

    return message(DeliveryMessageCode.READY_FOR_DELIVERY, "ready for delivery", allowed=True)


class DeliveryGateService:
    """Evaluates the delivery gate against current division rows."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.completion = DivisionCompletionService(db)

    async def verdict_for(self, order: Order, operation: Optional[str] = None) -> Optional[CompletionVerdict]:
        """
        Fresh verdict for a division, None for a plain order.

        Without an operation a data error degrades to the error verdict, which
        keeps the gate closed. With one, it is raised as TransientDataError.
        """
        if not order.is_division:
            return None
        original_ref = order.original_order_ref
        if not original_ref:
            # Marker without a usable reference
            return build_completion_verdict([])
        if operation is None:
            return await self.completion.compute_completion(original_ref)

        order_id = str(order.id)
        try:
            divisions = await self.completion.list_divisions(original_ref, operation)
        except TransientDataError as e:
            e.details["order_id"] = order_id
            raise
        return build_completion_verdict(d.store_response_status for d in divisions)

    async def evaluate_order(self, order: Order, operation: Optional[str] = None) -> DeliveryStatusMessage:
        verdict = await self.verdict_for(order, operation)
        return delivery_status_message(
            order.store_response_status,
            order.is_division,
            verdict,
            order_status=order.order_status,
            order_id=order.id,
        )

    async def evaluate(self, order_id: uuid.UUID) -> DeliveryStatusMessage:
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": str(order_id)}, operation="delivery_gate")
        return await self.evaluate_order(order)
