"""
Division lifecycle state machine.

Per division the state is the pair (order_status, store_response_status):

    pending response --confirm--> store_response_status=available
    pending response --decline--> store_response_status=unavailable  (reason required)
    available        --deliver--> order_status=delivered              (delivery gate open)
    available        --return---> order_status=returned               (gate open, reason required)
    any non-final    --customer rejects--> order_status=customer_rejected (final)

These checks are pure; the services load the row, call the guard, then write.
"""
from enum import Enum
from typing import Optional

from orderhub.core.exceptions import InvalidInputError
from orderhub.models.order import (
    Order,
    OrderStatus,
    StoreResponseStatus,
    CONFIRMED_RESPONSES,
    TERMINAL_ORDER_STATUSES,
)


class LifecycleEvent(str, Enum):
    CONFIRM = "confirm"
    DECLINE = "decline"
    DELIVER = "deliver"
    RETURN = "return"
    CUSTOMER_REJECT = "customer_reject"


def has_pending_response(order: Order) -> bool:
    return order.store_response_status in (None, StoreResponseStatus.PENDING.value)


def is_confirmed(store_response_status: Optional[str]) -> bool:
    return store_response_status in CONFIRMED_RESPONSES


def _require_reason(reason: Optional[str], what: str) -> str:
    if reason is None or not reason.strip():
        raise InvalidInputError(f"A {what} reason is required")
    return reason.strip()


def _require_not_final(order: Order, event: LifecycleEvent) -> None:
    if order.order_status in TERMINAL_ORDER_STATUSES:
        raise InvalidInputError(
            f"Order is already {order.order_status}",
            details={"order_id": str(order.id), "event": event.value, "order_status": order.order_status},
        )


def check_store_response(order: Order, available: bool, rejection_reason: Optional[str] = None) -> Optional[str]:
    """Guard for confirm/decline. Returns the cleaned rejection reason when declining."""
    event = LifecycleEvent.CONFIRM if available else LifecycleEvent.DECLINE
    _require_not_final(order, event)
    if not has_pending_response(order):
        raise InvalidInputError(
            f"Store already responded with '{order.store_response_status}'",
            details={"order_id": str(order.id), "event": event.value},
        )
    if available:
        return None
    return _require_reason(rejection_reason, "rejection")


def check_delivery(order: Order, gate_open: bool, event: LifecycleEvent, reason: Optional[str] = None) -> Optional[str]:
    """Guard for deliver/return. Returns the cleaned return reason for returns."""
    _require_not_final(order, event)
    if not is_confirmed(order.store_response_status):
        raise InvalidInputError(
            "Confirm product availability before delivering or returning",
            details={"order_id": str(order.id), "event": event.value},
        )
    if not gate_open:
        raise InvalidInputError(
            "Delivery is blocked until every store in the split order has confirmed",
            details={"order_id": str(order.id), "event": event.value},
        )
    if event == LifecycleEvent.RETURN:
        return _require_reason(reason, "return")
    return None


def check_customer_reject(order: Order) -> None:
    _require_not_final(order, LifecycleEvent.CUSTOMER_REJECT)


def target_order_status(event: LifecycleEvent) -> Optional[str]:
    """order_status written by an event, None when only the response changes."""
    return {
        LifecycleEvent.DELIVER: OrderStatus.DELIVERED.value,
        LifecycleEvent.RETURN: OrderStatus.RETURNED.value,
        LifecycleEvent.CUSTOMER_REJECT: OrderStatus.CUSTOMER_REJECTED.value,
    }.get(event)
