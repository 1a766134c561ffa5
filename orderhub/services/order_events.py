"""
Order lifecycle events.

Services publish OrderEvent objects on an OrderEventBus owned by the
application (app.state.event_bus). Listeners such as the notifier subscribe
to the bus; how an event reaches a person is entirely their concern.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class OrderEventKind(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_ASSIGNED = "order_assigned"
    ORDER_REJECTED = "order_rejected"
    DIVISION_ASSIGNED = "division_assigned"
    DIVISION_CONFIRMED = "division_confirmed"
    DIVISION_DECLINED = "division_declined"
    ALL_DIVISIONS_COMPLETED = "all_divisions_completed"
    ORDER_DELIVERED = "order_delivered"
    ORDER_RETURNED = "order_returned"
    CUSTOMER_REJECTED = "customer_rejected"


@dataclass
class OrderEvent:
    kind: OrderEventKind
    order_id: Optional[uuid.UUID] = None
    original_order_id: Optional[str] = None
    division_id: Optional[uuid.UUID] = None
    store_id: Optional[uuid.UUID] = None
    store_name: Optional[str] = None
    order_code: Optional[str] = None
    customer_phone: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventListener = Callable[[OrderEvent], Awaitable[None]]


class OrderEventBus:
    """In-process publisher with an explicit start/stop lifecycle."""

    def __init__(self):
        self._listeners: List[EventListener] = []
        self._running = False
        self.published: int = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True
        logger.info(f"Order event bus started with {len(self._listeners)} listener(s)")

    def stop(self) -> None:
        self._running = False
        logger.info("Order event bus stopped")

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: OrderEvent) -> None:
        if not self._running:
            logger.warning(f"Event bus not running, dropping {event.kind.value} for order {event.order_id}")
            return

        self.published += 1
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                # A failing listener must not undo a committed state change
                logger.error(
                    f"Listener {getattr(listener, '__qualname__', listener)} failed for "
                    f"{event.kind.value} (order {event.order_id}): {e}"
                )

    async def publish_all(self, events: List[OrderEvent]) -> None:
        for event in events:
            await self.publish(event)
