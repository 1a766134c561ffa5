# Services module
from orderhub.services.order_service import OrderService
from orderhub.services.order_split_service import OrderSplitService
from orderhub.services.division_completion_service import DivisionCompletionService
from orderhub.services.delivery_gate import DeliveryGateService
from orderhub.services.order_delivery_service import OrderDeliveryService
from orderhub.services.order_assignment_service import OrderAssignmentService
from orderhub.services.store_service import StoreService
from orderhub.services.notification_service import NotificationService, OrderNotifier
from orderhub.services.order_events import OrderEvent, OrderEventBus, OrderEventKind

__all__ = [
    "OrderService",
    "OrderSplitService",
    "DivisionCompletionService",
    "DeliveryGateService",
    "OrderDeliveryService",
    "OrderAssignmentService",
    "StoreService",
    "NotificationService",
    "OrderNotifier",
    "OrderEvent",
    "OrderEventBus",
    "OrderEventKind",
]
