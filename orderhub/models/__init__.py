from orderhub.models.store import Store, StoreStatus
from orderhub.models.order import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderStatus,
    StoreResponseStatus,
)
from orderhub.models.notifications import (
    Notification,
    NotificationType,
    NotificationPriority,
    RecipientType,
)

__all__ = [
    "Store",
    "StoreStatus",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OrderStatus",
    "StoreResponseStatus",
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "RecipientType",
]
