from typing import List, Optional, Tuple
from datetime import datetime, timezone
import uuid
import logging

from sqlalchemy import select, func, and_, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from orderhub.config import settings
from orderhub.core.exceptions import InvalidInputError, NotFoundError, TransientDataError
from orderhub.models.order import Order, OrderStatus, OrderStatusHistory, StoreResponseStatus
from orderhub.schemas.order import OrderCreate, StoreOrderStats
from orderhub.services.order_events import OrderEvent, OrderEventBus, OrderEventKind
from orderhub.services.order_split_service import bucket_total, partition_items

logger = logging.getLogger(__name__)

STORE_VISIBLE_STATUSES = [
    OrderStatus.ASSIGNED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.RETURNED.value,
    OrderStatus.CUSTOMER_REJECTED.value,
]


class OrderService:
    """Service for managing orders and related operations."""

    def __init__(self, db: AsyncSession, event_bus: Optional[OrderEventBus] = None):
        self.db = db
        self.event_bus = event_bus

    # ==================== ORDER CODE GENERATION ====================

    async def generate_order_code(self) -> str:
        """Generate order code: ORD-YYYYMMDD-XXXX"""
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        prefix = f"ORD-{today}-"

        # Get count of orders today
        stmt = select(func.count(Order.id)).where(
            Order.order_code.like(f"{prefix}%"),
            Order.original_order_id.is_(None),
        )
        count = (await self.db.execute(stmt)).scalar() or 0

        return f"{prefix}{(count + 1):04d}"

    # ==================== ORDER METHODS ====================

    async def get_orders(
        self,
        status: Optional[str] = None,
        store_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        divisions_only: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """Get paginated orders with filters."""
        filters = []

        if status:
            filters.append(Order.order_status == status)

        if store_id:
            filters.append(Order.assigned_store_id == store_id)

        if divisions_only is True:
            filters.append(Order.original_order_id.isnot(None))
        elif divisions_only is False:
            filters.append(Order.original_order_id.is_(None))

        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    Order.order_code.ilike(search_filter),
                    Order.customer_name.ilike(search_filter),
                    Order.customer_phone.ilike(search_filter),
                )
            )

        stmt = select(Order)
        count_stmt = select(func.count(Order.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_order_by_id(self, order_id: uuid.UUID, include_all: bool = False) -> Optional[Order]:
        """Get order by ID."""
        stmt = select(Order).where(Order.id == order_id)
        if include_all:
            stmt = stmt.options(
                selectinload(Order.order_items),
                selectinload(Order.status_history),
            )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _require_order(self, order_id: uuid.UUID, operation: str, include_all: bool = False) -> Order:
        order = await self.get_order_by_id(order_id, include_all=include_all)
        if not order:
            raise NotFoundError("Order not found", details={"order_id": str(order_id)}, operation=operation)
        return order

    async def _commit(self, operation: str, order_id=None) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{operation} failed for order {order_id}: {e}")
            raise TransientDataError(
                "Failed to save order",
                details={"order_id": str(order_id) if order_id else None},
                operation=operation,
            ) from e

    async def _publish(self, event: OrderEvent) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event)

    async def create_order(self, data: OrderCreate) -> Order:
        """Create a new order from the storefront checkout."""
        items = [item.model_dump() for item in data.items]
        total = bucket_total(items)

        # Single-store orders are routed by main_store_name
        stores = list(partition_items(items).keys())
        main_store_name = None
        if len(stores) == 1 and stores[0] != settings.UNKNOWN_STORE_NAME:
            main_store_name = stores[0]

        order = Order(
            order_code=data.order_code or await self.generate_order_code(),
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_address=data.customer_address,
            customer_notes=data.customer_notes,
            details=data.details,
            items=items,
            subtotal=total,
            total_amount=total,
            order_status=OrderStatus.PENDING.value,
            main_store_name=main_store_name,
        )
        self.db.add(order)
        await self.db.flush()

        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=None,
            to_status=OrderStatus.PENDING.value,
            changed_by="customer",
            notes="Order placed",
        ))
        await self._commit("create_order", order.id)

        logger.info(f"Order {order.order_code} created with {len(items)} items across {len(stores)} store(s)")

        await self._publish(OrderEvent(
            kind=OrderEventKind.ORDER_CREATED,
            order_id=order.id,
            order_code=order.order_code,
            customer_phone=order.customer_phone,
            store_name=main_store_name,
            payload={
                "customer_name": order.customer_name,
                "items_count": len(items),
                "total_amount": str(order.total_amount),
                "store_count": len(stores),
            },
        ))
        return order

    async def get_store_orders(self, store_id: uuid.UUID) -> Tuple[List[Order], StoreOrderStats]:
        """Orders visible on a store dashboard, excluding ones the store declined."""
        stmt = (
            select(Order)
            .options(
                selectinload(Order.order_items),
                selectinload(Order.status_history),
            )
            .where(
                Order.assigned_store_id == store_id,
                Order.order_status.in_(STORE_VISIBLE_STATUSES),
                or_(
                    Order.store_response_status.is_(None),
                    Order.store_response_status != StoreResponseStatus.UNAVAILABLE.value,
                ),
            )
            .order_by(Order.created_at.desc())
        )
        result = await self.db.execute(stmt)
        orders = list(result.scalars().all())

        stats = StoreOrderStats(
            total=len(orders),
            assigned=sum(1 for o in orders if o.order_status == OrderStatus.ASSIGNED.value),
            delivered=sum(1 for o in orders if o.order_status == OrderStatus.DELIVERED.value),
            returned=sum(1 for o in orders if o.order_status == OrderStatus.RETURNED.value),
            customer_rejected=sum(1 for o in orders if o.order_status == OrderStatus.CUSTOMER_REJECTED.value),
            with_order_items=sum(1 for o in orders if o.order_items),
            without_order_items=sum(1 for o in orders if not o.order_items),
        )
        logger.info(f"Store {store_id}: {stats.total} orders")
        return orders, stats

    async def admin_reject(self, order_id: uuid.UUID, reason: str) -> Order:
        """Reject a pending order on behalf of the admin."""
        operation = "admin_reject"
        order = await self._require_order(order_id, operation)

        if order.order_status != OrderStatus.PENDING.value:
            raise InvalidInputError(
                f"Only pending orders can be rejected, order is {order.order_status}",
                details={"order_id": str(order_id)},
                operation=operation,
            )
        if not reason or not reason.strip():
            raise InvalidInputError("A rejection reason is required", details={"order_id": str(order_id)}, operation=operation)

        reason = reason.strip()
        note = f"[rejected by admin] {reason}"
        order.order_status = OrderStatus.REJECTED.value
        order.rejection_reason = reason
        order.customer_notes = f"{note}\n{order.customer_notes}" if order.customer_notes else note
        order.updated_at = datetime.now(timezone.utc)
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=OrderStatus.PENDING.value,
            to_status=OrderStatus.REJECTED.value,
            changed_by="admin",
            notes=reason,
        ))
        await self._commit(operation, order.id)

        logger.info(f"Order {order.order_code} rejected by admin: {reason}")
        await self._publish(OrderEvent(
            kind=OrderEventKind.ORDER_REJECTED,
            order_id=order.id,
            order_code=order.order_code,
            customer_phone=order.customer_phone,
            payload={"reason": reason},
        ))
        return order

    async def delete_order(self, order_id: uuid.UUID) -> None:
        operation = "delete_order"
        order = await self._require_order(order_id, operation, include_all=True)
        await self.db.delete(order)
        await self._commit(operation, order_id)
        logger.info(f"Order {order.order_code or order_id} deleted")
