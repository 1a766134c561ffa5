"""
Order Split Service

Splits a multi-store order into one division per store:
1. Partition the order's item snapshot by store name
2. Create a division order plus its line item rows for each store bucket
3. Delete the original once every bucket was created

Each bucket is written inside its own SAVEPOINT. If any bucket fails the
original stays in place and the caller gets per-store results, so the split
can be inspected and retried. A retry reuses the divisions the earlier
attempt already created and only writes the missing stores.
"""
import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderhub.config import settings
from orderhub.core.division_marker import build_division_marker
from orderhub.core.exceptions import InvalidInputError, NotFoundError, TransientDataError
from orderhub.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory, StoreResponseStatus
from orderhub.models.store import Store
from orderhub.schemas.division import SplitPreview, SplitResult, StoreBucketPreview, StoreSplitResult
from orderhub.services.division_completion_service import DivisionCompletionService
from orderhub.services.order_events import OrderEvent, OrderEventBus, OrderEventKind


logger = logging.getLogger(__name__)

STORE_NAME_KEYS = ("store_name", "main_store_name", "main_store")


def item_store_name(item: Dict[str, Any]) -> str:
    """First non-blank store attribution on an item, else the unknown bucket."""
    for key in STORE_NAME_KEYS:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return settings.UNKNOWN_STORE_NAME


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def item_unit_price(item: Dict[str, Any]) -> Decimal:
    return _to_decimal(item.get("unit_price", item.get("price")))


def item_effective_price(item: Dict[str, Any]) -> Decimal:
    discounted = item.get("discounted_price")
    if discounted is not None and discounted != "":
        return _to_decimal(discounted)
    return item_unit_price(item)


def item_quantity(item: Dict[str, Any]) -> int:
    return int(item.get("quantity") or 1)


def bucket_total(items: List[Dict[str, Any]]) -> Decimal:
    total = sum((item_effective_price(i) * item_quantity(i) for i in items), Decimal("0"))
    return total.quantize(Decimal("0.01"))


def partition_items(items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group items by store name, keeping first-seen store order."""
    buckets: Dict[str, List[Dict[str, Any]]] = {}
    for item in items or []:
        buckets.setdefault(item_store_name(item), []).append(item)
    return buckets


def analyze_stores(items: List[Dict[str, Any]]) -> List[StoreBucketPreview]:
    return [
        StoreBucketPreview(store_name=name, items_count=len(bucket))
        for name, bucket in partition_items(items).items()
    ]


class OrderSplitService:
    """Service for splitting multi-store orders into per-store divisions."""

    def __init__(self, db: AsyncSession, event_bus: Optional[OrderEventBus] = None):
        self.db = db
        self.event_bus = event_bus

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.order_items), selectinload(Order.status_history))
            .where(Order.id == order_id)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order not found", details={"order_id": str(order_id)}, operation="split_order")
        return order

    async def find_store_by_name(self, store_name: str) -> Optional[Store]:
        """Exact name match first, then trimmed case-insensitive."""
        result = await self.db.execute(select(Store).where(Store.name == store_name))
        store = result.scalar_one_or_none()
        if store:
            return store

        result = await self.db.execute(
            select(Store)
            .where(func.lower(func.trim(Store.name)) == store_name.strip().lower())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def preview_split(self, order_id: uuid.UUID) -> SplitPreview:
        order = await self._get_order(order_id)
        stores = analyze_stores(order.items or [])
        return SplitPreview(
            order_id=order.id,
            store_count=len(stores),
            splittable=len(stores) > 1 and not order.is_division,
            stores=stores,
        )

    async def _create_division(
        self,
        original: Order,
        original_ref: str,
        index: int,
        store_name: str,
        items: List[Dict[str, Any]],
        store: Optional[Store],
    ) -> Order:
        total = bucket_total(items)
        status = OrderStatus.ASSIGNED.value if store else OrderStatus.PENDING.value
        marker = build_division_marker(original_ref)

        division = Order(
            order_code=f"{original.order_code}-{index}" if original.order_code else None,
            customer_name=original.customer_name,
            customer_phone=original.customer_phone,
            customer_address=original.customer_address,
            customer_notes=original.customer_notes,
            items=[dict(item, store_name=store_name) for item in items],
            subtotal=total,
            total_amount=total,
            order_status=status,
            assigned_store_id=store.id if store else None,
            main_store_name=store_name,
            store_response_status=StoreResponseStatus.PENDING.value,
            details=marker,
            original_order_id=original.id,
            original_order_code=original_ref,
        )
        self.db.add(division)
        await self.db.flush()

        for item in items:
            discounted = item.get("discounted_price")
            self.db.add(OrderItem(
                order_id=division.id,
                product_id=str(item["product_id"]) if item.get("product_id") is not None else None,
                product_name=item.get("product_name") or item.get("name") or "unknown product",
                quantity=item_quantity(item),
                unit_price=item_unit_price(item),
                discounted_price=_to_decimal(discounted) if discounted not in (None, "") else None,
                store_name=store_name,
            ))

        self.db.add(OrderStatusHistory(
            order_id=division.id,
            from_status=None,
            to_status=status,
            changed_by="system",
            notes=marker,
        ))
        await self.db.flush()
        return division

    async def split_order(self, original_order_id: uuid.UUID) -> SplitResult:
        """
        Split an order into one division per store.

        Returns per-store results. The original is deleted only when every
        bucket succeeded; otherwise it is left untouched for a retry.
        """
        original = await self._get_order(original_order_id)

        if original.is_division:
            raise InvalidInputError(
                "Order is already a division of another order",
                details={"order_id": str(original.id), "original_order_ref": original.original_order_ref},
                operation="split_order",
            )
        if not original.items:
            raise InvalidInputError(
                "Order has no items to split",
                details={"order_id": str(original.id)},
                operation="split_order",
            )

        original_ref = original.order_code or str(original.id)
        buckets = partition_items(original.items)
        if len(buckets) < 2:
            raise InvalidInputError(
                "Order has items from a single store; assign it instead of splitting",
                details={"order_id": str(original.id), "store_count": len(buckets)},
                operation="split_order",
            )

        # Stores already covered by an earlier, partially failed split
        completion = DivisionCompletionService(self.db)
        existing = {
            (d.main_store_name or "").lower(): d
            for d in await completion.list_divisions(original_ref, "split_order")
        }
        per_store: List[StoreSplitResult] = []
        events: List[OrderEvent] = []

        logger.info(f"[SPLIT] Splitting order {original_ref} across {len(buckets)} store(s)")

        for index, (store_name, items) in enumerate(buckets.items(), start=1):
            try:
                store = await self.find_store_by_name(store_name)
                stamp = store.name if store else store_name
                division = existing.get(stamp.lower())
                created = division is None
                if created:
                    async with self.db.begin_nested():
                        division = await self._create_division(original, original_ref, index, stamp, items, store)
            except (SQLAlchemyError, InvalidOperation, ValueError, TypeError) as e:
                logger.error(f"[SPLIT] Failed to create division for store '{store_name}' of order {original_ref}: {e}")
                per_store.append(StoreSplitResult(store_name=store_name, success=False, error=str(e)))
                continue

            if not created:
                logger.info(f"[SPLIT] Store '{stamp}' of order {original_ref} already has division {division.id}")

            warning = None
            if store is None:
                warning = f"Store '{store_name}' not found - division left unassigned"
                logger.warning(f"[SPLIT] {warning} (order {original_ref})")

            per_store.append(StoreSplitResult(
                store_name=stamp,
                success=True,
                division_id=division.id,
                assigned_store_id=division.assigned_store_id,
                warning=warning,
            ))
            if not created:
                continue
            events.append(OrderEvent(
                kind=OrderEventKind.DIVISION_ASSIGNED,
                order_id=division.id,
                original_order_id=original_ref,
                division_id=division.id,
                store_id=division.assigned_store_id,
                store_name=stamp,
                order_code=division.order_code,
                customer_phone=division.customer_phone,
                payload={"total_amount": str(division.total_amount), "items_count": len(items)},
            ))

        successful = sum(1 for r in per_store if r.success)
        all_succeeded = successful == len(buckets)

        try:
            if all_succeeded:
                await self.db.delete(original)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[SPLIT] Failed to commit split of order {original_ref}: {e}")
            raise TransientDataError(
                "Failed to save order split",
                details={"order_id": str(original_order_id)},
                operation="split_order",
            ) from e

        if all_succeeded:
            logger.info(f"[SPLIT] Order {original_ref} split into {successful} division(s); original deleted")
        else:
            logger.warning(
                f"[SPLIT] Order {original_ref} partially split: {successful}/{len(buckets)} store(s); original kept"
            )

        if self.event_bus is not None:
            await self.event_bus.publish_all(events)

        return SplitResult(
            success=all_succeeded,
            original_order_id=original_order_id,
            original_deleted=all_succeeded,
            total_stores=len(buckets),
            successful_splits=successful,
            per_store=per_store,
        )
