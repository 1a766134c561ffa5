"""
Division Completion Service

Aggregates the store responses of every division split from one original
order into a single CompletionVerdict.

The verdict is never stored. It is recomputed from the current division
rows on every call, so deleting the original order after a split does not
affect it.
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.config import settings
from orderhub.core.division_marker import DIVISION_MARKER, build_division_marker, extract_original_order_id
from orderhub.core.exceptions import TransientDataError
from orderhub.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    CONFIRMED_RESPONSES,
    DECLINED_RESPONSES,
    TERMINAL_ORDER_STATUSES,
)
from orderhub.schemas.division import (
    CompletionStatus,
    CompletionVerdict,
    DivisionInfo,
    DivisionsWithCompletion,
)


logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
REJECTED = "rejected"
PENDING = "pending"

NO_DIVISIONS_LABEL = "no divisions found"
ERROR_LABEL = "error determining status"


def classify_response(store_response_status: Optional[str]) -> str:
    """Bucket a store response into accepted, rejected or pending."""
    if store_response_status in CONFIRMED_RESPONSES:
        return ACCEPTED
    if store_response_status in DECLINED_RESPONSES:
        return REJECTED
    return PENDING


def _percentage(accepted: int, total: int) -> int:
    if total == 0:
        return 0
    # Half rounds up
    return int(math.floor(100 * accepted / total + 0.5))


def build_completion_verdict(statuses: Iterable[Optional[str]]) -> CompletionVerdict:
    """
    Compute the verdict for a set of division store_response_status values.

    Precedence (first match wins):
    1. every division accepted -> completed
    2. every division rejected -> incomplete
    3. nothing pending         -> partially_completed
    4. otherwise               -> incomplete, waiting on pending stores
    """
    buckets = [classify_response(s) for s in statuses]
    total = len(buckets)
    accepted = buckets.count(ACCEPTED)
    rejected = buckets.count(REJECTED)
    pending = buckets.count(PENDING)

    if total == 0:
        return CompletionVerdict(status_label=NO_DIVISIONS_LABEL)

    if accepted == total:
        status = CompletionStatus.COMPLETED
        label = "completed — all stores accepted"
    elif rejected == total:
        status = CompletionStatus.INCOMPLETE
        label = "incomplete — all stores rejected"
    elif pending == 0:
        status = CompletionStatus.PARTIALLY_COMPLETED
        label = f"partially completed — {accepted} of {total} stores accepted"
    else:
        status = CompletionStatus.INCOMPLETE
        label = f"incomplete — {pending} stores have not responded yet"

    return CompletionVerdict(
        is_complete=status == CompletionStatus.COMPLETED,
        total_divisions=total,
        accepted_divisions=accepted,
        rejected_divisions=rejected,
        pending_divisions=pending,
        completion_percentage=_percentage(accepted, total),
        status=status,
        status_label=label,
    )


def error_verdict() -> CompletionVerdict:
    return CompletionVerdict(status_label=ERROR_LABEL)


def belongs_to_original(order: Order, original_ref: str) -> bool:
    """Exact match of a division against an original order reference."""
    if order.original_order_id is not None and str(order.original_order_id) == original_ref:
        return True
    if order.original_order_code is not None and order.original_order_code == original_ref:
        return True
    return extract_original_order_id(order.details) == original_ref


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return None


def to_division_info(order: Order) -> DivisionInfo:
    return DivisionInfo(
        id=order.id,
        store_name=order.main_store_name or settings.UNKNOWN_STORE_NAME,
        assigned_store_id=order.assigned_store_id,
        store_response_status=order.store_response_status,
        order_status=order.order_status,
        rejection_reason=order.rejection_reason,
        total_amount=order.total_amount,
        created_at=order.created_at,
    )


class DivisionCompletionService:
    """Completion verdicts and original-order sync for split orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fetch_divisions(self, original_ref: str) -> List[Order]:
        """
        Load every division of original_ref.

        The marker LIKE only narrows the candidates; rows are kept when their
        reference matches exactly, so "ORD-1" never picks up "ORD-10".
        """
        if not original_ref:
            return []
        conditions = [
            Order.original_order_code == original_ref,
            Order.details.contains(build_division_marker(original_ref), autoescape=True),
        ]
        original_uuid = _parse_uuid(original_ref)
        if original_uuid is not None:
            conditions.append(Order.original_order_id == original_uuid)

        result = await self.db.execute(
            select(Order)
            .where(or_(*conditions))
            .order_by(Order.created_at.asc())
        )
        return [order for order in result.scalars().all() if belongs_to_original(order, original_ref)]

    async def list_divisions(self, original_ref: str, operation: str) -> List[Order]:
        """Divisions of original_ref. Data errors are raised so the caller can retry."""
        try:
            return await self._fetch_divisions(original_ref)
        except SQLAlchemyError as e:
            logger.error(f"[COMPLETION] Failed to fetch divisions for original order {original_ref}: {e}")
            raise TransientDataError(
                "Failed to load divisions of the original order",
                details={"original_order_ref": original_ref},
                operation=operation,
            ) from e

    async def _fetch_with_verdict(self, original_ref: str) -> Tuple[List[Order], CompletionVerdict]:
        try:
            divisions = await self._fetch_divisions(original_ref)
        except SQLAlchemyError as e:
            logger.error(f"[COMPLETION] Failed to fetch divisions for original order {original_ref}: {e}")
            return [], error_verdict()

        verdict = build_completion_verdict(d.store_response_status for d in divisions)
        return divisions, verdict

    async def compute_completion(self, original_ref: str) -> CompletionVerdict:
        """Verdict for one original order. Never raises for data errors."""
        _, verdict = await self._fetch_with_verdict(original_ref)
        return verdict

    async def get_divisions_with_completion(self, original_ref: str) -> DivisionsWithCompletion:
        """Division summaries plus the verdict computed over the same rows."""
        divisions, verdict = await self._fetch_with_verdict(original_ref)
        return DivisionsWithCompletion(
            original_order_ref=original_ref,
            divisions=[to_division_info(d) for d in divisions],
            completion=verdict,
        )

    async def get_open_original_refs(self) -> Set[str]:
        """Original refs that still have at least one non-final division."""
        result = await self.db.execute(
            select(Order).where(
                or_(
                    Order.original_order_id.isnot(None),
                    Order.original_order_code.isnot(None),
                    Order.details.contains(DIVISION_MARKER, autoescape=True),
                ),
                Order.order_status.notin_(list(TERMINAL_ORDER_STATUSES)),
            )
        )
        refs = set()
        for order in result.scalars().all():
            ref = order.original_order_ref
            if ref:
                refs.add(ref)
        return refs

    async def _find_original(self, original_ref: str) -> Optional[Order]:
        original_uuid = _parse_uuid(original_ref)
        if original_uuid is not None:
            order = await self.db.get(Order, original_uuid)
            if order is not None:
                return order

        result = await self.db.execute(
            select(Order).where(
                Order.order_code == original_ref,
                Order.original_order_id.is_(None),
                Order.original_order_code.is_(None),
            )
        )
        for order in result.scalars().all():
            if not order.is_division:
                return order
        return None

    async def sync_original_order(self, original_ref: str) -> Optional[Order]:
        """
        Bring a surviving original order in line with its divisions.

        Only relevant after a partial split left the original in place. The
        original being gone is the normal case. Returns the original only when
        its status changed.
        """
        _, verdict = await self._fetch_with_verdict(original_ref)
        if verdict.total_divisions == 0:
            return None

        try:
            original = await self._find_original(original_ref)
            if original is None or original.is_division or original.is_terminal:
                return None

            if verdict.status in (CompletionStatus.COMPLETED, CompletionStatus.PARTIALLY_COMPLETED):
                new_status = OrderStatus.ASSIGNED.value
            elif verdict.rejected_divisions == verdict.total_divisions:
                new_status = OrderStatus.REJECTED.value
            else:
                new_status = OrderStatus.PENDING.value

            if original.order_status == new_status:
                return None

            previous = original.order_status
            note = f"division sync: {verdict.status_label}"
            original.order_status = new_status
            original.details = f"{original.details}\n{note}" if original.details else note
            original.updated_at = datetime.now(timezone.utc)
            self.db.add(OrderStatusHistory(
                order_id=original.id,
                from_status=previous,
                to_status=new_status,
                changed_by="system",
                notes=note,
            ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[COMPLETION] Failed to sync original order {original_ref}: {e}")
            raise TransientDataError(
                "Failed to update original order",
                details={"original_order_ref": original_ref},
                operation="sync_original_order",
            ) from e

        logger.info(f"[COMPLETION] Original order {original_ref}: {previous} -> {new_status} ({verdict.status_label})")
        return original
