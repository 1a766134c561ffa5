"""API endpoints for orders, order splitting and the store-side order lifecycle."""
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from orderhub.api.deps import DB, EventBus, ActingStore
from orderhub.core.exceptions import PartialFailureError
from orderhub.schemas.division import DeliveryStatusMessage, SplitPreview, SplitResult
from orderhub.schemas.order import (
    AssignmentStats,
    AssignOrderRequest,
    AssignOrderResponse,
    AutoAssignRequest,
    AutoAssignResponse,
    CustomerRejectRequest,
    OrderCreate,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    RejectRequest,
    ReturnRequest,
    StoreResponseRequest,
)
from orderhub.services.delivery_gate import DeliveryGateService
from orderhub.services.order_assignment_service import OrderAssignmentService
from orderhub.services.order_delivery_service import OrderDeliveryService
from orderhub.services.order_service import OrderService
from orderhub.services.order_split_service import OrderSplitService


router = APIRouter()


# ==================== Assignment (static paths first) ====================

@router.post("/auto-assign", response_model=AutoAssignResponse)
async def auto_assign_orders(db: DB, bus: EventBus, data: Optional[AutoAssignRequest] = None):
    """Match pending orders (or one order) to active stores by store name."""
    service = OrderAssignmentService(db, bus)
    return await service.auto_assign_orders(order_id=data.order_id if data else None)


@router.get("/assignment-stats", response_model=AssignmentStats)
async def get_assignment_stats(db: DB):
    service = OrderAssignmentService(db)
    return await service.get_assignment_stats()


# ==================== Orders ====================

@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(data: OrderCreate, db: DB, bus: EventBus):
    """Place a new order."""
    service = OrderService(db, bus)
    return await service.create_order(data)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    order_status: Optional[str] = Query(None, alias="status"),
    store_id: Optional[UUID] = None,
    search: Optional[str] = None,
    divisions_only: Optional[bool] = None,
):
    """Get paginated list of orders."""
    service = OrderService(db)
    orders, total = await service.get_orders(
        status=order_status,
        store_id=store_id,
        search=search,
        divisions_only=divisions_only,
        skip=(page - 1) * size,
        limit=size,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(order_id: UUID, db: DB):
    """Get order with line items and status history."""
    service = OrderService(db)
    order = await service.get_order_by_id(order_id, include_all=True)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(order_id: UUID, db: DB):
    service = OrderService(db)
    await service.delete_order(order_id)


@router.post("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(order_id: UUID, data: RejectRequest, db: DB, bus: EventBus):
    """Admin rejects a pending order."""
    service = OrderService(db, bus)
    return await service.admin_reject(order_id, data.reason)


# ==================== Splitting ====================

@router.get("/{order_id}/split-preview", response_model=SplitPreview)
async def preview_split(order_id: UUID, db: DB):
    """Show how an order's items are distributed across stores."""
    service = OrderSplitService(db)
    return await service.preview_split(order_id)


@router.post("/{order_id}/split", response_model=SplitResult)
async def split_order(order_id: UUID, db: DB, bus: EventBus):
    """
    Split a multi-store order into one division per store.

    A partial split responds 207 with the per-store results; the original
    order is kept in that case.
    """
    service = OrderSplitService(db, bus)
    result = await service.split_order(order_id)
    if not result.success:
        raise PartialFailureError(
            f"Order split partially failed: {result.successful_splits} of {result.total_stores} stores",
            details=result.model_dump(mode="json"),
            operation="split_order",
        )
    return result


# ==================== Assignment ====================

@router.post("/{order_id}/assign", response_model=AssignOrderResponse)
async def assign_order(order_id: UUID, data: AssignOrderRequest, db: DB, bus: EventBus):
    service = OrderAssignmentService(db, bus)
    return await service.assign_order_to_store(order_id, data.store_id, assigned_by=data.assigned_by)


@router.post("/{order_id}/unassign", response_model=AssignOrderResponse)
async def unassign_order(order_id: UUID, db: DB):
    service = OrderAssignmentService(db)
    return await service.unassign_order(order_id)


# ==================== Store lifecycle ====================

@router.get("/{order_id}/delivery-gate", response_model=DeliveryStatusMessage)
async def get_delivery_gate(order_id: UUID, db: DB):
    """Whether deliver/return are enabled for this order, and why not."""
    service = DeliveryGateService(db)
    return await service.evaluate(order_id)


@router.post("/{order_id}/store-response", response_model=OrderResponse)
async def store_response(order_id: UUID, data: StoreResponseRequest, store_id: ActingStore, db: DB, bus: EventBus):
    """Store confirms or declines availability."""
    service = OrderDeliveryService(db, bus)
    return await service.respond(order_id, store_id, data.available, data.rejection_reason)


@router.post("/{order_id}/deliver", response_model=OrderResponse)
async def deliver_order(order_id: UUID, store_id: ActingStore, db: DB, bus: EventBus):
    service = OrderDeliveryService(db, bus)
    return await service.mark_delivered(order_id, store_id)


@router.post("/{order_id}/return", response_model=OrderResponse)
async def return_order(order_id: UUID, data: ReturnRequest, store_id: ActingStore, db: DB, bus: EventBus):
    service = OrderDeliveryService(db, bus)
    return await service.mark_returned(order_id, store_id, data.return_reason)


@router.post("/{order_id}/customer-reject", response_model=OrderResponse)
async def customer_reject(order_id: UUID, db: DB, bus: EventBus, data: Optional[CustomerRejectRequest] = None):
    """Customer refuses the order."""
    service = OrderDeliveryService(db, bus)
    return await service.customer_reject(order_id, data.reason if data else None)
