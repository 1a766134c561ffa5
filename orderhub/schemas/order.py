from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal
import uuid

from orderhub.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== ORDER ITEM SCHEMAS ====================

class OrderItemInput(BaseCreateSchema):
    """Line item as submitted by the storefront."""
    product_id: Optional[str] = None
    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(..., ge=0)
    discounted_price: Optional[Decimal] = Field(None, ge=0)
    store_name: Optional[str] = Field(None, max_length=200)


class OrderItemResponse(BaseResponseSchema):
    """Order item row response schema."""
    id: uuid.UUID
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    discounted_price: Optional[Decimal] = None
    store_name: Optional[str] = None
    availability_status: Optional[str] = None
    created_at: datetime


class StatusHistoryResponse(BaseResponseSchema):
    """Order status history response."""
    id: uuid.UUID
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


# ==================== ORDER SCHEMAS ====================

class OrderCreate(BaseCreateSchema):
    """Order creation schema."""
    order_code: Optional[str] = Field(None, max_length=30)
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=30)
    customer_address: Optional[str] = None
    customer_notes: Optional[str] = None
    details: Optional[str] = None
    items: List[OrderItemInput] = Field(..., min_length=1)


class OrderResponse(BaseResponseSchema):
    """Order response schema."""
    id: uuid.UUID
    order_code: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_notes: Optional[str] = None
    items: Optional[List[Dict[str, Any]]] = None
    subtotal: Decimal
    total_amount: Decimal
    order_status: str
    assigned_store_id: Optional[uuid.UUID] = None
    main_store_name: Optional[str] = None
    store_response_status: Optional[str] = None
    store_response_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    details: Optional[str] = None
    original_order_id: Optional[uuid.UUID] = None
    original_order_ref: Optional[str] = None
    is_division: bool = False
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class OrderDetailResponse(OrderResponse):
    """Order with its line item rows and status history."""
    order_items: List[OrderItemResponse] = []
    status_history: List[StatusHistoryResponse] = []


class OrderListResponse(BaseModel):
    """Paginated order list."""
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int


# ==================== LIFECYCLE REQUESTS ====================

class StoreResponseRequest(BaseModel):
    """Store confirms or declines availability."""
    available: bool
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class ReturnRequest(BaseModel):
    return_reason: str = Field(..., max_length=1000)


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


class CustomerRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


# ==================== ASSIGNMENT ====================

class AssignOrderRequest(BaseModel):
    store_id: uuid.UUID
    assigned_by: str = "admin"


class AutoAssignRequest(BaseModel):
    order_id: Optional[uuid.UUID] = None


class AssignOrderResponse(BaseModel):
    success: bool
    message: str
    order_status: str
    store_name: Optional[str] = None
    assigned_at: Optional[datetime] = None


class AutoAssignItemResult(BaseModel):
    order_id: uuid.UUID
    status: str  # assigned, unmatched, error
    store_name: Optional[str] = None
    error_message: Optional[str] = None


class AutoAssignResponse(BaseModel):
    success: bool
    message: str
    assigned_count: int = 0
    unmatched_count: int = 0
    error_count: int = 0
    results: List[AutoAssignItemResult] = []


class AssignmentStats(BaseModel):
    total: int = 0
    assigned: int = 0
    pending: int = 0
    delivered: int = 0
    returned: int = 0


# ==================== STORE VIEW ====================

class StoreOrderStats(BaseModel):
    total: int = 0
    assigned: int = 0
    delivered: int = 0
    returned: int = 0
    customer_rejected: int = 0
    with_order_items: int = 0
    without_order_items: int = 0


class StoreOrdersResponse(BaseModel):
    success: bool = True
    orders: List[OrderDetailResponse]
    stats: StoreOrderStats
