"""Schemas for split orders: completion verdicts, split results, delivery gate."""
from enum import Enum
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from pydantic import BaseModel, Field

from orderhub.schemas.base import BaseResponseSchema


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    PARTIALLY_COMPLETED = "partially_completed"


class CompletionVerdict(BaseModel):
    """Aggregate state of every division of one original order. Never persisted."""
    is_complete: bool = False
    total_divisions: int = 0
    accepted_divisions: int = 0
    rejected_divisions: int = 0
    pending_divisions: int = 0
    completion_percentage: int = Field(0, ge=0, le=100)
    status: CompletionStatus = CompletionStatus.INCOMPLETE
    status_label: str


class DivisionInfo(BaseResponseSchema):
    """Per-division summary for display."""
    id: uuid.UUID
    store_name: str
    assigned_store_id: Optional[uuid.UUID] = None
    store_response_status: Optional[str] = None
    order_status: str
    rejection_reason: Optional[str] = None
    total_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None


class DivisionsWithCompletion(BaseModel):
    original_order_ref: str
    divisions: List[DivisionInfo]
    completion: CompletionVerdict


class StoreSplitResult(BaseModel):
    store_name: str
    success: bool
    division_id: Optional[uuid.UUID] = None
    assigned_store_id: Optional[uuid.UUID] = None
    warning: Optional[str] = None
    error: Optional[str] = None


class SplitResult(BaseModel):
    success: bool
    original_order_id: uuid.UUID
    original_deleted: bool = False
    total_stores: int
    successful_splits: int
    per_store: List[StoreSplitResult]


class StoreBucketPreview(BaseModel):
    store_name: str
    items_count: int


class SplitPreview(BaseModel):
    order_id: uuid.UUID
    store_count: int
    splittable: bool
    stores: List[StoreBucketPreview]


class DeliveryMessageCode(str, Enum):
    CONFIRM_AVAILABILITY_FIRST = "confirm_availability_first"
    WAITING_FOR_SIBLING_DIVISIONS = "waiting_for_sibling_divisions"
    CUSTOMER_REJECTED = "customer_rejected"
    ALREADY_FINAL = "already_final"
    READY_FOR_DELIVERY = "ready_for_delivery"


class DeliveryStatusMessage(BaseModel):
    """What a store sees next to the deliver/return actions."""
    order_id: Optional[uuid.UUID] = None
    can_deliver: bool
    code: DeliveryMessageCode
    message: str
    is_division: bool = False
    completion: Optional[CompletionVerdict] = None
