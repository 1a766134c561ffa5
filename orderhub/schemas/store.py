from typing import Optional, List
from datetime import datetime
import uuid

from pydantic import BaseModel, Field

from orderhub.models.store import StoreStatus
from orderhub.schemas.base import BaseResponseSchema, BaseCreateSchema


class StoreCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    status: StoreStatus = StoreStatus.ACTIVE
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=255)


class StoreResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    status: str
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime


class StoreListResponse(BaseModel):
    items: List[StoreResponse]
    total: int
