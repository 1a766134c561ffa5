"""API endpoints for stores and the store order dashboard."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from orderhub.api.deps import DB
from orderhub.schemas.order import OrderDetailResponse, StoreOrdersResponse
from orderhub.schemas.store import StoreCreate, StoreListResponse, StoreResponse
from orderhub.services.order_service import OrderService
from orderhub.services.store_service import StoreService


router = APIRouter()


@router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
async def create_store(data: StoreCreate, db: DB):
    service = StoreService(db)
    return await service.create_store(data)


@router.get("", response_model=StoreListResponse)
async def list_stores(db: DB, store_status: Optional[str] = Query(None, alias="status")):
    service = StoreService(db)
    stores = await service.get_stores(status=store_status)
    return StoreListResponse(
        items=[StoreResponse.model_validate(s) for s in stores],
        total=len(stores),
    )


@router.get("/{store_id}/orders", response_model=StoreOrdersResponse)
async def get_store_orders(store_id: UUID, db: DB):
    """
    Orders on a store's dashboard with their line items.

    Orders the store declined are hidden.
    """
    store = await StoreService(db).get_store(store_id)
    if not store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")

    orders, stats = await OrderService(db).get_store_orders(store_id)
    return StoreOrdersResponse(
        orders=[OrderDetailResponse.model_validate(o) for o in orders],
        stats=stats,
    )
