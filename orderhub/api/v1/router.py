from fastapi import APIRouter

from orderhub.api.v1.endpoints import (
    orders,
    divisions,
    stores,
    notifications,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Orders, Splitting & Delivery ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

# ==================== Split Order Completion ====================
api_router.include_router(
    divisions.router,
    prefix="/divisions",
    tags=["Divisions"]
)

# ==================== Stores ====================
api_router.include_router(
    stores.router,
    prefix="/stores",
    tags=["Stores"]
)

# ==================== Notifications ====================
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"]
)
