from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.database import get_db
from orderhub.services.order_events import OrderEventBus


logger = logging.getLogger(__name__)


def get_event_bus(request: Request) -> OrderEventBus:
    """The event bus owned by the running application."""
    return request.app.state.event_bus


async def get_acting_store_id(
    x_store_id: Annotated[Optional[str], Header()] = None,
) -> uuid.UUID:
    """
    Identify the store acting on an order from the X-Store-Id header.

    Authorization of the store itself happens upstream.
    """
    if not x_store_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Store-Id header",
        )
    try:
        return uuid.UUID(x_store_id)
    except ValueError:
        logger.warning(f"Invalid X-Store-Id header: {x_store_id}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Store-Id header",
        )


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
EventBus = Annotated[OrderEventBus, Depends(get_event_bus)]
ActingStore = Annotated[uuid.UUID, Depends(get_acting_store_id)]
