import logging
from typing import List, Optional
import uuid

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import InvalidInputError
from orderhub.models.store import Store
from orderhub.schemas.store import StoreCreate

logger = logging.getLogger(__name__)


class StoreService:
    """Minimal store registry used for routing and split lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_store(self, data: StoreCreate) -> Store:
        store = Store(
            name=data.name.strip(),
            status=data.status.value,
            phone=data.phone,
            email=data.email,
        )
        self.db.add(store)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise InvalidInputError(
                f"Store '{data.name}' already exists",
                details={"name": data.name},
                operation="create_store",
            ) from e

        logger.info(f"Store created: {store.name}")
        return store

    async def get_store(self, store_id: uuid.UUID) -> Optional[Store]:
        return await self.db.get(Store, store_id)

    async def get_stores(self, status: Optional[str] = None) -> List[Store]:
        stmt = select(Store).order_by(func.lower(Store.name))
        if status:
            stmt = stmt.where(Store.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
