import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.database import Base
from orderhub.db_types import UUIDType


class StoreStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Store(Base):
    """Marketplace store that fulfils orders and divisions."""
    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=StoreStatus.ACTIVE.value,
        nullable=False,
        comment="active, inactive"
    )
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def is_active(self) -> bool:
        return self.status == StoreStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Store(name='{self.name}', status='{self.status}')>"
