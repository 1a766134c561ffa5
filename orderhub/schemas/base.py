"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models MUST inherit from BaseResponseSchema.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Enables from_attributes for ORM compatibility
    - UUIDs and datetimes serialize as strings in JSON
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Extra fields are ignored so older clients keep working.
    """
    model_config = ConfigDict(
        extra='ignore',
    )
