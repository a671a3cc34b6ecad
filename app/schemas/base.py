"""Shared schema bases for the chat API.

Response models read straight from ORM rows, so every schema enables
``from_attributes``. Mutating endpoints that have no dedicated response
body answer with :class:`ActionResponse`.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema readable from ORM rows."""
    model_config = ConfigDict(from_attributes=True)


class StoredRowSchema(BaseSchema):
    """Feedback rows keyed by a UUID with creation and update times."""
    id: UUID
    created_at: datetime
    updated_at: datetime


class ActionResponse(BaseSchema):
    """Envelope for deletes, visibility changes and votes."""
    status: str = "success"
    message: Optional[str] = None
    data: Optional[dict[str, Any]] = None
