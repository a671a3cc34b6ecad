"""Vote schemas."""

from typing import Literal
from uuid import UUID

from pydantic import ConfigDict, Field

from .base import BaseSchema


class VoteRequest(BaseSchema):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: UUID = Field(..., alias="chatId")
    message_id: UUID = Field(..., alias="messageId")
    type: Literal["up", "down"]


class VoteResponse(BaseSchema):
    chat_id: UUID
    message_id: UUID
    is_upvoted: bool
