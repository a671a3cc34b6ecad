"""Chat schemas for request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from models.chat import Visibility
from models.chat_message import MessageRole

from .base import BaseSchema


class TextPart(BaseSchema):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str = Field(..., min_length=1, max_length=10000)


class FilePart(BaseSchema):
    """Attachment content part."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    type: Literal["file"] = "file"
    media_type: str = Field(..., alias="mediaType", description="MIME type of the attachment")
    name: str | None = Field(None, max_length=255)
    url: str = Field(..., description="Where the attachment is stored")


class ReasoningPart(BaseSchema):
    """Model reasoning ("thinking") content part."""

    type: Literal["reasoning"] = "reasoning"
    text: str = ""


MessagePart = Annotated[TextPart | FilePart | ReasoningPart, Field(discriminator="type")]


class ChatMessageIn(BaseSchema):
    """Inbound user message."""

    id: UUID = Field(..., description="Client-generated message ID")
    role: Literal["user"] = "user"
    parts: list[MessagePart] = Field(..., min_length=1)

    @property
    def text(self) -> str:
        return " ".join(part.text for part in self.parts if isinstance(part, TextPart))


class ChatRequest(BaseSchema):
    """Schema for a chat turn request."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID = Field(..., description="Chat ID; the chat is created on first use")
    message: ChatMessageIn
    selected_chat_model: str | None = Field(None, alias="selectedChatModel")
    selected_visibility_type: Visibility = Field(Visibility.PRIVATE, alias="selectedVisibilityType")

    @field_validator("message")
    @classmethod
    def validate_has_text(cls, v: ChatMessageIn):
        if not v.text.strip():
            raise ValueError("Message must contain text")
        return v


class ChatMessageResponse(BaseSchema):
    """Schema for chat message response."""

    id: UUID
    chat_id: UUID
    role: MessageRole
    parts: list[dict]
    attachments: list[dict] = Field(default_factory=list)
    hypotheses: list[dict] | None = None
    created_at: datetime


class ChatResponse(BaseSchema):
    """Schema for chat response."""

    id: UUID
    user_id: UUID
    title: str
    visibility: Visibility
    created_at: datetime


class ChatHistoryResponse(BaseSchema):
    """Keyset-paginated chat history."""

    chats: list[ChatResponse]
    has_more: bool


class VisibilityUpdateRequest(BaseSchema):
    """Schema for changing chat visibility."""

    visibility: Visibility


class MessageExistsResponse(BaseSchema):
    """Schema for message existence probe."""

    exists: bool
    message_id: UUID
    chat_id: UUID | None = None


ChatRequest.model_rebuild()
