"""Stream event schemas.

Backend frames are decoded through a closed tagged union on ``type``; anything
outside it fails validation and is dropped by the transcoder. UI events are
what the chat client consumes.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _BackendEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ReasoningStart(_BackendEvent):
    type: Literal["reasoning-start"]
    id: str | None = None


class ReasoningDelta(_BackendEvent):
    type: Literal["reasoning-delta"]
    id: str | None = None
    delta: str = ""


class ReasoningEnd(_BackendEvent):
    type: Literal["reasoning-end"]
    id: str | None = None


class TextStart(_BackendEvent):
    type: Literal["text-start"]
    id: str | None = None


class TextDelta(_BackendEvent):
    type: Literal["text-delta"]
    id: str | None = None
    delta: str | None = None


class TextEnd(_BackendEvent):
    type: Literal["text-end"]
    id: str | None = None


class Finish(_BackendEvent):
    type: Literal["finish"]


BackendEvent = Annotated[
    ReasoningStart | ReasoningDelta | ReasoningEnd | TextStart | TextDelta | TextEnd | Finish,
    Field(discriminator="type"),
]

backend_event_adapter: TypeAdapter[BackendEvent] = TypeAdapter(BackendEvent)


class UIEventType(str, Enum):
    """Event types of the UI-facing stream protocol."""

    START = "start"
    TEXT_START = "text-start"
    TEXT_DELTA = "text-delta"
    TEXT_END = "text-end"
    REASONING_START = "reasoning-start"
    REASONING_DELTA = "reasoning-delta"
    REASONING_END = "reasoning-end"
    FINISH = "finish"
    ERROR = "error"


class UIStreamEvent(BaseModel):
    """A single event of the UI-facing stream."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    type: UIEventType
    id: str | None = None
    delta: str | None = None
    message_id: str | None = Field(None, alias="messageId")
    error_text: str | None = Field(None, alias="errorText")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


SSE_DONE = "data: [DONE]\n\n"
