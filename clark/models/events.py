"""Stream events written to the client, in emission order, during one turn."""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from clark.models.messages import CamelModel


class StartEvent(CamelModel):
    type: Literal["start"] = "start"
    message_id: str


class TextDeltaEvent(CamelModel):
    type: Literal["text-delta"] = "text-delta"
    id: str
    delta: str


class ReasoningDeltaEvent(CamelModel):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    id: str
    delta: str


class ToolInputStartEvent(CamelModel):
    type: Literal["tool-input-start"] = "tool-input-start"
    tool_call_id: str
    tool_name: str


class ToolInputDeltaEvent(CamelModel):
    type: Literal["tool-input-delta"] = "tool-input-delta"
    tool_call_id: str
    input_text_delta: str


class ToolInputAvailableEvent(CamelModel):
    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: Any = None


class ToolOutputAvailableEvent(CamelModel):
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str
    output: Any = None


class ToolOutputErrorEvent(CamelModel):
    type: Literal["tool-output-error"] = "tool-output-error"
    tool_call_id: str
    error_text: str


class DataEvent(CamelModel):
    """Tool progress, correlated to the tool call by ``id``."""

    type: str = Field(pattern=r"^data-[a-z0-9-]+$")
    id: str
    data: dict[str, Any]

    @classmethod
    def of(cls, kind: str, id: str, payload: CamelModel) -> "DataEvent":
        return cls(type=f"data-{kind}", id=id, data=payload.model_dump(by_alias=True, exclude_none=True))


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    error_text: str


class MessageMetadata(CamelModel):
    """Aggregate metadata attached to the finish event."""

    model: str | None = None
    total_tokens: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class FinishEvent(CamelModel):
    type: Literal["finish"] = "finish"
    finish_reason: Literal["stop", "step-limit", "aborted"] = "stop"
    message_metadata: MessageMetadata = Field(default_factory=MessageMetadata)


StreamEvent = (
    StartEvent
    | TextDeltaEvent
    | ReasoningDeltaEvent
    | ToolInputStartEvent
    | ToolInputDeltaEvent
    | ToolInputAvailableEvent
    | ToolOutputAvailableEvent
    | ToolOutputErrorEvent
    | DataEvent
    | ErrorEvent
    | FinishEvent
)


def serialize_event(event: StreamEvent) -> dict[str, Any]:
    """Wire form of an event: camelCase keys, JSON-safe values, no nulls."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(Annotated[StreamEvent, Field(union_mode="left_to_right")])


def parse_event(data: dict[str, Any]) -> StreamEvent:
    """Validate a wire event (camelCase keys) back into its model."""
    return _event_adapter.validate_python(data)
