"""UI message and part models shared by the stream, the model loop and storage."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

Role = Literal["system", "user", "assistant", "developer", "tool"]

ToolCallState = Literal["input-streaming", "input-available", "output-available", "output-error"]

# Forward-only ordering of tool call states
TOOL_CALL_STATE_ORDER: dict[str, int] = {
    "input-streaming": 0,
    "input-available": 1,
    "output-available": 2,
    "output-error": 2,
}

TERMINAL_TOOL_CALL_STATES = frozenset({"output-available", "output-error"})


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class TextPart(CamelModel):
    """Assistant or user text."""

    type: Literal["text"] = "text"
    id: str | None = None
    text: str = ""


class ReasoningPart(CamelModel):
    """Model reasoning text, streamed separately from the answer."""

    type: Literal["reasoning"] = "reasoning"
    id: str | None = None
    text: str = ""


class ToolCallPart(CamelModel):
    """A single tool invocation and its lifecycle."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    state: ToolCallState = "input-streaming"
    input: Any = None
    output: Any = None
    error_text: str | None = None


class DataPart(CamelModel):
    """Structured progress payload emitted by a tool (``data-<kind>``)."""

    type: str = Field(pattern=r"^data-[a-z0-9-]+$")
    id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.type.removeprefix("data-")


Part = Annotated[TextPart | ReasoningPart | ToolCallPart | DataPart, Field(union_mode="left_to_right")]


class UIMessage(CamelModel):
    """A message as exchanged with the client."""

    id: str
    role: Role
    parts: list[Part] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))
