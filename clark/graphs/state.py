"""State definitions for the agent graph."""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any

from langchain_core.messages import BaseMessage
from langgraph.graph import add_messages
from pydantic import BaseModel, Field

from clark.clients.rate_limiter import ModelRateLimiter
from clark.models.llm import ModelOptions, StopReason
from clark.services.event_writer import EventWriter
from clark.tools.base import ToolSpec


class ToolCall(BaseModel):
    """A tool call requested by the model."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    # Set when the model's arguments could not be parsed
    invalid_reason: str | None = None


class AgentState(BaseModel):
    """State passed through the agent graph for one turn."""

    messages: Annotated[Sequence[BaseMessage], add_messages]

    step_count: int = 0
    pending_tool_calls: list[ToolCall] = Field(default_factory=list)

    stop_reason: StopReason | None = None
    error: str | None = None

    input_tokens: int = 0
    output_tokens: int = 0

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True


@dataclass
class TurnContext:
    """Collaborators of a running turn, passed to nodes through the run config."""

    model: ModelOptions
    tools: dict[str, ToolSpec]
    writer: EventWriter
    max_steps: int = 20
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    rate_limiter: ModelRateLimiter | None = None
    started_tool_calls: set[str] = field(default_factory=set)
    resolved_tool_calls: set[str] = field(default_factory=set)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
