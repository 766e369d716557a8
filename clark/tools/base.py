"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from langchain_core.messages import BaseMessage
from pydantic import BaseModel

from clark.config import Settings
from clark.models.events import DataEvent
from clark.models.llm import ModelOptions
from clark.services.event_writer import EventWriter
from clark.services.file_generator import FileContentGenerator
from clark.services.repositories import ResourceRepository
from clark.services.sandbox import SandboxProvider


@dataclass
class ToolContext:
    """Everything the tools of one turn share."""

    writer: EventWriter
    model: ModelOptions
    sandboxes: SandboxProvider
    resources: ResourceRepository
    conversation_id: str
    settings: Settings = field(default_factory=Settings)
    # Injected in tests to stub the provisioning API
    http_transport: httpx.AsyncBaseTransport | None = None
    # Model used for file generation; defaults to the turn model
    file_generator: FileContentGenerator | None = None

    def emit(self, kind: str, tool_call_id: str, payload: BaseModel) -> None:
        """Write a ``data-<kind>`` progress event for a tool call."""
        self.writer.write(DataEvent.of(kind, tool_call_id, payload))


@dataclass
class ToolCallContext:
    """Per-call context handed to ``execute``."""

    tool_call_id: str
    # History the step was sent with, excluding the response that made the call
    messages: list[BaseMessage] = field(default_factory=list)


ToolHandler = Callable[[Any, ToolCallContext], Awaitable[str]]


@dataclass
class ToolDefinition:
    """A statically registered tool with a pydantic input schema."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler
    source: str = "static"

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: Any) -> BaseModel:
        """Parse and validate tool input. Raises pydantic.ValidationError."""
        return self.input_schema_class.model_validate(raw_input or {})

    async def execute(self, parsed_input: BaseModel, call: ToolCallContext) -> str:
        return await self.handler(parsed_input, call)

    def to_model_tool(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.get_json_schema()}


@dataclass
class ExternalToolDefinition:
    """A tool discovered at runtime from an external connector."""

    name: str
    description: str
    input_schema: dict[str, Any]
    call: Callable[[dict[str, Any]], Awaitable[str]]
    source: str = "external"

    def get_json_schema(self) -> dict[str, Any]:
        return self.input_schema

    def parse_input(self, raw_input: Any) -> dict[str, Any]:
        if raw_input is None:
            return {}
        if not isinstance(raw_input, dict):
            raise TypeError(f"Tool {self.name} expects an object input, got {type(raw_input).__name__}")
        return raw_input

    async def execute(self, parsed_input: dict[str, Any], call: ToolCallContext) -> str:
        return await self.call(parsed_input)

    def to_model_tool(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


ToolSpec = ToolDefinition | ExternalToolDefinition
