"""Stored records and HTTP request/response models."""

from datetime import UTC, datetime
from typing import Any

from pydantic import Field, HttpUrl

from clark.models.llm import ReasoningEffort
from clark.models.messages import CamelModel, Part, Role, UIMessage


def _now() -> datetime:
    return datetime.now(UTC)


class Conversation(CamelModel):
    """A chat thread. Owns its messages and resources."""

    id: str
    title: str | None = None
    owner_ref: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Message(CamelModel):
    """A stored message.

    ``id`` is the storage key. ``external_id`` is the id assigned by the
    streaming layer and is used only to deduplicate upserts.
    """

    id: str
    conversation_id: str
    role: Role
    parts: list[Part] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    parent_id: str | None = None
    external_id: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def to_ui_message(self) -> UIMessage:
        return UIMessage(
            id=self.external_id or self.id,
            role=self.role,
            parts=self.parts,
            metadata=self.metadata,
        )


class Resource(CamelModel):
    """Reference to an out-of-band side effect such as a sandbox."""

    id: str
    type: str
    external_id: str
    conversation_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class MCPConnection(CamelModel):
    """A user-configured external tool connector."""

    id: str
    name: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True
    created_at: datetime = Field(default_factory=_now)


class ChatRequest(CamelModel):
    """Request model for the chat endpoint."""

    conversation_id: str = Field(min_length=1)
    messages: list[UIMessage] = Field(min_length=1)
    model_id: str | None = None
    reasoning_effort: ReasoningEffort | None = None


class CreateConversationRequest(CamelModel):
    title: str | None = None


class UpdateConversationRequest(CamelModel):
    title: str = Field(min_length=1, max_length=200)


class CreateMessageRequest(CamelModel):
    message: UIMessage
    parent_id: str | None = None


class CreateConnectionRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    url: HttpUrl
    headers: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True


class ErrorLinesRequest(CamelModel):
    """Log lines from a running app, for error synthesis."""

    lines: list[str] = Field(min_length=1, max_length=500)


class HealthResponse(CamelModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
