"""Record storage interfaces and in-memory implementations."""

from datetime import UTC, datetime
from typing import Any, Protocol

from clark.models.conversation import Conversation, MCPConnection, Message, Resource
from clark.models.messages import Part, Role
from clark.utils import identifiers
from clark.utils.logging import get_logger

logger = get_logger(__name__)


class RepositoryConflictError(Exception):
    """Raised when a write violates a uniqueness constraint."""


class ConversationRepository(Protocol):
    async def get_by_id(self, conversation_id: str) -> Conversation | None: ...

    async def list_recent(self, limit: int = 50) -> list[Conversation]: ...

    async def create(self, title: str | None = None, conversation_id: str | None = None) -> Conversation: ...

    async def update(self, conversation_id: str, title: str) -> Conversation | None: ...

    async def touch(self, conversation_id: str) -> None: ...

    async def delete(self, conversation_id: str) -> bool:
        """Delete a conversation and, transitively, its messages and resources."""
        ...


class MessageRepository(Protocol):
    async def create(
        self,
        conversation_id: str,
        role: Role,
        parts: list[Part],
        metadata: dict[str, Any] | None = None,
        parent_id: str | None = None,
        external_id: str | None = None,
    ) -> Message: ...

    async def upsert_by_external_id(
        self,
        external_id: str,
        conversation_id: str,
        role: Role,
        parts: list[Part],
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        """Insert or overwrite the message with this external id.

        Also bumps the parent conversation's ``updated_at``.
        """
        ...

    async def list_by_conversation_id(self, conversation_id: str) -> list[Message]: ...


class ResourceRepository(Protocol):
    async def create(
        self,
        type: str,
        external_id: str,
        conversation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Resource: ...

    async def list_by_conversation_id(self, conversation_id: str) -> list[Resource]: ...


class MCPConnectionRepository(Protocol):
    async def create(
        self, name: str, url: str, headers: dict[str, str] | None = None, enabled: bool = True
    ) -> MCPConnection: ...

    async def list_all(self) -> list[MCPConnection]: ...

    async def list_enabled(self) -> list[MCPConnection]: ...

    async def delete(self, connection_id: str) -> bool: ...


class InMemoryStore:
    """Shared tables so cascades and ``updated_at`` touches span repositories."""

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, Message] = {}
        self.resources: dict[str, Resource] = {}
        self.connections: dict[str, MCPConnection] = {}


class InMemoryConversationRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        return self.store.conversations.get(conversation_id)

    async def list_recent(self, limit: int = 50) -> list[Conversation]:
        conversations = sorted(self.store.conversations.values(), key=lambda c: c.updated_at, reverse=True)
        return conversations[:limit]

    async def create(self, title: str | None = None, conversation_id: str | None = None) -> Conversation:
        conversation_id = conversation_id or identifiers.conversation_id()
        if conversation_id in self.store.conversations:
            raise RepositoryConflictError(f"Conversation already exists: {conversation_id}")

        conversation = Conversation(id=conversation_id, title=title)
        self.store.conversations[conversation_id] = conversation
        return conversation

    async def update(self, conversation_id: str, title: str) -> Conversation | None:
        conversation = self.store.conversations.get(conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        conversation.updated_at = datetime.now(UTC)
        return conversation

    async def touch(self, conversation_id: str) -> None:
        conversation = self.store.conversations.get(conversation_id)
        if conversation is not None:
            conversation.updated_at = datetime.now(UTC)

    async def delete(self, conversation_id: str) -> bool:
        if self.store.conversations.pop(conversation_id, None) is None:
            return False

        for message_id in [m.id for m in self.store.messages.values() if m.conversation_id == conversation_id]:
            del self.store.messages[message_id]
        for resource_id in [r.id for r in self.store.resources.values() if r.conversation_id == conversation_id]:
            del self.store.resources[resource_id]

        logger.info(f"Deleted conversation {conversation_id} with its messages and resources")
        return True


class InMemoryMessageRepository:
    def __init__(self, store: InMemoryStore, conversations: InMemoryConversationRepository):
        self.store = store
        self.conversations = conversations

    def _by_external_id(self, external_id: str) -> Message | None:
        return next((m for m in self.store.messages.values() if m.external_id == external_id), None)

    async def create(
        self,
        conversation_id: str,
        role: Role,
        parts: list[Part],
        metadata: dict[str, Any] | None = None,
        parent_id: str | None = None,
        external_id: str | None = None,
    ) -> Message:
        if external_id is not None and self._by_external_id(external_id) is not None:
            raise RepositoryConflictError(f"Message with external id {external_id} already exists")

        message = Message(
            id=identifiers.message_id(),
            conversation_id=conversation_id,
            role=role,
            parts=list(parts),
            metadata=dict(metadata or {}),
            parent_id=parent_id,
            external_id=external_id,
        )
        self.store.messages[message.id] = message
        await self.conversations.touch(conversation_id)
        return message

    async def upsert_by_external_id(
        self,
        external_id: str,
        conversation_id: str,
        role: Role,
        parts: list[Part],
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        if not external_id:
            raise ValueError("external_id is required for upsert")

        existing = self._by_external_id(external_id)
        if existing is None:
            return await self.create(conversation_id, role, parts, metadata, external_id=external_id)

        existing.role = role
        existing.parts = list(parts)
        existing.metadata = dict(metadata or {})
        existing.updated_at = datetime.now(UTC)
        await self.conversations.touch(existing.conversation_id)
        return existing

    async def list_by_conversation_id(self, conversation_id: str) -> list[Message]:
        messages = [m for m in self.store.messages.values() if m.conversation_id == conversation_id]
        return sorted(messages, key=lambda m: m.created_at)

    async def get_by_id(self, message_id: str) -> Message | None:
        return self.store.messages.get(message_id)


class InMemoryResourceRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self,
        type: str,
        external_id: str,
        conversation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Resource:
        resource = Resource(
            id=identifiers.resource_id(),
            type=type,
            external_id=external_id,
            conversation_id=conversation_id,
            metadata=dict(metadata or {}),
        )
        self.store.resources[resource.id] = resource
        return resource

    async def list_by_conversation_id(self, conversation_id: str) -> list[Resource]:
        resources = [r for r in self.store.resources.values() if r.conversation_id == conversation_id]
        return sorted(resources, key=lambda r: r.created_at)


class InMemoryMCPConnectionRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self, name: str, url: str, headers: dict[str, str] | None = None, enabled: bool = True
    ) -> MCPConnection:
        if any(c.name == name for c in self.store.connections.values()):
            raise RepositoryConflictError(f"A connector named {name} already exists")

        connection = MCPConnection(
            id=identifiers.connection_id(), name=name, url=url, headers=dict(headers or {}), enabled=enabled
        )
        self.store.connections[connection.id] = connection
        return connection

    async def list_all(self) -> list[MCPConnection]:
        return sorted(self.store.connections.values(), key=lambda c: c.created_at)

    async def list_enabled(self) -> list[MCPConnection]:
        return [c for c in await self.list_all() if c.enabled]

    async def delete(self, connection_id: str) -> bool:
        return self.store.connections.pop(connection_id, None) is not None
