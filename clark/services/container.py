"""Wiring of the service graph for one process."""

from dataclasses import dataclass

from clark.clients.mcp import MCPConnectorSession
from clark.clients.rate_limiter import ModelRateLimiter
from clark.config import Settings
from clark.graphs.agent import AgentLoop
from clark.services.chat import ChatService, ConnectorFactory
from clark.services.error_reporter import ErrorReporter
from clark.services.model_adapter import HandleFactory, ModelAdapter, ModelRegistry
from clark.services.persistence import PersistenceReconciler
from clark.services.repositories import (
    InMemoryConversationRepository,
    InMemoryMCPConnectionRepository,
    InMemoryMessageRepository,
    InMemoryResourceRepository,
    InMemoryStore,
)
from clark.services.sandbox import LocalSandboxProvider, SandboxProvider
from clark.tools.registry import ToolsRegistry
from clark.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Explicitly constructed services shared by the HTTP layer."""

    settings: Settings
    conversations: InMemoryConversationRepository
    messages: InMemoryMessageRepository
    resources: InMemoryResourceRepository
    connections: InMemoryMCPConnectionRepository
    sandboxes: SandboxProvider
    model_adapter: ModelAdapter
    tools_registry: ToolsRegistry
    reconciler: PersistenceReconciler
    chat: ChatService
    error_reporter: ErrorReporter


def build_services(
    settings: Settings | None = None,
    handle_factory: HandleFactory | None = None,
    sandboxes: SandboxProvider | None = None,
    tools_registry: ToolsRegistry | None = None,
    connector_factory: ConnectorFactory = MCPConnectorSession,
) -> ServiceContainer:
    """Build the service container. Arguments other than settings exist for tests."""
    settings = settings or Settings.from_env()

    store = InMemoryStore()
    conversations = InMemoryConversationRepository(store)
    messages = InMemoryMessageRepository(store, conversations)
    resources = InMemoryResourceRepository(store)
    connections = InMemoryMCPConnectionRepository(store)

    registry = ModelRegistry(default_model_id=settings.default_model_id) if settings.default_model_id else None
    model_adapter = ModelAdapter(registry=registry, api_key=settings.anthropic_api_key, handle_factory=handle_factory)
    sandboxes = sandboxes or LocalSandboxProvider(settings.sandbox_root)
    tools_registry = tools_registry or ToolsRegistry()
    reconciler = PersistenceReconciler(messages)

    rate_limiter = None
    if settings.rate_limit_enabled:
        rate_limiter = ModelRateLimiter(settings.requests_per_minute, settings.tokens_per_minute)

    chat = ChatService(
        model_adapter=model_adapter,
        tools_registry=tools_registry,
        conversations=conversations,
        resources=resources,
        connections=connections,
        sandboxes=sandboxes,
        reconciler=reconciler,
        settings=settings,
        agent_loop=AgentLoop(max_steps=settings.max_steps, rate_limiter=rate_limiter),
        connector_factory=connector_factory,
    )

    logger.info(f"Services ready: default model {model_adapter.registry.default_model_id}, max steps {settings.max_steps}")
    return ServiceContainer(
        settings=settings,
        conversations=conversations,
        messages=messages,
        resources=resources,
        connections=connections,
        sandboxes=sandboxes,
        model_adapter=model_adapter,
        tools_registry=tools_registry,
        reconciler=reconciler,
        chat=chat,
        error_reporter=ErrorReporter(model_adapter),
    )
