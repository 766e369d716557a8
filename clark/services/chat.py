"""Turn orchestration: request -> agent loop -> event stream -> storage."""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

from clark.clients.mcp import MCPConnectorSession
from clark.config import Settings
from clark.graphs.agent import AgentLoop, TurnResult, get_system_prompt
from clark.models.conversation import ChatRequest, Conversation
from clark.models.events import MessageMetadata, StartEvent, StreamEvent
from clark.models.llm import ModelOptions, ModelTuning, StopReason
from clark.models.messages import UIMessage
from clark.services.event_writer import EventWriter
from clark.services.file_generator import FileContentGenerator
from clark.services.message_conversion import collect_instructions, convert_to_model_messages, rewrite_report_errors
from clark.services.model_adapter import ModelAdapter
from clark.services.persistence import ConversationSnapshot, PersistenceReconciler
from clark.services.repositories import (
    ConversationRepository,
    MCPConnectionRepository,
    ResourceRepository,
)
from clark.services.sandbox import SandboxProvider
from clark.tools.base import ExternalToolDefinition, ToolContext
from clark.tools.registry import ToolsRegistry, merge_tool_sets
from clark.utils import identifiers
from clark.utils.logging import get_logger, turn_logging

logger = get_logger(__name__)

COMMUNICATION_ERROR = "Communication error with the AI"

FINISH_REASONS: dict[StopReason, str] = {
    StopReason.FINISHED: "stop",
    StopReason.STEP_LIMIT_EXCEEDED: "step-limit",
    StopReason.ABORTED: "aborted",
}

ConnectorFactory = Callable[[str, str, dict[str, str]], MCPConnectorSession]


@dataclass
class Turn:
    """Handle on a running turn."""

    conversation_id: str
    writer: EventWriter
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    result: TurnResult | None = None

    @property
    def message_id(self) -> str:
        return self.writer.message_id

    def cancel(self) -> None:
        """Stop issuing model and tool calls. Tools already running are allowed to finish."""
        if not self.cancel_event.is_set():
            logger.info(f"Aborting turn {self.message_id} in conversation {self.conversation_id}")
            self.cancel_event.set()

    async def wait(self) -> TurnResult | None:
        if self.task is not None:
            await self.task
        return self.result

    def events(self) -> AsyncIterator[StreamEvent]:
        return self.writer.events()


class ChatService:
    """Starts turns and owns everything that happens around the agent loop."""

    def __init__(
        self,
        model_adapter: ModelAdapter,
        tools_registry: ToolsRegistry,
        conversations: ConversationRepository,
        resources: ResourceRepository,
        connections: MCPConnectionRepository,
        sandboxes: SandboxProvider,
        reconciler: PersistenceReconciler,
        settings: Settings | None = None,
        agent_loop: AgentLoop | None = None,
        connector_factory: ConnectorFactory = MCPConnectorSession,
    ):
        self.model_adapter = model_adapter
        self.tools_registry = tools_registry
        self.conversations = conversations
        self.resources = resources
        self.connections = connections
        self.sandboxes = sandboxes
        self.reconciler = reconciler
        self.settings = settings or Settings()
        self.agent_loop = agent_loop or AgentLoop(max_steps=self.settings.max_steps)
        self.connector_factory = connector_factory

    async def start_turn(self, request: ChatRequest) -> Turn:
        """Validate the request and start the turn in the background.

        Raises:
            UnsupportedModelError: Before any model or tool is invoked
            InvalidMessageError: If a message cannot be converted for the model
        """
        model = self.model_adapter.resolve(request.model_id, ModelTuning(reasoning_effort=request.reasoning_effort))
        ui_messages = rewrite_report_errors(request.messages)

        await self._ensure_conversation(request)
        snapshot = await self.reconciler.take_snapshot(request.conversation_id)

        turn = Turn(conversation_id=request.conversation_id, writer=EventWriter(identifiers.message_id()))
        turn.task = asyncio.create_task(self._run(turn, request, ui_messages, model, snapshot))
        logger.info(f"Started turn {turn.message_id} for conversation {request.conversation_id} on {model.model_id}")
        return turn

    async def _ensure_conversation(self, request: ChatRequest) -> Conversation:
        conversation = await self.conversations.get_by_id(request.conversation_id)
        if conversation is not None:
            return conversation

        first_user_text = next((m.text() for m in request.messages if m.role == "user" and m.text()), None)
        title = first_user_text[:80] if first_user_text else None
        logger.info(f"Creating conversation {request.conversation_id}")
        return await self.conversations.create(title=title, conversation_id=request.conversation_id)

    async def _run(self, turn: Turn, *args) -> None:
        with turn_logging(turn.message_id):
            await self._run_turn(turn, *args)

    async def _run_turn(
        self,
        turn: Turn,
        request: ChatRequest,
        ui_messages: list[UIMessage],
        model: ModelOptions,
        snapshot: ConversationSnapshot,
    ) -> None:
        writer = turn.writer
        writer.write(StartEvent(message_id=writer.message_id))

        sessions: list[MCPConnectorSession] = []
        try:
            external_tools = await self._open_connectors(sessions)

            ctx = ToolContext(
                writer=writer,
                model=model,
                sandboxes=self.sandboxes,
                resources=self.resources,
                conversation_id=request.conversation_id,
                settings=self.settings,
                file_generator=FileContentGenerator(self.model_adapter.resolve(model.model_id).handle),
            )
            tools = merge_tool_sets(self.tools_registry.build_tools(ctx), external_tools)

            result = await self.agent_loop.run(
                convert_to_model_messages(ui_messages),
                model,
                tools,
                writer,
                cancel_event=turn.cancel_event,
                system_prompt=get_system_prompt(collect_instructions(ui_messages)),
            )
        except Exception as e:
            logger.error(f"Turn {turn.message_id} failed: {e}", exc_info=True)
            result = TurnResult(stop_reason=StopReason.ERROR, error=str(e))
        finally:
            await self._close_connectors(sessions)

        turn.result = result
        metadata = MessageMetadata(model=model.label, total_tokens=result.usage.total_tokens)
        if result.stop_reason == StopReason.ERROR:
            await writer.fail(COMMUNICATION_ERROR, metadata)
        else:
            await writer.finish(metadata, finish_reason=FINISH_REASONS[result.stop_reason])

        assistant = writer.message
        turn_messages = list(request.messages)
        if assistant.parts:
            turn_messages.append(assistant)
        await self.reconciler.reconcile(turn_messages, request.conversation_id, snapshot)

    async def _open_connectors(self, sessions: list[MCPConnectorSession]) -> list[ExternalToolDefinition]:
        tools: list[ExternalToolDefinition] = []
        for connection in await self.connections.list_enabled():
            session = self.connector_factory(connection.name, connection.url, connection.headers)
            try:
                tools.extend(await session.open())
            except Exception as e:
                logger.warning(f"Skipping connector {connection.name} ({connection.url}): {e}")
                continue
            sessions.append(session)
        return tools

    async def _close_connectors(self, sessions: list[MCPConnectorSession]) -> None:
        for session in sessions:
            await session.close()
