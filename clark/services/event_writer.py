"""Single ordered sink for everything the client sees during one turn."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from clark.models.data_parts import TERMINAL_STATUSES
from clark.models.events import (
    DataEvent,
    ErrorEvent,
    FinishEvent,
    MessageMetadata,
    ReasoningDeltaEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolInputAvailableEvent,
    ToolInputDeltaEvent,
    ToolInputStartEvent,
    ToolOutputAvailableEvent,
    ToolOutputErrorEvent,
)
from clark.models.messages import (
    TERMINAL_TOOL_CALL_STATES,
    TOOL_CALL_STATE_ORDER,
    DataPart,
    Part,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolCallState,
    UIMessage,
)
from clark.utils.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class MessageBuilder:
    """Folds stream events into the parts of one assistant message.

    Parts are kept in first-arrival order. Later events only append parts or
    move an existing part forward; a part in a terminal state is never changed.
    """

    def __init__(self, message_id: str, role: str = "assistant"):
        self.message_id = message_id
        self.role = role
        self.metadata: dict[str, Any] = {}
        self.parts: list[Part] = []
        self._text: dict[str, int] = {}
        self._reasoning: dict[str, int] = {}
        self._tool_calls: dict[str, int] = {}
        self._tool_input_text: dict[str, str] = {}
        self._data: dict[tuple[str, str], int] = {}

    def apply(self, event: StreamEvent) -> None:
        match event:
            case TextDeltaEvent():
                self._append_text(self._text, TextPart, event.id, event.delta)
            case ReasoningDeltaEvent():
                self._append_text(self._reasoning, ReasoningPart, event.id, event.delta)
            case ToolInputStartEvent():
                self._tool_call(event.tool_call_id, event.tool_name)
            case ToolInputDeltaEvent():
                self._tool_input_text[event.tool_call_id] = (
                    self._tool_input_text.get(event.tool_call_id, "") + event.input_text_delta
                )
                self._tool_call(event.tool_call_id)
            case ToolInputAvailableEvent():
                part = self._tool_call(event.tool_call_id, event.tool_name)
                if self._advance(part, "input-available"):
                    part.input = event.input
            case ToolOutputAvailableEvent():
                part = self._tool_call(event.tool_call_id)
                if self._advance(part, "output-available"):
                    part.output = event.output
            case ToolOutputErrorEvent():
                part = self._tool_call(event.tool_call_id)
                if self._advance(part, "output-error"):
                    part.error_text = event.error_text
            case DataEvent():
                self._data_part(event)
            case FinishEvent():
                self.metadata.update(event.message_metadata.model_dump(mode="json", by_alias=True))
            case _:
                pass

    def snapshot(self) -> UIMessage:
        """Copy of the message as built so far."""
        return UIMessage(
            id=self.message_id,
            role=self.role,
            parts=[part.model_copy(deep=True) for part in self.parts],
            metadata=dict(self.metadata),
        )

    def _append_text(self, index: dict[str, int], part_type: type[TextPart | ReasoningPart], id: str, delta: str):
        if id in index:
            self.parts[index[id]].text += delta
            return
        index[id] = len(self.parts)
        self.parts.append(part_type(id=id, text=delta))

    def _tool_call(self, tool_call_id: str, tool_name: str | None = None) -> ToolCallPart:
        if tool_call_id in self._tool_calls:
            return self.parts[self._tool_calls[tool_call_id]]

        part = ToolCallPart(tool_call_id=tool_call_id, tool_name=tool_name or "unknown")
        self._tool_calls[tool_call_id] = len(self.parts)
        self.parts.append(part)
        return part

    def _advance(self, part: ToolCallPart, state: ToolCallState) -> bool:
        if part.state in TERMINAL_TOOL_CALL_STATES:
            logger.warning(f"Ignoring {state} for tool call {part.tool_call_id} already in {part.state}")
            return False
        if TOOL_CALL_STATE_ORDER[state] <= TOOL_CALL_STATE_ORDER[part.state]:
            return False
        part.state = state
        return True

    def _data_part(self, event: DataEvent) -> None:
        # Payloads without a status (log lines, error reports) are append-only
        if "status" not in event.data:
            self.parts.append(DataPart(type=event.type, id=event.id, data=dict(event.data)))
            return

        key = (event.type, event.id)
        if key not in self._data:
            self._data[key] = len(self.parts)
            self.parts.append(DataPart(type=event.type, id=event.id, data=dict(event.data)))
            return

        part = self.parts[self._data[key]]
        if part.data.get("status") in TERMINAL_STATUSES:
            logger.warning(f"Ignoring {event.type} update for {event.id} after terminal status")
            return
        part.data = dict(event.data)


class EventWriter:
    """Ordered, single-consumer event sink.

    Producers call ``write`` (or ``merge`` an async stream). Events are
    delivered to the consumer first-ready-first-out, and each producer's own
    events keep their relative order. ``finish`` waits for merged streams and
    then emits the finish event as the last event of the turn.
    """

    def __init__(self, message_id: str):
        self.message_id = message_id
        self.builder = MessageBuilder(message_id)
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._merges: list[asyncio.Task] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def message(self) -> UIMessage:
        return self.builder.snapshot()

    def write(self, event: StreamEvent) -> None:
        if self._closed:
            logger.warning(f"Dropping {event.type} event written after stream {self.message_id} closed")
            return
        self.builder.apply(event)
        self._queue.put_nowait(event)

    def merge(self, stream: AsyncIterator[StreamEvent]) -> asyncio.Task:
        """Forward every event of ``stream`` into this writer from a background task."""

        async def forward() -> None:
            async for event in stream:
                self.write(event)

        task = asyncio.create_task(forward())
        self._merges.append(task)
        return task

    async def finish(self, metadata: MessageMetadata, finish_reason: str = "stop") -> None:
        await self.drain()
        self.write(FinishEvent(finish_reason=finish_reason, message_metadata=metadata))
        self.close()

    async def fail(self, error_text: str, metadata: MessageMetadata | None = None) -> None:
        await self.drain()
        if metadata is not None:
            self.builder.metadata.update(metadata.model_dump(mode="json", by_alias=True))
        self.write(ErrorEvent(error_text=error_text))
        self.close()

    async def drain(self) -> None:
        """Wait for merged streams to finish forwarding."""
        if not self._merges:
            return
        results = await asyncio.gather(*self._merges, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Merged stream failed: {result}", exc_info=result)
        self._merges.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Consume events in order until the writer is closed."""
        while True:
            event = await self._queue.get()
            if event is _CLOSED:
                return
            yield event
