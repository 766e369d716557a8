"""Node implementations for the agent graph."""

import asyncio
from typing import Any

from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, ToolMessage
from langchain_core.messages.utils import message_chunk_to_message
from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from clark.graphs.state import AgentState, ToolCall, TurnContext
from clark.models.events import (
    ReasoningDeltaEvent,
    TextDeltaEvent,
    ToolInputAvailableEvent,
    ToolInputDeltaEvent,
    ToolInputStartEvent,
    ToolOutputAvailableEvent,
    ToolOutputErrorEvent,
)
from clark.models.llm import StopReason
from clark.tools.base import ToolCallContext
from clark.tools.errors import ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)


def get_turn_context(config: RunnableConfig) -> TurnContext:
    return config["configurable"]["turn_context"]


class ChunkForwarder:
    """Turns streamed model chunks of one step into client events."""

    def __init__(self, ctx: TurnContext, step: int):
        self.ctx = ctx
        self.step = step
        self._tool_call_ids: dict[Any, str] = {}

    def forward(self, chunk: AIMessageChunk) -> None:
        writer = self.ctx.writer
        content = chunk.content

        if isinstance(content, str):
            if content:
                writer.write(TextDeltaEvent(id=f"text-{self.step}-0", delta=content))
        else:
            for position, block in enumerate(content):
                if isinstance(block, str):
                    writer.write(TextDeltaEvent(id=f"text-{self.step}-{position}", delta=block))
                    continue
                index = block.get("index", position)
                if block.get("type") == "text" and block.get("text"):
                    writer.write(TextDeltaEvent(id=f"text-{self.step}-{index}", delta=block["text"]))
                elif block.get("type") == "thinking" and block.get("thinking"):
                    writer.write(ReasoningDeltaEvent(id=f"reasoning-{self.step}-{index}", delta=block["thinking"]))

        for tool_chunk in chunk.tool_call_chunks:
            index = tool_chunk.get("index")
            if tool_chunk.get("id"):
                self._tool_call_ids[index] = tool_chunk["id"]
                self.ctx.started_tool_calls.add(tool_chunk["id"])
                writer.write(ToolInputStartEvent(tool_call_id=tool_chunk["id"], tool_name=tool_chunk.get("name") or ""))

            tool_call_id = self._tool_call_ids.get(index)
            if tool_call_id and tool_chunk.get("args"):
                writer.write(ToolInputDeltaEvent(tool_call_id=tool_call_id, input_text_delta=tool_chunk["args"]))


async def agent_node(state: AgentState, config: RunnableConfig) -> dict[str, Any]:
    """Call the model once with the full history and stream its output.

    The step counter counts model calls. A response without tool calls
    finishes the turn.
    """
    ctx = get_turn_context(config)
    if ctx.cancelled:
        return {"stop_reason": StopReason.ABORTED}

    step = state.step_count + 1
    logger.info(f"Agent step {step}/{ctx.max_steps} with {len(state.messages)} messages")

    model = ctx.model.handle
    if ctx.tools:
        model = model.bind_tools([tool.to_model_tool() for tool in ctx.tools.values()])

    forwarder = ChunkForwarder(ctx, step)
    aggregate: AIMessageChunk | None = None
    try:
        if ctx.rate_limiter is not None:
            await ctx.rate_limiter.acquire(state.messages)

        async for chunk in model.astream(list(state.messages)):
            aggregate = chunk if aggregate is None else aggregate + chunk
            forwarder.forward(chunk)
            if ctx.cancelled:
                logger.info(f"Turn aborted while streaming step {step}")
                break

    except Exception as e:
        logger.error(f"Model stream error at step {step}: {e}", exc_info=True)
        return {"error": str(e), "step_count": step}

    response = message_chunk_to_message(aggregate) if aggregate is not None else AIMessage(content="")
    usage = getattr(aggregate, "usage_metadata", None) or {}
    updates: dict[str, Any] = {
        "messages": [response],
        "step_count": step,
        "input_tokens": state.input_tokens + usage.get("input_tokens", 0),
        "output_tokens": state.output_tokens + usage.get("output_tokens", 0),
    }

    if ctx.cancelled:
        return {**updates, "stop_reason": StopReason.ABORTED}

    tool_calls = [ToolCall(id=tc["id"], name=tc["name"], args=tc.get("args") or {}) for tc in response.tool_calls]
    tool_calls += [
        ToolCall(
            id=tc.get("id") or f"invalid-{step}-{position}",
            name=tc.get("name") or "unknown",
            invalid_reason=tc.get("error") or f"Could not parse arguments: {tc.get('args')}",
        )
        for position, tc in enumerate(getattr(response, "invalid_tool_calls", []) or [])
    ]

    if not tool_calls:
        logger.info(f"Model finished at step {step}")
        return {**updates, "pending_tool_calls": [], "stop_reason": StopReason.FINISHED}

    logger.info(f"Agent requesting {len(tool_calls)} tool calls: {[tc.name for tc in tool_calls]}")
    return {**updates, "pending_tool_calls": tool_calls}


async def _run_tool(ctx: TurnContext, call: ToolCall, history: list[BaseMessage]) -> ToolMessage:
    writer = ctx.writer

    def failed(error_text: str) -> ToolMessage:
        ctx.resolved_tool_calls.add(call.id)
        writer.write(ToolOutputErrorEvent(tool_call_id=call.id, error_text=error_text))
        return ToolMessage(content=error_text, tool_call_id=call.id, name=call.name, status="error")

    tool = ctx.tools.get(call.name)
    if tool is None:
        logger.warning(f"Model requested unknown tool: {call.name}")
        return failed(f"Tool {call.name} is not available.")

    if call.invalid_reason:
        return failed(f"Invalid input for tool {call.name}: {call.invalid_reason}")

    try:
        parsed = tool.parse_input(call.args)
    except (ValidationError, TypeError) as e:
        logger.warning(f"Rejected input for tool {call.name}: {e}")
        return failed(f"Invalid input for tool {call.name}: {e}")

    try:
        output = await tool.execute(parsed, ToolCallContext(tool_call_id=call.id, messages=history))
    except ToolExecutionError as e:
        logger.warning(f"Tool {call.name} failed: {e.rich.message}")
        return failed(e.rich.message)
    except Exception as e:
        logger.error(f"Tool {call.name} raised: {e}", exc_info=True)
        return failed(get_rich_error(f"Running {call.name}", e).message)

    ctx.resolved_tool_calls.add(call.id)
    writer.write(ToolOutputAvailableEvent(tool_call_id=call.id, output=output))
    return ToolMessage(content=output, tool_call_id=call.id, name=call.name)


async def tools_node(state: AgentState, config: RunnableConfig) -> dict[str, Any]:
    """Execute every requested tool call concurrently and append the results.

    Tool failures become error results for the model. Reaching the step limit
    after the tools ran stops the turn.
    """
    ctx = get_turn_context(config)
    if ctx.cancelled:
        return {"pending_tool_calls": [], "stop_reason": StopReason.ABORTED}

    calls = state.pending_tool_calls
    for call in calls:
        if call.id not in ctx.started_tool_calls:
            ctx.started_tool_calls.add(call.id)
            ctx.writer.write(ToolInputStartEvent(tool_call_id=call.id, tool_name=call.name))
        if not call.invalid_reason:
            ctx.writer.write(ToolInputAvailableEvent(tool_call_id=call.id, tool_name=call.name, input=call.args))

    # History the step was sent with; the last message is the response that made the calls
    history = list(state.messages[:-1])
    results = await asyncio.gather(*(_run_tool(ctx, call, history) for call in calls))

    updates: dict[str, Any] = {"messages": list(results), "pending_tool_calls": []}
    if ctx.cancelled:
        updates["stop_reason"] = StopReason.ABORTED
    elif state.step_count >= ctx.max_steps:
        logger.warning(f"Step limit of {ctx.max_steps} reached without a final answer")
        updates["stop_reason"] = StopReason.STEP_LIMIT_EXCEEDED
    return updates


def close_unresolved_tool_calls(ctx: TurnContext, error_text: str) -> list[str]:
    """Fail every tool call the client saw start but that never produced a result."""
    unresolved = sorted(ctx.started_tool_calls - ctx.resolved_tool_calls)
    for tool_call_id in unresolved:
        ctx.resolved_tool_calls.add(tool_call_id)
        ctx.writer.write(ToolOutputErrorEvent(tool_call_id=tool_call_id, error_text=error_text))
    if unresolved:
        logger.info(f"Closed {len(unresolved)} unresolved tool calls: {error_text}")
    return unresolved


def error_handler_node(state: AgentState) -> dict[str, Any]:
    """Terminal handler for model/stream failures."""
    logger.error(f"Error handler invoked at step {state.step_count}: {state.error}")
    return {"stop_reason": StopReason.ERROR}
