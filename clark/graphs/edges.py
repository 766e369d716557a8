"""Routing between agent graph nodes."""

from typing import Literal

from clark.graphs.state import AgentState
from clark.utils.logging import get_logger

logger = get_logger(__name__)


def route_agent_output(state: AgentState) -> Literal["tools", "error", "end"]:
    """Route from the agent node.

    Errors go to the error handler, requested tool calls to the tools node,
    and anything else (final answer or abort) ends the turn.
    """
    if state.error:
        logger.warning(f"Routing to error handler due to: {state.error}")
        return "error"

    if state.stop_reason is not None:
        return "end"

    if state.pending_tool_calls:
        return "tools"

    return "end"


def route_tool_output(state: AgentState) -> Literal["agent", "end"]:
    """Route from the tools node: back to the model unless the turn was stopped."""
    if state.stop_reason is not None:
        logger.info(f"Stopping after tools at step {state.step_count}: {state.stop_reason}")
        return "end"
    return "agent"
