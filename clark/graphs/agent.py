"""Agent graph: a bounded loop of model calls and tool executions."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

from langchain_core.messages import BaseMessage, SystemMessage
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph

from clark.clients.rate_limiter import ModelRateLimiter
from clark.graphs.edges import route_agent_output, route_tool_output
from clark.graphs.nodes import agent_node, close_unresolved_tool_calls, error_handler_node, tools_node
from clark.graphs.state import AgentState, TurnContext
from clark.models.llm import ModelOptions, StopReason, TokenUsage
from clark.services.event_writer import EventWriter
from clark.tools.base import ToolSpec
from clark.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_STEPS = 20

UNRESOLVED_TOOL_CALL_ERRORS: dict[StopReason, str] = {
    StopReason.ABORTED: "The turn was aborted before the tool call completed.",
    StopReason.ERROR: "The model stream failed before the tool call completed.",
    StopReason.STEP_LIMIT_EXCEEDED: "The step limit was reached before the tool call completed.",
}

SYSTEM_PROMPT = """You are Clark, an assistant that builds and runs web applications for the user.

You work inside isolated sandboxes through tools:
- create_sandbox: start a sandbox and expose the ports your app will listen on
- generate_files: write project files into the sandbox; pass secrets you already have as predefined files
- run_command: install dependencies, build, and start servers (use wait=false for dev servers)
- get_sandbox_url: get the public URL of an exposed port once the server is up
- create_clerk_app: provision authentication when the app needs sign-in
- create_pscale_db: provision a PostgreSQL database when the app needs persistent storage
- wait: pause briefly, e.g. while a server starts

Guidelines:
1. Plan the smallest set of steps that produces a running app, then execute it
2. Read tool results carefully; when a tool fails, fix the cause and retry only what failed
3. Never generate lock files
4. When the user reports errors, fix them in the affected files
5. Keep replies short and tell the user the URL when the app is running"""


def get_system_prompt(instructions: str | None = None) -> str:
    """System prompt with the current time and any caller instructions appended."""
    prompt = f"{SYSTEM_PROMPT}\n\nCurrent date and time: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S')} UTC"
    if instructions:
        prompt += f"\n\nAdditional instructions:\n{instructions}"
    return prompt


def create_agent_graph():
    """Create the agent graph.

    agent -> tools -> agent ... until the model answers without tool calls,
    the step limit is reached, the turn is aborted, or the model stream fails.
    """
    workflow = StateGraph(AgentState)

    workflow.add_node("agent", agent_node)
    workflow.add_node("tools", tools_node)
    workflow.add_node("error", error_handler_node)

    workflow.set_entry_point("agent")

    workflow.add_conditional_edges(
        "agent",
        route_agent_output,
        {
            "tools": "tools",
            "error": "error",
            "end": END,
        },
    )
    workflow.add_conditional_edges(
        "tools",
        route_tool_output,
        {
            "agent": "agent",
            "end": END,
        },
    )
    workflow.add_edge("error", END)

    return workflow.compile()


@dataclass
class TurnResult:
    """Outcome of one agent turn."""

    stop_reason: StopReason
    messages: list[BaseMessage] = field(default_factory=list)
    steps: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: str | None = None


class AgentLoop:
    """Runs the agent graph for a turn."""

    def __init__(self, max_steps: int = DEFAULT_MAX_STEPS, rate_limiter: ModelRateLimiter | None = None):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.max_steps = max_steps
        self.rate_limiter = rate_limiter
        self.graph = create_agent_graph()

    async def run(
        self,
        messages: list[BaseMessage],
        model: ModelOptions,
        tools: dict[str, ToolSpec],
        writer: EventWriter,
        cancel_event: asyncio.Event | None = None,
        system_prompt: str | None = None,
    ) -> TurnResult:
        """Drive the model through tool calls until it produces a final answer.

        Args:
            messages: Conversation history as model messages
            model: Resolved model options
            tools: Tool set for this turn
            writer: Sink for streamed model output and tool lifecycle events
            cancel_event: Set by the caller to abort the turn
            system_prompt: Overrides the default system prompt

        Returns:
            TurnResult with the stop reason, the messages added this turn and usage
        """
        ctx = TurnContext(
            model=model,
            tools=tools,
            writer=writer,
            max_steps=self.max_steps,
            cancel_event=cancel_event or asyncio.Event(),
            rate_limiter=self.rate_limiter,
        )
        initial = [SystemMessage(content=system_prompt or get_system_prompt()), *messages]
        config = {
            "configurable": {"turn_context": ctx},
            # agent + tools per step, plus the error node
            "recursion_limit": 2 * self.max_steps + 4,
        }

        try:
            result = await self.graph.ainvoke({"messages": initial}, config)
        except GraphRecursionError:
            logger.error(f"Agent graph exceeded its recursion limit after {self.max_steps} steps")
            close_unresolved_tool_calls(ctx, UNRESOLVED_TOOL_CALL_ERRORS[StopReason.STEP_LIMIT_EXCEEDED])
            return TurnResult(stop_reason=StopReason.STEP_LIMIT_EXCEEDED, steps=self.max_steps)

        stop_reason = result.get("stop_reason") or StopReason.FINISHED
        close_unresolved_tool_calls(
            ctx, UNRESOLVED_TOOL_CALL_ERRORS.get(StopReason(stop_reason), "The tool call did not complete.")
        )
        usage = TokenUsage(input_tokens=result.get("input_tokens", 0), output_tokens=result.get("output_tokens", 0))
        logger.info(f"Turn ended: {stop_reason} after {result.get('step_count', 0)} steps, {usage.total_tokens} tokens")

        return TurnResult(
            stop_reason=StopReason(stop_reason),
            messages=list(result["messages"][len(initial) :]),
            steps=result.get("step_count", 0),
            usage=usage,
            error=result.get("error"),
        )
