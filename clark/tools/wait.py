"""Deliberate pause between plan steps."""

import asyncio

from pydantic import BaseModel, Field

from clark.models.data_parts import WaitData
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition

MAX_WAIT_MS = 30_000


class WaitInput(BaseModel):
    time_ms: int = Field(
        default=1000,
        ge=0,
        le=MAX_WAIT_MS,
        description="The amount of time to wait in milliseconds. Cannot wait more than 30 seconds.",
    )


def create_wait_tool(ctx: ToolContext) -> ToolDefinition:
    async def wait(params: WaitInput, call: ToolCallContext) -> str:
        ctx.emit("wait", call.tool_call_id, WaitData(status="waiting", time_ms=params.time_ms))
        await asyncio.sleep(params.time_ms / 1000)
        ctx.emit("wait", call.tool_call_id, WaitData(status="completed", time_ms=params.time_ms))
        return f"Waited {params.time_ms}ms."

    return ToolDefinition(
        name="wait",
        description="Waits for a specified amount of time in milliseconds.",
        input_schema_class=WaitInput,
        handler=wait,
    )
