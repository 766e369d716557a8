"""Public URL lookup for an exposed sandbox port."""

from pydantic import BaseModel, Field

from clark.models.data_parts import GetSandboxUrlData
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition
from clark.tools.errors import ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """Get the public URL for a port exposed by a sandbox.

Only ports passed to create_sandbox can be reached. Call this after the
server inside the sandbox is listening and share the URL with the user.
"""


class GetSandboxUrlInput(BaseModel):
    sandbox_id: str = Field(min_length=1, description="The sandbox id returned by create_sandbox")
    port: int = Field(ge=1, le=65535, description="A port exposed when the sandbox was created")


def create_get_sandbox_url_tool(ctx: ToolContext) -> ToolDefinition:
    async def get_sandbox_url(params: GetSandboxUrlInput, call: ToolCallContext) -> str:
        ctx.emit("get-sandbox-url", call.tool_call_id, GetSandboxUrlData(status="loading"))

        try:
            sandbox = await ctx.sandboxes.get(params.sandbox_id)
            url = sandbox.domain(params.port)
        except Exception as e:
            rich = get_rich_error("Getting Sandbox URL", e, args=params.model_dump())
            logger.error(f"Error getting sandbox url: {rich.error.message}")
            # This kind has no error status; done without a url closes it
            ctx.emit("get-sandbox-url", call.tool_call_id, GetSandboxUrlData(status="done"))
            raise ToolExecutionError(rich) from e

        ctx.emit("get-sandbox-url", call.tool_call_id, GetSandboxUrlData(status="done", url=url))
        return f"The sandbox is reachable on port {params.port} at: {url}"

    return ToolDefinition(
        name="get_sandbox_url",
        description=DESCRIPTION,
        input_schema_class=GetSandboxUrlInput,
        handler=get_sandbox_url,
    )
