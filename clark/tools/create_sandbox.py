"""Sandbox creation tool."""

from pydantic import BaseModel, Field

from clark.models.data_parts import CreateSandboxData
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition
from clark.tools.errors import ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)

MIN_TIMEOUT_MS = 600_000
MAX_TIMEOUT_MS = 2_700_000
DEFAULT_TIMEOUT_MS = 1_200_000
SANDBOX_RESOURCE_TYPE = "sandbox"

DESCRIPTION = """Create an isolated, ephemeral Linux sandbox to run code, install dependencies and serve applications.

Use this tool:
- Before generating files or running commands for a new project
- When the previous sandbox expired or failed

Guidelines:
- Expose the ports your dev server will listen on (e.g. 3000 for Next.js), at most two
- Pass secrets and configuration the application needs through `env`
- Keep the returned sandbox id; every other sandbox tool needs it
"""


class CreateSandboxInput(BaseModel):
    """Input schema for the create_sandbox tool."""

    timeout: int | None = Field(
        default=None,
        ge=MIN_TIMEOUT_MS,
        le=MAX_TIMEOUT_MS,
        description=(
            "Milliseconds the sandbox stays alive before it shuts down and terminates all processes. "
            "Minimum 600000 (10 minutes), maximum 2700000 (45 minutes), default 1200000 (20 minutes)."
        ),
    )
    ports: list[int] = Field(
        default_factory=list,
        max_length=2,
        description="Network ports to expose outside the sandbox, e.g. 3000 (Next.js) or 8000 (Python servers).",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Environment variables for the sandbox, e.g. NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY and CLERK_SECRET_KEY.",
    )


def create_sandbox_tool(ctx: ToolContext) -> ToolDefinition:
    async def create_sandbox(params: CreateSandboxInput, call: ToolCallContext) -> str:
        ctx.emit("create-sandbox", call.tool_call_id, CreateSandboxData(status="loading"))

        timeout = params.timeout or DEFAULT_TIMEOUT_MS
        try:
            sandbox = await ctx.sandboxes.create(timeout_ms=timeout, ports=params.ports, env=params.env)
            await ctx.resources.create(
                type=SANDBOX_RESOURCE_TYPE,
                external_id=sandbox.sandbox_id,
                conversation_id=ctx.conversation_id,
                metadata={"timeout": timeout, "ports": params.ports},
            )
        except Exception as e:
            rich = get_rich_error("Creating Sandbox", e, args={"timeout": timeout, "ports": params.ports})
            logger.error(f"Error creating sandbox: {rich.error.message}")
            ctx.emit("create-sandbox", call.tool_call_id, CreateSandboxData(status="error", error=rich.error))
            raise ToolExecutionError(rich) from e

        ctx.emit("create-sandbox", call.tool_call_id, CreateSandboxData(status="done", sandbox_id=sandbox.sandbox_id))
        return (
            f"Sandbox created with ID: {sandbox.sandbox_id}.\n"
            "You can now upload files, run commands, and access services on the exposed ports."
        )

    return ToolDefinition(
        name="create_sandbox",
        description=DESCRIPTION,
        input_schema_class=CreateSandboxInput,
        handler=create_sandbox,
    )
