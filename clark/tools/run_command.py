"""Shell command execution inside a sandbox."""

from collections.abc import AsyncIterator

from pydantic import BaseModel, Field

from clark.models.data_parts import CommandLogData, RunCommandData
from clark.models.events import DataEvent
from clark.services.sandbox import Command
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition
from clark.tools.errors import ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)

# Characters of each output stream returned to the model
MAX_OUTPUT_CHARS = 4_000

DESCRIPTION = """Run a command inside a sandbox.

Use `wait: true` (default) for commands that finish, such as installing
dependencies or running a build; the result includes the exit code and output.
Use `wait: false` for long-running processes such as dev servers; the command
keeps running in the background and the tool returns immediately.

Pass the program in `command` and each argument separately in `args`
(e.g. command "pnpm", args ["install"]).
"""


class RunCommandInput(BaseModel):
    sandbox_id: str = Field(min_length=1, description="The sandbox id returned by create_sandbox")
    command: str = Field(min_length=1, description="Program to run, without arguments")
    args: list[str] = Field(default_factory=list, description="Arguments passed to the program")
    sudo: bool = Field(default=False, description="Run with elevated privileges")
    wait: bool = Field(default=True, description="Wait for the command to exit before returning")


def _tail(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return f"...(truncated)\n{text[-MAX_OUTPUT_CHARS:]}"


def create_run_command_tool(ctx: ToolContext) -> ToolDefinition:
    async def log_events(command: Command, params: RunCommandInput, tool_call_id: str) -> AsyncIterator[DataEvent]:
        async for line in command.logs():
            payload = CommandLogData(
                sandbox_id=params.sandbox_id, command_id=command.cmd_id, stream=line.stream, data=line.data
            )
            yield DataEvent.of("command-log", tool_call_id, payload)

    async def run_command(params: RunCommandInput, call: ToolCallContext) -> str:
        def progress(**fields) -> RunCommandData:
            return RunCommandData(sandbox_id=params.sandbox_id, command=params.command, args=params.args, **fields)

        ctx.emit("run-command", call.tool_call_id, progress(status="executing"))

        command: Command | None = None
        try:
            sandbox = await ctx.sandboxes.get(params.sandbox_id)
            command = await sandbox.run_command(params.command, params.args, sudo=params.sudo)

            if not params.wait:
                ctx.emit("run-command", call.tool_call_id, progress(status="running", command_id=command.cmd_id))
                ctx.emit("run-command", call.tool_call_id, progress(status="done", command_id=command.cmd_id))
                return (
                    f"The command `{params.command} {' '.join(params.args)}` is running in the background "
                    f"with command ID {command.cmd_id}."
                )

            ctx.emit("run-command", call.tool_call_id, progress(status="waiting", command_id=command.cmd_id))
            logs = ctx.writer.merge(log_events(command, params, call.tool_call_id))
            result = await command.wait()
            # Log lines precede the terminal event
            await logs
        except Exception as e:
            rich = get_rich_error("Running Command", e, args=params.model_dump(exclude={"wait"}))
            logger.error(f"Error running command in sandbox {params.sandbox_id}: {rich.error.message}")
            ctx.emit(
                "run-command",
                call.tool_call_id,
                progress(status="error", command_id=command.cmd_id if command else None, error=rich.error),
            )
            raise ToolExecutionError(rich) from e

        ctx.emit(
            "run-command",
            call.tool_call_id,
            progress(status="done", command_id=command.cmd_id, exit_code=result.exit_code),
        )
        return (
            f"The command `{params.command} {' '.join(params.args)}` exited with code {result.exit_code}.\n"
            f"stdout:\n{_tail(result.stdout)}\n"
            f"stderr:\n{_tail(result.stderr)}"
        )

    return ToolDefinition(
        name="run_command",
        description=DESCRIPTION,
        input_schema_class=RunCommandInput,
        handler=run_command,
    )
