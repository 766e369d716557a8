"""File generation and upload tool."""

from pydantic import BaseModel, Field

from clark.models.data_parts import GenerateFilesData
from clark.services.file_generator import FileContentGenerator
from clark.services.sandbox import Sandbox, SandboxFile
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition
from clark.tools.errors import ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)

DESCRIPTION = """Generate the contents of files from the conversation and upload them to a sandbox.

Use this tool to create or overwrite project files. List every path that
needs to be written; the contents are generated from the conversation so
far, and each file is uploaded as soon as it is complete.

Files whose exact content is already known (e.g. a .env holding keys
returned by create_clerk_app) go in `files`; they are uploaded first,
verbatim, without generation.

Never list lock files (pnpm-lock.yaml, package-lock.json, yarn.lock).
"""


class PredefinedFile(BaseModel):
    path: str = Field(min_length=1, description="Path to the file in the sandbox (e.g., '.env', 'config.json')")
    content: str = Field(description="The content of the file")


class GenerateFilesInput(BaseModel):
    sandbox_id: str = Field(min_length=1, description="The sandbox id returned by create_sandbox")
    paths: list[str] = Field(default_factory=list, description="Paths of the files to generate")
    files: list[PredefinedFile] = Field(
        default_factory=list,
        description=(
            "Files with predefined content to upload directly without generation, such as .env files "
            "holding secrets from previous tool calls. Uploaded before any generated file."
        ),
    )


class FileUploader:
    """Uploads batches of files for one tool call, reporting progress."""

    def __init__(self, ctx: ToolContext, sandbox: Sandbox, tool_call_id: str):
        self.ctx = ctx
        self.sandbox = sandbox
        self.tool_call_id = tool_call_id

    async def upload(self, files: list[PredefinedFile], written: list[str]) -> list[str]:
        paths = written + [file.path for file in files]
        self.ctx.emit("generate-files", self.tool_call_id, GenerateFilesData(status="uploading", paths=paths))

        try:
            await self.sandbox.write_files([SandboxFile(path=file.path, content=file.content) for file in files])
        except Exception as e:
            rich = get_rich_error("Writing files to sandbox", e, args={"paths": [file.path for file in files]})
            logger.error(f"Error uploading files to sandbox {self.sandbox.sandbox_id}: {rich.error.message}")
            self.ctx.emit(
                "generate-files", self.tool_call_id, GenerateFilesData(status="error", paths=paths, error=rich.error)
            )
            raise ToolExecutionError(rich) from e

        self.ctx.emit("generate-files", self.tool_call_id, GenerateFilesData(status="uploaded", paths=paths))
        return paths


def create_generate_files_tool(ctx: ToolContext) -> ToolDefinition:
    async def generate_files(params: GenerateFilesInput, call: ToolCallContext) -> str:
        ctx.emit("generate-files", call.tool_call_id, GenerateFilesData(status="generating"))

        try:
            sandbox = await ctx.sandboxes.get(params.sandbox_id)
        except Exception as e:
            rich = get_rich_error("Getting sandbox", e, args={"sandbox_id": params.sandbox_id})
            ctx.emit("generate-files", call.tool_call_id, GenerateFilesData(status="error", error=rich.error))
            raise ToolExecutionError(rich) from e

        uploader = FileUploader(ctx, sandbox, call.tool_call_id)
        uploaded: list[PredefinedFile] = []

        # Predefined files go first and stay in every later path list
        predefined_paths = [file.path for file in params.files]
        if params.files:
            await uploader.upload(params.files, written=[])
            uploaded.extend(params.files)

        if params.paths:
            generator = ctx.file_generator or FileContentGenerator(ctx.model.handle)
            try:
                async for chunk in generator.stream(call.messages, params.paths):
                    if chunk.files:
                        batch = [PredefinedFile(path=f.path, content=f.content) for f in chunk.files]
                        await uploader.upload(batch, written=predefined_paths + chunk.written)
                        uploaded.extend(batch)
                    else:
                        ctx.emit(
                            "generate-files",
                            call.tool_call_id,
                            GenerateFilesData(status="generating", paths=predefined_paths + chunk.paths),
                        )
            except ToolExecutionError:
                raise
            except Exception as e:
                rich = get_rich_error("Generating file contents", e, args={"paths": params.paths})
                logger.error(f"Error generating files: {rich.error.message}")
                ctx.emit(
                    "generate-files",
                    call.tool_call_id,
                    GenerateFilesData(status="error", paths=predefined_paths + params.paths, error=rich.error),
                )
                raise ToolExecutionError(rich) from e

        ctx.emit(
            "generate-files",
            call.tool_call_id,
            GenerateFilesData(status="done", paths=[file.path for file in uploaded]),
        )

        listing = "\n".join(f"Path: {file.path}\nContent: {file.content}\n" for file in uploaded)
        return (
            f"Successfully generated and uploaded {len(uploaded)} files. "
            f"Their paths and contents are as follows:\n{listing}"
        )

    return ToolDefinition(
        name="generate_files",
        description=DESCRIPTION,
        input_schema_class=GenerateFilesInput,
        handler=generate_files,
    )
