"""Authentication backend provisioning tool."""

from typing import Literal

from pydantic import BaseModel, Field

from clark.clients.clerk import ClerkPlatformClient
from clark.models.data_parts import CreateClerkAppData, ErrorInfo
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition
from clark.tools.errors import ConfigurationError, RichError, ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)

ACTION = "Creating Clerk App"

DESCRIPTION = """Create a Clerk application to add authentication to the project.

Returns the development instance's publishable and secret keys. Pass them
to the sandbox as NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY and CLERK_SECRET_KEY,
either through create_sandbox `env` or as a predefined .env file in
generate_files.

Templates:
- b2b-saas: organizations and member management
- waitlist: sign-ups gated behind a waitlist
"""


class CreateClerkAppInput(BaseModel):
    name: str = Field(
        min_length=1,
        max_length=100,
        description="The name for the Clerk application. This should be descriptive of the project being built.",
    )
    template: Literal["b2b-saas", "waitlist"] | None = Field(
        default=None, description="The template to use for the Clerk application."
    )


def create_clerk_app_tool(ctx: ToolContext) -> ToolDefinition:
    def fail(call: ToolCallContext, name: str, message: str, error_class=ToolExecutionError) -> ToolExecutionError:
        info = ErrorInfo(message=message)
        ctx.emit("create-clerk-app", call.tool_call_id, CreateClerkAppData(status="error", name=name, error=info))
        return error_class(
            RichError(message=f"Error creating Clerk app: {message}", action=ACTION, args={"name": name}, error=info)
        )

    async def create_clerk_app(params: CreateClerkAppInput, call: ToolCallContext) -> str:
        ctx.emit("create-clerk-app", call.tool_call_id, CreateClerkAppData(status="loading", name=params.name))

        token = ctx.settings.clerk_platform_access_token
        if not token:
            raise fail(
                call, params.name, "CLERK_PLATFORM_ACCESS_TOKEN environment variable is not set", ConfigurationError
            )

        try:
            async with ClerkPlatformClient(
                token, base_url=ctx.settings.clerk_api_base_url, transport=ctx.http_transport
            ) as client:
                response = await client.create_application(params.name, template=params.template)
        except Exception as e:
            rich = get_rich_error(ACTION, e, args=params.model_dump())
            logger.error(f"Error creating Clerk app: {rich.error.message}")
            ctx.emit(
                "create-clerk-app",
                call.tool_call_id,
                CreateClerkAppData(status="error", name=params.name, error=rich.error),
            )
            raise ToolExecutionError(rich) from e

        if response.error is not None or response.data is None:
            raise fail(call, params.name, response.error_message or "Unknown error creating Clerk app")

        application = response.data
        instance = application.instance("development")
        if instance is None:
            raise fail(call, params.name, "No development instance found in created application")

        ctx.emit(
            "create-clerk-app",
            call.tool_call_id,
            CreateClerkAppData(
                status="done",
                name=params.name,
                application_id=application.application_id,
                publishable_key=instance.publishable_key,
                secret_key=instance.secret_key,
            ),
        )
        return (
            f'Clerk application "{params.name}" created successfully.\n'
            f"Application ID: {application.application_id}\n"
            f"Publishable Key: {instance.publishable_key}\n"
            f"Secret Key: {instance.secret_key}\n\n"
            "Use these environment variables when creating the sandbox:\n"
            f"- NEXT_PUBLIC_CLERK_PUBLISHABLE_KEY={instance.publishable_key}\n"
            f"- CLERK_SECRET_KEY={instance.secret_key}"
        )

    return ToolDefinition(
        name="create_clerk_app",
        description=DESCRIPTION,
        input_schema_class=CreateClerkAppInput,
        handler=create_clerk_app,
    )
