"""Database provisioning tool."""

from pydantic import BaseModel, Field

from clark.clients.planetscale import PlanetScaleClient
from clark.models.data_parts import CreatePscaleDbData, ErrorInfo
from clark.tools.base import ToolCallContext, ToolContext, ToolDefinition
from clark.tools.errors import ConfigurationError, RichError, ToolExecutionError, get_rich_error
from clark.utils.logging import get_logger

logger = get_logger(__name__)

ACTION = "Creating PlanetScale Database"
DATABASE_RESOURCE_TYPE = "planetscale_db"

DESCRIPTION = """Create a PlanetScale PostgreSQL database for the project.

Use it when the app needs persistent relational storage. The database starts
empty. After it is created you can create branches and passwords and connect
to it from the sandbox.
"""


class CreatePscaleDbInput(BaseModel):
    name: str = Field(
        min_length=1,
        pattern=r"^[a-z0-9][a-z0-9-]*$",
        description="The name for the database. Should be lowercase, alphanumeric, and may include hyphens.",
    )
    organization: str = Field(
        min_length=1, description="The PlanetScale organization name where the database will be created."
    )
    cluster_size: str = Field(
        default="PS_10",
        description="The database cluster size name (e.g., 'PS_10', 'PS_80'). Use 'PS_10' for development/small workloads.",
    )
    region: str | None = Field(
        default=None,
        description="The region where the database will be deployed. Defaults to the organization's default region.",
    )
    replicas: int | None = Field(
        default=None, ge=0, description="The number of replicas for the database. 0 for non-HA (default), 2+ for HA."
    )


def create_pscale_db_tool(ctx: ToolContext) -> ToolDefinition:
    def fail(
        call: ToolCallContext, params: CreatePscaleDbInput, message: str, error_class=ToolExecutionError
    ) -> ToolExecutionError:
        info = ErrorInfo(message=message)
        ctx.emit("create-pscale-db", call.tool_call_id, CreatePscaleDbData(status="error", name=params.name, error=info))
        return error_class(
            RichError(
                message=f"Error creating PlanetScale database: {message}",
                action=ACTION,
                args=params.model_dump(),
                error=info,
            )
        )

    async def create_pscale_db(params: CreatePscaleDbInput, call: ToolCallContext) -> str:
        ctx.emit("create-pscale-db", call.tool_call_id, CreatePscaleDbData(status="loading", name=params.name))

        settings = ctx.settings
        if not (settings.planetscale_service_token_id and settings.planetscale_service_token):
            raise fail(
                call,
                params,
                "PLANETSCALE_SERVICE_TOKEN_ID and PLANETSCALE_SERVICE_TOKEN environment variables are not set",
                ConfigurationError,
            )

        try:
            async with PlanetScaleClient(
                settings.planetscale_service_token_id,
                settings.planetscale_service_token,
                base_url=settings.planetscale_api_base_url,
                transport=ctx.http_transport,
            ) as client:
                response = await client.create_database(
                    params.organization,
                    params.name,
                    cluster_size=params.cluster_size,
                    region=params.region,
                    replicas=params.replicas,
                )
        except Exception as e:
            rich = get_rich_error(ACTION, e, args=params.model_dump())
            logger.error(f"Error creating PlanetScale database: {rich.error.message}")
            ctx.emit(
                "create-pscale-db",
                call.tool_call_id,
                CreatePscaleDbData(status="error", name=params.name, error=rich.error),
            )
            raise ToolExecutionError(rich) from e

        if response.error is not None or response.data is None:
            raise fail(call, params, response.error_message or "Unknown error creating database")

        database = response.data
        await ctx.resources.create(
            type=DATABASE_RESOURCE_TYPE,
            external_id=database.id,
            conversation_id=ctx.conversation_id,
            metadata={"name": database.name, "organization": params.organization},
        )
        ctx.emit(
            "create-pscale-db",
            call.tool_call_id,
            CreatePscaleDbData(status="done", name=params.name, database_id=database.id, url=database.url),
        )
        return (
            f'Database "{params.name}" created successfully in organization "{params.organization}".\n'
            f"Database ID: {database.id}\n"
            "You can now create branches, passwords, and connect to the database."
        )

    return ToolDefinition(
        name="create_pscale_db",
        description=DESCRIPTION,
        input_schema_class=CreatePscaleDbInput,
        handler=create_pscale_db,
    )
