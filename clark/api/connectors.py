"""External tool connector (MCP) configuration endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response

from clark.api.dependencies import get_services
from clark.models.conversation import CreateConnectionRequest, MCPConnection
from clark.services.container import ServiceContainer
from clark.services.repositories import RepositoryConflictError
from clark.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/mcp-connections", tags=["Connectors"])


@router.get("", response_model=list[MCPConnection])
async def list_connections(services: ServiceContainer = Depends(get_services)) -> list[MCPConnection]:
    return await services.connections.list_all()


@router.post("", response_model=MCPConnection, status_code=201)
async def create_connection(
    request: CreateConnectionRequest, services: ServiceContainer = Depends(get_services)
) -> MCPConnection:
    try:
        connection = await services.connections.create(
            name=request.name, url=str(request.url), headers=request.headers, enabled=request.enabled
        )
    except RepositoryConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    logger.info(f"Registered MCP connector {connection.name} at {connection.url}")
    return connection


@router.delete("/{connection_id}", status_code=204)
async def delete_connection(connection_id: str, services: ServiceContainer = Depends(get_services)) -> Response:
    if not await services.connections.delete(connection_id):
        raise HTTPException(status_code=404, detail=f"Connector not found: {connection_id}")
    return Response(status_code=204)
