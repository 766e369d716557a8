"""Client sessions for user-configured MCP tool connectors."""

from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from clark.tools.base import ExternalToolDefinition
from clark.utils.logging import get_logger

logger = get_logger(__name__)


class MCPToolError(RuntimeError):
    """An external tool reported an error result."""


class MCPConnectorSession:
    """One streamable-HTTP MCP session, opened and closed within a turn."""

    def __init__(self, name: str, url: str, headers: dict[str, str] | None = None):
        self.name = name
        self.url = url
        self.headers = dict(headers or {})
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    async def open(self) -> list[ExternalToolDefinition]:
        """Connect, initialize and list the connector's tools."""
        self._stack = AsyncExitStack()
        try:
            read, write, _ = await self._stack.enter_async_context(
                streamablehttp_client(self.url, headers=self.headers or None)
            )
            self._session = await self._stack.enter_async_context(ClientSession(read, write))
            await self._session.initialize()
            listed = await self._session.list_tools()
        except BaseException:
            await self.close()
            raise

        logger.info(f"Connected to MCP connector {self.name} with {len(listed.tools)} tools")
        return [
            ExternalToolDefinition(
                name=tool.name,
                description=tool.description or "",
                input_schema=tool.inputSchema or {"type": "object", "properties": {}},
                call=self._tool_caller(tool.name),
                source=self.name,
            )
            for tool in listed.tools
        ]

    def _tool_caller(self, tool_name: str):
        async def call(arguments: dict[str, Any]) -> str:
            if self._session is None:
                raise MCPToolError(f"Connector {self.name} is closed")

            result = await self._session.call_tool(tool_name, arguments)
            text = "\n".join(block.text for block in result.content if getattr(block, "type", None) == "text")
            if result.isError:
                raise MCPToolError(text or f"{tool_name} failed")
            return text

        return call

    async def close(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is None:
            return
        try:
            await stack.aclose()
        except Exception as e:
            logger.warning(f"Error closing MCP connector {self.name}: {e}")
