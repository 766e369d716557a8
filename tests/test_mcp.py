"""Tests for MCP connector sessions."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from clark.clients.mcp import MCPConnectorSession, MCPToolError


class FakeClientSession:
    """Stands in for mcp.ClientSession over a fake transport."""

    def __init__(self, read, write):
        self.initialized = False
        self.exited = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.exited = True

    async def initialize(self):
        self.initialized = True

    async def list_tools(self):
        return SimpleNamespace(
            tools=[
                SimpleNamespace(
                    name="search",
                    description="Search the docs",
                    inputSchema={"type": "object", "properties": {"q": {"type": "string"}}},
                ),
                SimpleNamespace(name="ping", description=None, inputSchema=None),
            ]
        )

    async def call_tool(self, name, arguments):
        if name == "ping":
            return SimpleNamespace(content=[SimpleNamespace(type="text", text="unreachable")], isError=True)
        return SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text=f"found {arguments['q']}"),
                SimpleNamespace(type="image", data="..."),
            ],
            isError=False,
        )


def fake_transport(opened: list):
    @asynccontextmanager
    async def streamablehttp_client(url, headers=None):
        opened.append((url, headers))
        try:
            yield "read", "write", lambda: None
        finally:
            opened.append("closed")

    return streamablehttp_client


class TestMCPConnectorSession:
    """Tests for MCPConnectorSession."""

    @pytest.mark.asyncio
    async def test_lists_and_calls_tools(self):
        """Test tools are discovered, callable, and the transport is closed afterwards."""
        opened = []
        with (
            patch("clark.clients.mcp.streamablehttp_client", fake_transport(opened)),
            patch("clark.clients.mcp.ClientSession", FakeClientSession),
        ):
            session = MCPConnectorSession("docs", "https://docs.example.com/mcp", {"Authorization": "Bearer t"})
            tools = await session.open()

            assert [tool.name for tool in tools] == ["search", "ping"]
            assert all(tool.source == "docs" for tool in tools)
            assert tools[1].input_schema == {"type": "object", "properties": {}}
            assert await tools[0].call({"q": "auth"}) == "found auth"

            with pytest.raises(MCPToolError, match="unreachable"):
                await tools[1].call({})

            await session.close()

        assert opened == [("https://docs.example.com/mcp", {"Authorization": "Bearer t"}), "closed"]
        with pytest.raises(MCPToolError):
            await tools[0].call({"q": "auth"})

    @pytest.mark.asyncio
    async def test_failed_open_cleans_up(self):
        """Test a connector that fails during initialization leaves nothing open."""

        class FailingSession(FakeClientSession):
            async def initialize(self):
                raise ConnectionError("handshake failed")

        opened = []
        with (
            patch("clark.clients.mcp.streamablehttp_client", fake_transport(opened)),
            patch("clark.clients.mcp.ClientSession", FailingSession),
        ):
            session = MCPConnectorSession("docs", "https://docs.example.com/mcp")
            with pytest.raises(ConnectionError):
                await session.open()

        assert opened == [("https://docs.example.com/mcp", None), "closed"]
