"""Tool set assembly for a turn."""

from collections.abc import Callable, Iterable

from clark.tools.base import ToolContext, ToolDefinition, ToolSpec
from clark.tools.create_clerk_app import create_clerk_app_tool
from clark.tools.create_pscale_db import create_pscale_db_tool
from clark.tools.create_sandbox import create_sandbox_tool
from clark.tools.generate_files import create_generate_files_tool
from clark.tools.get_sandbox_url import create_get_sandbox_url_tool
from clark.tools.run_command import create_run_command_tool
from clark.tools.wait import create_wait_tool
from clark.utils.logging import get_logger

logger = get_logger(__name__)

ToolFactory = Callable[[ToolContext], ToolDefinition]

DEFAULT_TOOL_FACTORIES: tuple[ToolFactory, ...] = (
    create_clerk_app_tool,
    create_pscale_db_tool,
    create_sandbox_tool,
    create_generate_files_tool,
    create_get_sandbox_url_tool,
    create_run_command_tool,
    create_wait_tool,
)


class ToolsRegistry:
    """Static tool factories, instantiated per turn against a ToolContext."""

    def __init__(self, factories: Iterable[ToolFactory] = DEFAULT_TOOL_FACTORIES):
        self._factories = list(factories)

    def register_tool(self, factory: ToolFactory) -> None:
        """Register a new tool factory."""
        self._factories.append(factory)

    def build_tools(self, ctx: ToolContext) -> dict[str, ToolSpec]:
        """Instantiate every registered tool for one turn."""
        tools: dict[str, ToolSpec] = {}
        for factory in self._factories:
            tool = factory(ctx)
            if tool.name in tools:
                raise ValueError(f"Duplicate static tool name: {tool.name}")
            tools[tool.name] = tool
        return tools


def merge_tool_sets(static: dict[str, ToolSpec], external: Iterable[ToolSpec]) -> dict[str, ToolSpec]:
    """Merge connector tools into the static set. Static tools win on a name collision."""
    merged = dict(static)
    for tool in external:
        existing = merged.get(tool.name)
        if existing is not None:
            logger.warning(
                f"Tool {tool.name} from connector {tool.source} conflicts with {existing.source} tool; keeping "
                f"{existing.source}"
            )
            continue
        merged[tool.name] = tool
    return merged
