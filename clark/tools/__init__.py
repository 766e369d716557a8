"""Tools the agent can call during a turn."""

from clark.tools.registry import ToolsRegistry, merge_tool_sets

__all__ = ["ToolsRegistry", "merge_tool_sets"]
