"""In-process tools, each a resource bundle driven by the dispatcher."""

from __future__ import annotations

from toolhost.adapters import register_resource_tool
from toolhost.context import ToolContext
from toolhost.dispatch import ResourceTool
from toolhost.registry import ToolRegistry
from toolhost.server import MCPServer
from toolhost.tools.notification import NOTIFICATION_TOOL
from toolhost.tools.org import ORG_TOOL
from toolhost.tools.subscription import SUBSCRIPTION_TOOL
from toolhost.tools.user import USER_TOOL

ALL_TOOLS: tuple[ResourceTool, ...] = (
    ORG_TOOL,
    USER_TOOL,
    NOTIFICATION_TOOL,
    SUBSCRIPTION_TOOL,
)


def register_all_tools(server: MCPServer, registry: ToolRegistry, tool_ctx: ToolContext) -> None:
    """Register every in-process tool with the MCP server and the registry."""
    for tool in ALL_TOOLS:
        register_resource_tool(server, registry, tool, tool_ctx)


__all__ = [
    "ALL_TOOLS",
    "NOTIFICATION_TOOL",
    "ORG_TOOL",
    "SUBSCRIPTION_TOOL",
    "USER_TOOL",
    "register_all_tools",
]
