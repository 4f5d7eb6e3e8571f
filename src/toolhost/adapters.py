"""Tool adapters.

Glue that puts tools in front of callers:
- ResourceToolAdapter presents an in-process resource bundle behind the
  tool contract, for the MCP server.
- register_resource_tool() registers one bundle with both the MCP server
  and the direct-call registry, both bound to the same dispatch().
- register_tool() registers any contract tool (e.g. a plugin proxy),
  gating it behind user approval when it asks for one.
"""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from typing import Any

from toolhost.context import ToolContext
from toolhost.contract import Tool, ToolDescriptor, ToolResult
from toolhost.dispatch import ResourceTool, dispatch
from toolhost.errors import NO_ORG_SELECTED, ToolError, ToolExecutionError
from toolhost.registry import ToolRegistry
from toolhost.server import MCPServer

logger = logging.getLogger(__name__)

# approver(tool_name, raw_input) -> True to allow the call
Approver = Callable[[str, Any], bool]

DENIED_MESSAGE = "Tool execution denied by user"


def output_dict(output: Any) -> dict[str, Any]:
    """Render a handler's typed output as a JSON object."""
    if hasattr(output, "to_dict"):
        return output.to_dict()
    if is_dataclass(output) and not isinstance(output, type):
        return asdict(output)
    if isinstance(output, dict):
        return output
    raise TypeError(f"Unsupported tool output: {type(output).__name__}")


class ResourceToolAdapter(Tool):
    """An in-process resource bundle bound to one session."""

    def __init__(self, tool: ResourceTool, tool_ctx: ToolContext) -> None:
        self._tool = tool
        self._tool_ctx = tool_ctx
        self._schema = tool.schema()

    def name(self) -> str:
        return self._tool.name

    def title(self) -> str:
        return self._tool.title

    def description(self) -> str:
        return self._tool.description

    def schema(self) -> bytes:
        return self._schema

    def requires_approval(self) -> bool:
        return False

    def execute(self, payload: Any) -> ToolResult:
        """Dispatch the payload and render the outcome.

        Domain errors keep their code and message in the structured result.
        Internal failures are reported without their underlying details.
        """
        try:
            output = dispatch(self._tool, self._tool_ctx, payload)
        except ToolError as err:
            if err is NO_ORG_SELECTED:
                # Shared instance: keep no frames of this call alive
                err.__traceback__ = None
                err.__context__ = None
            return ToolResult(str(err), is_error=True, structured=err.to_dict())
        except ToolExecutionError as e:
            logger.warning("Tool %s failed: %s", self._tool.name, e)
            return ToolResult(f"internal error: {e}", is_error=True)

        data = output_dict(output)
        return ToolResult(json.dumps(data, default=str), structured=data)


class ApprovalGatedTool(Tool):
    """Asks the approver before each execution of the wrapped tool."""

    def __init__(self, tool: Tool, approver: Approver | None) -> None:
        self._tool = tool
        self._approver = approver
        self._name = tool.name()

    def name(self) -> str:
        return self._name

    def title(self) -> str:
        return self._tool.title()

    def description(self) -> str:
        return self._tool.description()

    def schema(self) -> bytes:
        return self._tool.schema()

    def requires_approval(self) -> bool:
        return True

    def execute(self, payload: Any) -> ToolResult:
        if self._approver is None:
            return ToolResult(DENIED_MESSAGE, is_error=True)

        try:
            approved = self._approver(self._name, payload)
        except Exception as e:
            logger.warning("Approver failed for %s: %s", self._name, e)
            return ToolResult(f"Approval error: {e}", is_error=True)

        if not approved:
            logger.info("User denied execution of %s", self._name)
            return ToolResult(DENIED_MESSAGE, is_error=True)
        return self._tool.execute(payload)

    def close(self) -> None:
        self._tool.close()


def register_resource_tool(
    server: MCPServer,
    registry: ToolRegistry,
    tool: ResourceTool,
    tool_ctx: ToolContext,
) -> ToolDescriptor:
    """Register an in-process tool with the MCP server and the registry.

    Both surfaces call the same dispatch() with the same declaration, so a
    payload yields the same typed output (or error) on either path.

    Raises:
        DuplicateToolError: If the name is already registered on either side.
    """
    descriptor = server.add_tool(ResourceToolAdapter(tool, tool_ctx))
    registry.register(tool.name, functools.partial(dispatch, tool, tool_ctx))
    return descriptor


def register_tool(
    server: MCPServer, tool: Tool, approver: Approver | None = None
) -> ToolDescriptor:
    """Register a contract tool with the MCP server.

    Tools that require approval are wrapped so the approver is consulted
    before every execution; without an approver every call is denied.

    Raises:
        DuplicateToolError: If the name is already registered.
    """
    if tool.requires_approval():
        tool = ApprovalGatedTool(tool, approver)
    return server.add_tool(tool)
