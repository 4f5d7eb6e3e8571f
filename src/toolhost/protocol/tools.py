"""MCP tools/list and tools/call handlers.

Holds the session's tool table and renders contract results in MCP form.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any

from toolhost.audit import AuditLogger
from toolhost.contract import Tool, ToolDescriptor, ToolResult
from toolhost.registry import DuplicateToolError

logger = logging.getLogger(__name__)


@dataclass
class ToolsListResult:
    """Result of tools/list request."""

    tools: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP result format.

        Returns:
            Dictionary in MCP tools/list result format.
        """
        return {"tools": self.tools}


@dataclass
class ToolsCallResult:
    """Result of tools/call request."""

    content: list[dict[str, Any]]
    is_error: bool = False
    structured_content: dict[str, Any] | None = None

    @classmethod
    def from_tool_result(cls, result: ToolResult) -> ToolsCallResult:
        return cls(
            content=[{"type": "text", "text": result.content}],
            is_error=result.is_error,
            structured_content=result.structured,
        )

    @classmethod
    def error(cls, message: str) -> ToolsCallResult:
        return cls(content=[{"type": "text", "text": message}], is_error=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP result format.

        Returns:
            Dictionary in MCP tools/call result format.
        """
        data: dict[str, Any] = {"content": self.content, "isError": self.is_error}
        if self.structured_content is not None:
            data["structuredContent"] = self.structured_content
        return data


class ToolsHandler:
    """Handles tools/list and tools/call for one session.

    In-process tools are added at startup. Plugin tools may be added and
    removed later while plugins hot reload, so the table is guarded by a lock.
    """

    def __init__(
        self,
        audit: AuditLogger | None = None,
        session_id: str = "",
        user_id: str = "",
    ) -> None:
        """Initialize the handler.

        Args:
            audit: Audit log for tool calls (optional).
            session_id: Session recorded with each audited call.
            user_id: User recorded with each audited call.
        """
        self._tools: dict[str, tuple[Tool, ToolDescriptor]] = {}
        self._lock = threading.Lock()
        self._audit = audit
        self._session_id = session_id
        self._user_id = user_id

    def add_tool(self, tool: Tool) -> ToolDescriptor:
        """Add a tool to the table.

        The descriptor is snapshotted once; tool schemas are pure.

        Raises:
            DuplicateToolError: If a tool with the same name exists.
        """
        descriptor = tool.descriptor()
        with self._lock:
            if descriptor.name in self._tools:
                raise DuplicateToolError(f"Tool already registered: {descriptor.name}")
            self._tools[descriptor.name] = (tool, descriptor)
        logger.debug("Registered MCP tool %s", descriptor.name)
        return descriptor

    def remove_tool(self, name: str) -> bool:
        """Remove a tool from the table.

        Returns:
            True if the tool was registered.
        """
        with self._lock:
            removed = self._tools.pop(name, None) is not None
        if removed:
            logger.debug("Removed MCP tool %s", name)
        return removed

    def get_tool(self, name: str) -> Tool | None:
        with self._lock:
            entry = self._tools.get(name)
        return entry[0] if entry else None

    def tools(self) -> list[Tool]:
        with self._lock:
            return [tool for tool, _ in self._tools.values()]

    def handle_list(self) -> ToolsListResult:
        """Handle tools/list request.

        Returns:
            ToolsListResult with all available tools.
        """
        with self._lock:
            descriptors = [d for _, d in self._tools.values()]
        return ToolsListResult(tools=[d.to_dict() for d in descriptors])

    def handle_call(self, name: str, arguments: Any) -> ToolsCallResult:
        """Handle tools/call request.

        Args:
            name: Name of the tool to call.
            arguments: Tool arguments (decoded JSON).

        Returns:
            ToolsCallResult with execution result.
        """
        tool = self.get_tool(name)
        if tool is None:
            return ToolsCallResult.error(f"Tool not found: {name}")

        request_id = uuid.uuid4().hex
        if self._audit:
            self._audit.log_request(
                request_id, name, arguments, session_id=self._session_id, user_id=self._user_id
            )

        start = time.perf_counter()
        try:
            result = tool.execute(arguments if arguments is not None else {})
        except Exception:
            # Transport failures and contract violations; details stay in the log
            logger.exception("Tool %s failed", name)
            result = ToolResult(f"Tool execution failed: {name}", is_error=True)
        duration_ms = (time.perf_counter() - start) * 1000

        if self._audit:
            self._audit.log_response(
                request_id,
                name,
                "error" if result.is_error else "success",
                duration_ms,
                error_code=_error_code(result),
            )

        return ToolsCallResult.from_tool_result(result)


def _error_code(result: ToolResult) -> str | None:
    if result.is_error and result.structured is not None:
        return result.structured.get("code")
    return None
