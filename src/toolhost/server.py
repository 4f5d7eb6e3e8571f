"""MCP server.

One server per session: routes JSON-RPC frames to the lifecycle manager
and the session's tool table.
"""

from __future__ import annotations

import logging
from typing import Any

from toolhost.audit import AuditLogger
from toolhost.contract import Tool, ToolDescriptor
from toolhost.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    format_error,
    format_response,
    parse_message,
)
from toolhost.protocol.lifecycle import LifecycleManager, ProtocolError
from toolhost.protocol.tools import ToolsCallResult, ToolsHandler

logger = logging.getLogger(__name__)


class MCPServer:
    """MCP server for one session.

    Provides:
    - Lifecycle management (initialize/initialized)
    - tools/list and tools/call over the session's tool table
    - ping
    """

    def __init__(
        self,
        name: str = "toolhost",
        version: str = "0.1.0",
        instructions: str = "",
        audit: AuditLogger | None = None,
        session_id: str = "",
        user_id: str = "",
    ) -> None:
        """Initialize the server.

        Args:
            name: Server name reported to clients.
            version: Server version reported to clients.
            instructions: Usage hints returned from initialize.
            audit: Audit log for tool calls (optional).
            session_id: Session this server belongs to.
            user_id: Authenticated user of the session.
        """
        self._lifecycle = LifecycleManager(
            server_info={"name": name, "version": version}, instructions=instructions
        )
        self._tools_handler = ToolsHandler(audit=audit, session_id=session_id, user_id=user_id)

    @property
    def lifecycle(self) -> LifecycleManager:
        return self._lifecycle

    def add_tool(self, tool: Tool) -> ToolDescriptor:
        """Register a contract tool.

        Raises:
            DuplicateToolError: If the name is already registered.
        """
        return self._tools_handler.add_tool(tool)

    def remove_tool(self, name: str) -> bool:
        """Unregister a tool. Returns True if it was registered."""
        return self._tools_handler.remove_tool(name)

    def get_tool(self, name: str) -> Tool | None:
        return self._tools_handler.get_tool(name)

    def list_tools(self) -> list[dict[str, Any]]:
        """List all registered tools in MCP format."""
        return self._tools_handler.handle_list().to_dict()["tools"]

    def call_tool(self, name: str, arguments: Any) -> ToolsCallResult:
        """Call a tool, bypassing the JSON-RPC framing."""
        return self._tools_handler.handle_call(name, arguments)

    def handle_message(self, raw_message: str) -> str | None:
        """Handle an incoming JSON-RPC message.

        Args:
            raw_message: Raw JSON-RPC message string.

        Returns:
            Response string or None for notifications.
        """
        try:
            message = parse_message(raw_message)
        except JsonRpcError as e:
            return format_error(None, e.code, str(e))

        if isinstance(message, JsonRpcNotification):
            self._handle_notification(message)
            return None
        return self._handle_request(message)

    def _handle_notification(self, notification: JsonRpcNotification) -> None:
        if notification.method == "notifications/initialized":
            try:
                self._lifecycle.handle_initialized()
            except ProtocolError as e:
                logger.warning("Ignoring initialized notification: %s", e)
        # Other notifications are ignored

    def _handle_request(self, request: JsonRpcRequest) -> str:
        method = request.method
        params = request.params or {}
        msg_id = request.id

        # Initialize is allowed before ready
        if method == "initialize":
            try:
                return format_response(msg_id, self._lifecycle.handle_initialize(params))
            except ProtocolError as e:
                return format_error(msg_id, INTERNAL_ERROR, str(e))

        if method == "ping":
            return format_response(msg_id, {})

        try:
            self._lifecycle.require_ready()
        except ProtocolError as e:
            return format_error(msg_id, INTERNAL_ERROR, str(e))

        if method == "tools/list":
            return format_response(msg_id, self._tools_handler.handle_list().to_dict())

        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                return format_error(msg_id, INVALID_PARAMS, "Missing tool name")
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                return format_error(msg_id, INVALID_PARAMS, "arguments must be an object")
            result = self._tools_handler.handle_call(name, arguments)
            return format_response(msg_id, result.to_dict())

        return format_error(msg_id, METHOD_NOT_FOUND, f"Unknown method: {method}")

    def close(self) -> None:
        """Shut the connection down.

        Tools are not closed here; plugin tools are shared between sessions
        and owned by the plugin loader.
        """
        self._lifecycle.handle_shutdown()

    def __enter__(self) -> MCPServer:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
