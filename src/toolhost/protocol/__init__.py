"""MCP protocol layer: JSON-RPC framing, lifecycle, stdio transport, tools."""

from toolhost.protocol.jsonrpc import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    format_error,
    format_notification,
    format_request,
    format_response,
    parse_message,
    parse_response,
)
from toolhost.protocol.lifecycle import (
    MCP_PROTOCOL_VERSION,
    LifecycleManager,
    LifecycleState,
    ProtocolError,
)
from toolhost.protocol.tools import ToolsCallResult, ToolsHandler, ToolsListResult
from toolhost.protocol.transport import StdioTransport

__all__ = [
    "JsonRpcError",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LifecycleManager",
    "LifecycleState",
    "MCP_PROTOCOL_VERSION",
    "ProtocolError",
    "StdioTransport",
    "ToolsCallResult",
    "ToolsHandler",
    "ToolsListResult",
    "format_error",
    "format_notification",
    "format_request",
    "format_response",
    "parse_message",
    "parse_response",
]
