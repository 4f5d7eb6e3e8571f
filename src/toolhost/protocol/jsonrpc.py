"""JSON-RPC 2.0 framing.

Used in both directions: the MCP server parses requests and formats
responses; the plugin RPC client formats requests and parses responses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Maximum frame size (1 MB)
MAX_MESSAGE_SIZE = 1_048_576


class JsonRpcError(Exception):
    """JSON-RPC error with code and message."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        """Initialize the error.

        Args:
            code: JSON-RPC error code.
            message: Human-readable error message.
            data: Optional additional error data.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


@dataclass
class JsonRpcRequest:
    """A JSON-RPC request (has id)."""

    id: int | str
    method: str
    params: dict[str, Any] | None = None


@dataclass
class JsonRpcNotification:
    """A JSON-RPC notification (no id)."""

    method: str
    params: dict[str, Any] | None = None


@dataclass
class JsonRpcResponse:
    """A JSON-RPC response; exactly one of result or error is meaningful."""

    id: int | str | None
    result: Any = None
    error: JsonRpcError | None = None


def _load_object(raw: str, max_size: int | None) -> dict[str, Any]:
    if max_size is not None:
        size = len(raw.encode("utf-8"))
        if size > max_size:
            raise JsonRpcError(
                PARSE_ERROR, f"Message too large: {size} bytes exceeds {max_size} limit"
            )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise JsonRpcError(PARSE_ERROR, f"Parse error: {e}") from e

    if not isinstance(data, dict):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: message must be an object")

    if data.get("jsonrpc") != "2.0":
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'")

    return data


def parse_message(
    raw: str, max_size: int | None = MAX_MESSAGE_SIZE
) -> JsonRpcRequest | JsonRpcNotification:
    """Parse an incoming request or notification.

    Args:
        raw: Raw JSON string.
        max_size: Frame limit in UTF-8 bytes, or None for no limit.

    Returns:
        Parsed request or notification.

    Raises:
        JsonRpcError: If the message is invalid.
    """
    data = _load_object(raw, max_size)

    method = data.get("method")
    if not isinstance(method, str):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: method must be a string")

    params = data.get("params")
    if params is not None and not isinstance(params, dict):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: params must be an object")

    if "id" in data:
        msg_id = data["id"]
        if isinstance(msg_id, bool) or not isinstance(msg_id, int | str):
            raise JsonRpcError(INVALID_REQUEST, "Invalid Request: id must be integer or string")
        return JsonRpcRequest(id=msg_id, method=method, params=params)
    return JsonRpcNotification(method=method, params=params)


def parse_response(raw: str, max_size: int | None = MAX_MESSAGE_SIZE) -> JsonRpcResponse:
    """Parse a response received from a peer.

    Raises:
        JsonRpcError: If the frame is not a valid response.
    """
    data = _load_object(raw, max_size)

    if "result" not in data and "error" not in data:
        raise JsonRpcError(INVALID_REQUEST, "Invalid Response: missing result or error")

    error = data.get("error")
    if error is not None:
        if not isinstance(error, dict):
            raise JsonRpcError(INVALID_REQUEST, "Invalid Response: error must be an object")
        return JsonRpcResponse(
            id=data.get("id"),
            error=JsonRpcError(
                int(error.get("code", INTERNAL_ERROR)),
                str(error.get("message", "")),
                error.get("data"),
            ),
        )
    return JsonRpcResponse(id=data.get("id"), result=data.get("result"))


def format_request(msg_id: int | str, method: str, params: dict[str, Any] | None = None) -> str:
    """Format an outgoing request."""
    request: dict[str, Any] = {"jsonrpc": "2.0", "id": msg_id, "method": method}
    if params is not None:
        request["params"] = params
    return json.dumps(request)


def format_response(msg_id: int | str, result: Any) -> str:
    """Format a successful response.

    Args:
        msg_id: Request ID to echo back.
        result: Result payload.

    Returns:
        JSON string.
    """
    return json.dumps({"jsonrpc": "2.0", "id": msg_id, "result": result})


def format_error(
    msg_id: int | str | None,
    code: int,
    message: str,
    data: Any | None = None,
) -> str:
    """Format an error response.

    Args:
        msg_id: Request ID (or None for parse errors).
        code: Error code.
        message: Error message.
        data: Optional error data.

    Returns:
        JSON string.
    """
    error_obj: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error_obj["data"] = data

    return json.dumps({"jsonrpc": "2.0", "id": msg_id, "error": error_obj})


def format_notification(method: str, params: dict[str, Any] | None = None) -> str:
    """Format a notification (server to client)."""
    notification: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        notification["params"] = params
    return json.dumps(notification)
