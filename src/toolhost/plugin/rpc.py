"""Plugin RPC surface.

Five methods are exposed over a line-delimited JSON-RPC 2.0 connection:
Plugin.Name, Plugin.Description, Plugin.Schema, Plugin.RequiresApproval and
Plugin.Execute. Tool failures travel inside the Execute reply, never as RPC
errors, so they cannot be confused with channel failures. Frames on this
channel carry tool payloads and have no size limit.
"""

from __future__ import annotations

import itertools
import json
import logging
import socket
import threading
from typing import Any

from toolhost.contract import Tool, ToolResult
from toolhost.protocol.jsonrpc import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcError,
    JsonRpcNotification,
    format_error,
    format_request,
    format_response,
    parse_message,
    parse_response,
)

logger = logging.getLogger(__name__)

NAME = "Plugin.Name"
DESCRIPTION = "Plugin.Description"
SCHEMA = "Plugin.Schema"
REQUIRES_APPROVAL = "Plugin.RequiresApproval"
EXECUTE = "Plugin.Execute"


class PluginTransportError(Exception):
    """Raised when the plugin connection itself fails."""

    pass


def _raw_input(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return payload.decode("utf-8")
    if isinstance(payload, str):
        return payload
    return json.dumps(payload)


class ToolRPCServer:
    """Serves one tool on a plugin connection."""

    def __init__(self, tool: Tool) -> None:
        """Initialize the server.

        Args:
            tool: Concrete tool implementation.
        """
        self._tool = tool

    def handle(self, raw_message: str) -> str | None:
        """Handle one request frame.

        Returns:
            Response frame, or None for notifications.
        """
        try:
            message = parse_message(raw_message, max_size=None)
        except JsonRpcError as e:
            return format_error(None, e.code, str(e))

        if isinstance(message, JsonRpcNotification):
            return None

        params = message.params or {}
        method = message.method

        if method == NAME:
            return format_response(message.id, self._tool.name())
        if method == DESCRIPTION:
            return format_response(message.id, self._tool.description())
        if method == SCHEMA:
            return format_response(message.id, self._tool.schema().decode("utf-8"))
        if method == REQUIRES_APPROVAL:
            return format_response(message.id, self._tool.requires_approval())
        if method == EXECUTE:
            if "input" not in params:
                return format_error(message.id, INVALID_PARAMS, "Missing 'input' parameter")
            return format_response(message.id, self._execute(params["input"]))

        return format_error(message.id, METHOD_NOT_FOUND, f"Unknown method: {method}")

    def _execute(self, raw_input: Any) -> dict[str, Any]:
        try:
            result = self._tool.execute(raw_input)
        except Exception as e:
            # Contract violation by the tool; report it in the error slot
            logger.exception("Plugin tool %s raised during execute", self._tool.name())
            return {"result": None, "error": str(e) or type(e).__name__}
        return {"result": result.to_dict(), "error": ""}

    def serve_connection(self, conn: socket.socket) -> None:
        """Serve requests until the peer disconnects."""
        with conn.makefile("r", encoding="utf-8", newline="\n") as reader, conn.makefile(
            "w", encoding="utf-8", newline="\n"
        ) as writer:
            try:
                for line in reader:
                    line = line.strip()
                    if not line:
                        continue
                    response = self.handle(line)
                    if response is None:
                        continue
                    writer.write(response + "\n")
                    writer.flush()
            except OSError as e:
                logger.debug("Host connection lost: %s", e)


class ToolRPCClient(Tool):
    """Host-side proxy presenting a plugin connection as a Tool.

    Calls are serialized on the connection. After a transport failure the
    client is unusable, since a late reply would desynchronize the stream.
    """

    def __init__(self, conn: socket.socket, timeout: float | None = None) -> None:
        """Initialize the client.

        Args:
            conn: Connected socket.
            timeout: Per-call deadline in seconds, or None for no deadline.
        """
        conn.settimeout(timeout)
        self._conn = conn
        self._reader = conn.makefile("r", encoding="utf-8", newline="\n")
        self._writer = conn.makefile("w", encoding="utf-8", newline="\n")
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._broken: str | None = None

    def _call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        with self._lock:
            if self._broken is not None:
                raise PluginTransportError(f"{method}: connection unusable ({self._broken})")
            msg_id = next(self._ids)
            try:
                self._writer.write(format_request(msg_id, method, params) + "\n")
                self._writer.flush()
                line = self._reader.readline()
            except OSError as e:
                self._broken = str(e) or type(e).__name__
                raise PluginTransportError(f"{method}: {self._broken}") from e
            if not line:
                self._broken = "connection closed"
                raise PluginTransportError(f"{method}: connection closed by plugin")

        try:
            response = parse_response(line, max_size=None)
        except JsonRpcError as e:
            raise PluginTransportError(f"{method}: malformed reply: {e}") from e
        if response.id != msg_id:
            raise PluginTransportError(f"{method}: reply id {response.id!r} != {msg_id}")
        if response.error is not None:
            raise PluginTransportError(f"{method}: {response.error.message}")
        return response.result

    def name(self) -> str:
        return str(self._call(NAME))

    def description(self) -> str:
        return str(self._call(DESCRIPTION))

    def schema(self) -> bytes:
        return str(self._call(SCHEMA)).encode("utf-8")

    def requires_approval(self) -> bool:
        return bool(self._call(REQUIRES_APPROVAL))

    def execute(self, payload: Any) -> ToolResult:
        """Execute the plugin tool.

        The out-of-band error slot is folded into an error result, so only
        transport failures raise.

        Raises:
            PluginTransportError: If the connection fails.
        """
        reply = self._call(EXECUTE, {"input": _raw_input(payload)})
        if not isinstance(reply, dict):
            raise PluginTransportError(f"{EXECUTE}: reply must be an object")

        if reply.get("error"):
            return ToolResult(str(reply["error"]), is_error=True)

        result = reply.get("result")
        if not isinstance(result, dict):
            raise PluginTransportError(f"{EXECUTE}: reply has neither result nor error")
        return ToolResult.from_dict(result)

    def close(self) -> None:
        """Disconnect from the plugin."""
        self._broken = "closed by host"
        for closable in (self._writer, self._reader, self._conn):
            try:
                closable.close()
            except OSError:
                pass
