"""MCP lifecycle management.

Handles the initialize/initialized handshake and tracks connection state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Supported MCP protocol versions (newest first)
SUPPORTED_PROTOCOL_VERSIONS = ["2025-06-18", "2025-03-26", "2024-11-05"]
MCP_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]


class LifecycleState(Enum):
    """MCP connection lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTDOWN = "shutdown"


class ProtocolError(Exception):
    """Raised when protocol constraints are violated."""

    pass


@dataclass
class LifecycleManager:
    """Tracks one MCP connection from initialize to shutdown."""

    server_info: dict[str, str] = field(
        default_factory=lambda: {"name": "toolhost", "version": "0.1.0"}
    )
    capabilities: dict[str, Any] = field(default_factory=lambda: {"tools": {"listChanged": False}})
    instructions: str = ""
    state: LifecycleState = LifecycleState.UNINITIALIZED
    client_info: dict[str, str] | None = None
    client_capabilities: dict[str, Any] | None = None
    protocol_version: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.state == LifecycleState.READY

    def require_ready(self) -> None:
        """Assert that the connection is ready.

        Raises:
            ProtocolError: If not ready for operations.
        """
        if self.state == LifecycleState.SHUTDOWN:
            raise ProtocolError("Connection is shutdown")
        if self.state != LifecycleState.READY:
            raise ProtocolError("Connection is not ready")

    def handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle initialize request.

        A supported requested version is echoed back; otherwise the newest
        supported version is offered and the client decides.

        Args:
            params: Initialize request parameters.

        Returns:
            Initialize response result.

        Raises:
            ProtocolError: If already initialized.
        """
        if self.state != LifecycleState.UNINITIALIZED:
            raise ProtocolError("Server already initialized")

        requested = params.get("protocolVersion")
        if requested in SUPPORTED_PROTOCOL_VERSIONS:
            self.protocol_version = requested
        else:
            self.protocol_version = MCP_PROTOCOL_VERSION

        self.client_info = params.get("clientInfo")
        self.client_capabilities = params.get("capabilities", {})
        self.state = LifecycleState.INITIALIZING

        result: dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities,
            "serverInfo": self.server_info,
        }
        if self.instructions:
            result["instructions"] = self.instructions
        return result

    def handle_initialized(self) -> None:
        """Handle initialized notification.

        Raises:
            ProtocolError: If not in initializing state.
        """
        if self.state != LifecycleState.INITIALIZING:
            raise ProtocolError("Server not initializing")

        self.state = LifecycleState.READY

    def handle_shutdown(self) -> None:
        """Handle shutdown."""
        self.state = LifecycleState.SHUTDOWN
