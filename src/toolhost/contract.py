"""Tool contract shared by in-process and plugin tools.

Every tool, whatever its transport, exposes the same five operations so
callers cannot tell an in-process tool from an out-of-process one.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


def schema_bytes(schema: dict[str, Any]) -> bytes:
    """Serialize a JSON Schema deterministically."""
    return json.dumps(schema, sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass
class ToolResult:
    """Result of a tool execution.

    `structured` carries the typed output (or structured error) on the
    in-process path only; it is never sent across the plugin boundary.
    """

    content: str
    is_error: bool = False
    structured: dict[str, Any] | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire envelope.

        Returns:
            Dictionary with content and is_error.
        """
        return {"content": self.content, "is_error": self.is_error}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolResult:
        """Deserialize from the wire envelope."""
        return cls(content=str(data.get("content", "")), is_error=bool(data.get("is_error")))


@dataclass(frozen=True)
class ToolDescriptor:
    """Immutable description of a tool."""

    name: str
    description: str
    schema: bytes
    requires_approval: bool = False
    title: str = ""

    @property
    def input_schema(self) -> dict[str, Any]:
        return json.loads(self.schema)

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP tool format.

        Returns:
            Dictionary in MCP tools/list format.
        """
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "annotations": {"requiresApproval": self.requires_approval},
        }
        if self.title:
            data["title"] = self.title
        return data


class Tool(ABC):
    """Abstract base class for every tool.

    Rules:
    - execute() reports domain failures through ToolResult.is_error and
      never raises for them.
    - execute() must be safe to call concurrently; per-call state lives in
      the ambient context, not on the tool.
    - schema() is pure and returns identical bytes on every call.
    """

    @abstractmethod
    def name(self) -> str:
        """Return the tool's unique, stable name."""
        pass

    @abstractmethod
    def description(self) -> str:
        """Return a human-readable description."""
        pass

    @abstractmethod
    def schema(self) -> bytes:
        """Return the JSON Schema of the tool's input."""
        pass

    @abstractmethod
    def requires_approval(self) -> bool:
        """Return True if the user must approve each execution."""
        pass

    @abstractmethod
    def execute(self, payload: Any) -> ToolResult:
        """Execute the tool.

        Args:
            payload: Raw JSON input (str, bytes or decoded mapping).

        Returns:
            ToolResult with content and error status.
        """
        pass

    def title(self) -> str:
        """Return a short display title (optional)."""
        return ""

    def descriptor(self) -> ToolDescriptor:
        """Snapshot the tool's descriptor."""
        return ToolDescriptor(
            name=self.name(),
            description=self.description(),
            schema=self.schema(),
            requires_approval=self.requires_approval(),
            title=self.title(),
        )

    def close(self) -> None:
        """Release resources held by the tool."""
        pass
