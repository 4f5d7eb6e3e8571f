"""Direct-call registry.

Maps tool names to closures taking a raw JSON payload, so in-process tools
can be invoked without going through MCP while sharing the exact payload
contract. Populated at startup; read-only afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from toolhost.errors import not_found_error

logger = logging.getLogger(__name__)

# Accepts a raw JSON payload (str, bytes or already-decoded dict)
ToolCallable = Callable[[Any], Any]


class DuplicateToolError(Exception):
    """Raised when a tool name is registered twice."""

    pass


class ToolRegistry:
    """Name-keyed table of direct-call closures."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, ToolCallable] = {}

    def register(self, name: str, fn: ToolCallable) -> None:
        """Bind a tool name to its closure.

        Args:
            name: Unique tool name.
            fn: Closure invoked with the raw payload.

        Raises:
            DuplicateToolError: If the name is already bound.
        """
        if name in self._tools:
            raise DuplicateToolError(f"Tool already registered: {name}")
        self._tools[name] = fn
        logger.debug("Registered direct-call tool %s", name)

    def call(self, name: str, payload: Any) -> Any:
        """Invoke a tool by name.

        Args:
            name: Tool name.
            payload: Raw JSON payload.

        Returns:
            The tool's typed output.

        Raises:
            ToolError: not_found if the tool is unknown; any error the tool
                raises is propagated verbatim.
        """
        fn = self._tools.get(name)
        if fn is None:
            raise not_found_error(f"unknown tool: {name}")
        return fn(payload)

    def names(self) -> list[str]:
        """Return registered tool names, sorted."""
        return sorted(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
