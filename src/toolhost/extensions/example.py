"""Example plugin: returns the current time and an optional message.

Run by the host as `python -m toolhost.extensions.example`.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from toolhost.contract import Tool, ToolResult, schema_bytes
from toolhost.errors import ToolError
from toolhost.plugin import serve
from toolhost.validation import decode_input, input_properties

TIME_FORMATS = ("short", "long", "unix")


@dataclass
class ExampleInput:
    message: str = field(
        default="", metadata={"description": "Optional message to include in the response"}
    )
    format: str = field(
        default="short",
        metadata={"description": "Time format: 'short', 'long', or 'unix'", "enum": TIME_FORMATS},
    )
    fail: bool = field(
        default=False,
        metadata={"description": "Return the message as an error result instead"},
    )


class ExampleTool(Tool):
    """Reports the current time."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now().astimezone())

    def name(self) -> str:
        return "example"

    def description(self) -> str:
        return "An example tool plugin that returns the current time and optional message"

    def schema(self) -> bytes:
        return schema_bytes({"type": "object", "properties": input_properties(ExampleInput)})

    def requires_approval(self) -> bool:
        return False

    def execute(self, payload: Any) -> ToolResult:
        try:
            params = decode_input(ExampleInput, payload)
        except ToolError as err:
            return ToolResult(f"Failed to parse input: {err.message}", is_error=True)

        if params.fail:
            return ToolResult(params.message or "failure requested", is_error=True)

        now = self._clock()
        if params.format == "long":
            time_str = now.strftime("%a, %d %b %Y %H:%M:%S %Z")
        elif params.format == "unix":
            time_str = str(int(now.timestamp()))
        else:
            time_str = now.strftime("%H:%M:%S")

        response = f"Current time: {time_str}"
        if params.message:
            response += f"\nMessage: {params.message}"
        return ToolResult(response)


def main() -> None:
    logging.basicConfig(stream=sys.stderr, level=logging.WARNING)
    serve(ExampleTool())


if __name__ == "__main__":
    main()
