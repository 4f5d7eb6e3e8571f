"""STDIO transport for the MCP server.

One JSON-RPC frame per line. Stdout carries protocol frames only;
diagnostics go through logging (configured to stderr).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import TextIO

logger = logging.getLogger(__name__)


class StdioTransport:
    """Line-delimited transport over a pair of text streams."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Initialize the transport.

        Args:
            stdin: Input stream (defaults to sys.stdin).
            stdout: Output stream (defaults to sys.stdout).
        """
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    def read_message(self) -> str | None:
        """Read the next non-empty line.

        Returns:
            Message string (stripped), or None on EOF.
        """
        while True:
            try:
                line = self._stdin.readline()
            except (OSError, ValueError) as e:
                logger.debug("Input stream closed: %s", e)
                return None

            if not line:
                return None

            line = line.strip()
            if line:
                return line

    def write_message(self, message: str) -> None:
        """Write one frame and flush."""
        self._stdout.write(message + "\n")
        self._stdout.flush()

    def run(self, handle: Callable[[str], str | None]) -> None:
        """Pump messages through a handler until EOF.

        Args:
            handle: Called with each frame; a non-None return is written back.
        """
        while True:
            message = self.read_message()
            if message is None:
                logger.info("EOF received, shutting down")
                return

            response = handle(message)
            if response is not None:
                self.write_message(response)
