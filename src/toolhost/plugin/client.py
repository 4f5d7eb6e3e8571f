"""Host-side plugin process management."""

from __future__ import annotations

import logging
import os
import socket
import subprocess
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

from toolhost.plugin.handshake import (
    DEFAULT_HANDSHAKE,
    HandshakeConfig,
    HandshakeError,
    parse_handshake,
    verify_handshake,
)
from toolhost.plugin.rpc import ToolRPCClient

logger = logging.getLogger(__name__)

# Seconds to wait for a plugin to exit after the host disconnects
EXIT_GRACE_PERIOD = 5.0


class PluginClient:
    """Spawns a plugin, verifies its handshake and connects to it.

    Example:
        with PluginClient([sys.executable, "-m", "toolhost.extensions.example"]) as client:
            tool = client.start()
            result = tool.execute('{"format": "unix"}')
    """

    def __init__(
        self,
        command: Sequence[str],
        handshake: HandshakeConfig = DEFAULT_HANDSHAKE,
        start_timeout: float = 10.0,
        rpc_timeout: float | None = None,
        env: dict[str, str] | None = None,
        cwd: Path | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            command: Executable and arguments of the plugin.
            handshake: Handshake tuple the plugin must announce.
            start_timeout: Seconds to wait for the handshake line.
            rpc_timeout: Per-call deadline on the connection, or None.
            env: Extra environment variables for the plugin.
            cwd: Working directory for the plugin.
        """
        self._command = list(command)
        self._handshake = handshake
        self._start_timeout = start_timeout
        self._rpc_timeout = rpc_timeout
        self._env = env or {}
        self._cwd = cwd
        self._process: subprocess.Popen[str] | None = None
        self._tool: ToolRPCClient | None = None

    @property
    def exit_code(self) -> int | None:
        """Exit status of the plugin process, or None while it runs."""
        if self._process is None:
            return None
        return self._process.poll()

    @property
    def tool(self) -> ToolRPCClient | None:
        return self._tool

    def start(self) -> ToolRPCClient:
        """Spawn the plugin and attach to it.

        Returns:
            Connected tool proxy.

        Raises:
            HandshakeError: If the plugin exits, times out, or announces a
                mismatching handshake. The process is killed.
        """
        if self._tool is not None:
            return self._tool

        env = dict(os.environ)
        env.update(self._env)
        env.update(self._handshake.spawn_env())

        logger.debug("Starting plugin: %s", " ".join(self._command))
        self._process = subprocess.Popen(
            self._command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
            cwd=self._cwd,
        )
        assert self._process.stderr is not None
        threading.Thread(
            target=_forward_stderr,
            args=(self._process.stderr, self._command[-1]),
            daemon=True,
        ).start()

        try:
            line = self._read_handshake_line()
            announced = parse_handshake(line)
            verify_handshake(self._handshake, announced.config)
            conn = socket.create_connection(
                (announced.host, announced.port), timeout=self._start_timeout
            )
        except HandshakeError:
            self.kill()
            raise
        except OSError as e:
            self.kill()
            raise HandshakeError(f"Cannot connect to plugin: {e}") from e

        self._tool = ToolRPCClient(conn, timeout=self._rpc_timeout)
        return self._tool

    def _read_handshake_line(self) -> str:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        lines: list[str] = []

        reader = threading.Thread(target=lambda: lines.append(stdout.readline()), daemon=True)
        reader.start()
        reader.join(self._start_timeout)

        if reader.is_alive():
            raise HandshakeError(
                f"Timed out after {self._start_timeout}s waiting for plugin handshake"
            )

        line = lines[0].strip() if lines else ""
        if not line:
            try:
                code = self._process.wait(timeout=EXIT_GRACE_PERIOD)
            except subprocess.TimeoutExpired:
                code = None
            raise HandshakeError(f"Plugin exited before handshake (exit code {code})")
        return line

    def kill(self) -> None:
        """Kill the plugin process."""
        if self._tool is not None:
            self._tool.close()
            self._tool = None
        if self._process is None:
            return
        if self._process.poll() is None:
            self._process.kill()
        self._process.wait()
        self._close_pipes()

    def close(self) -> None:
        """Disconnect and wait for the plugin to exit, killing it if needed."""
        if self._tool is not None:
            self._tool.close()
            self._tool = None
        if self._process is None:
            return
        try:
            self._process.wait(timeout=EXIT_GRACE_PERIOD)
        except subprocess.TimeoutExpired:
            logger.warning("Plugin did not exit after disconnect, killing it")
            self._process.kill()
            self._process.wait()
        self._close_pipes()

    def _close_pipes(self) -> None:
        assert self._process is not None
        if self._process.stdout is not None:
            self._process.stdout.close()

    def __enter__(self) -> PluginClient:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()


def _forward_stderr(stream: IO[str], label: str) -> None:
    """Forward plugin stderr to host diagnostics."""
    with stream:
        for line in stream:
            line = line.rstrip()
            if line:
                logger.info("[plugin %s] %s", label, line)
