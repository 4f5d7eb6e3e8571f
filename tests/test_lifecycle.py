"""Tests for STDIO transport and MCP lifecycle management."""

import io
from unittest.mock import MagicMock

import pytest

from toolhost.protocol.lifecycle import (
    MCP_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    LifecycleManager,
    LifecycleState,
    ProtocolError,
)
from toolhost.protocol.transport import StdioTransport


class TestStdioTransport:
    """Tests for the STDIO transport layer."""

    def test_reads_stripped_line(self):
        """Should read one line with surrounding whitespace removed."""
        transport = StdioTransport(stdin=io.StringIO('  {"a": 1}  \n'), stdout=io.StringIO())

        assert transport.read_message() == '{"a": 1}'

    def test_skips_empty_lines(self):
        """Should skip blank lines between frames."""
        transport = StdioTransport(stdin=io.StringIO('\n\n{"ok": true}\n'), stdout=io.StringIO())

        assert transport.read_message() == '{"ok": true}'

    def test_returns_none_on_eof(self):
        """Should return None when stdin is exhausted."""
        transport = StdioTransport(stdin=io.StringIO(""), stdout=io.StringIO())

        assert transport.read_message() is None

    def test_returns_none_on_read_error(self):
        """Should treat a broken input stream as EOF."""
        stdin = MagicMock()
        stdin.readline.side_effect = OSError("Pipe broken")
        transport = StdioTransport(stdin=stdin, stdout=io.StringIO())

        assert transport.read_message() is None

    def test_writes_line(self):
        """Should write a frame followed by a newline."""
        stdout = io.StringIO()
        transport = StdioTransport(stdin=io.StringIO(), stdout=stdout)

        transport.write_message('{"result": {}}')

        assert stdout.getvalue() == '{"result": {}}\n'

    def test_run_pumps_until_eof(self):
        """Should write every non-None reply and stop at EOF."""
        stdout = io.StringIO()
        transport = StdioTransport(stdin=io.StringIO("one\ntwo\nthree\n"), stdout=stdout)

        seen = []

        def handle(message):
            seen.append(message)
            return None if message == "two" else message.upper()

        transport.run(handle)

        assert seen == ["one", "two", "three"]
        assert stdout.getvalue() == "ONE\nTHREE\n"


class TestLifecycleManager:
    """Tests for MCP lifecycle management."""

    def test_starts_uninitialized(self):
        """Should start in the uninitialized state."""
        manager = LifecycleManager()

        assert manager.state == LifecycleState.UNINITIALIZED
        assert not manager.is_ready

    def test_initialize_echoes_supported_version(self):
        """Should echo back a supported protocol version."""
        manager = LifecycleManager()
        requested = SUPPORTED_PROTOCOL_VERSIONS[-1]

        result = manager.handle_initialize({"protocolVersion": requested})

        assert result["protocolVersion"] == requested
        assert manager.protocol_version == requested
        assert manager.state == LifecycleState.INITIALIZING

    def test_initialize_offers_newest_for_unknown_version(self):
        """Should offer the newest version when the request is unsupported."""
        manager = LifecycleManager()

        result = manager.handle_initialize({"protocolVersion": "1999-01-01"})

        assert result["protocolVersion"] == MCP_PROTOCOL_VERSION

    def test_initialize_reports_server_info_and_capabilities(self):
        """Should report server info and a tools capability."""
        manager = LifecycleManager(server_info={"name": "test", "version": "9"})

        result = manager.handle_initialize(
            {"protocolVersion": MCP_PROTOCOL_VERSION, "clientInfo": {"name": "client"}}
        )

        assert result["serverInfo"] == {"name": "test", "version": "9"}
        assert "tools" in result["capabilities"]
        assert "instructions" not in result
        assert manager.client_info == {"name": "client"}

    def test_initialize_includes_instructions(self):
        """Should include instructions when configured."""
        manager = LifecycleManager(instructions="Select an organization first.")

        result = manager.handle_initialize({})

        assert result["instructions"] == "Select an organization first."

    def test_rejects_double_initialize(self):
        """Should reject a second initialize."""
        manager = LifecycleManager()
        manager.handle_initialize({})

        with pytest.raises(ProtocolError):
            manager.handle_initialize({})

    def test_initialized_makes_ready(self):
        """Should become ready after the initialized notification."""
        manager = LifecycleManager()
        manager.handle_initialize({})

        manager.handle_initialized()

        assert manager.is_ready
        manager.require_ready()

    def test_initialized_before_initialize_fails(self):
        """Should reject initialized before initialize."""
        with pytest.raises(ProtocolError):
            LifecycleManager().handle_initialized()

    def test_require_ready_fails_before_handshake(self):
        """Should refuse operations before the handshake completes."""
        manager = LifecycleManager()
        manager.handle_initialize({})

        with pytest.raises(ProtocolError, match="not ready"):
            manager.require_ready()

    def test_require_ready_fails_after_shutdown(self):
        """Should refuse operations after shutdown."""
        manager = LifecycleManager()
        manager.handle_initialize({})
        manager.handle_initialized()

        manager.handle_shutdown()

        with pytest.raises(ProtocolError, match="shutdown"):
            manager.require_ready()
