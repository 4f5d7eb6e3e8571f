"""Plugin-side entry point.

A plugin executable calls serve() with its tool. The process verifies the
magic cookie and protocol version it was spawned with, announces its
address, serves exactly one host connection and returns when the host
disconnects.
"""

from __future__ import annotations

import logging
import os
import socket
import sys

from toolhost.contract import Tool
from toolhost.plugin.handshake import (
    DEFAULT_HANDSHAKE,
    PROTOCOL_VERSION_ENV,
    HandshakeConfig,
    format_handshake,
)
from toolhost.plugin.rpc import ToolRPCServer

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"


def serve(tool: Tool, handshake: HandshakeConfig = DEFAULT_HANDSHAKE) -> None:
    """Serve a tool to the host that spawned this process.

    Args:
        tool: Concrete tool implementation.
        handshake: Handshake tuple this plugin was built against.

    Raises:
        SystemExit: With status 1 if the magic cookie is missing or wrong, or
            the host speaks another protocol version.
    """
    if os.environ.get(handshake.magic_cookie_key) != handshake.magic_cookie_value:
        sys.stderr.write(
            "This binary is a plugin. These are not meant to be executed directly.\n"
            "Please execute the program that consumes these plugins, which will\n"
            "load any plugins automatically.\n"
        )
        sys.stderr.flush()
        raise SystemExit(1)

    host_version = os.environ.get(PROTOCOL_VERSION_ENV)
    if host_version is not None and host_version != str(handshake.protocol_version):
        sys.stderr.write(
            f"Incompatible protocol version: host {host_version}, "
            f"plugin {handshake.protocol_version}\n"
        )
        sys.stderr.flush()
        raise SystemExit(1)

    with socket.create_server((LOOPBACK, 0)) as listener:
        port = listener.getsockname()[1]

        channel = sys.stdout
        channel.write(format_handshake(handshake, LOOPBACK, port) + "\n")
        channel.flush()
        # Nothing but the handshake line may reach the host on stdout
        sys.stdout = sys.stderr

        conn, peer = listener.accept()

    logger.debug("Host connected from %s:%s", *peer[:2])
    try:
        with conn:
            ToolRPCServer(tool).serve_connection(conn)
    finally:
        tool.close()
