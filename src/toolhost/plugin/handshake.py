"""Plugin handshake.

The host and a plugin agree on a three-tuple before any call is made. The
magic cookie and the host's protocol version travel host -> plugin through
the environment; the full tuple travels plugin -> host as the first line the
plugin writes to stdout.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


PROTOCOL_VERSION_ENV = "TOOLHOST_PLUGIN_PROTOCOL_VERSION"


class HandshakeError(Exception):
    """Raised when a plugin fails the handshake."""

    pass


@dataclass(frozen=True)
class HandshakeConfig:
    """Handshake tuple shared by host and plugin."""

    protocol_version: int
    magic_cookie_key: str
    magic_cookie_value: str

    def cookie_env(self) -> dict[str, str]:
        """The magic cookie as an environment entry."""
        return {self.magic_cookie_key: self.magic_cookie_value}

    def spawn_env(self) -> dict[str, str]:
        """Environment entries the host passes to a spawned plugin."""
        return {**self.cookie_env(), PROTOCOL_VERSION_ENV: str(self.protocol_version)}


DEFAULT_HANDSHAKE = HandshakeConfig(
    protocol_version=1,
    magic_cookie_key="TOOLHOST_PLUGIN",
    magic_cookie_value="toolhost-plugin-v1",
)


@dataclass(frozen=True)
class HandshakeLine:
    """Parsed handshake announcement."""

    config: HandshakeConfig
    network: str
    address: str

    @property
    def host(self) -> str:
        return self.address.rsplit(":", 1)[0]

    @property
    def port(self) -> int:
        return int(self.address.rsplit(":", 1)[1])


def format_handshake(config: HandshakeConfig, host: str, port: int) -> str:
    """Format the line a plugin announces on stdout."""
    return json.dumps(
        {
            "protocol_version": config.protocol_version,
            "magic_cookie_key": config.magic_cookie_key,
            "magic_cookie_value": config.magic_cookie_value,
            "network": "tcp",
            "address": f"{host}:{port}",
        }
    )


def parse_handshake(raw: str) -> HandshakeLine:
    """Parse a handshake line.

    Raises:
        HandshakeError: If the line is not a well-formed announcement.
    """
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HandshakeError(f"Malformed handshake line: {raw!r}") from e

    if not isinstance(data, dict):
        raise HandshakeError("Handshake line must be a JSON object")

    try:
        config = HandshakeConfig(
            protocol_version=int(data["protocol_version"]),
            magic_cookie_key=str(data["magic_cookie_key"]),
            magic_cookie_value=str(data["magic_cookie_value"]),
        )
        network = str(data["network"])
        address = str(data["address"])
    except (KeyError, TypeError, ValueError) as e:
        raise HandshakeError(f"Incomplete handshake line: {e}") from e

    if network != "tcp" or ":" not in address:
        raise HandshakeError(f"Unsupported plugin address: {network} {address}")

    return HandshakeLine(config=config, network=network, address=address)


def verify_handshake(expected: HandshakeConfig, announced: HandshakeConfig) -> None:
    """Compare every field of the handshake tuple.

    Raises:
        HandshakeError: On the first mismatching field.
    """
    if announced.protocol_version != expected.protocol_version:
        raise HandshakeError(
            f"Incompatible protocol version: plugin {announced.protocol_version}, "
            f"host {expected.protocol_version}"
        )
    if announced.magic_cookie_key != expected.magic_cookie_key:
        raise HandshakeError("Magic cookie key mismatch")
    if announced.magic_cookie_value != expected.magic_cookie_value:
        raise HandshakeError("Magic cookie value mismatch")
