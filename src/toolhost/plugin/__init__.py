"""Out-of-process plugin tools: handshake, RPC, process management."""

from toolhost.plugin.client import PluginClient
from toolhost.plugin.handshake import DEFAULT_HANDSHAKE, HandshakeConfig, HandshakeError
from toolhost.plugin.loader import PluginLoader, PluginLoadError
from toolhost.plugin.rpc import PluginTransportError, ToolRPCClient, ToolRPCServer
from toolhost.plugin.serve import serve

__all__ = [
    "DEFAULT_HANDSHAKE",
    "HandshakeConfig",
    "HandshakeError",
    "PluginClient",
    "PluginLoadError",
    "PluginLoader",
    "PluginTransportError",
    "ToolRPCClient",
    "ToolRPCServer",
    "serve",
]
