"""Agent tool host.

Hosts tools for AI agents behind three surfaces: an MCP server, an
in-process direct-call registry and out-of-process plugins.
"""

__version__ = "0.1.0"
