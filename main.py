#!/usr/bin/env python3
"""Tool host - main entry point.

Serves one authenticated user's session over STDIO: the MCP client writes
JSON-RPC frames to stdin and reads responses from stdout. Logs go to
stderr.

================================================================================
DEVELOPER GUIDE: Adding Tools
================================================================================

In-process tools
----------------
Declare a ResourceTool in src/toolhost/tools/ (see org.py): an input
dataclass, an action table and one handler per (resource, action). Add it
to ALL_TOOLS in src/toolhost/tools/__init__.py. The same declaration is
registered with the MCP server and the direct-call registry.

Plugin tools
------------
Implement toolhost.contract.Tool, call toolhost.plugin.serve(tool) from
the module's main(), and drop a manifest into the plugins directory:

    # plugins/mytool/manifest.yaml
    module: mypackage.mytool
    env:
      MYTOOL_ENDPOINT: https://example.internal

The host starts the plugin, verifies its handshake and lists it next to
the in-process tools. Plugin tool names must be unique and may not
shadow an in-process tool. With `plugins.watch: true` the host loads,
reloads and unloads plugins as their directories change. Plugins that require approval are only executed
after the approver allows the call.

================================================================================
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from pathlib import Path

from toolhost.audit import AuditLogger
from toolhost.config import ConfigLoadError, HostConfig, load_config
from toolhost.errors import ToolError
from toolhost.plugin import PluginLoader
from toolhost.protocol import StdioTransport
from toolhost.service import ServiceContext
from toolhost.session import SessionManager
from toolhost.tools import ALL_TOOLS

logger = logging.getLogger("toolhost")


def _deny_all(name: str, payload: object) -> bool:
    """STDIO sessions have no interactive approver."""
    logger.warning("Denied call to %s: no approver configured", name)
    return False


def main() -> int:
    """Run the tool host.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        description="Agent tool host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to host configuration YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--user-id",
        "-u",
        required=True,
        help="Authenticated user the session runs as",
    )
    parser.add_argument(
        "--user-email",
        default="",
        help="Create the user with this email if it does not exist",
    )
    parser.add_argument(
        "--session-id",
        "-s",
        default=None,
        help="Resume an existing session (restores its selected organization)",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version="toolhost 0.1.0",
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config) if args.config else HostConfig()
    except ConfigLoadError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        stream=sys.stderr,
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    audit = AuditLogger(Path(config.audit_log_file)) if config.audit_log_file else None
    service = ServiceContext(config=config)

    if args.user_email and service.db.get_user(args.user_id) is None:
        try:
            service.db.create_user(args.user_email, user_id=args.user_id)
        except sqlite3.IntegrityError as e:
            print(f"Error creating user: {e}", file=sys.stderr)
            service.close()
            return 1

    loader = None
    if config.plugins_directory:
        loader = PluginLoader(
            Path(config.plugins_directory),
            handshake=config.handshake,
            start_timeout=config.plugin_start_timeout,
            rpc_timeout=config.rpc_timeout,
            audit=audit,
            env={"TOOLHOST_HTTP_TIMEOUT": str(config.http_timeout)},
            reserved_names=[tool.name for tool in ALL_TOOLS],
        )
        plugin_tools = loader.discover_plugins()
        logger.info("Loaded %d plugin tool(s)", len(plugin_tools))

    manager = SessionManager(
        service,
        plugin_tools=loader.get_all_tools if loader is not None else (),
        approver=_deny_all,
        audit=audit,
    )
    if loader is not None:
        loader.add_listener(manager.sync_plugin_tools)
        if config.plugins_watch:
            loader.watch()

    try:
        session = manager.open_session(args.user_id, session_id=args.session_id)
    except ToolError as e:
        print(f"Error opening session: {e}", file=sys.stderr)
        if loader is not None:
            loader.close()
        service.close()
        return 1

    logger.info("Tool host started (session %s)", session.session_id)

    transport = StdioTransport()
    exit_code = 0
    try:
        transport.run(session.handle_message)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        exit_code = 130  # Standard exit code for SIGINT
    except Exception:
        logger.exception("Fatal error")
        exit_code = 1
    finally:
        manager.close()
        manager.cleanup()
        if loader is not None:
            loader.close()
        service.close()
        if audit is not None:
            audit.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
