"""Session management.

A session binds one pre-authenticated user to a ToolContext, an MCP server
and a direct-call registry carrying every in-process and plugin tool.
Organization selection is persisted per session and re-hydrated when the
user comes back.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from toolhost.adapters import Approver, register_tool
from toolhost.audit import AuditLogger
from toolhost.context import OrgSelectionCallback, ToolContext
from toolhost.contract import Tool
from toolhost.errors import unauthorized_error
from toolhost.registry import DuplicateToolError, ToolRegistry
from toolhost.server import MCPServer
from toolhost.service import ServiceContext
from toolhost.store import SessionRecord
from toolhost.tools import register_all_tools

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "Use org.list to see your organizations and org.select to choose one "
    "before calling organization-scoped actions."
)


@dataclass
class Session:
    """An open session."""

    session_id: str
    tool_ctx: ToolContext
    server: MCPServer
    registry: ToolRegistry
    plugin_tools: dict[str, Tool] = field(default_factory=dict)

    def handle_message(self, raw_message: str) -> str | None:
        """Handle an MCP JSON-RPC frame."""
        return self.server.handle_message(raw_message)

    def call(self, name: str, payload: Any) -> Any:
        """Invoke an in-process tool directly."""
        return self.registry.call(name, payload)


class SessionManager:
    """Opens and closes sessions over a shared service container."""

    def __init__(
        self,
        service: ServiceContext,
        plugin_tools: Sequence[Tool] | Callable[[], Sequence[Tool]] = (),
        approver: Approver | None = None,
        audit: AuditLogger | None = None,
        server_name: str = "toolhost",
        server_version: str = "0.1.0",
    ) -> None:
        """Initialize the manager.

        Args:
            service: Shared service container.
            plugin_tools: Contract tools registered with every session, or a
                callable returning the current ones (e.g. a hot-reloading
                loader's get_all_tools), consulted as each session opens.
            approver: Consulted before tools that require approval.
            audit: Audit log for tool calls.
            server_name: Name reported by each session's MCP server.
            server_version: Version reported by each session's MCP server.
        """
        self._service = service
        self._plugin_tools = plugin_tools if callable(plugin_tools) else list(plugin_tools)
        self._approver = approver
        self._audit = audit
        self._server_name = server_name
        self._server_version = server_version
        self._lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def open_session(
        self,
        user_id: str,
        session_id: str | None = None,
        request_id: str = "",
        user_agent: str = "",
    ) -> Session:
        """Open a session for an authenticated user.

        Args:
            user_id: Authenticated user.
            session_id: Existing session to resume, or None for a new one.
            request_id: Request identifier for tracing.
            user_agent: Client user agent string.

        Returns:
            The open session.

        Raises:
            ToolError: unauthorized if the user does not exist.
        """
        db = self._service.db
        user = db.get_user(user_id)
        if user is None:
            raise unauthorized_error("not authenticated")

        session_id = session_id or uuid.uuid4().hex
        tool_ctx = ToolContext(
            self._service,
            user,
            request_id=request_id,
            user_agent=user_agent,
            session_id=session_id,
        )
        tool_ctx.set_org_selection_callback(self._persist_selection(session_id))
        self._restore_selection(tool_ctx)

        server = MCPServer(
            name=self._server_name,
            version=self._server_version,
            instructions=INSTRUCTIONS,
            audit=self._audit,
            session_id=session_id,
            user_id=user.id,
        )
        registry = ToolRegistry()
        register_all_tools(server, registry, tool_ctx)

        session = Session(session_id, tool_ctx, server, registry)
        with self._lock:
            self._sessions[session_id] = session
        self._sync_session(session, self._current_plugin_tools())

        logger.info(
            "Opened session %s for user %s (org: %s)",
            session_id,
            user.id,
            tool_ctx.org_id or "none",
        )
        return session

    def _current_plugin_tools(self) -> Sequence[Tool]:
        if callable(self._plugin_tools):
            return self._plugin_tools()
        return self._plugin_tools

    def sync_plugin_tools(self) -> None:
        """Bring every open session's plugin tools in line with the source.

        Called when plugins are loaded or unloaded at runtime. Tools that are
        gone are removed, new ones are registered, and a reloaded plugin
        replaces its previous proxy.
        """
        tools = self._current_plugin_tools()
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            self._sync_session(session, tools)

    def _sync_session(self, session: Session, tools: Sequence[Tool]) -> None:
        with self._sync_lock:
            current = {id(tool) for tool in tools}
            for name, tool in list(session.plugin_tools.items()):
                if id(tool) not in current:
                    session.server.remove_tool(name)
                    del session.plugin_tools[name]

            attached = {id(tool) for tool in session.plugin_tools.values()}
            for tool in tools:
                if id(tool) in attached:
                    continue
                try:
                    descriptor = register_tool(session.server, tool, self._approver)
                except DuplicateToolError as e:
                    logger.error(
                        "Skipping plugin tool for session %s: %s", session.session_id, e
                    )
                    continue
                session.plugin_tools[descriptor.name] = tool

    def _persist_selection(self, session_id: str) -> OrgSelectionCallback:
        db = self._service.db

        def persist(user_id: str, org_id: str) -> None:
            db.upsert_session(session_id, user_id, org_id)

        return persist

    def _restore_selection(self, tool_ctx: ToolContext) -> None:
        """Re-hydrate the last selection, if the user is still a member."""
        db = self._service.db
        record: SessionRecord | None = db.get_session(tool_ctx.session_id)
        if record is None or record.user_id != tool_ctx.user_id or not record.org_id:
            record = db.get_latest_session_for_user(tool_ctx.user_id)
        if record is None or not record.org_id:
            return

        org = db.get_organization(record.org_id)
        if org is None or db.get_member(org.id, tool_ctx.user_id) is None:
            logger.debug(
                "Not restoring organization %s for user %s", record.org_id, tool_ctx.user_id
            )
            return
        tool_ctx.restore_org(org)

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def close_session(self, session_id: str, forget: bool = False) -> None:
        """Close a session.

        Args:
            session_id: Session to close.
            forget: Also delete the persisted selection.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.server.close()
        if forget:
            self._service.db.delete_session(session_id)
        logger.info("Closed session %s", session_id)

    def cleanup(self, max_age_seconds: int | None = None) -> None:
        """Purge persisted sessions that have gone stale."""
        if max_age_seconds is None:
            self._service.db.cleanup_sessions()
        else:
            self._service.db.cleanup_sessions(max_age_seconds)

    def close(self) -> None:
        """Close every open session."""
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.close_session(session_id)
