"""Session-scoped tool context.

A ToolContext is created once per authenticated session and shared by every
tool invocation of that session. The selected organization and the
persistence callback are the only mutable state; both are lock-protected.

The context is made available to code running inside a tool call through
an ambient binding (contextvars), so concurrent calls never share mutable
state through module globals.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from typing import TYPE_CHECKING

from toolhost.errors import NO_ORG_SELECTED, OperationCancelled

if TYPE_CHECKING:
    from toolhost.service import ServiceContext
    from toolhost.store import Organization, Store, User

# Called with (user_id, org_id) after an organization is selected
OrgSelectionCallback = Callable[[str, str], None]


class AuthMode(Enum):
    """How the session was authenticated."""

    JWT = "jwt"  # bearer token, user-scoped


class ToolContext:
    """Per-session context carried into every tool call.

    Immutable after construction: service, user, request/session IDs, user
    agent and auth mode. Mutable under the lock: selected organization and
    the selection callback.
    """

    def __init__(
        self,
        service: ServiceContext,
        user: User,
        request_id: str = "",
        user_agent: str = "",
        session_id: str = "",
    ) -> None:
        """Create a user-scoped context with no organization selected.

        Args:
            service: Shared service container.
            user: Authenticated user.
            request_id: Request identifier for tracing.
            user_agent: Client user agent string.
            session_id: MCP session identifier.

        Raises:
            ValueError: If no user (or a user without ID) is given.
        """
        if user is None or not user.id:
            raise ValueError("ToolContext requires an authenticated user")

        self._service = service
        self._user = user
        self._request_id = request_id
        self._user_agent = user_agent
        self._session_id = session_id
        self._auth_mode = AuthMode.JWT

        self._lock = threading.Lock()
        self._selected_org: Organization | None = None
        self._on_org_select: OrgSelectionCallback | None = None

    def set_org_selection_callback(self, callback: OrgSelectionCallback | None) -> None:
        """Set the callback used to persist organization selection."""
        with self._lock:
            self._on_org_select = callback

    # -------------------------------------------------------------------------
    # Organization selection
    # -------------------------------------------------------------------------

    def select_org(self, org: Organization) -> None:
        """Select an organization and notify the persistence callback.

        The callback runs after the lock is released, so it may call back
        into this context.
        """
        if not org.id:
            raise ValueError("Cannot select an organization without an ID")

        with self._lock:
            self._selected_org = org
            callback = self._on_org_select
            user_id = self._user.id

        if callback is not None:
            callback(user_id, org.id)

    def restore_org(self, org: Organization) -> None:
        """Set the organization without invoking the callback.

        Used when re-hydrating a previously persisted selection.
        """
        with self._lock:
            self._selected_org = org

    def clear_org(self) -> None:
        """Clear the selected organization."""
        with self._lock:
            self._selected_org = None

    def _current_org(self) -> Organization | None:
        with self._lock:
            return self._selected_org

    @property
    def has_org(self) -> bool:
        """True if an organization is selected."""
        return self._current_org() is not None

    @property
    def org_id(self) -> str:
        """Selected organization ID, or empty string."""
        org = self._current_org()
        return org.id if org is not None else ""

    @property
    def org(self) -> Organization | None:
        """Selected organization, or None."""
        return self._current_org()

    def require_org(self) -> None:
        """Guard for organization-scoped handlers.

        Raises:
            ToolError: The NO_ORG_SELECTED sentinel if nothing is selected.
        """
        if not self.has_org:
            # Shared instance: start from a fresh traceback on every raise
            raise NO_ORG_SELECTED.with_traceback(None)

    # -------------------------------------------------------------------------
    # Read accessors
    # -------------------------------------------------------------------------

    @property
    def user(self) -> User:
        return self._user

    @property
    def user_id(self) -> str:
        return self._user.id

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @property
    def auth_mode(self) -> AuthMode:
        return self._auth_mode

    @property
    def db(self) -> Store:
        """Store shared by all sessions."""
        return self._service.db

    @property
    def service(self) -> ServiceContext:
        return self._service


# -----------------------------------------------------------------------------
# Ambient binding
# -----------------------------------------------------------------------------

_tool_context_var: ContextVar[ToolContext | None] = ContextVar(
    "_toolhost_tool_context", default=None
)


@contextmanager
def with_tool_context(tool_ctx: ToolContext) -> Iterator[ToolContext]:
    """Bind a ToolContext for the duration of the block."""
    token = _tool_context_var.set(tool_ctx)
    try:
        yield tool_ctx
    finally:
        _tool_context_var.reset(token)


def tool_context_from_context() -> ToolContext | None:
    """Return the ToolContext bound to the current call, if any."""
    return _tool_context_var.get()


# -----------------------------------------------------------------------------
# Cancellation
# -----------------------------------------------------------------------------


class CallScope:
    """Cancellation and deadline for one tool invocation.

    Example:
        with call_scope(timeout=5.0) as scope:
            registry.call("org", payload)
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize the scope.

        Args:
            timeout: Seconds until the scope expires, or None for no deadline.
        """
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        """Cancel the scope."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None if there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if the scope is cancelled or expired."""
        if self._cancelled.is_set():
            raise OperationCancelled("operation cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise OperationCancelled("deadline exceeded")


_BACKGROUND = CallScope()
_call_scope_var: ContextVar[CallScope | None] = ContextVar("_toolhost_call_scope", default=None)


@contextmanager
def call_scope(
    timeout: float | None = None, scope: CallScope | None = None
) -> Iterator[CallScope]:
    """Bind a cancellable scope for the duration of the block."""
    scope = scope or CallScope(timeout)
    token = _call_scope_var.set(scope)
    try:
        yield scope
    finally:
        _call_scope_var.reset(token)


def current_scope() -> CallScope:
    """Return the bound scope, or a background scope that never expires."""
    return _call_scope_var.get() or _BACKGROUND


def check_cancelled() -> None:
    """Raise OperationCancelled if the current scope is done."""
    current_scope().raise_if_cancelled()
