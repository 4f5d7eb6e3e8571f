"""Shared fixtures: an in-memory store seeded with users and organizations.

Layout:
- user "u1" is a member of orgs A (slug "a") and B (slug "b")
- user "u2" owns org C (slug "c"); u1 is not a member
"""

from __future__ import annotations

import pytest

from toolhost.context import ToolContext
from toolhost.registry import ToolRegistry
from toolhost.server import MCPServer
from toolhost.service import ServiceContext
from toolhost.store import Store
from toolhost.tools import register_all_tools


@pytest.fixture
def store():
    """Fresh in-memory store."""
    s = Store()
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def service(store):
    return ServiceContext(store=store)


@pytest.fixture
def seed(store):
    """Seed users and organizations; returns the created records by key."""
    user = store.create_user("user@example.com", name="User One", user_id="u1")
    other = store.create_user("other@example.com", name="User Two", user_id="u2")

    org_a = store.create_organization("Org A", "a", owner_id=user.id)
    store.add_member(org_a.id, user.id, role="owner")
    org_b = store.create_organization("Org B", "b", owner_id=other.id)
    store.add_member(org_b.id, other.id, role="owner")
    store.add_member(org_b.id, user.id)
    org_c = store.create_organization("Org C", "c", owner_id=other.id)
    store.add_member(org_c.id, other.id, role="owner")

    return {"user": user, "other": other, "a": org_a, "b": org_b, "c": org_c}


@pytest.fixture
def tool_ctx(service, seed):
    """Context of user u1 with no organization selected."""
    return ToolContext(service, seed["user"], request_id="req-1", session_id="sess-1")


@pytest.fixture
def surfaces(tool_ctx):
    """MCP server and direct-call registry carrying every in-process tool."""
    server = MCPServer()
    registry = ToolRegistry()
    register_all_tools(server, registry, tool_ctx)
    return server, registry


@pytest.fixture
def registry(surfaces):
    return surfaces[1]


@pytest.fixture
def server(surfaces):
    return surfaces[0]
