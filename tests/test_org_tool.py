"""Tests for the org tool, through both the registry and the MCP server."""

import json
import sqlite3
from unittest.mock import MagicMock

import pytest

from toolhost.errors import NO_ORG_SELECTED, ToolError
from toolhost.store import SlugTakenError
from toolhost.tools.org import OrgListOutput, OrgOutput, OrgSelectOutput, slugify


def call_mcp(server, arguments):
    """Call the org tool over the MCP surface (lifecycle bypassed)."""
    return server.call_tool("org", arguments).to_dict()


class TestSlugify:
    """Tests for slug derivation."""

    @pytest.mark.parametrize(
        "name,slug",
        [
            ("Acme Inc", "acme-inc"),
            ("  Hello   World  ", "hello-world"),
            ("Café & Co.", "caf-co"),
            ("--Edge--Case--", "edge-case"),
            ("!!!", ""),
        ],
    )
    def test_slugify(self, name, slug):
        """Should lowercase, dash-join and strip unsupported characters."""
        assert slugify(name) == slug


class TestOrgList:
    """Tests for org.list."""

    def test_lists_member_orgs_with_selection(self, registry, tool_ctx, seed):
        """Should list only the user's orgs and flag the selected one."""
        tool_ctx.restore_org(seed["b"])

        output = registry.call("org", {"resource": "org", "action": "list"})

        assert isinstance(output, OrgListOutput)
        data = output.to_dict()
        assert data["total"] == 2
        assert [o["slug"] for o in data["organizations"]] == ["a", "b"]
        assert [o["selected"] for o in data["organizations"]] == [False, True]


class TestOrgSelect:
    """Tests for org.select."""

    def test_select_by_slug(self, registry, tool_ctx, seed):
        """Should select the org and persist it exactly once."""
        calls = []
        tool_ctx.set_org_selection_callback(lambda user_id, org_id: calls.append((user_id, org_id)))

        output = registry.call("org", '{"resource": "org", "action": "select", "slug": "b"}')

        assert isinstance(output, OrgSelectOutput)
        assert output.id == seed["b"].id
        assert tool_ctx.has_org
        assert tool_ctx.org_id == seed["b"].id
        assert calls == [("u1", seed["b"].id)]

    def test_select_by_id(self, registry, tool_ctx, seed):
        """Should select by organization ID."""
        registry.call("org", {"resource": "org", "action": "select", "id": seed["a"].id})

        assert tool_ctx.org_id == seed["a"].id

    def test_select_non_member_is_unauthorized(self, registry, tool_ctx, seed):
        """Should refuse an org the user does not belong to and keep the selection."""
        tool_ctx.restore_org(seed["a"])
        calls = []
        tool_ctx.set_org_selection_callback(lambda *args: calls.append(args))

        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": "select", "slug": "c"})

        assert exc_info.value.code == "unauthorized"
        assert tool_ctx.org_id == seed["a"].id
        assert calls == []

    def test_select_requires_id_or_slug(self, registry):
        """Should require one of id or slug."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": "select"})

        assert exc_info.value.code == "validation"
        assert exc_info.value.field == "id"

    @pytest.mark.parametrize("key", ["id", "slug"])
    def test_select_unknown_org(self, registry, key):
        """Should report an unknown org as not found."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": "select", key: "missing"})

        assert exc_info.value.code == "not_found"
        assert "missing" in exc_info.value.message


class TestOrgScopedActions:
    """Tests for actions that need a selected organization."""

    @pytest.mark.parametrize("action", ["get", "update"])
    def test_requires_selected_org(self, registry, store, action):
        """Should fail with NO_ORG_SELECTED before the handler touches the store."""
        update = MagicMock()
        store.update_organization = update

        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": action, "name": "x"})

        assert exc_info.value is NO_ORG_SELECTED
        update.assert_not_called()

    def test_get_returns_selected_org(self, registry, tool_ctx, seed):
        """Should return the selected org with its owner."""
        tool_ctx.restore_org(seed["a"])

        data = registry.call("org", {"resource": "org", "action": "get"}).to_dict()

        assert data == {"id": seed["a"].id, "name": "Org A", "slug": "a", "owner_id": "u1"}

    def test_update_changes_name_and_logo(self, registry, tool_ctx, store, seed):
        """Should update the store and the session's copy."""
        tool_ctx.restore_org(seed["a"])

        output = registry.call(
            "org",
            {"resource": "org", "action": "update", "name": "Renamed", "logo_url": "https://l"},
        )

        assert isinstance(output, OrgOutput)
        assert output.to_dict()["updated"] is True
        assert store.get_organization(seed["a"].id).name == "Renamed"
        assert tool_ctx.org.name == "Renamed"
        assert tool_ctx.org.logo_url == "https://l"

    def test_update_keeps_omitted_fields(self, registry, tool_ctx, store, seed):
        """Should leave fields that were not given unchanged."""
        tool_ctx.restore_org(seed["a"])

        registry.call("org", {"resource": "org", "action": "update", "logo_url": "https://l"})

        assert store.get_organization(seed["a"].id).name == "Org A"


class TestOrgCreate:
    """Tests for org.create."""

    def test_creates_and_selects(self, registry, tool_ctx, store):
        """Should create the org, make the user owner and select it."""
        calls = []
        tool_ctx.set_org_selection_callback(lambda user_id, org_id: calls.append(org_id))

        output = registry.call("org", {"resource": "org", "action": "create", "name": "New Co"})

        data = output.to_dict()
        assert data["slug"] == "new-co"
        assert data["created"] is True
        assert store.get_member(data["id"], "u1").role == "owner"
        assert tool_ctx.org_id == data["id"]
        assert calls == [data["id"]]

    def test_rejects_taken_slug(self, registry):
        """Should report a slug collision as a conflict."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": "create", "name": "A"})

        assert exc_info.value.code == "conflict"

    def test_slug_taken_after_check_is_a_conflict(self, registry, tool_ctx, store, monkeypatch):
        """Should report a conflict when the slug is claimed between check and insert."""
        monkeypatch.setattr(store, "slug_exists", lambda slug: False)

        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": "create", "name": "A"})

        assert exc_info.value.code == "conflict"
        assert exc_info.value.message == "organization with slug 'a' already exists"
        assert not tool_ctx.has_org
        assert [o.slug for o in store.list_user_organizations("u1")] == ["a", "b"]

    def test_slug_race_over_mcp_is_a_conflict(self, server, store, monkeypatch):
        """Should carry the conflict code to MCP callers."""
        monkeypatch.setattr(store, "slug_exists", lambda slug: False)

        result = call_mcp(server, {"resource": "org", "action": "create", "name": "B"})

        assert result["isError"] is True
        assert result["structuredContent"]["code"] == "conflict"

    @pytest.mark.parametrize("name", ["", "   ", "???"])
    def test_rejects_unusable_name(self, registry, name):
        """Should require a name that yields a slug."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("org", {"resource": "org", "action": "create", "name": name})

        assert exc_info.value.field == "name"


class TestSurfaceSymmetry:
    """The MCP and registry paths should agree for the same payload."""

    def test_success_matches(self, server, registry, tool_ctx, seed):
        """Should return the same object on both surfaces."""
        tool_ctx.restore_org(seed["a"])
        payload = {"resource": "org", "action": "get"}

        direct = registry.call("org", payload).to_dict()
        result = call_mcp(server, payload)

        assert result["isError"] is False
        assert result["structuredContent"] == direct
        assert json.loads(result["content"][0]["text"]) == direct

    @pytest.mark.parametrize(
        "payload",
        [
            {"resource": "org", "action": "get"},
            {"resource": "org", "action": "select", "slug": "c"},
            {"resource": "org", "action": "delete"},
            {"resource": "team", "action": "list"},
        ],
    )
    def test_errors_match(self, server, registry, payload):
        """Should carry the same code, message and field on both surfaces."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("org", payload)

        result = call_mcp(server, payload)

        assert result["isError"] is True
        assert result["structuredContent"] == exc_info.value.to_dict()
        assert result["content"][0]["text"] == str(exc_info.value)


class TestValidationScenario:
    """An action outside the table is rejected before any handler runs."""

    def test_user_delete_is_rejected(self, registry):
        """Should name the accepted actions in the error."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("user", {"resource": "user", "action": "delete"})

        err = exc_info.value
        assert err.code == "validation"
        assert err.field == "action"
        assert "get, update" in err.message


class TestOrgCreateTransaction:
    """Tests for creating an organization together with its owner."""

    def test_creates_org_and_owner(self, store, seed):
        """Should insert the organization and the owner membership."""
        org = store.create_organization_with_owner("New Co", "new-co", "u2")

        assert store.get_organization_by_slug("new-co").id == org.id
        assert store.get_member(org.id, "u2").role == "owner"

    def test_taken_slug_raises(self, store, seed):
        """Should raise SlugTakenError for a slug in use, ignoring case."""
        with pytest.raises(SlugTakenError) as exc_info:
            store.create_organization_with_owner("Shadow", "A", "u2")

        assert exc_info.value.slug == "A"
        assert [o.slug for o in store.list_user_organizations("u2")] == ["b", "c"]

    def test_unknown_owner_is_not_a_slug_conflict(self, store, seed):
        """Should re-raise other integrity errors and leave nothing behind."""
        with pytest.raises(sqlite3.IntegrityError):
            store.create_organization_with_owner("Ghost Co", "ghost-co", "nobody")

        assert not store.slug_exists("ghost-co")
