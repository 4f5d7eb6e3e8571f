"""Tests for the user tool."""

import pytest

from toolhost.context import ToolContext
from toolhost.dispatch import dispatch
from toolhost.errors import ToolError
from toolhost.store import User
from toolhost.tools import USER_TOOL


class TestUserProfile:
    """Tests for the user resource."""

    def test_get_returns_profile(self, registry):
        """Should return the session user's profile."""
        data = registry.call("user", {"resource": "user", "action": "get"}).to_dict()

        assert data["id"] == "u1"
        assert data["email"] == "user@example.com"
        assert data["name"] == "User One"
        assert data["email_verified"] is False
        assert data["created_at"].endswith("Z")

    def test_update_changes_name(self, registry, store):
        """Should persist the new name."""
        data = registry.call(
            "user", {"resource": "user", "action": "update", "name": "  Jane Doe "}
        ).to_dict()

        assert data == {
            "id": "u1",
            "email": "user@example.com",
            "name": "Jane Doe",
            "updated": True,
        }
        assert store.get_user("u1").name == "Jane Doe"

    def test_update_requires_name(self, registry):
        """Should reject an update without a name."""
        with pytest.raises(ToolError) as exc_info:
            registry.call("user", {"resource": "user", "action": "update"})

        assert exc_info.value.code == "validation"
        assert exc_info.value.field == "name"

    def test_unknown_user_is_unauthorized(self, service):
        """Should report a user missing from the store as unauthorized."""
        ghost = User(id="ghost", email="g@example.com", name="", email_verified=False, created_at=0)
        tool_ctx = ToolContext(service, ghost)

        with pytest.raises(ToolError) as exc_info:
            dispatch(USER_TOOL, tool_ctx, {"resource": "user", "action": "get"})

        assert exc_info.value.code == "unauthorized"


class TestPreferences:
    """Tests for the preferences resource."""

    def test_get_returns_defaults(self, registry):
        """Should return defaults when nothing was saved."""
        data = registry.call("user", {"resource": "preferences", "action": "get"}).to_dict()

        assert data == {
            "theme": "system",
            "language": "en",
            "timezone": "UTC",
            "email_notifications": True,
            "marketing_emails": False,
        }

    def test_update_creates_and_merges(self, registry, store):
        """Should create the row on first update and keep omitted fields."""
        registry.call(
            "user", {"resource": "preferences", "action": "update", "theme": "dark"}
        )
        data = registry.call(
            "user",
            {
                "resource": "preferences",
                "action": "update",
                "email_notifications": False,
                "timezone": "Europe/Berlin",
            },
        ).to_dict()

        assert data["theme"] == "dark"
        assert data["timezone"] == "Europe/Berlin"
        assert data["email_notifications"] is False
        assert data["marketing_emails"] is False
        assert data["updated"] is True
        assert store.get_preferences("u1").theme == "dark"

    def test_update_rejects_unknown_theme(self, registry):
        """Should reject themes outside the allowed set."""
        with pytest.raises(ToolError) as exc_info:
            registry.call(
                "user", {"resource": "preferences", "action": "update", "theme": "neon"}
            )

        assert exc_info.value.field == "theme"
        assert "light, dark, system" in exc_info.value.message

    def test_update_rejects_non_boolean_flag(self, registry):
        """Should reject a flag that is not a boolean."""
        with pytest.raises(ToolError) as exc_info:
            registry.call(
                "user",
                {"resource": "preferences", "action": "update", "marketing_emails": "yes"},
            )

        assert exc_info.value.field == "input"

    def test_schema_advertises_theme_enum(self, server):
        """Should advertise the allowed themes in the input schema."""
        tool = next(t for t in server.list_tools() if t["name"] == "user")

        theme = tool["inputSchema"]["properties"]["theme"]
        assert theme["enum"] == ["light", "dark", "system"]
        assert tool["inputSchema"]["properties"]["resource"]["enum"] == ["user", "preferences"]
