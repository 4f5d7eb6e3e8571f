"""User tool: profile and preferences of the session's user."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from toolhost.context import ToolContext
from toolhost.dispatch import ResourceTool
from toolhost.errors import unauthorized_error, validation_error
from toolhost.store import Preferences, User
from toolhost.tools.common import iso_timestamp

logger = logging.getLogger(__name__)

USER_ACTIONS = {
    "user": ("get", "update"),
    "preferences": ("get", "update"),
}

THEMES = ("light", "dark", "system")

DESCRIPTION = """Manage user profile and preferences.

Resources:
- user: User profile management
- preferences: User preferences

USER RESOURCE:
- user.get: Get current user profile
- user.update: Update user profile (requires: name)

PREFERENCES RESOURCE:
- preferences.get: Get user preferences
- preferences.update: Update preferences (optional: theme, language, timezone,
  email_notifications, marketing_emails)

Examples:
  user(resource: user, action: get)
  user(resource: user, action: update, name: "Jane Doe")
  user(resource: preferences, action: update, theme: "dark")"""


@dataclass
class UserInput:
    """Input of the user tool."""

    resource: str = field(
        default="", metadata={"description": "Resource type: user or preferences"}
    )
    action: str = field(default="", metadata={"description": "Action to perform"})
    name: str = field(default="", metadata={"description": "User's display name. For user.update."})
    theme: str = field(
        default="",
        metadata={
            "description": "UI theme: light, dark, or system. For preferences.update.",
            "enum": THEMES,
        },
    )
    language: str = field(
        default="", metadata={"description": "Preferred language code. For preferences.update."}
    )
    timezone: str = field(
        default="", metadata={"description": "User timezone. For preferences.update."}
    )
    email_notifications: bool | None = field(
        default=None,
        metadata={"description": "Enable email notifications. For preferences.update."},
    )
    marketing_emails: bool | None = field(
        default=None,
        metadata={"description": "Opt in to marketing emails. For preferences.update."},
    )


@dataclass
class UserOutput:
    user: User
    updated: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.user.id,
            "email": self.user.email,
            "name": self.user.name,
        }
        if self.updated:
            data["updated"] = True
        else:
            data["email_verified"] = self.user.email_verified
            data["created_at"] = iso_timestamp(self.user.created_at)
        return data


@dataclass
class PreferencesOutput:
    preferences: Preferences
    updated: bool = False

    def to_dict(self) -> dict[str, Any]:
        prefs = self.preferences
        data: dict[str, Any] = {
            "theme": prefs.theme,
            "language": prefs.language,
            "timezone": prefs.timezone,
            "email_notifications": prefs.email_notifications,
            "marketing_emails": prefs.marketing_emails,
        }
        if self.updated:
            data["updated"] = True
        return data


def _current_user(tool_ctx: ToolContext) -> User:
    user = tool_ctx.db.get_user(tool_ctx.user_id)
    if user is None:
        raise unauthorized_error("not authenticated")
    return user


def handle_user_get(tool_ctx: ToolContext, params: UserInput) -> UserOutput:
    return UserOutput(_current_user(tool_ctx))


def handle_user_update(tool_ctx: ToolContext, params: UserInput) -> UserOutput:
    user = _current_user(tool_ctx)
    name = params.name.strip()
    if not name:
        raise validation_error("name is required for update", "name")

    tool_ctx.db.update_user_name(user.id, name)
    return UserOutput(
        User(
            id=user.id,
            email=user.email,
            name=name,
            email_verified=user.email_verified,
            created_at=user.created_at,
        ),
        updated=True,
    )


def handle_preferences_get(tool_ctx: ToolContext, params: UserInput) -> PreferencesOutput:
    prefs = tool_ctx.db.get_preferences(tool_ctx.user_id)
    return PreferencesOutput(prefs or Preferences(user_id=tool_ctx.user_id))


def handle_preferences_update(tool_ctx: ToolContext, params: UserInput) -> PreferencesOutput:
    if params.theme and params.theme not in THEMES:
        raise validation_error(f"theme must be one of: {', '.join(THEMES)}", "theme")

    user_id = tool_ctx.user_id
    if tool_ctx.db.get_preferences(user_id) is None:
        tool_ctx.db.create_preferences(user_id)

    tool_ctx.db.update_preferences(
        user_id,
        theme=params.theme or None,
        language=params.language or None,
        timezone=params.timezone or None,
        email_notifications=params.email_notifications,
        marketing_emails=params.marketing_emails,
    )
    prefs = tool_ctx.db.get_preferences(user_id)
    assert prefs is not None
    logger.debug("Updated preferences for user %s", user_id)
    return PreferencesOutput(prefs, updated=True)


USER_TOOL = ResourceTool(
    name="user",
    title="User Management",
    description=DESCRIPTION,
    input_type=UserInput,
    actions=USER_ACTIONS,
    handlers={
        "user": {
            "get": handle_user_get,
            "update": handle_user_update,
        },
        "preferences": {
            "get": handle_preferences_get,
            "update": handle_preferences_update,
        },
    },
)
