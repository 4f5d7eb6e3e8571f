"""Notification tool: the session user's in-app notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from toolhost.context import ToolContext
from toolhost.dispatch import ResourceTool
from toolhost.errors import not_found_error, validation_error
from toolhost.store import Notification
from toolhost.tools.common import iso_timestamp

NOTIFICATION_ACTIONS = {
    "notification": ("list", "get", "mark_read", "mark_all_read", "count_unread"),
}

DEFAULT_LIST_LIMIT = 20

DESCRIPTION = """Manage user notifications.

Resources:
- notification: User notifications

NOTIFICATION RESOURCE:
- notification.list: List notifications (optional: limit, offset, unread)
- notification.get: Get a specific notification (requires: id)
- notification.mark_read: Mark notification as read (requires: id)
- notification.mark_all_read: Mark all notifications as read
- notification.count_unread: Get count of unread notifications

Examples:
  notification(resource: notification, action: list, unread: true, limit: 10)
  notification(resource: notification, action: mark_read, id: "uuid")"""


@dataclass
class NotificationInput:
    """Input of the notification tool."""

    resource: str = field(default="", metadata={"description": "Resource type: notification"})
    action: str = field(default="", metadata={"description": "Action to perform"})
    id: str = field(
        default="", metadata={"description": "Notification ID (for get, mark_read)"}
    )
    limit: int = field(
        default=0,
        metadata={
            "description": "Max notifications to return (default: 20). For notification.list."
        },
    )
    offset: int = field(
        default=0, metadata={"description": "Offset for pagination. For notification.list."}
    )
    unread: bool = field(
        default=False,
        metadata={"description": "Only return unread notifications. For notification.list."},
    )


def _notification_dict(n: Notification) -> dict[str, Any]:
    data: dict[str, Any] = {"id": n.id, "type": n.type, "title": n.title}
    if n.body:
        data["body"] = n.body
    if n.action_url:
        data["action_url"] = n.action_url
    data["read"] = n.read
    data["created_at"] = iso_timestamp(n.created_at)
    return data


@dataclass
class NotificationListOutput:
    notifications: list[Notification]

    def to_dict(self) -> dict[str, Any]:
        return {
            "notifications": [_notification_dict(n) for n in self.notifications],
            "total": len(self.notifications),
        }


@dataclass
class NotificationOutput:
    notification: Notification

    def to_dict(self) -> dict[str, Any]:
        return _notification_dict(self.notification)


@dataclass
class MarkReadOutput:
    id: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "read": True, "success": True}


@dataclass
class MarkAllReadOutput:
    message: str = "All notifications marked as read"

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "message": self.message}


@dataclass
class CountOutput:
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count}


def _require_owned(tool_ctx: ToolContext, notification_id: str) -> Notification:
    if not notification_id:
        raise validation_error("id is required", "id")
    notification = tool_ctx.db.get_notification(notification_id, tool_ctx.user_id)
    if notification is None:
        raise not_found_error(f"notification {notification_id} not found")
    return notification


def handle_list(tool_ctx: ToolContext, params: NotificationInput) -> NotificationListOutput:
    if params.offset < 0:
        raise validation_error("offset must not be negative", "offset")
    limit = params.limit if params.limit > 0 else DEFAULT_LIST_LIMIT
    return NotificationListOutput(
        tool_ctx.db.list_notifications(
            tool_ctx.user_id, limit=limit, offset=params.offset, unread_only=params.unread
        )
    )


def handle_get(tool_ctx: ToolContext, params: NotificationInput) -> NotificationOutput:
    return NotificationOutput(_require_owned(tool_ctx, params.id))


def handle_mark_read(tool_ctx: ToolContext, params: NotificationInput) -> MarkReadOutput:
    notification = _require_owned(tool_ctx, params.id)
    tool_ctx.db.mark_notification_read(notification.id, tool_ctx.user_id)
    return MarkReadOutput(id=notification.id)


def handle_mark_all_read(tool_ctx: ToolContext, params: NotificationInput) -> MarkAllReadOutput:
    tool_ctx.db.mark_all_notifications_read(tool_ctx.user_id)
    return MarkAllReadOutput()


def handle_count_unread(tool_ctx: ToolContext, params: NotificationInput) -> CountOutput:
    return CountOutput(tool_ctx.db.count_unread_notifications(tool_ctx.user_id))


NOTIFICATION_TOOL = ResourceTool(
    name="notification",
    title="Notification Management",
    description=DESCRIPTION,
    input_type=NotificationInput,
    actions=NOTIFICATION_ACTIONS,
    handlers={
        "notification": {
            "list": handle_list,
            "get": handle_get,
            "mark_read": handle_mark_read,
            "mark_all_read": handle_mark_all_read,
            "count_unread": handle_count_unread,
        },
    },
)
