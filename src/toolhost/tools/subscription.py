"""Subscription tool: the session user's billing plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from toolhost.context import ToolContext
from toolhost.dispatch import ResourceTool
from toolhost.tools.common import iso_timestamp

SUBSCRIPTION_ACTIONS = {
    "subscription": ("get",),
}

DESCRIPTION = """View subscription status.

Resources:
- subscription: User subscription

SUBSCRIPTION RESOURCE:
- subscription.get: Get current subscription status and plan

Examples:
  subscription(resource: subscription, action: get)"""


@dataclass
class SubscriptionInput:
    """Input of the subscription tool."""

    resource: str = field(default="", metadata={"description": "Resource type: subscription"})
    action: str = field(default="", metadata={"description": "Action to perform"})


@dataclass
class SubscriptionOutput:
    status: str
    plan_id: str
    current_period_end: int | None = None
    cancel_at_period_end: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "plan_id": self.plan_id}
        if self.current_period_end is not None:
            data["current_period_end"] = iso_timestamp(self.current_period_end)
        data["cancel_at_period_end"] = self.cancel_at_period_end
        return data


def handle_get(tool_ctx: ToolContext, params: SubscriptionInput) -> SubscriptionOutput:
    sub = tool_ctx.db.get_subscription(tool_ctx.user_id)
    if sub is None:
        # Users without a subscription are on the free plan
        return SubscriptionOutput(status="none", plan_id="free")
    return SubscriptionOutput(
        status=sub.status,
        plan_id=sub.plan_id,
        current_period_end=sub.current_period_end,
        cancel_at_period_end=sub.cancel_at_period_end,
    )


SUBSCRIPTION_TOOL = ResourceTool(
    name="subscription",
    title="Subscription",
    description=DESCRIPTION,
    input_type=SubscriptionInput,
    actions=SUBSCRIPTION_ACTIONS,
    handlers={"subscription": {"get": handle_get}},
)
