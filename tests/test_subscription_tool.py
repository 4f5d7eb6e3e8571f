"""Tests for the subscription tool."""


class TestSubscription:
    """Tests for subscription.get."""

    def test_free_plan_without_subscription(self, registry):
        """Should report the free plan when there is no subscription."""
        data = registry.call(
            "subscription", {"resource": "subscription", "action": "get"}
        ).to_dict()

        assert data == {"status": "none", "plan_id": "free", "cancel_at_period_end": False}

    def test_reports_subscription(self, registry, store):
        """Should report plan, status and period end."""
        store.upsert_subscription(
            "u1", "pro", status="active", current_period_end=0, cancel_at_period_end=True
        )

        data = registry.call(
            "subscription", {"resource": "subscription", "action": "get"}
        ).to_dict()

        assert data == {
            "status": "active",
            "plan_id": "pro",
            "current_period_end": "1970-01-01T00:00:00Z",
            "cancel_at_period_end": True,
        }

    def test_reflects_plan_change(self, registry, store):
        """Should pick up the latest subscription state."""
        store.upsert_subscription("u1", "pro")
        store.upsert_subscription("u1", "team", status="past_due")

        data = registry.call(
            "subscription", {"resource": "subscription", "action": "get"}
        ).to_dict()

        assert data["plan_id"] == "team"
        assert data["status"] == "past_due"
