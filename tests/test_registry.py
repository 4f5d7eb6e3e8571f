"""Tests for the direct-call registry."""

import pytest

from toolhost.errors import NOT_FOUND, ToolError, validation_error
from toolhost.registry import DuplicateToolError, ToolRegistry


class TestToolRegistry:
    """Tests for registering and calling tools by name."""

    def test_calls_registered_tool(self):
        """Should pass the payload through and return the output."""
        registry = ToolRegistry()
        registry.register("echo", lambda payload: {"echo": payload})

        assert registry.call("echo", '{"a": 1}') == {"echo": '{"a": 1}'}

    def test_unknown_tool_is_not_found(self):
        """Should raise not_found for an unknown name."""
        registry = ToolRegistry()

        with pytest.raises(ToolError) as exc_info:
            registry.call("missing", "{}")

        assert exc_info.value.code == NOT_FOUND
        assert "missing" in exc_info.value.message

    def test_rejects_duplicate_name(self):
        """Should refuse to bind a name twice."""
        registry = ToolRegistry()
        registry.register("x", lambda payload: None)

        with pytest.raises(DuplicateToolError):
            registry.register("x", lambda payload: None)

    def test_propagates_tool_errors_unchanged(self):
        """Should re-raise the tool's own error instance."""
        err = validation_error("bad", "id")

        def fail(payload):
            raise err

        registry = ToolRegistry()
        registry.register("fail", fail)

        with pytest.raises(ToolError) as exc_info:
            registry.call("fail", "{}")

        assert exc_info.value is err

    def test_names_and_membership(self):
        """Should report registered names in sorted order."""
        registry = ToolRegistry()
        registry.register("b", lambda payload: None)
        registry.register("a", lambda payload: None)

        assert registry.names() == ["a", "b"]
        assert "a" in registry
        assert "c" not in registry
        assert len(registry) == 2

    def test_in_process_tools_registered(self, registry):
        """Should carry every in-process tool after registration."""
        assert registry.names() == ["notification", "org", "subscription", "user"]
