"""Structured error model shared by every tool.

Domain failures are raised as ToolError and travel unchanged from a handler
to whichever surface invoked it (MCP, direct-call registry, plugin RPC).
Anything else is an internal failure and is reported opaquely.
"""

from __future__ import annotations

from typing import Any

# Error kinds
VALIDATION = "validation"
NOT_FOUND = "not_found"
CONFLICT = "conflict"
UNAUTHORIZED = "unauthorized"
NO_ORG_SELECTED_CODE = "no_org_selected"

ERROR_CODES = (VALIDATION, NOT_FOUND, CONFLICT, UNAUTHORIZED, NO_ORG_SELECTED_CODE)


class ToolError(Exception):
    """Machine-readable error returned by a tool.

    Attributes:
        code: One of ERROR_CODES.
        message: Human-readable description.
        field: Offending input field, set only for validation errors.
    """

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        """Initialize the error.

        Args:
            code: Error kind.
            message: Human-readable description.
            field: Input field name (validation errors only).

        Raises:
            ValueError: If the code is unknown or field is given for a
                non-validation error.
        """
        if code not in ERROR_CODES:
            raise ValueError(f"Unknown error code: {code}")
        if field is not None and code != VALIDATION:
            raise ValueError("field is only valid for validation errors")
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.code}: {self.message} (field: {self.field})"
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return f"ToolError(code={self.code!r}, message={self.message!r}, field={self.field!r})"

    def to_dict(self) -> dict[str, Any]:
        """Convert to the flat wire representation.

        Returns:
            Dictionary with code, message and (validation only) field.
        """
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolError:
        """Rebuild an error from its wire representation."""
        if data.get("code") == NO_ORG_SELECTED_CODE:
            return NO_ORG_SELECTED
        return cls(data["code"], data.get("message", ""), data.get("field"))


def validation_error(message: str, field: str) -> ToolError:
    """Create a validation error for a specific input field."""
    return ToolError(VALIDATION, message, field)


def not_found_error(message: str) -> ToolError:
    """Create a not found error."""
    return ToolError(NOT_FOUND, message)


def conflict_error(message: str) -> ToolError:
    """Create a conflict error (duplicate, already exists)."""
    return ToolError(CONFLICT, message)


def unauthorized_error(message: str) -> ToolError:
    """Create an unauthorized error."""
    return ToolError(UNAUTHORIZED, message)


# Compared by identity: `err is NO_ORG_SELECTED`
NO_ORG_SELECTED = ToolError(
    NO_ORG_SELECTED_CODE,
    "No organization selected. Use org.list to see available organizations "
    "and org.select to choose one.",
)


class ToolExecutionError(Exception):
    """Raised when a tool fails for a reason other than a domain error.

    The message is safe to show to callers; the underlying exception is
    kept as __cause__ and never rendered.
    """

    pass


class OperationCancelled(ToolExecutionError):
    """Raised when the ambient call scope was cancelled or timed out."""

    pass
