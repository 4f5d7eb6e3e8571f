"""Tool call audit log.

Append-only JSON Lines record of every tool invocation: one request record
and one response record per call, correlated by request id. Sensitive
argument values are redacted before they are written.
"""

from __future__ import annotations

import json
import re
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Patterns for sensitive argument keys
SENSITIVE_PATTERNS = [
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"api[_-]?key", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"auth", re.IGNORECASE),
    re.compile(r"credential", re.IGNORECASE),
    re.compile(r"private[_-]?key", re.IGNORECASE),
]

REDACTED = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    return any(pattern.search(key) for pattern in SENSITIVE_PATTERNS)


def sanitize_arguments(arguments: Any) -> Any:
    """Redact sensitive values in a decoded tool payload.

    Args:
        arguments: Decoded JSON value.

    Returns:
        Copy with values under sensitive keys replaced by [REDACTED].
    """
    if isinstance(arguments, dict):
        return {
            key: REDACTED if _is_sensitive_key(str(key)) else sanitize_arguments(value)
            for key, value in arguments.items()
        }
    if isinstance(arguments, list):
        return [sanitize_arguments(item) for item in arguments]
    return arguments


def _get_timestamp() -> str:
    """Get current UTC timestamp in ISO 8601 format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class AuditLogger:
    """Append-only audit logger with JSON Lines format.

    Safe to share between sessions; each line is written and flushed under
    a lock.
    """

    def __init__(self, log_path: Path) -> None:
        """Initialize the audit logger.

        Args:
            log_path: Path to the audit log file.
        """
        self._log_path = log_path
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file = open(log_path, "a", encoding="utf-8")  # noqa: SIM115

    def _write_line(self, data: dict[str, Any]) -> None:
        line = json.dumps(data, default=str)
        with self._lock:
            if self._file.closed:
                return
            self._file.write(line + "\n")
            self._file.flush()

    def log_request(
        self,
        request_id: str,
        tool_name: str,
        arguments: Any,
        session_id: str = "",
        user_id: str = "",
    ) -> None:
        """Log an incoming tool call.

        Args:
            request_id: Identifier correlating request and response.
            tool_name: Name of the tool being invoked.
            arguments: Decoded tool payload (will be sanitized).
            session_id: Session the call belongs to.
            user_id: Authenticated user.
        """
        self._write_line(
            {
                "type": "request",
                "timestamp": _get_timestamp(),
                "request_id": request_id,
                "session_id": session_id,
                "user_id": user_id,
                "tool_name": tool_name,
                "arguments": sanitize_arguments(arguments),
            }
        )

    def log_response(
        self,
        request_id: str,
        tool_name: str,
        status: str,
        duration_ms: float,
        error_code: str | None = None,
    ) -> None:
        """Log the outcome of a tool call.

        Args:
            request_id: Request identifier to correlate with.
            tool_name: Name of the tool.
            status: "success" or "error".
            duration_ms: Execution time in milliseconds.
            error_code: Structured error code, when the tool returned one.
        """
        event: dict[str, Any] = {
            "type": "response",
            "timestamp": _get_timestamp(),
            "request_id": request_id,
            "tool_name": tool_name,
            "result_status": status,
            "execution_time_ms": round(duration_ms, 3),
        }
        if error_code is not None:
            event["error_code"] = error_code
        self._write_line(event)

    def log_plugin_event(self, event_type: str, details: dict[str, Any]) -> None:
        """Log a plugin lifecycle event (attached, rejected, unloaded).

        Args:
            event_type: Kind of event.
            details: Additional details about the event.
        """
        self._write_line(
            {
                "type": "plugin",
                "timestamp": _get_timestamp(),
                "event_type": event_type,
                "details": details,
            }
        )

    def close(self) -> None:
        """Close the log file."""
        with self._lock:
            if not self._file.closed:
                self._file.close()

    def __enter__(self) -> AuditLogger:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
