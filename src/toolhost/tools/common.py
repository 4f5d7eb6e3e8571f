"""Helpers shared by the in-process tools."""

from __future__ import annotations

from datetime import UTC, datetime


def iso_timestamp(ts: int | None) -> str | None:
    """Format unix seconds as an RFC 3339 UTC timestamp."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, UTC).isoformat().replace("+00:00", "Z")
