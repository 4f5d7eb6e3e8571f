"""Row models for the relational store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class User:
    """An authenticated user account."""

    id: str
    email: str
    name: str
    email_verified: bool
    created_at: int  # unix seconds

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "email_verified": self.email_verified,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Organization:
    """An organization a user can select as working scope."""

    id: str
    name: str
    slug: str
    owner_id: str
    logo_url: str | None = None
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "owner_id": self.owner_id,
            "logo_url": self.logo_url,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Membership:
    """A user's membership in an organization."""

    id: str
    organization_id: str
    user_id: str
    role: str  # owner, admin, member
    joined_at: int


@dataclass(frozen=True)
class Preferences:
    """Per-user preferences."""

    user_id: str
    theme: str = "system"
    language: str = "en"
    timezone: str = "UTC"
    email_notifications: bool = True
    marketing_emails: bool = False


@dataclass(frozen=True)
class Notification:
    """An in-app notification."""

    id: str
    user_id: str
    type: str
    title: str
    body: str | None
    action_url: str | None
    read_at: int | None
    created_at: int

    @property
    def read(self) -> bool:
        return self.read_at is not None


@dataclass(frozen=True)
class Subscription:
    """A user's billing subscription."""

    id: str
    user_id: str
    plan_id: str
    status: str
    current_period_end: int | None
    cancel_at_period_end: bool


@dataclass(frozen=True)
class SessionRecord:
    """Persisted organization selection for an MCP session."""

    session_id: str
    user_id: str
    org_id: str | None
    updated_at: int
