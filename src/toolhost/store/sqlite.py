"""SQLite-backed store shared by every session.

One connection is opened lazily and guarded by a lock, so the store can be
shared by concurrent sessions running on different threads.
"""

from __future__ import annotations

import sqlite3
import threading
import time
import uuid
from pathlib import Path
from typing import Any

from toolhost.store.models import (
    Membership,
    Notification,
    Organization,
    Preferences,
    SessionRecord,
    Subscription,
    User,
)

MEMORY_PATH = ":memory:"

# Session rows untouched for this long are purged
SESSION_MAX_AGE_SECONDS = 7 * 24 * 3600

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        name TEXT NOT NULL DEFAULT '',
        email_verified INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_preferences (
        user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
        email_notifications INTEGER NOT NULL DEFAULT 1,
        marketing_emails INTEGER NOT NULL DEFAULT 0,
        timezone TEXT NOT NULL DEFAULT 'UTC',
        language TEXT NOT NULL DEFAULT 'en',
        theme TEXT NOT NULL DEFAULT 'system',
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE COLLATE NOCASE,
        logo_url TEXT,
        owner_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS organization_members (
        id TEXT PRIMARY KEY,
        organization_id TEXT NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        role TEXT NOT NULL DEFAULT 'member',
        joined_at INTEGER NOT NULL,
        UNIQUE(organization_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        body TEXT,
        action_url TEXT,
        read_at INTEGER,
        created_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
        plan_id TEXT NOT NULL DEFAULT 'free',
        status TEXT NOT NULL DEFAULT 'active',
        current_period_end INTEGER,
        cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mcp_sessions (
        session_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        org_id TEXT REFERENCES organizations(id) ON DELETE SET NULL,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_org_members_user ON organization_members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_mcp_sessions_user ON mcp_sessions(user_id, updated_at)",
]


class SlugTakenError(Exception):
    """Raised when an organization slug is already in use."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"Organization slug already in use: {slug}")
        self.slug = slug


def _now() -> int:
    return int(time.time())


def _new_id() -> str:
    return str(uuid.uuid4())


class Store:
    """SQLite storage for users, organizations and session state.

    Uses WAL mode for file databases. Safe to share across threads.
    """

    def __init__(self, db_path: Path | str = MEMORY_PATH) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
        """
        self._db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection (caller holds the lock)."""
        if self._conn is None:
            if self._db_path != MEMORY_PATH:
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON;")
            if self._db_path != MEMORY_PATH:
                self._conn.execute("PRAGMA journal_mode=WAL;")
            self._initialize_schema(self._conn)
        return self._conn

    def _initialize_schema(self, conn: sqlite3.Connection) -> None:
        """Create tables and indexes if they don't exist."""
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()

    def _execute(self, query: str, params: tuple[Any, ...] = ()) -> None:
        with self._lock:
            conn = self._get_connection()
            conn.execute(query, params)
            conn.commit()

    def _fetch_one(self, query: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._get_connection().execute(query, params).fetchone()

    def _fetch_all(self, query: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._get_connection().execute(query, params).fetchall()

    def initialize(self) -> None:
        """Ensure the database exists and the schema is applied."""
        with self._lock:
            self._get_connection()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def create_user(self, email: str, name: str = "", user_id: str | None = None) -> User:
        """Create a user account.

        Raises:
            sqlite3.IntegrityError: If the email is already registered.
        """
        user_id = user_id or _new_id()
        now = _now()
        self._execute(
            "INSERT INTO users (id, email, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (user_id, email, name, now, now),
        )
        return User(id=user_id, email=email, name=name, email_verified=False, created_at=now)

    def get_user(self, user_id: str) -> User | None:
        """Retrieve a user by ID."""
        row = self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return self._row_to_user(row) if row else None

    def update_user_name(self, user_id: str, name: str) -> None:
        """Update a user's display name."""
        self._execute(
            "UPDATE users SET name = ?, updated_at = ? WHERE id = ?", (name, _now(), user_id)
        )

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            email_verified=bool(row["email_verified"]),
            created_at=row["created_at"],
        )

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    def create_organization(self, name: str, slug: str, owner_id: str) -> Organization:
        """Create an organization.

        Raises:
            sqlite3.IntegrityError: If the slug is taken.
        """
        org_id = _new_id()
        now = _now()
        self._execute(
            """
            INSERT INTO organizations (id, name, slug, owner_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (org_id, name, slug, owner_id, now, now),
        )
        return Organization(id=org_id, name=name, slug=slug, owner_id=owner_id, created_at=now)

    def create_organization_with_owner(self, name: str, slug: str, owner_id: str) -> Organization:
        """Create an organization and its owner membership in one transaction.

        Raises:
            SlugTakenError: If another organization already has the slug.
        """
        org_id = _new_id()
        now = _now()
        with self._lock:
            conn = self._get_connection()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO organizations
                            (id, name, slug, owner_id, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (org_id, name, slug, owner_id, now, now),
                    )
                    conn.execute(
                        """
                        INSERT INTO organization_members
                            (id, organization_id, user_id, role, joined_at)
                        VALUES (?, ?, ?, 'owner', ?)
                        """,
                        (_new_id(), org_id, owner_id, now),
                    )
            except sqlite3.IntegrityError as e:
                if "organizations.slug" in str(e):
                    raise SlugTakenError(slug) from e
                raise
        return Organization(id=org_id, name=name, slug=slug, owner_id=owner_id, created_at=now)

    def get_organization(self, org_id: str) -> Organization | None:
        """Retrieve an organization by ID."""
        row = self._fetch_one("SELECT * FROM organizations WHERE id = ?", (org_id,))
        return self._row_to_org(row) if row else None

    def get_organization_by_slug(self, slug: str) -> Organization | None:
        """Retrieve an organization by slug (case-insensitive)."""
        row = self._fetch_one("SELECT * FROM organizations WHERE slug = ?", (slug,))
        return self._row_to_org(row) if row else None

    def slug_exists(self, slug: str) -> bool:
        """Check whether an organization slug is taken."""
        row = self._fetch_one("SELECT 1 FROM organizations WHERE slug = ?", (slug,))
        return row is not None

    def list_user_organizations(self, user_id: str) -> list[Organization]:
        """List organizations the user is a member of, by name."""
        rows = self._fetch_all(
            """
            SELECT o.* FROM organizations o
            JOIN organization_members m ON m.organization_id = o.id
            WHERE m.user_id = ?
            ORDER BY o.name
            """,
            (user_id,),
        )
        return [self._row_to_org(row) for row in rows]

    def update_organization(
        self, org_id: str, name: str | None = None, logo_url: str | None = None
    ) -> None:
        """Update organization fields; None leaves a field unchanged."""
        self._execute(
            """
            UPDATE organizations SET
                name = COALESCE(?, name),
                logo_url = COALESCE(?, logo_url),
                updated_at = ?
            WHERE id = ?
            """,
            (name, logo_url, _now(), org_id),
        )

    def _row_to_org(self, row: sqlite3.Row) -> Organization:
        return Organization(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            owner_id=row["owner_id"],
            logo_url=row["logo_url"],
            created_at=row["created_at"],
        )

    def add_member(self, org_id: str, user_id: str, role: str = "member") -> Membership:
        """Add a user to an organization."""
        member_id = _new_id()
        now = _now()
        self._execute(
            """
            INSERT INTO organization_members (id, organization_id, user_id, role, joined_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (member_id, org_id, user_id, role, now),
        )
        return Membership(
            id=member_id, organization_id=org_id, user_id=user_id, role=role, joined_at=now
        )

    def get_member(self, org_id: str, user_id: str) -> Membership | None:
        """Look up a user's membership in an organization."""
        row = self._fetch_one(
            "SELECT * FROM organization_members WHERE organization_id = ? AND user_id = ?",
            (org_id, user_id),
        )
        if row is None:
            return None
        return Membership(
            id=row["id"],
            organization_id=row["organization_id"],
            user_id=row["user_id"],
            role=row["role"],
            joined_at=row["joined_at"],
        )

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    def get_preferences(self, user_id: str) -> Preferences | None:
        """Retrieve a user's preferences, or None if never saved."""
        row = self._fetch_one("SELECT * FROM user_preferences WHERE user_id = ?", (user_id,))
        if row is None:
            return None
        return Preferences(
            user_id=row["user_id"],
            theme=row["theme"],
            language=row["language"],
            timezone=row["timezone"],
            email_notifications=bool(row["email_notifications"]),
            marketing_emails=bool(row["marketing_emails"]),
        )

    def create_preferences(self, user_id: str) -> Preferences:
        """Create default preferences for a user."""
        self._execute(
            "INSERT INTO user_preferences (user_id, updated_at) VALUES (?, ?)",
            (user_id, _now()),
        )
        return Preferences(user_id=user_id)

    def update_preferences(
        self,
        user_id: str,
        theme: str | None = None,
        language: str | None = None,
        timezone: str | None = None,
        email_notifications: bool | None = None,
        marketing_emails: bool | None = None,
    ) -> None:
        """Update preference fields; None leaves a field unchanged."""
        self._execute(
            """
            UPDATE user_preferences SET
                theme = COALESCE(?, theme),
                language = COALESCE(?, language),
                timezone = COALESCE(?, timezone),
                email_notifications = COALESCE(?, email_notifications),
                marketing_emails = COALESCE(?, marketing_emails),
                updated_at = ?
            WHERE user_id = ?
            """,
            (
                theme,
                language,
                timezone,
                None if email_notifications is None else int(email_notifications),
                None if marketing_emails is None else int(marketing_emails),
                _now(),
                user_id,
            ),
        )

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        body: str | None = None,
        action_url: str | None = None,
    ) -> Notification:
        """Create a notification for a user."""
        notification_id = _new_id()
        now = _now()
        self._execute(
            """
            INSERT INTO notifications (id, user_id, type, title, body, action_url, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (notification_id, user_id, type, title, body, action_url, now),
        )
        return Notification(
            id=notification_id,
            user_id=user_id,
            type=type,
            title=title,
            body=body,
            action_url=action_url,
            read_at=None,
            created_at=now,
        )

    def list_notifications(
        self, user_id: str, limit: int, offset: int = 0, unread_only: bool = False
    ) -> list[Notification]:
        """List a user's notifications, newest first."""
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND read_at IS NULL"
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        rows = self._fetch_all(query, (user_id, limit, offset))
        return [self._row_to_notification(row) for row in rows]

    def get_notification(self, notification_id: str, user_id: str) -> Notification | None:
        """Retrieve a notification owned by the user."""
        row = self._fetch_one(
            "SELECT * FROM notifications WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return self._row_to_notification(row) if row else None

    def mark_notification_read(self, notification_id: str, user_id: str) -> None:
        """Mark one notification as read."""
        self._execute(
            """
            UPDATE notifications SET read_at = COALESCE(read_at, ?)
            WHERE id = ? AND user_id = ?
            """,
            (_now(), notification_id, user_id),
        )

    def mark_all_notifications_read(self, user_id: str) -> None:
        """Mark every unread notification of the user as read."""
        self._execute(
            "UPDATE notifications SET read_at = ? WHERE user_id = ? AND read_at IS NULL",
            (_now(), user_id),
        )

    def count_unread_notifications(self, user_id: str) -> int:
        """Count the user's unread notifications."""
        row = self._fetch_one(
            "SELECT COUNT(*) AS n FROM notifications WHERE user_id = ? AND read_at IS NULL",
            (user_id,),
        )
        return int(row["n"]) if row else 0

    def _row_to_notification(self, row: sqlite3.Row) -> Notification:
        return Notification(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            title=row["title"],
            body=row["body"],
            action_url=row["action_url"],
            read_at=row["read_at"],
            created_at=row["created_at"],
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def get_subscription(self, user_id: str) -> Subscription | None:
        """Retrieve the user's subscription."""
        row = self._fetch_one("SELECT * FROM subscriptions WHERE user_id = ?", (user_id,))
        if row is None:
            return None
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            plan_id=row["plan_id"],
            status=row["status"],
            current_period_end=row["current_period_end"],
            cancel_at_period_end=bool(row["cancel_at_period_end"]),
        )

    def upsert_subscription(
        self,
        user_id: str,
        plan_id: str,
        status: str = "active",
        current_period_end: int | None = None,
        cancel_at_period_end: bool = False,
    ) -> None:
        """Create or replace the user's subscription."""
        now = _now()
        self._execute(
            """
            INSERT INTO subscriptions (id, user_id, plan_id, status, current_period_end,
                                       cancel_at_period_end, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                plan_id = excluded.plan_id,
                status = excluded.status,
                current_period_end = excluded.current_period_end,
                cancel_at_period_end = excluded.cancel_at_period_end,
                updated_at = excluded.updated_at
            """,
            (
                _new_id(),
                user_id,
                plan_id,
                status,
                current_period_end,
                int(cancel_at_period_end),
                now,
                now,
            ),
        )

    # -------------------------------------------------------------------------
    # MCP sessions
    # -------------------------------------------------------------------------

    def upsert_session(self, session_id: str, user_id: str, org_id: str | None) -> None:
        """Persist the organization selection of a session."""
        now = _now()
        self._execute(
            """
            INSERT INTO mcp_sessions (session_id, user_id, org_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (session_id) DO UPDATE SET
                org_id = excluded.org_id,
                updated_at = excluded.updated_at
            """,
            (session_id, user_id, org_id, now, now),
        )

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Retrieve a persisted session."""
        row = self._fetch_one("SELECT * FROM mcp_sessions WHERE session_id = ?", (session_id,))
        return self._row_to_session(row) if row else None

    def get_latest_session_for_user(self, user_id: str) -> SessionRecord | None:
        """Most recent session of the user that has an organization selected."""
        row = self._fetch_one(
            """
            SELECT * FROM mcp_sessions
            WHERE user_id = ? AND org_id IS NOT NULL
            ORDER BY updated_at DESC, rowid DESC
            LIMIT 1
            """,
            (user_id,),
        )
        return self._row_to_session(row) if row else None

    def delete_session(self, session_id: str) -> None:
        """Remove a persisted session."""
        self._execute("DELETE FROM mcp_sessions WHERE session_id = ?", (session_id,))

    def cleanup_sessions(self, max_age_seconds: int = SESSION_MAX_AGE_SECONDS) -> None:
        """Purge sessions not updated within max_age_seconds."""
        self._execute(
            "DELETE FROM mcp_sessions WHERE updated_at < ?", (_now() - max_age_seconds,)
        )

    def _row_to_session(self, row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            session_id=row["session_id"],
            user_id=row["user_id"],
            org_id=row["org_id"],
            updated_at=row["updated_at"],
        )

    def __enter__(self) -> Store:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
