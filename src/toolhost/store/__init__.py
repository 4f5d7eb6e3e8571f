"""Relational store used by the in-process tools."""

from toolhost.store.models import (
    Membership,
    Notification,
    Organization,
    Preferences,
    SessionRecord,
    Subscription,
    User,
)
from toolhost.store.sqlite import SlugTakenError, Store

__all__ = [
    "Membership",
    "Notification",
    "Organization",
    "Preferences",
    "SessionRecord",
    "SlugTakenError",
    "Store",
    "Subscription",
    "User",
]
