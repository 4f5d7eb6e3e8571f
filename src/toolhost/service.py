"""Service container shared by every session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from toolhost.config import HostConfig
from toolhost.store import Store


@dataclass
class ServiceContext:
    """Long-lived collaborators shared across sessions.

    The store is internally locked; nothing else here is mutated after
    startup.
    """

    config: HostConfig = field(default_factory=HostConfig)
    store: Store | None = None

    def __post_init__(self) -> None:
        if self.store is None:
            self.store = Store(self.config.database_path)

    @property
    def db(self) -> Store:
        """Return the store."""
        assert self.store is not None
        return self.store

    def close(self) -> None:
        """Close the store."""
        if self.store is not None:
            self.store.close()

    def __enter__(self) -> ServiceContext:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
