"""Abstract store interface.

The primary keywords file and the crash-recovery checkpoint share one schema,
so both are stores. The session controller depends on BaseStore, not on a
concrete backend, which lets read-only sessions plug in a store that never
touches disk.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from igitt_store.models import CommitDatabase


class IgittError(Exception):
    """Base class for errors raised by igitt."""


class StoreLoadError(IgittError):
    """The store file is unreadable or does not follow the schema."""


class StorePersistError(IgittError):
    """The store file could not be written."""


class BaseStore(ABC):
    """Pluggable persistence for a CommitDatabase."""

    @abstractmethod
    def load(self) -> CommitDatabase:
        """Read the full database. Raises StoreLoadError on failure."""

    @abstractmethod
    def save(self, db: CommitDatabase) -> None:
        """Replace the stored database. Raises StorePersistError on failure."""

    @abstractmethod
    def exists(self) -> bool:
        """Return True if there is anything to load."""

    def discard(self) -> None:
        """Remove the stored data. Default is a no-op."""

    def close(self) -> None:
        """Release any resources held by the store.

        Optional; subclasses that need cleanup should override this.
        """
