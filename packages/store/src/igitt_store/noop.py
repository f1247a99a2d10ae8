"""No-op store: the checkpoint target of a read-only session.

Viewing another reviewer's ratings never changes the database, so there is
nothing to checkpoint. Using a NoOpStore rather than None lets the session
controller always call store.save() without conditional checks.
"""

from __future__ import annotations

from igitt_store.base import BaseStore
from igitt_store.models import CommitDatabase


class NoOpStore(BaseStore):
    """Silently discards all writes and always loads an empty database."""

    def load(self) -> CommitDatabase:
        return CommitDatabase()

    def save(self, db: CommitDatabase) -> None:
        pass  # intentional no-op

    def exists(self) -> bool:
        return False
