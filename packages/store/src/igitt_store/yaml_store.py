"""YamlStore: the keywords file and its crash-recovery checkpoint.

Data format: a top-level mapping of keyword to a list of commit entries, each
carrying its per-reviewer ratings under ``rating``. Key order is preserved in
both directions so the review traversal order survives a save.

Writes go to a sibling temporary file first and are moved into place with
os.replace, so an interrupted write never leaves a truncated store behind.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

import yaml

from igitt_store.base import BaseStore, StoreLoadError, StorePersistError
from igitt_store.models import CommitDatabase, ValidationError

logger = logging.getLogger(__name__)

CHECKPOINT_FILENAME = ".#igitt.yml"


class YamlStore(BaseStore):
    """Stores a CommitDatabase in a single YAML file."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def __str__(self) -> str:
        return str(self.path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> CommitDatabase:
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except OSError as e:
            raise StoreLoadError(f"Could not read {self.path}: {e}") from e
        except yaml.YAMLError as e:
            raise StoreLoadError(f"Could not parse {self.path}: {e}") from e

        try:
            db = CommitDatabase.from_dict(raw)
        except ValidationError as e:
            raise StoreLoadError(f"Invalid keywords file {self.path}: {e}") from e
        logger.debug("Loaded %d keyword(s) from %s", len(db), self.path)
        return db

    def save(self, db: CommitDatabase) -> None:
        content = yaml.safe_dump(db.to_dict(), sort_keys=False, allow_unicode=True, default_flow_style=False)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".igitt-", suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            if self.path.exists():
                # mkstemp creates 0600; keep the permissions of the file being replaced.
                os.chmod(tmp_name, stat.S_IMODE(self.path.stat().st_mode))
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorePersistError(f"Could not write {self.path}: {e}") from e
        logger.debug("Saved %d keyword(s) to %s", len(db), self.path)

    def discard(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class CheckpointStore(YamlStore):
    """The checkpoint written after every navigation step of an edit session.

    Lives at a fixed, well-known filename in the working directory so the next
    run can offer to recover it.
    """

    def __init__(self, path: str | os.PathLike = CHECKPOINT_FILENAME):
        super().__init__(path)
