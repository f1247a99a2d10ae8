"""Commit database data models.

The YAML layout is the single source of truth for field names: a commit's
ratings live under ``rating`` and its hash under ``commit``. Conversion to and
from that layout happens here so the rest of the code only sees dataclasses.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Iterator, NamedTuple

NOT_AVAILABLE = "N/A"


class ValidationError(ValueError):
    """A document does not follow the commit database schema."""


def _bool_field(d: dict, key: str, default: bool) -> bool:
    value = d.get(key, default)
    if not isinstance(value, bool):
        raise ValidationError(f"'{key}' must be true or false, got {value!r}")
    return value


def _text_field(d: dict, key: str, default: str) -> str:
    # Unquoted dates and numbers are kept as their YAML text.
    value = d.get(key, default)
    if value is None or isinstance(value, (bool, dict, list)):
        raise ValidationError(f"'{key}' must be a string, got {value!r}")
    return str(value)


class Position(NamedTuple):
    """Cursor into the flattened (keyword, commit) sequence."""

    keyword_index: int
    commit_index: int


@dataclass
class Rating:
    """A single reviewer's judgment of one commit."""

    is_refactoring: bool
    comment: str = ""

    def to_dict(self) -> dict:
        return {"is_refactoring": self.is_refactoring, "comment": self.comment}

    @classmethod
    def from_dict(cls, d: dict) -> Rating:
        if not isinstance(d, dict) or "is_refactoring" not in d:
            raise ValidationError("rating must be a mapping with 'is_refactoring'")
        return cls(is_refactoring=_bool_field(d, "is_refactoring", False), comment=str(d.get("comment") or ""))


@dataclass
class CommitRecord:
    """A commit queued for review under a keyword."""

    origin: str
    commit: str
    moved: bool = False
    section: str = NOT_AVAILABLE
    time: str = NOT_AVAILABLE
    ratings: dict[str, Rating] = field(default_factory=dict)

    def rating_for(self, reviewer: str) -> Rating | None:
        return self.ratings.get(reviewer)

    def to_dict(self) -> dict:
        return {
            "origin": self.origin,
            "moved": self.moved,
            "commit": self.commit,
            "section": self.section,
            "time": self.time,
            "rating": {name: r.to_dict() for name, r in self.ratings.items()},
        }

    @classmethod
    def from_dict(cls, d: dict) -> CommitRecord:
        if not isinstance(d, dict):
            raise ValidationError("commit entry must be a mapping")
        for key in ("origin", "commit"):
            if d.get(key) is None:
                raise ValidationError(f"commit entry is missing '{key}'")
        raw_ratings = d.get("rating") or {}
        if not isinstance(raw_ratings, dict):
            raise ValidationError("'rating' must be a mapping of reviewer name to rating")
        return cls(
            origin=str(d["origin"]),
            commit=str(d["commit"]),
            moved=_bool_field(d, "moved", False),
            section=_text_field(d, "section", NOT_AVAILABLE),
            time=_text_field(d, "time", NOT_AVAILABLE),
            ratings={str(name): Rating.from_dict(r) for name, r in raw_ratings.items()},
        )


class CommitDatabase:
    """Ordered mapping of keyword to the commits collected under it.

    Keyword order and commit order define the review traversal, so both are
    kept exactly as loaded.
    """

    def __init__(self, keywords: dict[str, list[CommitRecord]] | None = None):
        self._keywords: dict[str, list[CommitRecord]] = dict(keywords or {})

    def __len__(self) -> int:
        return len(self._keywords)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keywords)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CommitDatabase):
            return NotImplemented
        return self._keywords == other._keywords

    def items(self):
        return self._keywords.items()

    def keywords(self) -> list[str]:
        return list(self._keywords)

    def commits(self, keyword: str) -> list[CommitRecord]:
        return self._keywords[keyword]

    def keyword_at(self, keyword_index: int) -> str:
        return self.keywords()[keyword_index]

    def record_at(self, position: Position) -> CommitRecord:
        return self.commits(self.keyword_at(position.keyword_index))[position.commit_index]

    def total_commits(self) -> int:
        return sum(len(commits) for commits in self._keywords.values())

    def flat_index(self, position: Position) -> int:
        """Zero-based index of ``position`` in the flattened traversal."""
        keywords = self.keywords()
        preceding = sum(len(self._keywords[k]) for k in keywords[: position.keyword_index])
        return preceding + position.commit_index

    def reviewers(self) -> list[str]:
        """Every reviewer name that appears in any rating, sorted."""
        names = {name for commits in self._keywords.values() for c in commits for name in c.ratings}
        return sorted(names)

    def copy(self) -> CommitDatabase:
        return CommitDatabase(copy.deepcopy(self._keywords))

    def to_dict(self) -> dict:
        return {kw: [c.to_dict() for c in commits] for kw, commits in self._keywords.items()}

    @classmethod
    def from_dict(cls, raw: object) -> CommitDatabase:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValidationError("top level must be a mapping of keyword to commits")
        keywords: dict[str, list[CommitRecord]] = {}
        for keyword, entries in raw.items():
            if not isinstance(entries, list):
                raise ValidationError(f"keyword {keyword!r}: expected a list of commits")
            records = []
            for idx, entry in enumerate(entries):
                try:
                    records.append(CommitRecord.from_dict(entry))
                except ValidationError as e:
                    raise ValidationError(f"keyword {keyword!r}, commit #{idx}: {e}") from e
            keywords[str(keyword)] = records
        return cls(keywords)
