"""Aggregate collected ratings into per-keyword tallies."""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum

from rich.text import Text

from igitt_store.models import CommitDatabase, CommitRecord

logger = logging.getLogger(__name__)

CSV_HEADER = "keyword,true_positives,false_positives,unsure"


class OutputError(Exception):
    """Evaluation results could not be written to the requested path."""


class EvaluationResult(Enum):
    TRUE_POSITIVE = "true_positive"
    FALSE_POSITIVE = "false_positive"
    UNSURE = "unsure"


@dataclass
class EvaluatedKeyword:
    keyword: str
    true_positives: int = 0
    false_positives: int = 0
    unsure: int = 0

    def to_csv_row(self) -> list:
        return [self.keyword, self.true_positives, self.false_positives, self.unsure]


def classify_commit(commit: CommitRecord) -> EvaluationResult | None:
    """Majority vote across reviewers; None for moved commits, which are not evaluated."""
    if commit.moved:
        return None
    positive = sum(1 for r in commit.ratings.values() if r.is_refactoring)
    negative = len(commit.ratings) - positive
    if positive > negative:
        return EvaluationResult.TRUE_POSITIVE
    if positive < negative:
        return EvaluationResult.FALSE_POSITIVE
    return EvaluationResult.UNSURE


def evaluate_keywords(db: CommitDatabase) -> list[EvaluatedKeyword]:
    """Return one tally per keyword, in database order. Does not modify ``db``."""
    results = []
    for keyword, commits in db.items():
        counts: Counter[EvaluationResult] = Counter()
        for commit in commits:
            verdict = classify_commit(commit)
            if verdict is not None:
                counts[verdict] += 1
        results.append(
            EvaluatedKeyword(
                keyword=keyword,
                true_positives=counts[EvaluationResult.TRUE_POSITIVE],
                false_positives=counts[EvaluationResult.FALSE_POSITIVE],
                unsure=counts[EvaluationResult.UNSURE],
            )
        )
    return results


def to_text(results: list[EvaluatedKeyword]) -> Text:
    text = Text()
    for entry in results:
        text.append(f"{entry.keyword}:\n")
        text.append("  ")
        text.append("True Positives", style="green")
        text.append(f": {entry.true_positives}\n")
        text.append("  ")
        text.append("False Positives", style="cyan")
        text.append(f": {entry.false_positives}\n")
        text.append(f"  Unsure: {entry.unsure}\n")
    return text


def to_csv(results: list[EvaluatedKeyword]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER.split(","))
    writer.writerows(entry.to_csv_row() for entry in results)
    return buf.getvalue()


def save_csv(results: list[EvaluatedKeyword], path: str) -> None:
    try:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(to_csv(results))
    except OSError as e:
        logger.warning("Could not write evaluation csv to %s: %s", path, e)
        raise OutputError(f"Could not write {path}: {e}") from e
