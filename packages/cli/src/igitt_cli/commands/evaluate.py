"""evaluate: aggregate ratings into per-keyword tallies without starting the UI."""

from __future__ import annotations

from rich.console import Console

from igitt_core.evaluation import EvaluatedKeyword, OutputError, evaluate_keywords, save_csv, to_text
from igitt_store.models import CommitDatabase

console = Console()


def run_evaluation(db: CommitDatabase, csv_path: str | None = None) -> list[EvaluatedKeyword]:
    """Print the evaluation and, if ``csv_path`` is set, also write it as CSV.

    A CSV that cannot be written is reported; the printed result stands.
    """
    results = evaluate_keywords(db)
    if not results:
        console.print("[yellow]No keywords found.[/yellow]")
    console.print(to_text(results))

    if csv_path:
        try:
            save_csv(results, csv_path)
        except OutputError as e:
            console.print(f"[red]Could not save csv: {e}[/red]")
        else:
            console.print(f"Saved as csv in {csv_path}")
    return results
