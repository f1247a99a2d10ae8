"""review: run an interactive rating session over the keywords file."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from igitt_cli.tui import ConsoleUI, Outcome
from igitt_core.evaluation import OutputError, evaluate_keywords, save_csv
from igitt_core.remote.fetcher import RemoteFetcher
from igitt_core.session import SessionController, recover_database
from igitt_store.models import CommitDatabase
from igitt_store.noop import NoOpStore
from igitt_store.yaml_store import CheckpointStore, YamlStore

logger = logging.getLogger(__name__)


def _evaluate_action(db: CommitDatabase, csv_path: str, ui: ConsoleUI) -> Callable[[bool], None]:
    """The startup menu's Evaluate entry: show the tally, optionally export it."""

    def on_evaluate(export_csv: bool) -> None:
        results = evaluate_keywords(db)
        ui.show_evaluation(results)
        if not export_csv:
            return
        try:
            save_csv(results, csv_path)
        except OutputError:
            ui.notify("Could not store results, try to use the --csv flag via the cli", error=True)
        else:
            ui.notify(f"Results saved successfully under {csv_path}")

    return on_evaluate


def _run_controller(controller: SessionController, errors: list[BaseException]) -> None:
    try:
        controller.run()
    except Exception as e:
        # Surfaced by run_review_session once the UI loop has ended.
        errors.append(e)


def run_review_session(
    keywords_path: str,
    config: dict,
    tokens: dict[str, str],
    ui: ConsoleUI | None = None,
    fetcher: RemoteFetcher | None = None,
) -> Outcome:
    """Load the database, ask the startup questions, then review until the session ends.

    Raises StoreLoadError before anything is shown, and re-raises any fatal
    error of the session controller after the UI has stopped.
    """
    ui = ui or ConsoleUI()
    primary = YamlStore(keywords_path)
    checkpoint = CheckpointStore(config["checkpoint_path"])

    db = primary.load()
    if checkpoint.exists() and ui.ask_recover_checkpoint():
        db = recover_database(primary, checkpoint, use_checkpoint=True)

    setup = ui.select_session(db.reviewers(), _evaluate_action(db, config["results_csv"], ui))
    logger.debug("Starting %s session for %s (resume=%s)", setup.mode.value, setup.name, setup.resume)

    fetcher = fetcher or RemoteFetcher(tokens, timeout=config["request_timeout"])
    controller = SessionController(
        db,
        setup,
        fetcher,
        primary=primary,
        checkpoint=NoOpStore() if setup.readonly else checkpoint,
        poll_interval=config["poll_interval"],
    )

    errors: list[BaseException] = []
    worker = threading.Thread(target=_run_controller, args=(controller, errors), name="igitt-session", daemon=True)
    worker.start()
    try:
        outcome = ui.run(controller.commands, controller.events)
    except BaseException:
        controller.stop()
        raise
    finally:
        worker.join()
        fetcher.close()

    if errors:
        raise errors[0]
    return outcome
