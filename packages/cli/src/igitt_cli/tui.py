"""Console UI for review sessions.

Runs on the main thread and owns the terminal. It consumes the controller's
command queue in order and answers every RenderCommit with exactly one event,
so a rating can never be submitted twice for the same commit.
"""

from __future__ import annotations

import queue
from typing import Callable, Union

from rich.console import Console, Group
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.syntax import Syntax
from rich.text import Text

from igitt_core.evaluation import EvaluatedKeyword, to_text
from igitt_core.remote.fetcher import CommitDetails
from igitt_core.session import (
    Choice,
    Navigation,
    NavigationEvent,
    QuitEvent,
    RenderCommit,
    SessionAborted,
    SessionEnded,
    SessionMode,
    SessionSetup,
    TerminationMode,
)

Outcome = Union[SessionEnded, SessionAborted]

_CHOICE_KEYS = {
    Choice.VALID: "v",
    Choice.INVALID: "i",
    Choice.BROKEN: "b",
}
_CHOICE_LABELS = {
    Choice.VALID: "This commit is a valid refactoring",
    Choice.INVALID: "This commit does not contain refactoring",
    Choice.BROKEN: "This commit seems to be no longer available",
}
# Typed at the comment prompt to remove an existing comment.
_CLEAR_COMMENT = "-"

_ACTION_KEYS = {
    Navigation.PREVIOUS: "p",
    Navigation.NEXT: "n",
    Navigation.FINISH: "f",
}


class ConsoleUI:
    """Terminal front end: startup menu, commit rendering and rating prompts.

    Usage:
        ui = ConsoleUI()
        setup = ui.select_session(db.reviewers(), on_evaluate)
        outcome = ui.run(controller.commands, controller.events)
    """

    def __init__(self, console: Console | None = None, poll_interval: float = 0.05):
        self.console = console or Console()
        self.poll_interval = poll_interval

    # ------------------------------------------------------------------ #
    # Startup                                                              #
    # ------------------------------------------------------------------ #

    def ask_recover_checkpoint(self) -> bool:
        self.console.print(
            Panel(
                "A temporary file has been found. The last review session was not saved "
                "properly; loading the temporary file is recommended.",
                title="[yellow]Unsaved session found[/yellow]",
                border_style="yellow",
            )
        )
        return Confirm.ask("Load the temporary file?", default=True, console=self.console)

    def select_session(self, reviewers: list[str], on_evaluate: Callable[[bool], None]) -> SessionSetup:
        """Ask who is reviewing and how. Loops back after an evaluation."""
        while True:
            self.console.print(
                "\n[bold]n[/bold] new reviewer  [bold]v[/bold] view ratings  "
                "[bold]e[/bold] edit ratings  [bold]x[/bold] evaluate"
            )
            choices = ["n", "v", "e", "x"] if reviewers else ["n", "x"]
            mode = Prompt.ask("Mode", choices=choices, default="e" if reviewers else "n", console=self.console)

            if mode == "x":
                export = Confirm.ask("Export as csv?", default=False, console=self.console)
                on_evaluate(export)
                continue

            if mode == "n":
                name = ""
                while not name:
                    name = Prompt.ask("Please enter your name", console=self.console).strip()
                if name in reviewers:
                    return SessionSetup(name=name, mode=SessionMode.EDIT)
                return SessionSetup(name=name, mode=SessionMode.NEW)

            self._print_reviewers(reviewers)
            name = Prompt.ask("Reviewer", choices=reviewers, console=self.console)
            if mode == "v":
                return SessionSetup(name=name, mode=SessionMode.VIEW)
            resume = Confirm.ask(
                "Would you like to proceed from your last reviewed commit?", default=True, console=self.console
            )
            return SessionSetup(name=name, mode=SessionMode.EDIT, resume=resume)

    def show_evaluation(self, results: list[EvaluatedKeyword]) -> None:
        self.console.print(Panel(to_text(results), title="Evaluation", border_style="cyan"))

    def notify(self, message: str, error: bool = False) -> None:
        self.console.print(Text(message, style="red" if error else "green"))

    # ------------------------------------------------------------------ #
    # Session loop                                                         #
    # ------------------------------------------------------------------ #

    def run(self, commands: queue.Queue, events: queue.Queue) -> Outcome:
        """Serve the controller until it reports the end of the session."""
        while True:
            command = commands.get()
            if isinstance(command, RenderCommit):
                events.put(self.review_commit(command))
            elif isinstance(command, SessionEnded):
                self.show_ended(command)
                return command
            elif isinstance(command, SessionAborted):
                self.notify(f"Session aborted: {command.error}", error=True)
                return command

    def review_commit(self, command: RenderCommit) -> NavigationEvent | QuitEvent:
        self.console.rule(Text(self._title(command, loading=True)), style="dim")
        details = self._await_details(command)
        self.console.print(self.render_details(details))
        self.console.rule(Text(self._title(command, loading=False)))
        return self.prompt_event(command)

    def render_details(self, details: CommitDetails) -> Group:
        message_style = "red" if details.message_failed else ""
        diff_body = Text(details.diff, style="red") if details.diff_failed else Syntax(details.diff, "diff", word_wrap=True)
        return Group(
            Panel(Text(details.message, style=message_style), title="Commit Message", title_align="left"),
            Panel(diff_body, title="Diff", title_align="left"),
        )

    def prompt_event(self, command: RenderCommit) -> NavigationEvent | QuitEvent:
        selection = command.selection
        choice, comment = selection.choice, selection.comment
        self._print_rating(command, choice, comment)

        if selection.editable:
            keys = {_CHOICE_KEYS[c]: c for c in selection.allowed}
            if len(keys) > 1:
                picked = Prompt.ask(
                    "Rating", choices=list(keys), default=_CHOICE_KEYS[choice], console=self.console
                )
                choice = keys[picked]
            label = "Comment (- to clear)" if comment else "Comment"
            comment = Prompt.ask(label, default=comment, show_default=bool(comment), console=self.console)
            if comment.strip() == _CLEAR_COMMENT:
                comment = ""

        actions = {_ACTION_KEYS[a]: a for a in Navigation if command.navigation.allows(a)}
        default = "f" if command.navigation.finish else "n"
        while True:
            picked = Prompt.ask(
                "Action (p=prev, n=next, f=finish, q=quit)",
                choices=[*actions, "q"],
                default=default,
                console=self.console,
            )
            if picked != "q":
                return NavigationEvent.from_choice(actions[picked], command.position, choice, comment)
            answer = Prompt.ask(
                "Do you really want to quit? (s=save and quit, q=quit, n=no)",
                choices=["s", "q", "n"],
                default="n",
                console=self.console,
            )
            if answer != "n":
                return QuitEvent(save=answer == "s")

    def show_ended(self, ended: SessionEnded) -> None:
        if ended.error:
            self.notify(f"Could not save ratings: {ended.error}", error=True)
            self.notify("Your ratings are kept in the temporary file and can be recovered on the next start.", error=True)
        elif ended.saved_to:
            self.notify(f"Rating successfully saved to {ended.saved_to}")
        elif ended.mode is TerminationMode.DISCARD:
            self.console.print("[dim]Quit without saving.[/dim]")

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _await_details(self, command: RenderCommit) -> CommitDetails:
        details = command.handle.poll()
        if details is not None:
            return details
        with self.console.status("Loading commit…"):
            while details is None:
                details = command.handle.wait(timeout=self.poll_interval)
        return details

    @staticmethod
    def _title(command: RenderCommit, loading: bool) -> str:
        record = command.record
        prefix = "Loading " if loading else ""
        return (
            f"{prefix}[{command.index + 1}/{command.total}] '{command.keyword}' / {record.section} "
            f"| {record.origin} @ {record.commit} - {record.time}"
        )

    def _print_rating(self, command: RenderCommit, choice: Choice, comment: str) -> None:
        lines = Text()
        for option, label in _CHOICE_LABELS.items():
            marker = "(•)" if option is choice else "( )"
            style = "" if option in command.selection.allowed else "dim"
            lines.append(f"{marker} [{_CHOICE_KEYS[option]}] {label}\n", style=style)
        lines.append(f"\nComment: {comment}" if comment else "\nComment: -")
        title = "Refactor rating" + (f" (viewing {command.reviewer})" if command.readonly else "")
        self.console.print(Panel(lines, title=title, title_align="left"))

    def _print_reviewers(self, reviewers: list[str]) -> None:
        for name in reviewers:
            self.console.print(f"  [bold]{name}[/bold]")
