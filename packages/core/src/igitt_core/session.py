"""Review session engine.

The controller runs on its own thread and talks to the UI only through two
queues:

    commands  controller → UI   RenderCommit, SessionEnded, SessionAborted
    events    UI → controller   NavigationEvent, QuitEvent

The controller is the only writer of the CommitDatabase. Everything it hands
to the UI is a copy, so the UI never reaches back into shared state.

A rating is always written to the commit that was on screen when it was
submitted, and checkpointed, before the cursor moves.
"""

from __future__ import annotations

import copy
import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

from igitt_store.base import BaseStore, StorePersistError
from igitt_store.models import CommitDatabase, CommitRecord, Position, Rating

if TYPE_CHECKING:
    from igitt_core.remote.fetcher import FetchHandle, RemoteFetcher

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.01


class NavigationError(Exception):
    """A move past either end of the review sequence."""


class SessionMode(Enum):
    NEW = "new"
    VIEW = "view"
    EDIT = "edit"


class TerminationMode(Enum):
    CONTINUE = "continue"
    DISCARD = "discard"
    SAVE_AND_STOP = "save_and_stop"


class Navigation(Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    FINISH = "finish"


class Choice(Enum):
    VALID = "valid"
    INVALID = "invalid"
    BROKEN = "broken"


@dataclass(frozen=True)
class SessionSetup:
    """The reviewer's answer to the startup mode selection."""

    name: str
    mode: SessionMode
    resume: bool = False

    @property
    def readonly(self) -> bool:
        return self.mode is SessionMode.VIEW


@dataclass(frozen=True)
class NavigationState:
    previous: bool
    next: bool
    finish: bool

    def allows(self, action: Navigation) -> bool:
        return {
            Navigation.PREVIOUS: self.previous,
            Navigation.NEXT: self.next,
            Navigation.FINISH: self.finish,
        }[action]


@dataclass(frozen=True)
class RatingSelection:
    """Initial state of the rating inputs for one commit."""

    choice: Choice
    comment: str
    allowed: tuple[Choice, ...]

    @property
    def editable(self) -> bool:
        return bool(self.allowed)


# --------------------------------------------------------------------------- #
# Events (UI → controller)                                                     #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class NavigationEvent:
    action: Navigation
    position: Position
    comment: str
    is_refactoring: bool
    moved: bool

    @classmethod
    def from_choice(cls, action: Navigation, position: Position, choice: Choice, comment: str) -> NavigationEvent:
        return cls(
            action=action,
            position=position,
            comment=comment,
            is_refactoring=choice is Choice.VALID,
            moved=choice is Choice.BROKEN,
        )


@dataclass(frozen=True)
class QuitEvent:
    save: bool


Event = Union[NavigationEvent, QuitEvent]


# --------------------------------------------------------------------------- #
# Commands (controller → UI)                                                   #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class RenderCommit:
    position: Position
    keyword: str
    record: CommitRecord
    reviewer: str
    readonly: bool
    navigation: NavigationState
    handle: FetchHandle
    index: int
    total: int
    selection: RatingSelection = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "selection", initial_selection(self.record, self.reviewer, self.readonly))


@dataclass(frozen=True)
class SessionEnded:
    mode: TerminationMode
    saved_to: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class SessionAborted:
    error: BaseException


# --------------------------------------------------------------------------- #
# Traversal                                                                    #
# --------------------------------------------------------------------------- #


def first_position(db: CommitDatabase) -> Position | None:
    for keyword_index, keyword in enumerate(db.keywords()):
        if db.commits(keyword):
            return Position(keyword_index, 0)
    return None


def last_position(db: CommitDatabase) -> Position | None:
    keywords = db.keywords()
    for keyword_index in range(len(keywords) - 1, -1, -1):
        commits = db.commits(keywords[keyword_index])
        if commits:
            return Position(keyword_index, len(commits) - 1)
    return None


def next_position(db: CommitDatabase, position: Position) -> Position:
    keywords = db.keywords()
    if position.commit_index + 1 < len(db.commits(keywords[position.keyword_index])):
        return Position(position.keyword_index, position.commit_index + 1)
    for keyword_index in range(position.keyword_index + 1, len(keywords)):
        if db.commits(keywords[keyword_index]):
            return Position(keyword_index, 0)
    raise NavigationError(f"no commit after {position}")


def previous_position(db: CommitDatabase, position: Position) -> Position:
    if position.commit_index > 0:
        return Position(position.keyword_index, position.commit_index - 1)
    keywords = db.keywords()
    for keyword_index in range(position.keyword_index - 1, -1, -1):
        commits = db.commits(keywords[keyword_index])
        if commits:
            return Position(keyword_index, len(commits) - 1)
    raise NavigationError(f"no commit before {position}")


def navigation_state(db: CommitDatabase, position: Position) -> NavigationState:
    at_last = position == last_position(db)
    return NavigationState(previous=position != first_position(db), next=not at_last, finish=at_last)


def resume_position(db: CommitDatabase, name: str) -> Position | None:
    """Position of the last commit ``name`` rated, for resuming a review.

    Takes the highest rated commit index within each keyword, then the last
    keyword (in database order) that has one. The commit itself is shown
    again rather than the one after it. Falls back to the first position.
    """
    resume = None
    for keyword_index, keyword in enumerate(db.keywords()):
        rated = [i for i, commit in enumerate(db.commits(keyword)) if name in commit.ratings]
        if rated:
            resume = Position(keyword_index, rated[-1])
    return resume if resume is not None else first_position(db)


def starting_position(db: CommitDatabase, setup: SessionSetup) -> Position | None:
    if setup.resume:
        return resume_position(db, setup.name)
    return first_position(db)


def initial_selection(record: CommitRecord, reviewer: str, readonly: bool = False) -> RatingSelection:
    """Pre-populate the rating inputs from ``reviewer``'s existing rating."""
    existing = record.rating_for(reviewer)
    comment = existing.comment if existing else ""
    if record.moved:
        choice, allowed = Choice.BROKEN, (Choice.BROKEN,)
    else:
        choice = Choice.VALID if existing and existing.is_refactoring else Choice.INVALID
        allowed = (Choice.VALID, Choice.INVALID, Choice.BROKEN)
    if readonly:
        allowed = ()
    return RatingSelection(choice=choice, comment=comment, allowed=allowed)


def apply_rating(db: CommitDatabase, position: Position, name: str, rating: Rating, moved: bool) -> None:
    record = db.record_at(position)
    record.moved = moved
    record.ratings[name] = rating


def recover_database(primary: BaseStore, checkpoint: BaseStore, use_checkpoint: bool) -> CommitDatabase:
    """Load the database to review, from the checkpoint if the user accepted it.

    A declined checkpoint is left on disk; the next checkpoint write replaces it.
    """
    if use_checkpoint and checkpoint.exists():
        logger.info("Recovering review state from checkpoint %s", checkpoint)
        return checkpoint.load()
    return primary.load()


# --------------------------------------------------------------------------- #
# Controller                                                                   #
# --------------------------------------------------------------------------- #


class SessionController:
    """Drives one review session from the first render to the final save."""

    def __init__(
        self,
        db: CommitDatabase,
        setup: SessionSetup,
        fetcher: RemoteFetcher,
        primary: BaseStore,
        checkpoint: BaseStore,
        commands: queue.Queue | None = None,
        events: queue.Queue | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.db = db
        self.name = setup.name
        self.readonly = setup.readonly
        self.fetcher = fetcher
        self.primary = primary
        self.checkpoint = checkpoint
        self.commands: queue.Queue = commands if commands is not None else queue.Queue()
        self.events: queue.Queue = events if events is not None else queue.Queue()
        self.poll_interval = poll_interval
        self.position = starting_position(db, setup)
        self.mode = TerminationMode.CONTINUE
        self._stopped = threading.Event()

    def run(self) -> SessionEnded:
        """Run the review loop until Finish or a quit, then end the session.

        Fatal errors (unsupported origins, unwritable checkpoint) are sent to
        the UI as SessionAborted and re-raised.
        """
        try:
            self._loop()
            return self.finish()
        except Exception as e:
            logger.error("Review session aborted: %s", e)
            self.commands.put(SessionAborted(e))
            raise

    def stop(self) -> None:
        """Ask a running loop to end without saving, e.g. when the UI went away."""
        self._stopped.set()

    def finish(self) -> SessionEnded:
        if self.mode is TerminationMode.SAVE_AND_STOP and not self.readonly:
            try:
                self.primary.save(self.db)
            except StorePersistError as e:
                # The checkpoint still holds every submitted rating.
                logger.warning("Final save failed, keeping checkpoint: %s", e)
                ended = SessionEnded(self.mode, error=str(e))
            else:
                self.checkpoint.discard()
                ended = SessionEnded(self.mode, saved_to=str(self.primary))
        else:
            ended = SessionEnded(self.mode)
        self.commands.put(ended)
        return ended

    def submit(self, event: NavigationEvent) -> None:
        """Record the rating carried by ``event`` and checkpoint the database."""
        if self.readonly:
            return
        apply_rating(
            self.db,
            self.position,
            self.name,
            Rating(is_refactoring=event.is_refactoring, comment=event.comment),
            event.moved,
        )
        self.checkpoint.save(self.db)
        logger.debug("Recorded rating for %s at %s", self.name, self.position)

    def handle(self, event: Event) -> None:
        if isinstance(event, QuitEvent):
            self.mode = TerminationMode.SAVE_AND_STOP if event.save else TerminationMode.DISCARD
            logger.debug("Quit requested (save=%s)", event.save)
            return

        self.submit(event)
        if event.action is Navigation.FINISH:
            self.mode = TerminationMode.SAVE_AND_STOP
        elif event.action is Navigation.NEXT:
            self.position = next_position(self.db, self.position)
        else:
            self.position = previous_position(self.db, self.position)

    def render_command(self, handle: FetchHandle) -> RenderCommit:
        return RenderCommit(
            position=self.position,
            keyword=self.db.keyword_at(self.position.keyword_index),
            record=copy.deepcopy(self.db.record_at(self.position)),
            reviewer=self.name,
            readonly=self.readonly,
            navigation=navigation_state(self.db, self.position),
            handle=handle,
            index=self.db.flat_index(self.position),
            total=self.db.total_commits(),
        )

    def _loop(self) -> None:
        if self.position is None:
            logger.info("Nothing to review: the keywords file holds no commits")
            self.mode = TerminationMode.DISCARD
            return

        while self.mode is TerminationMode.CONTINUE:
            handle = self.fetcher.fetch(self.db.record_at(self.position))
            self.commands.put(self.render_command(handle))
            self.handle(self._wait_for_event())

    def _wait_for_event(self) -> Event:
        state = navigation_state(self.db, self.position)
        while not self._stopped.is_set():
            try:
                event = self.events.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if isinstance(event, QuitEvent):
                return event
            if event.position != self.position:
                logger.debug("Dropping stale %s for %s", event.action.value, event.position)
                continue
            if not state.allows(event.action):
                logger.warning("Ignoring %s: not available at %s", event.action.value, self.position)
                continue
            return event
        return QuitEvent(save=False)
