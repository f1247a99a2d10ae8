"""End-to-end tests for interactive review sessions.

The real controller thread, stores and console UI run together; only the
prompts and the network are scripted.
"""

from __future__ import annotations

import io
from concurrent.futures import Future

import pytest
from rich.console import Console

from igitt_cli.commands.review import run_review_session
from igitt_cli.tui import ConsoleUI
from igitt_core.remote.fetcher import FetchHandle
from igitt_core.remote.hosts import UnsupportedHostError
from igitt_core.session import SessionAborted, SessionEnded, TerminationMode
from igitt_store.models import CommitDatabase, CommitRecord, Position, Rating
from igitt_store.yaml_store import CheckpointStore, YamlStore

KEYWORDS_YAML = """\
refactor-kw:
  - origin: https://github.com/owner/repo
    commit: a1
  - origin: https://github.com/owner/repo
    commit: a2
bugfix-kw:
  - origin: https://gitlab.com/group/project
    commit: b1
"""


class FakeFetcher:
    def __init__(self):
        self.fetched = []
        self.closed = False

    def fetch(self, record):
        self.fetched.append(record.commit)
        message, diff = Future(), Future()
        message.set_result(f"message of {record.commit}")
        diff.set_result("+new\n-old\n")
        return FetchHandle(message, diff)

    def close(self):
        self.closed = True


@pytest.fixture
def workspace(tmp_path):
    keywords = tmp_path / "keywords.yml"
    keywords.write_text(KEYWORDS_YAML)
    config = {
        "checkpoint_path": str(tmp_path / ".#igitt.yml"),
        "poll_interval": 0.001,
        "request_timeout": 1.0,
        "results_csv": str(tmp_path / "results.csv"),
    }
    return tmp_path, str(keywords), config


def _ui():
    return ConsoleUI(console=Console(file=io.StringIO(), width=200), poll_interval=0.001)


def _script(mocker, prompts, confirms=()):
    mocker.patch("igitt_cli.tui.Prompt.ask", side_effect=list(prompts))
    return mocker.patch("igitt_cli.tui.Confirm.ask", side_effect=list(confirms))


class TestReviewSession:
    def test_new_reviewer_rates_everything_and_finishes(self, mocker, workspace):
        tmp_path, keywords, config = workspace
        _script(
            mocker,
            [
                "n", "bob",                       # new reviewer
                "v", "", "n",                     # commit 1: valid
                "i", "only a bug fix", "n",       # commit 2: invalid with comment
                "v", "", "f",                     # commit 3: valid, finish
            ],
        )
        fetcher = FakeFetcher()

        outcome = run_review_session(keywords, config, tokens={}, ui=_ui(), fetcher=fetcher)

        assert outcome == SessionEnded(TerminationMode.SAVE_AND_STOP, saved_to=keywords)
        saved = YamlStore(keywords).load()
        assert saved.record_at(Position(0, 0)).ratings == {"bob": Rating(True, "")}
        assert saved.record_at(Position(0, 1)).ratings == {"bob": Rating(False, "only a bug fix")}
        assert saved.record_at(Position(1, 0)).ratings == {"bob": Rating(True, "")}
        assert not (tmp_path / ".#igitt.yml").exists()
        assert fetcher.fetched == ["a1", "a2", "b1"]
        assert fetcher.closed is True

    def test_recovered_checkpoint_and_resume(self, mocker, workspace):
        tmp_path, keywords, config = workspace
        checkpoint = CheckpointStore(config["checkpoint_path"])
        recovered = YamlStore(keywords).load()
        recovered.record_at(Position(0, 1)).ratings["bob"] = Rating(True, "from last time")
        checkpoint.save(recovered)
        ui = _ui()
        confirm = _script(
            mocker,
            [
                "e", "bob",                       # edit bob, found only in the checkpoint
                "v", "from last time", "q", "q",  # quit without saving
            ],
            confirms=[True, True],                # load checkpoint, resume
        )
        fetcher = FakeFetcher()

        outcome = run_review_session(keywords, config, tokens={}, ui=ui, fetcher=fetcher)

        assert confirm.call_count == 2
        assert fetcher.fetched == ["a2"]
        assert outcome.mode is TerminationMode.DISCARD
        assert "bob" not in YamlStore(keywords).load().record_at(Position(0, 1)).ratings
        assert checkpoint.exists()
        assert "[2/3] 'refactor-kw'" in ui.console.file.getvalue()

    def test_declined_checkpoint_uses_primary(self, mocker, workspace):
        tmp_path, keywords, config = workspace
        checkpoint = CheckpointStore(config["checkpoint_path"])
        checkpoint.save(CommitDatabase({"stale": [CommitRecord(origin="https://github.com/o/r", commit="zz")]}))
        _script(mocker, ["n", "carol", "i", "", "q", "q"], confirms=[False])
        fetcher = FakeFetcher()

        run_review_session(keywords, config, tokens={}, ui=_ui(), fetcher=fetcher)

        assert fetcher.fetched == ["a1"]
        assert checkpoint.load().keywords() == ["stale"]

    def test_view_session_changes_nothing(self, mocker, workspace):
        tmp_path, keywords, config = workspace
        db = YamlStore(keywords).load()
        db.record_at(Position(0, 0)).ratings["alice"] = Rating(True, "looks good")
        YamlStore(keywords).save(db)
        before = (tmp_path / "keywords.yml").read_text()
        _script(mocker, ["v", "alice", "n", "n", "f"])

        outcome = run_review_session(keywords, config, tokens={}, ui=_ui(), fetcher=FakeFetcher())

        assert outcome.saved_to is None
        assert (tmp_path / "keywords.yml").read_text() == before
        assert not (tmp_path / ".#igitt.yml").exists()

    def test_evaluate_from_menu_then_save_and_quit(self, mocker, workspace):
        tmp_path, keywords, config = workspace
        _script(
            mocker,
            ["x", "n", "dave", "v", "", "q", "s"],
            confirms=[True],  # export csv
        )

        outcome = run_review_session(keywords, config, tokens={}, ui=_ui(), fetcher=FakeFetcher())

        assert (tmp_path / "results.csv").read_text().splitlines()[0] == "keyword,true_positives,false_positives,unsure"
        assert outcome.mode is TerminationMode.SAVE_AND_STOP
        # Save and quit keeps submitted ratings only; the rating on screen was never submitted.
        assert "dave" not in YamlStore(keywords).load().record_at(Position(0, 0)).ratings
        assert not (tmp_path / ".#igitt.yml").exists()

    def test_unsupported_host_aborts_and_reraises(self, mocker, workspace):
        tmp_path, keywords, config = workspace
        (tmp_path / "keywords.yml").write_text("kw:\n  - origin: https://bitbucket.org/o/r\n    commit: x\n")
        _script(mocker, ["n", "erin"])
        fetcher = FakeFetcher()
        fetcher.fetch = mocker.MagicMock(side_effect=UnsupportedHostError("bitbucket.org"))
        ui = _ui()
        run_spy = mocker.spy(ui, "run")

        with pytest.raises(UnsupportedHostError):
            run_review_session(keywords, config, tokens={}, ui=ui, fetcher=fetcher)

        assert isinstance(run_spy.spy_return, SessionAborted)
        assert fetcher.closed is True

    def test_malformed_keywords_file_fails_before_prompting(self, mocker, workspace):
        from igitt_store.base import StoreLoadError

        tmp_path, keywords, config = workspace
        (tmp_path / "keywords.yml").write_text("kw: 3\n")
        prompt = mocker.patch("igitt_cli.tui.Prompt.ask")

        with pytest.raises(StoreLoadError):
            run_review_session(keywords, config, tokens={}, ui=_ui(), fetcher=FakeFetcher())
        prompt.assert_not_called()
