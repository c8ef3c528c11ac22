"""Tests for the JSON and terminal reporters."""

import json
from io import StringIO

import pytest
from rich.console import Console

from worksync.git.models import BranchState, CommitLogEntry, FileChange, FileStatus, PullStatus
from worksync.output import json_report, terminal
from worksync.sync.engine import DiffSyncEngine
from worksync.sync.lifecycle import RequestLifecycleManager
from worksync.sync.outcomes import Outcome


def _console() -> Console:
    return Console(file=StringIO(), width=120, color_system=None)


def _text(console: Console) -> str:
    return console.file.getvalue()


@pytest.fixture
async def loaded_engine(anyio_backend, client, backend, handle, clock, sample_diff_multi):
    backend.diff = sample_diff_multi
    backend.behind = 2
    backend.commits = [{"hash": "c" * 40, "message": "tip", "webUrl": "https://example.test/c"}]
    engine = DiffSyncEngine(client, clock=clock)
    engine.bind(RequestLifecycleManager(handle))
    await engine.refresh_diff()
    await engine.refresh_status()
    await engine.refresh_log()
    return engine


class TestJsonReport:
    @pytest.mark.anyio
    async def test_structure(self, loaded_engine, handle, clock):
        data = json.loads(json_report.render(handle, loaded_engine, BranchState("main", ("main", "dev"))))
        assert data["repository"]["path"] == "/srv/demo"
        assert data["branch"] == {"current": "main", "all": ["main", "dev"]}
        assert data["pull_status"]["behind"] == 2
        assert data["pull_status"]["up_to_date"] is False
        assert data["pull_status"]["last_checked_at"] == clock.moment.isoformat()
        assert [f["status"] for f in data["files"]] == ["modified", "added", "deleted"]
        assert data["commits"][0]["web_url"] == "https://example.test/c"
        assert "diff" not in data
        assert "outcome" not in data

    @pytest.mark.anyio
    async def test_include_diff_follows_selection(self, loaded_engine, handle):
        loaded_engine.select_file("legacy.txt")
        data = json_report.to_dict(handle, loaded_engine, BranchState(), include_diff=True)
        assert data["diff"].startswith("diff --git a/legacy.txt")

    @pytest.mark.anyio
    async def test_outcome(self, loaded_engine, handle):
        outcome = Outcome.success("push", "Pushed 0123456", detail="0123456789")
        data = json_report.to_dict(handle, loaded_engine, BranchState(), outcome=outcome)
        assert data["outcome"] == {
            "action": "push",
            "status": "success",
            "message": "Pushed 0123456",
            "detail": "0123456789",
        }

    def test_unloaded_engine(self, client, handle):
        data = json_report.to_dict(handle, DiffSyncEngine(client), BranchState())
        assert data["files"] == []
        assert data["fetched_at"] is None
        assert data["pull_status"]["up_to_date"] is None


class TestTerminal:
    def test_changes_capped(self):
        changes = [FileChange(f"f{i}.txt", FileStatus.MODIFIED) for i in range(13)]
        console = _console()
        terminal.render_changes(console, changes)
        out = _text(console)
        assert "f9.txt" in out
        assert "f10.txt" not in out
        assert "+3 more" in out

    def test_changes_show_all(self):
        changes = [FileChange(f"f{i}.txt", FileStatus.ADDED) for i in range(13)]
        console = _console()
        terminal.render_changes(console, changes, show_all=True)
        out = _text(console)
        assert "f12.txt" in out
        assert "more" not in out

    def test_no_changes(self):
        console = _console()
        terminal.render_changes(console, [])
        assert "No uncommitted changes" in _text(console)

    def test_branches_mark_current(self):
        console = _console()
        terminal.render_branches(console, BranchState("dev", ("main", "dev")))
        assert "* dev" in _text(console)

    def test_status_behind(self):
        console = _console()
        commits = [CommitLogEntry("d" * 40, "tip")]
        terminal.render_status(console, BranchState("main"), PullStatus(False, 1), commits)
        out = _text(console)
        assert "1 commit behind" in out
        assert "ddddddd tip" in out

    def test_status_unknown(self):
        console = _console()
        terminal.render_status(console, BranchState(), PullStatus(), [])
        assert "unknown" in _text(console)

    def test_outcomes(self):
        console = _console()
        terminal.render_outcome(console, Outcome.failure("pull", "Pull failed: boom"))
        terminal.render_outcome(console, Outcome.skipped("rollback"))
        out = _text(console)
        assert "Pull failed: boom" in out
        assert out.count("\n") == 1
