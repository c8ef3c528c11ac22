"""Diff / status / log synchronization for the active working copy.

The engine owns three published values: the latest :class:`DiffSnapshot`
(with its parsed file list), the :class:`PullStatus`, and the commit log.
Only the engine's own completion handlers replace them; everything else reads.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from worksync.backend.client import BackendClient, BackendError, PullResult
from worksync.git.diff_parser import extract_file_diff, parse_changes
from worksync.git.models import CommitLogEntry, DiffSnapshot, FileChange, PullStatus
from worksync.sync.lifecycle import RequestLifecycleManager
from worksync.sync.scheduler import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0

ChangeListener = Callable[[str], None]
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiffSyncEngine:
    """Keep the freshest diff, ahead/behind status and log for one repository."""

    def __init__(
        self,
        client: BackendClient,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        poll_diff: bool = True,
        poll_status: bool = True,
        on_change: Optional[ChangeListener] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._client = client
        self._interval = interval
        self._poll_diff = poll_diff
        self._poll_status = poll_status
        self._on_change = on_change
        self._clock = clock
        self._lifecycle: Optional[RequestLifecycleManager] = None
        self._timers: List[PeriodicTask] = []
        self._reset()

    def _reset(self) -> None:
        self._snapshot: Optional[DiffSnapshot] = None
        self._changes: Tuple[FileChange, ...] = ()
        self._pull_status = PullStatus()
        self._commits: Tuple[CommitLogEntry, ...] = ()
        self._selected_path: Optional[str] = None

    # ---- published state ----

    @property
    def snapshot(self) -> Optional[DiffSnapshot]:
        return self._snapshot

    @property
    def file_changes(self) -> Tuple[FileChange, ...]:
        return self._changes

    @property
    def pull_status(self) -> PullStatus:
        return self._pull_status

    @property
    def commits(self) -> Tuple[CommitLogEntry, ...]:
        """Commit log, newest first."""
        return self._commits

    @property
    def selected_path(self) -> Optional[str]:
        return self._selected_path

    @property
    def has_pending_changes(self) -> bool:
        return self._snapshot is not None and not self._snapshot.is_empty

    def displayed_diff(self, selected_path: Optional[str] = None) -> str:
        """Diff text for the view: one file's section if a path is selected."""
        raw = self._snapshot.raw_text if self._snapshot is not None else ""
        path = selected_path if selected_path is not None else self._selected_path
        if not path:
            return raw
        return extract_file_diff(raw, path)

    def select_file(self, path: Optional[str]) -> bool:
        """Narrow the displayed diff to *path*; ``None`` clears the selection.

        Returns False (and clears) if *path* is not in the current file list.
        """
        if path and any(c.path == path for c in self._changes):
            self._selected_path = path
            return True
        self._selected_path = None
        return not path

    # ---- binding ----

    def bind(self, lifecycle: RequestLifecycleManager) -> None:
        """Attach to a newly active repository. Clears all published state."""
        self.stop_polling()
        self._lifecycle = lifecycle
        self._reset()

    def unbind(self) -> None:
        self.stop_polling()
        self._lifecycle = None
        self._reset()

    def _is_current(self, lifecycle: RequestLifecycleManager) -> bool:
        return lifecycle is self._lifecycle and not lifecycle.cancelled

    def _notify(self, topic: str) -> None:
        if self._on_change is not None:
            self._on_change(topic)

    # ---- polling ----

    @property
    def polling(self) -> bool:
        return any(t.running for t in self._timers)

    def start_polling(self) -> None:
        """Start the diff and status timers for the bound repository."""
        self.stop_polling()
        lifecycle = self._lifecycle
        if lifecycle is None:
            return
        name = lifecycle.handle.full_name
        if self._poll_diff:
            self._timers.append(PeriodicTask(self._interval, self.refresh_diff, name=f"diff-poll:{name}"))
        if self._poll_status:
            self._timers.append(PeriodicTask(self._interval, self.refresh_status, name=f"status-poll:{name}"))
        for timer in self._timers:
            timer.start()

    def stop_polling(self) -> None:
        for timer in self._timers:
            timer.stop()
        self._timers = []

    # ---- refresh operations ----

    async def refresh_diff(self, *, wait_in_flight: bool = False) -> bool:
        """Fetch the diff; publish a new snapshot only if the text changed.

        Returns True when a fetch completed and was applied (even if the text
        was unchanged). Backend failures keep the previous snapshot.
        """
        lifecycle = self._lifecycle
        if lifecycle is None:
            return False
        repo_path = lifecycle.handle.path

        def apply(raw: str) -> None:
            if self._is_current(lifecycle):
                self._apply_diff(raw)

        if wait_in_flight:
            await lifecycle.wait_for("diff")
        try:
            return await lifecycle.run_exclusive("diff", lambda: self._client.get_diff(repo_path), apply)
        except BackendError as exc:
            logger.warning("Diff refresh failed for %s: %s", lifecycle.handle.full_name, exc)
            return False

    def _apply_diff(self, raw: str) -> None:
        if self._snapshot is not None and self._snapshot.raw_text == raw:
            return
        self._snapshot = DiffSnapshot(raw_text=raw, fetched_at=self._clock())
        self._changes = tuple(parse_changes(raw))
        if self._selected_path and not any(c.path == self._selected_path for c in self._changes):
            self._selected_path = None
        logger.debug("Diff updated: %d file(s) changed", len(self._changes))
        self._notify("diff")

    async def refresh_status(self, *, wait_in_flight: bool = False) -> bool:
        """Fetch the ahead/behind count and update :attr:`pull_status`."""
        lifecycle = self._lifecycle
        if lifecycle is None:
            return False
        repo_path = lifecycle.handle.path

        def apply(behind: int) -> None:
            if self._is_current(lifecycle):
                self._apply_behind(behind)

        if wait_in_flight:
            await lifecycle.wait_for("status")
        try:
            return await lifecycle.run_exclusive("status", lambda: self._client.get_status(repo_path), apply)
        except BackendError as exc:
            logger.warning("Status refresh failed for %s: %s", lifecycle.handle.full_name, exc)
            return False

    def _apply_behind(self, behind: int) -> None:
        previous = self._pull_status
        self._pull_status = PullStatus(
            up_to_date=behind == 0,
            behind_count=behind,
            last_checked_at=self._clock(),
        )
        if (previous.up_to_date, previous.behind_count) != (behind == 0, behind):
            self._notify("status")

    def record_pull(self, result: PullResult) -> None:
        """Publish the post-pull behind count reported by the backend."""
        self._apply_behind(result.behind_after)

    async def refresh_log(self, *, wait_in_flight: bool = False) -> bool:
        lifecycle = self._lifecycle
        if lifecycle is None:
            return False
        repo_path = lifecycle.handle.path

        def apply(entries: List[CommitLogEntry]) -> None:
            if not self._is_current(lifecycle):
                return
            commits = tuple(entries)
            if commits != self._commits:
                self._commits = commits
                self._notify("log")

        if wait_in_flight:
            await lifecycle.wait_for("log")
        try:
            return await lifecycle.run_exclusive("log", lambda: self._client.get_log(repo_path), apply)
        except BackendError as exc:
            logger.warning("Log refresh failed for %s: %s", lifecycle.handle.full_name, exc)
            return False
