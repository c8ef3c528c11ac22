"""Pull, commit+push and rollback, each guarded by its own busy flag.

The three actions do not exclude each other: a pull may run while a push is
in flight. Each one only refuses to run twice at once.
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Set, Union

from worksync.backend.client import BackendClient, BackendError
from worksync.sync.engine import Clock, DiffSyncEngine, utcnow
from worksync.sync.lifecycle import OperationCancelled, RequestLifecycleManager
from worksync.sync.outcomes import Outcome, OutcomeSink, failure_message, publish

logger = logging.getLogger(__name__)

PULL = "pull"
PUSH = "push"
ROLLBACK = "rollback"

ROLLBACK_PROMPT = "Discard all uncommitted changes? This cannot be undone."

# May return an awaitable so a blocking prompt can run off the event loop
ConfirmCallback = Callable[[str], Union[bool, Awaitable[bool]]]


def iso_timestamp(moment: datetime) -> str:
    """UTC timestamp with millisecond precision, e.g. ``2024-05-01T09:30:00.250Z``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def commit_message(prefix: str, moment: datetime) -> str:
    return f"{prefix}{iso_timestamp(moment)}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


class GitActionOrchestrator:
    """Sequences compound mutations and the refreshes that follow them."""

    def __init__(
        self,
        client: BackendClient,
        engine: DiffSyncEngine,
        *,
        message_prefix: str = "claude-",
        on_outcome: Optional[OutcomeSink] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._client = client
        self._engine = engine
        self._message_prefix = message_prefix
        self._on_outcome = on_outcome
        self._clock = clock
        self._lifecycle: Optional[RequestLifecycleManager] = None
        self._busy: Set[str] = set()
        self.last_commit_hash: Optional[str] = None

    # ---- busy flags ----

    @property
    def pulling(self) -> bool:
        return PULL in self._busy

    @property
    def pushing(self) -> bool:
        return PUSH in self._busy

    @property
    def rolling_back(self) -> bool:
        return ROLLBACK in self._busy

    # ---- binding ----

    def bind(self, lifecycle: RequestLifecycleManager) -> None:
        self._lifecycle = lifecycle
        # Fresh set: a late finally from the previous repository must not
        # clear a flag that belongs to this one
        self._busy = set()
        self.last_commit_hash = None

    def unbind(self) -> None:
        self._lifecycle = None
        self._busy = set()
        self.last_commit_hash = None

    def _precheck(self, action: str) -> Optional[Outcome]:
        if self._lifecycle is None:
            return Outcome.rejected(action, "No repository is open")
        if action in self._busy:
            return Outcome.rejected(action, f"A {action} is already running")
        return None

    def _stale(self, lifecycle: RequestLifecycleManager) -> bool:
        """True once *lifecycle* is no longer the active repository."""
        return lifecycle.cancelled or lifecycle is not self._lifecycle

    # ---- actions ----

    async def pull(self) -> Outcome:
        """Pull from upstream and report how many commits arrived."""
        if (rejected := self._precheck(PULL)) is not None:
            return publish(rejected, self._on_outcome)

        lifecycle = self._lifecycle
        assert lifecycle is not None
        repo_path = lifecycle.handle.path
        busy = self._busy
        busy.add(PULL)
        try:
            result = await lifecycle.run_tracked(lambda: self._client.pull(repo_path))
            self._engine.record_pull(result)
            await self._engine.refresh_log(wait_in_flight=True)
            await self._engine.refresh_diff(wait_in_flight=True)
            await self._engine.refresh_status(wait_in_flight=True)
            if self._stale(lifecycle):
                return Outcome.skipped(PULL)
        except OperationCancelled:
            return Outcome.skipped(PULL)
        except BackendError as exc:
            if self._stale(lifecycle):
                return Outcome.skipped(PULL)
            return publish(Outcome.failure(PULL, failure_message("Pull", exc)), self._on_outcome)
        finally:
            busy.discard(PULL)

        pulled = result.pulled_count
        if pulled > 0:
            message = f"Pulled {_plural(pulled, 'commit')}"
        elif result.up_to_date:
            message = "Already up to date"
        else:
            message = "Pull complete"
        return publish(Outcome.success(PULL, message, detail=str(pulled)), self._on_outcome)

    async def commit_and_push(self) -> Outcome:
        """Commit every pending change with a timestamped message and push it."""
        if (rejected := self._precheck(PUSH)) is not None:
            return publish(rejected, self._on_outcome)
        if not self._engine.has_pending_changes:
            return publish(Outcome.rejected(PUSH, "No changes to commit"), self._on_outcome)

        lifecycle = self._lifecycle
        assert lifecycle is not None
        repo_path = lifecycle.handle.path
        message = commit_message(self._message_prefix, self._clock())
        busy = self._busy
        busy.add(PUSH)
        try:
            commit_hash = await lifecycle.run_tracked(
                lambda: self._client.commit_push(repo_path, message)
            )
            self.last_commit_hash = commit_hash or None
            await self._engine.refresh_log(wait_in_flight=True)
            await self._engine.refresh_diff(wait_in_flight=True)
            if self._stale(lifecycle):
                return Outcome.skipped(PUSH)
        except OperationCancelled:
            return Outcome.skipped(PUSH)
        except BackendError as exc:
            if self._stale(lifecycle):
                return Outcome.skipped(PUSH)
            return publish(Outcome.failure(PUSH, failure_message("Push", exc)), self._on_outcome)
        finally:
            busy.discard(PUSH)

        if commit_hash:
            return publish(
                Outcome.success(PUSH, f"Pushed {commit_hash[:7]}", detail=commit_hash),
                self._on_outcome,
            )
        return publish(Outcome.success(PUSH, "Pushed"), self._on_outcome)

    async def rollback(self, confirm: ConfirmCallback) -> Outcome:
        """Discard all uncommitted changes once *confirm* agrees."""
        if (rejected := self._precheck(ROLLBACK)) is not None:
            return publish(rejected, self._on_outcome)
        if not self._engine.has_pending_changes:
            return publish(Outcome.rejected(ROLLBACK, "No changes to discard"), self._on_outcome)
        lifecycle = self._lifecycle
        assert lifecycle is not None
        decision = confirm(ROLLBACK_PROMPT)
        if inspect.isawaitable(decision):
            decision = await decision
        if not decision:
            logger.debug("Rollback declined")
            return Outcome.skipped(ROLLBACK)
        # The repository may have changed while the prompt was open
        if self._stale(lifecycle):
            return Outcome.skipped(ROLLBACK)
        if ROLLBACK in self._busy:
            return publish(Outcome.rejected(ROLLBACK, f"A {ROLLBACK} is already running"), self._on_outcome)

        repo_path = lifecycle.handle.path
        busy = self._busy
        busy.add(ROLLBACK)
        try:
            await lifecycle.run_tracked(lambda: self._client.rollback(repo_path))
            await self._engine.refresh_diff(wait_in_flight=True)
            if self._stale(lifecycle):
                return Outcome.skipped(ROLLBACK)
        except OperationCancelled:
            return Outcome.skipped(ROLLBACK)
        except BackendError as exc:
            if self._stale(lifecycle):
                return Outcome.skipped(ROLLBACK)
            return publish(Outcome.failure(ROLLBACK, failure_message("Rollback", exc)), self._on_outcome)
        finally:
            busy.discard(ROLLBACK)
        return publish(Outcome.success(ROLLBACK, "Changes discarded"), self._on_outcome)
