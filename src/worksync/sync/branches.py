"""Branch list and checkout / create-branch state machine."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from worksync.backend.client import BackendClient, BackendError
from worksync.git.models import BranchState
from worksync.sync.engine import DiffSyncEngine
from worksync.sync.lifecycle import OperationCancelled, RequestLifecycleManager
from worksync.sync.outcomes import Outcome, OutcomeSink, failure_message, publish

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_BRANCH = "main"


class BranchPhase(str, Enum):
    IDLE = "idle"
    LISTING = "listing"
    CHECKING_OUT = "checking-out"
    CREATING = "creating"


def _normalise(state: BranchState) -> BranchState:
    """Make sure a known current branch appears in the list.

    A detached HEAD reports an empty current branch. There is no name to
    list, so ``current`` stays empty and is the one value allowed outside
    ``all``.
    """
    if state.all and state.current and state.current not in state.all:
        return BranchState(current=state.current, all=(state.current, *state.all))
    return state


class BranchController:
    """Owns :class:`BranchState` and serialises branch mutations.

    At most one mutation (checkout or create) runs at a time; a second one
    is rejected, never interleaved.
    """

    def __init__(
        self,
        client: BackendClient,
        engine: DiffSyncEngine,
        *,
        on_change: Optional[Callable[[str], None]] = None,
        on_outcome: Optional[OutcomeSink] = None,
    ) -> None:
        self._client = client
        self._engine = engine
        self._on_change = on_change
        self._on_outcome = on_outcome
        self._lifecycle: Optional[RequestLifecycleManager] = None
        self._state = BranchState()
        self._source_branch = ""
        self._mutation: Optional[BranchPhase] = None

    # ---- published state ----

    @property
    def state(self) -> BranchState:
        return self._state

    @property
    def phase(self) -> BranchPhase:
        if self._mutation is not None:
            return self._mutation
        if self._lifecycle is not None and self._lifecycle.is_in_flight("branches"):
            return BranchPhase.LISTING
        return BranchPhase.IDLE

    @property
    def busy(self) -> bool:
        return self._mutation is not None

    @property
    def source_branch(self) -> str:
        """Default branch to create new branches from."""
        return self._source_branch or self._state.current or DEFAULT_SOURCE_BRANCH

    @source_branch.setter
    def source_branch(self, value: str) -> None:
        self._source_branch = value.strip()

    # ---- binding ----

    def bind(self, lifecycle: RequestLifecycleManager) -> None:
        self._lifecycle = lifecycle
        self._state = BranchState()
        self._source_branch = ""
        self._mutation = None

    def unbind(self) -> None:
        self._lifecycle = None
        self._state = BranchState()
        self._source_branch = ""
        self._mutation = None

    # ---- listing ----

    async def refresh_branches(self, *, wait_in_flight: bool = False) -> bool:
        lifecycle = self._lifecycle
        if lifecycle is None:
            return False
        repo_path = lifecycle.handle.path

        def apply(state: BranchState) -> None:
            if lifecycle is self._lifecycle:
                self._apply(_normalise(state))

        if wait_in_flight:
            await lifecycle.wait_for("branches")
        try:
            return await lifecycle.run_exclusive(
                "branches", lambda: self._client.get_branches(repo_path), apply
            )
        except BackendError as exc:
            logger.warning("Branch refresh failed for %s: %s", lifecycle.handle.full_name, exc)
            return False

    def _apply(self, state: BranchState) -> None:
        if not self._source_branch or self._source_branch not in state.all:
            self._source_branch = state.current or DEFAULT_SOURCE_BRANCH
        if state != self._state:
            self._state = state
            if self._on_change is not None:
                self._on_change("branches")

    # ---- mutations ----

    def _stale(self, lifecycle: RequestLifecycleManager) -> bool:
        """True once *lifecycle* is no longer the active repository."""
        return lifecycle.cancelled or lifecycle is not self._lifecycle

    def _precheck(self, action: str) -> Optional[Outcome]:
        if self._lifecycle is None:
            return Outcome.rejected(action, "No repository is open")
        if self._mutation is not None:
            return Outcome.rejected(action, f"Busy: {self._mutation.value}")
        return None

    async def checkout(self, branch: str) -> Outcome:
        """Switch the working copy to *branch*."""
        branch = branch.strip()
        if branch and branch == self._state.current:
            return publish(Outcome.success("checkout", f"Already on {branch}"), self._on_outcome)
        if not branch:
            return publish(Outcome.rejected("checkout", "Branch name is required"), self._on_outcome)
        if (rejected := self._precheck("checkout")) is not None:
            return publish(rejected, self._on_outcome)

        lifecycle = self._lifecycle
        assert lifecycle is not None
        repo_path = lifecycle.handle.path
        self._mutation = BranchPhase.CHECKING_OUT
        try:
            await lifecycle.run_tracked(lambda: self._client.checkout(repo_path, branch))
            # Branch, diff and log all change with the checked-out branch
            await self.refresh_branches(wait_in_flight=True)
            await self._engine.refresh_diff(wait_in_flight=True)
            await self._engine.refresh_log(wait_in_flight=True)
            if self._stale(lifecycle):
                return Outcome.skipped("checkout")
        except OperationCancelled:
            return Outcome.skipped("checkout")
        except BackendError as exc:
            if self._stale(lifecycle):
                return Outcome.skipped("checkout")
            return publish(Outcome.failure("checkout", failure_message("Checkout", exc)), self._on_outcome)
        finally:
            if lifecycle is self._lifecycle:
                self._mutation = None
        return publish(Outcome.success("checkout", f"Switched to {branch}"), self._on_outcome)

    async def create_branch(self, name: str, source_branch: Optional[str] = None) -> Outcome:
        """Create *name* from *source_branch* (default: :attr:`source_branch`) and switch to it."""
        name = name.strip()
        if not name:
            return publish(Outcome.rejected("create_branch", "Branch name is required"), self._on_outcome)
        if (rejected := self._precheck("create_branch")) is not None:
            return publish(rejected, self._on_outcome)

        lifecycle = self._lifecycle
        assert lifecycle is not None
        repo_path = lifecycle.handle.path
        source = (source_branch or "").strip() or self.source_branch
        self._mutation = BranchPhase.CREATING
        try:
            await lifecycle.run_tracked(lambda: self._client.create_branch(repo_path, name, source))
            await self.refresh_branches(wait_in_flight=True)
            await self._engine.refresh_diff(wait_in_flight=True)
            if self._stale(lifecycle):
                return Outcome.skipped("create_branch")
        except OperationCancelled:
            return Outcome.skipped("create_branch")
        except BackendError as exc:
            if self._stale(lifecycle):
                return Outcome.skipped("create_branch")
            return publish(
                Outcome.failure("create_branch", failure_message("Create branch", exc)),
                self._on_outcome,
            )
        finally:
            if lifecycle is self._lifecycle:
                self._mutation = None
        return publish(Outcome.success("create_branch", f"Created and switched to {name}"), self._on_outcome)
