"""Active-repository session — wires the engines to one RepositoryHandle."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from worksync.backend.client import BackendClient, BackendError
from worksync.git.models import RepositoryHandle
from worksync.sync.actions import GitActionOrchestrator
from worksync.sync.branches import BranchController
from worksync.sync.engine import DEFAULT_POLL_INTERVAL, Clock, DiffSyncEngine, utcnow
from worksync.sync.lifecycle import RequestLifecycleManager
from worksync.sync.outcomes import Outcome, OutcomeSink, failure_message, publish

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"        # no repository open
    PENDING = "pending"  # backend is cloning / opening a repository
    ACTIVE = "active"


class SessionContext:
    """Holds the active repository and resets every engine when it changes.

    Usage::

        async with BackendClient(url) as client:
            session = SessionContext(client)
            await session.open_repository(handle)
            ...
            session.close()
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        poll_diff: bool = True,
        poll_status: bool = True,
        message_prefix: str = "claude-",
        on_change: Optional[Callable[[str], None]] = None,
        on_outcome: Optional[OutcomeSink] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._client = client
        self._on_outcome = on_outcome
        self.engine = DiffSyncEngine(
            client,
            interval=interval,
            poll_diff=poll_diff,
            poll_status=poll_status,
            on_change=on_change,
            clock=clock,
        )
        self.branches = BranchController(
            client, self.engine, on_change=on_change, on_outcome=on_outcome
        )
        self.actions = GitActionOrchestrator(
            client, self.engine, message_prefix=message_prefix, on_outcome=on_outcome, clock=clock
        )
        self._lifecycle: Optional[RequestLifecycleManager] = None
        self._pending: Optional[RepositoryHandle] = None
        self._open_seq = 0

    # ---- state ----

    @property
    def handle(self) -> Optional[RepositoryHandle]:
        return self._lifecycle.handle if self._lifecycle is not None else None

    @property
    def pending(self) -> Optional[RepositoryHandle]:
        return self._pending

    @property
    def phase(self) -> SessionPhase:
        if self._pending is not None:
            return SessionPhase.PENDING
        if self._lifecycle is not None:
            return SessionPhase.ACTIVE
        return SessionPhase.IDLE

    # ---- switching ----

    def _switch(self, handle: Optional[RepositoryHandle]) -> None:
        # Cancel before anything is issued for the new handle
        if self._lifecycle is not None:
            self._lifecycle.cancel_all()
        if handle is None:
            self._lifecycle = None
            self.engine.unbind()
            self.branches.unbind()
            self.actions.unbind()
            return
        lifecycle = RequestLifecycleManager(handle)
        self._lifecycle = lifecycle
        self.engine.bind(lifecycle)
        self.branches.bind(lifecycle)
        self.actions.bind(lifecycle)
        self.engine.start_polling()
        logger.info("Active repository: %s (%s)", handle.full_name, handle.path)

    async def activate(self, handle: RepositoryHandle, *, initial_load: bool = True) -> None:
        """Make *handle* (which must have a local path) the active repository."""
        if not handle.path:
            raise ValueError(f"{handle.full_name} has no local path; use open_repository()")
        self._open_seq += 1
        self._pending = None
        self._switch(handle)
        if initial_load:
            await self.refresh_all()

    async def open_repository(self, handle: RepositoryHandle) -> Outcome:
        """Open *handle*, asking the backend to clone it first if needed.

        While the clone runs the session is ``pending`` and the previous
        repository stays active. Success commits the switch; failure leaves
        the previous repository exactly as it was.
        """
        if handle.path:
            await self.activate(handle)
            return publish(Outcome.success("open", f"Opened {handle.full_name}"), self._on_outcome)

        self._open_seq += 1
        seq = self._open_seq
        self._pending = handle
        try:
            path = await self._client.clone(handle)
        except BackendError as exc:
            if seq != self._open_seq:
                return Outcome.skipped("open")
            self._pending = None
            return publish(Outcome.failure("open", failure_message("Open", exc)), self._on_outcome)
        if seq != self._open_seq:
            # Superseded by a later open / activate / close
            return Outcome.skipped("open")

        self._pending = None
        self._switch(handle.with_path(path))
        await self.refresh_all()
        return publish(Outcome.success("open", f"Opened {handle.full_name}"), self._on_outcome)

    async def refresh_all(self) -> None:
        """Load diff, status, branches and log for the active repository at once."""
        if self._lifecycle is None:
            return
        await asyncio.gather(
            self.engine.refresh_diff(),
            self.engine.refresh_status(),
            self.branches.refresh_branches(),
            self.engine.refresh_log(),
        )

    def close(self) -> None:
        """Tear down: cancel outstanding work and stop every timer."""
        self._open_seq += 1
        self._pending = None
        self._switch(None)

    async def __aenter__(self) -> "SessionContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
