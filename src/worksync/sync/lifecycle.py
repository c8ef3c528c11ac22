"""Request lifecycle — single-flight guards and cancellation for one repository.

A :class:`RequestLifecycleManager` is created when a repository becomes active
and thrown away when it stops being active. Nothing it issued may publish a
result after :meth:`RequestLifecycleManager.cancel_all` has been called.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set, TypeVar

from worksync.git.models import RepositoryHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised to the caller of a tracked operation whose scope was cancelled.

    Not a failure: callers drop it silently.
    """


class CancellationToken:
    """One-way flag shared by everything issued under one repository."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


def _caller_cancelling() -> bool:
    """True if the task running us has itself been asked to cancel."""
    current = asyncio.current_task()
    return current is not None and current.cancelling() > 0


class RequestLifecycleManager:
    """Per-endpoint in-flight guards plus a cancellation scope.

    Keys name endpoints (``diff``, ``status``, ``branches``, ``log``). At most
    one operation per key runs at a time; a second request for a busy key is
    skipped, not queued.
    """

    def __init__(self, handle: RepositoryHandle) -> None:
        self.handle = handle
        self.token = CancellationToken()
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._tracked: Set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def is_in_flight(self, key: str) -> bool:
        task = self._in_flight.get(key)
        return task is not None and not task.done()

    # ---- running ----

    async def _await(self, task: asyncio.Task):
        try:
            result = await task
        except asyncio.CancelledError:
            # Cancelled by cancel_all() rather than by our own caller
            if task.cancelled() and self.token.cancelled and not _caller_cancelling():
                raise OperationCancelled(self.handle.full_name) from None
            raise
        if self.token.cancelled:
            raise OperationCancelled(self.handle.full_name)
        return result

    async def run_exclusive(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        apply: Optional[Callable[[T], None]] = None,
    ) -> bool:
        """Run *operation* unless *key* is already in flight.

        *apply* receives the result only if the scope was not cancelled in the
        meantime. Returns True when the result was applied, False when the
        call was skipped or its result dropped. Exceptions raised by
        *operation* propagate.
        """
        if self.token.cancelled:
            return False
        if self.is_in_flight(key):
            logger.debug("Skipping %s for %s: already in flight", key, self.handle.full_name)
            return False

        task = asyncio.ensure_future(operation())
        self._in_flight[key] = task
        try:
            result = await self._await(task)
        except OperationCancelled:
            logger.debug("Dropped %s result for %s: cancelled", key, self.handle.full_name)
            return False
        finally:
            if self._in_flight.get(key) is task:
                del self._in_flight[key]

        if apply is not None:
            apply(result)
        return True

    async def run_tracked(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* under this scope without single-flight.

        Used for mutations, which carry their own busy flags. Raises
        :class:`OperationCancelled` if the scope is cancelled before or while
        it runs.
        """
        if self.token.cancelled:
            raise OperationCancelled(self.handle.full_name)
        task = asyncio.ensure_future(operation())
        self._tracked.add(task)
        try:
            return await self._await(task)
        finally:
            self._tracked.discard(task)

    async def wait_for(self, key: str) -> None:
        """Wait until the operation currently in flight for *key* (if any) ends."""
        task = self._in_flight.get(key)
        if task is not None and not task.done():
            await asyncio.wait({task})

    # ---- cancellation ----

    def cancel_all(self) -> None:
        """Invalidate every outstanding operation. Synchronous and idempotent."""
        if not self.token.cancelled:
            logger.debug("Cancelling outstanding requests for %s", self.handle.full_name)
        self.token.cancel()
        for task in list(self._in_flight.values()) + list(self._tracked):
            task.cancel()
