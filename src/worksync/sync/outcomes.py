"""Outcome of a user-triggered mutation, as shown in a toast or alert."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"    # backend rejected or was unreachable
    REJECTED = "rejected"  # validation failed, nothing was sent
    SKIPPED = "skipped"    # cancelled or declined, nothing to report


@dataclass(frozen=True)
class Outcome:
    action: str  # 'checkout', 'create_branch', 'pull', 'push', 'rollback', 'open'
    status: OutcomeStatus
    message: str = ""
    detail: Optional[str] = None  # e.g. the pushed commit hash

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, action: str, message: str, detail: Optional[str] = None) -> "Outcome":
        return cls(action, OutcomeStatus.SUCCESS, message, detail)

    @classmethod
    def failure(cls, action: str, message: str) -> "Outcome":
        return cls(action, OutcomeStatus.FAILURE, message)

    @classmethod
    def rejected(cls, action: str, message: str) -> "Outcome":
        return cls(action, OutcomeStatus.REJECTED, message)

    @classmethod
    def skipped(cls, action: str) -> "Outcome":
        return cls(action, OutcomeStatus.SKIPPED)


OutcomeSink = Callable[[Outcome], None]


def failure_message(label: str, exc: Exception) -> str:
    """``"<label> failed: <backend message>"``, with a generic fallback."""
    detail = str(exc).strip()
    return f"{label} failed: {detail}" if detail else f"{label} failed"


def publish(outcome: Outcome, sink: Optional[OutcomeSink]) -> Outcome:
    """Log *outcome* and hand it to the UI exactly once. Skips are silent."""
    if outcome.status == OutcomeStatus.SKIPPED:
        return outcome
    if outcome.status == OutcomeStatus.FAILURE:
        logger.error("%s: %s", outcome.action, outcome.message)
    else:
        logger.info("%s: %s", outcome.action, outcome.message)
    if sink is not None:
        sink(outcome)
    return outcome
