"""Working-copy synchronization core — polling, single-flight, mutations."""

from worksync.sync.actions import GitActionOrchestrator
from worksync.sync.branches import BranchController, BranchPhase
from worksync.sync.engine import DiffSyncEngine
from worksync.sync.lifecycle import CancellationToken, OperationCancelled, RequestLifecycleManager
from worksync.sync.outcomes import Outcome, OutcomeStatus
from worksync.sync.scheduler import PeriodicTask
from worksync.sync.session import SessionContext, SessionPhase

__all__ = [
    "BranchController",
    "BranchPhase",
    "CancellationToken",
    "DiffSyncEngine",
    "GitActionOrchestrator",
    "OperationCancelled",
    "Outcome",
    "OutcomeStatus",
    "PeriodicTask",
    "RequestLifecycleManager",
    "SessionContext",
    "SessionPhase",
]
