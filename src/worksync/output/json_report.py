"""JSON reporter for scripts — one document describing the working copy."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from worksync.git.models import BranchState, RepositoryHandle
from worksync.sync.engine import DiffSyncEngine
from worksync.sync.outcomes import Outcome


def to_dict(
    handle: RepositoryHandle,
    engine: DiffSyncEngine,
    branches: BranchState,
    *,
    include_diff: bool = False,
    outcome: Optional[Outcome] = None,
) -> Dict[str, Any]:
    """Convert the published session state to a JSON-serialisable dict."""
    files: List[Dict[str, str]] = [
        {"path": c.path, "status": c.status.value} for c in engine.file_changes
    ]
    pull = engine.pull_status
    snapshot = engine.snapshot

    data: Dict[str, Any] = {
        "version": "1.0",
        "repository": {
            "provider": handle.provider,
            "owner": handle.owner,
            "name": handle.name,
            "path": handle.path,
        },
        "branch": {"current": branches.current, "all": list(branches.all)},
        "pull_status": {
            "up_to_date": pull.up_to_date,
            "behind": pull.behind_count,
            "last_checked_at": pull.last_checked_at.isoformat() if pull.last_checked_at else None,
        },
        "files": files,
        "fetched_at": snapshot.fetched_at.isoformat() if snapshot else None,
        "commits": [
            {"hash": c.hash, "message": c.message, **({"web_url": c.web_url} if c.web_url else {})}
            for c in engine.commits
        ],
    }
    if include_diff:
        data["diff"] = engine.displayed_diff()
    if outcome is not None:
        data["outcome"] = {
            "action": outcome.action,
            "status": outcome.status.value,
            "message": outcome.message,
            **({"detail": outcome.detail} if outcome.detail else {}),
        }
    return data


def render(handle: RepositoryHandle, engine: DiffSyncEngine, branches: BranchState, **kwargs: Any) -> str:
    """Return formatted JSON string."""
    return json.dumps(to_dict(handle, engine, branches, **kwargs), indent=2)
