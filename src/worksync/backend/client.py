"""HTTP client for the git backend that owns the working copies."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from worksync.git.models import BranchState, CommitLogEntry, RepositoryHandle

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the backend is unreachable or rejects a request.

    ``str(exc)`` is the backend-provided message when there is one, so it can
    be shown to the user as-is.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class PullResult:
    up_to_date: bool
    behind_before: int
    behind_after: int

    @property
    def pulled_count(self) -> int:
        return max(0, self.behind_before - self.behind_after)


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


class BackendClient:
    """Async wrapper around the ``/api/git/*`` endpoints.

    One client is shared by every engine of a session; it is not bound to a
    repository, each call names the working copy it targets.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---- transport ----

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, params=params, json=payload)
        except httpx.TimeoutException as exc:
            raise BackendError(f"Request timed out: {method} {url}") from exc
        except httpx.RequestError as exc:
            raise BackendError(f"Request failed: {exc}") from exc

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = None

        if response.is_error:
            message = ""
            if isinstance(data, dict):
                message = str(data.get("error") or "")
            raise BackendError(
                message or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected response from {url}: not a JSON object")
        return data

    async def _get(self, url: str, repo_path: str) -> Dict[str, Any]:
        return await self._request("GET", url, params={"repoPath": repo_path})

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", url, payload=payload)

    # ---- queries ----

    async def get_diff(self, repo_path: str) -> str:
        data = await self._get("/api/git/diff", repo_path)
        return str(data.get("diff") or "")

    async def get_status(self, repo_path: str) -> int:
        """Return how many commits the local branch is behind its upstream."""
        data = await self._get("/api/git/status", repo_path)
        return _as_int(_section(data, "status").get("behind"))

    async def get_branches(self, repo_path: str) -> BranchState:
        data = await self._get("/api/git/branches", repo_path)
        all_branches = data.get("all") or []
        return BranchState(
            current=str(data.get("current") or ""),
            all=tuple(str(b) for b in all_branches),
        )

    async def get_log(self, repo_path: str) -> List[CommitLogEntry]:
        data = await self._get("/api/git/log", repo_path)
        entries: List[CommitLogEntry] = []
        for commit in data.get("commits") or []:
            if not isinstance(commit, dict) or not commit.get("hash"):
                continue
            entries.append(
                CommitLogEntry(
                    hash=str(commit["hash"]),
                    message=str(commit.get("message") or ""),
                    web_url=commit.get("webUrl") or None,
                )
            )
        return entries

    # ---- mutations ----

    async def checkout(self, repo_path: str, branch: str) -> None:
        await self._post("/api/git/checkout", {"repoPath": repo_path, "branch": branch})

    async def create_branch(self, repo_path: str, branch_name: str, source_branch: str) -> None:
        await self._post(
            "/api/git/createBranch",
            {"repoPath": repo_path, "branchName": branch_name, "sourceBranch": source_branch},
        )

    async def pull(self, repo_path: str) -> PullResult:
        data = await self._post("/api/git/pull", {"repoPath": repo_path})
        status = _section(data, "status")
        return PullResult(
            up_to_date=bool(status.get("upToDate")),
            behind_before=_as_int(_section(status, "before").get("behind")),
            behind_after=_as_int(_section(status, "after").get("behind")),
        )

    async def commit_push(self, repo_path: str, message: str) -> str:
        """Commit everything and push. Returns the new commit hash ('' if unknown)."""
        data = await self._post("/api/git/commitPush", {"repoPath": repo_path, "message": message})
        return str(_section(data, "commit").get("commit") or "")

    async def rollback(self, repo_path: str) -> None:
        await self._post("/api/git/rollback", {"repoPath": repo_path})

    async def clone(self, handle: RepositoryHandle) -> str:
        """Ask the backend to clone (or reuse) *handle*. Returns the local path."""
        data = await self._post(
            "/api/git/clone",
            {
                "provider": handle.provider,
                "owner": handle.owner,
                "name": handle.name,
                "clone_url": handle.clone_url,
            },
        )
        repo_path = str(data.get("repoPath") or "")
        if not repo_path:
            raise BackendError(f"Backend did not return a path for {handle.full_name}")
        logger.debug("Opened %s at %s", handle.full_name, repo_path)
        return repo_path
