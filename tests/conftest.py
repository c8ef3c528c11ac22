"""Shared test fixtures — sample diffs, a fake backend, wired clients."""

from __future__ import annotations

import asyncio
import json
import textwrap
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from worksync.backend.client import BackendClient
from worksync.git.models import RepositoryHandle

BASE_URL = "http://backend.test"

MODIFIED_DIFF = "diff --git a/x.txt b/x.txt\n@@ -1 +1 @@\n-old\n+new\n"


@pytest.fixture(scope="session")
def anyio_backend():
    """The sync core is built on asyncio; run async tests on it only."""
    return "asyncio"


# ---- sample diffs ----


@pytest.fixture
def sample_diff_modified() -> str:
    return MODIFIED_DIFF


@pytest.fixture
def sample_diff_added() -> str:
    return textwrap.dedent("""\
        diff --git a/y.txt b/y.txt
        new file mode 100644
        index 0000000..e69de29
        --- /dev/null
        +++ b/y.txt
        @@ -0,0 +1,2 @@
        +hello
        +world
    """)


@pytest.fixture
def sample_diff_deleted() -> str:
    return textwrap.dedent("""\
        diff --git a/old.py b/old.py
        deleted file mode 100644
        index abc1234..0000000
        --- a/old.py
        +++ /dev/null
        @@ -1,2 +0,0 @@
        -line one
        -line two
    """)


@pytest.fixture
def sample_diff_rename() -> str:
    return textwrap.dedent("""\
        diff --git a/old_name.py b/new_name.py
        similarity index 97%
        rename from old_name.py
        rename to new_name.py
        index abc1234..def5678 100644
        --- a/old_name.py
        +++ b/new_name.py
        @@ -1,0 +2,1 @@
        +# New line added after rename
    """)


@pytest.fixture
def sample_diff_multi() -> str:
    """Three files: modified, added, deleted — in that order."""
    return textwrap.dedent("""\
        diff --git a/src/app.py b/src/app.py
        index 1111111..2222222 100644
        --- a/src/app.py
        +++ b/src/app.py
        @@ -1,3 +1,3 @@
         import os
        -DEBUG = True
        +DEBUG = False
        diff --git a/docs/new.md b/docs/new.md
        new file mode 100644
        index 0000000..3333333
        --- /dev/null
        +++ b/docs/new.md
        @@ -0,0 +1 @@
        +# New page
        diff --git a/legacy.txt b/legacy.txt
        deleted file mode 100644
        index 4444444..0000000
        --- a/legacy.txt
        +++ /dev/null
        @@ -1 +0,0 @@
        -gone
    """)


# ---- fake backend ----


class FakeBackend:
    """In-memory stand-in for the git backend, served through MockTransport.

    ``gates[path]`` holds a request until the event is set; ``errors[path]``
    makes an endpoint answer with ``(status, message)``.
    """

    def __init__(self) -> None:
        self.diff = ""
        self.behind = 0
        self.current = "main"
        self.branches: List[str] = ["main"]
        self.commits: List[Dict[str, Any]] = [{"hash": "a" * 40, "message": "init"}]
        self.pull_status: Dict[str, Any] = {"upToDate": True, "before": {"behind": 0}, "after": {"behind": 0}}
        self.commit_hash = "0123456789abcdef0123456789abcdef01234567"
        self.clone_path = "/srv/repos/github/octo/demo"
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.errors: Dict[str, Tuple[int, str]] = {}

    def count(self, path: str) -> int:
        return sum(1 for _, p, _ in self.calls if p == path)

    def gate(self, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[path] = event
        return event

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST":
            payload = json.loads(request.content or b"{}")
        else:
            payload = dict(request.url.params)
        self.calls.append((request.method, path, payload))

        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        if path in self.errors:
            status, message = self.errors[path]
            return httpx.Response(status, json={"error": message})
        return httpx.Response(200, json=self._respond(path, payload))

    def _respond(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if path == "/api/git/diff":
            return {"diff": self.diff}
        if path == "/api/git/status":
            return {"status": {"behind": self.behind}}
        if path == "/api/git/branches":
            return {"current": self.current, "all": list(self.branches)}
        if path == "/api/git/log":
            return {"commits": list(self.commits)}
        if path == "/api/git/checkout":
            self.current = payload["branch"]
            return {"ok": True}
        if path == "/api/git/createBranch":
            self.branches.append(payload["branchName"])
            self.current = payload["branchName"]
            return {"ok": True}
        if path == "/api/git/pull":
            self.behind = self.pull_status["after"]["behind"]
            return {"status": self.pull_status}
        if path == "/api/git/commitPush":
            self.diff = ""
            self.commits.insert(0, {"hash": self.commit_hash, "message": payload["message"]})
            return {"commit": {"commit": self.commit_hash}}
        if path == "/api/git/rollback":
            self.diff = ""
            return {"ok": True}
        if path == "/api/git/clone":
            return {"repoPath": self.clone_path}
        return {}


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend) -> BackendClient:
    return BackendClient(BASE_URL, transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def handle() -> RepositoryHandle:
    return RepositoryHandle(provider="github", owner="octo", name="demo", path="/srv/demo")


@pytest.fixture
def other_handle() -> RepositoryHandle:
    return RepositoryHandle(provider="gitlab", owner="team", name="other", path="/srv/other")


class FixedClock:
    def __init__(self, moment: Optional[datetime] = None) -> None:
        self.moment = moment or datetime(2024, 5, 1, 9, 30, 0, 250000, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


async def settle(rounds: int = 5) -> None:
    """Let pending callbacks and freshly scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def settle_until(predicate: Callable[[], bool], rounds: int = 100) -> None:
    """Yield to the loop until *predicate* holds; fail the test if it never does."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
