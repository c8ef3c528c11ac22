"""Tests for BranchController — listing, checkout, create-branch."""

import asyncio

import pytest

from worksync.sync.branches import BranchController, BranchPhase
from worksync.sync.engine import DiffSyncEngine
from worksync.sync.lifecycle import RequestLifecycleManager
from worksync.sync.outcomes import OutcomeStatus

from conftest import MODIFIED_DIFF, settle, settle_until


@pytest.fixture
def outcomes():
    return []


@pytest.fixture
def engine(client):
    return DiffSyncEngine(client)


@pytest.fixture
def controller(client, engine, handle, outcomes):
    controller = BranchController(client, engine, on_outcome=outcomes.append)
    lifecycle = RequestLifecycleManager(handle)
    engine.bind(lifecycle)
    controller.bind(lifecycle)
    return controller


def _mutations(backend):
    return [path for method, path, _ in backend.calls if method == "POST"]


class TestRefreshBranches:
    @pytest.mark.anyio
    async def test_lists_branches(self, controller, backend):
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        assert controller.state.current == "main"
        assert controller.state.all == ("main", "dev")
        assert controller.phase == BranchPhase.IDLE

    @pytest.mark.anyio
    async def test_current_missing_from_list_is_added(self, controller, backend):
        backend.current = "detached"
        backend.branches = ["main"]
        await controller.refresh_branches()
        assert controller.state.all == ("detached", "main")

    @pytest.mark.anyio
    async def test_detached_head_keeps_list_unchanged(self, controller, backend):
        backend.current = ""
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        assert controller.state.current == ""
        assert controller.state.all == ("main", "dev")
        assert controller.source_branch == "main"

    @pytest.mark.anyio
    async def test_listing_phase_while_in_flight(self, controller, backend):
        gate = backend.gate("/api/git/branches")
        pending = asyncio.ensure_future(controller.refresh_branches())
        await settle()
        assert controller.phase == BranchPhase.LISTING
        gate.set()
        await pending
        assert controller.phase == BranchPhase.IDLE

    @pytest.mark.anyio
    async def test_source_branch_defaults_to_current(self, controller, backend):
        backend.current = "dev"
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        assert controller.source_branch == "dev"

    @pytest.mark.anyio
    async def test_source_branch_reset_when_gone(self, controller, backend):
        backend.branches = ["main", "feature"]
        await controller.refresh_branches()
        controller.source_branch = "feature"
        await controller.refresh_branches()
        assert controller.source_branch == "feature"

        backend.branches = ["main"]
        await controller.refresh_branches()
        assert controller.source_branch == "main"

    @pytest.mark.anyio
    async def test_failure_keeps_list(self, controller, backend):
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        backend.errors["/api/git/branches"] = (500, "nope")
        assert await controller.refresh_branches() is False
        assert controller.state.all == ("main", "dev")


class TestCheckout:
    @pytest.mark.anyio
    async def test_switches_and_refreshes(self, controller, engine, backend, outcomes):
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        backend.diff = MODIFIED_DIFF

        outcome = await controller.checkout("dev")
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.message == "Switched to dev"
        assert controller.state.current == "dev"
        assert engine.snapshot.raw_text == MODIFIED_DIFF
        assert engine.commits
        assert ("POST", "/api/git/checkout", {"repoPath": "/srv/demo", "branch": "dev"}) in backend.calls
        assert outcomes == [outcome]
        assert not controller.busy

    @pytest.mark.anyio
    async def test_current_branch_is_noop(self, controller, backend, outcomes):
        await controller.refresh_branches()
        outcome = await controller.checkout("main")
        assert outcome.ok
        assert _mutations(backend) == []
        assert len(outcomes) == 1

    @pytest.mark.anyio
    async def test_empty_name_rejected(self, controller, backend):
        outcome = await controller.checkout("   ")
        assert outcome.status == OutcomeStatus.REJECTED
        assert _mutations(backend) == []

    @pytest.mark.anyio
    async def test_failure_leaves_state(self, controller, backend, outcomes):
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        before = controller.state
        backend.errors["/api/git/checkout"] = (409, "Your local changes would be overwritten")

        outcome = await controller.checkout("dev")
        assert outcome.status == OutcomeStatus.FAILURE
        assert outcome.message == "Checkout failed: Your local changes would be overwritten"
        assert controller.state is before
        assert not controller.busy
        assert controller.phase == BranchPhase.IDLE
        assert outcomes == [outcome]

    @pytest.mark.anyio
    async def test_second_mutation_rejected(self, controller, backend):
        backend.branches = ["main", "dev", "qa"]
        await controller.refresh_branches()
        gate = backend.gate("/api/git/checkout")

        first = asyncio.ensure_future(controller.checkout("dev"))
        await settle()
        assert controller.busy
        assert controller.phase == BranchPhase.CHECKING_OUT

        second = await controller.checkout("qa")
        assert second.status == OutcomeStatus.REJECTED
        created = await controller.create_branch("hotfix")
        assert created.status == OutcomeStatus.REJECTED
        assert backend.count("/api/git/checkout") == 1
        assert backend.count("/api/git/createBranch") == 0

        gate.set()
        assert (await first).ok
        assert controller.state.current == "dev"

    @pytest.mark.anyio
    async def test_no_repository(self, client, engine):
        controller = BranchController(client, engine)
        outcome = await controller.checkout("dev")
        assert outcome.status == OutcomeStatus.REJECTED


class TestCreateBranch:
    @pytest.mark.anyio
    async def test_creates_from_source(self, controller, backend):
        await controller.refresh_branches()
        outcome = await controller.create_branch(" feature/x ", "main")
        assert outcome.ok
        assert outcome.message == "Created and switched to feature/x"
        assert (
            "POST",
            "/api/git/createBranch",
            {"repoPath": "/srv/demo", "branchName": "feature/x", "sourceBranch": "main"},
        ) in backend.calls
        assert controller.state.current == "feature/x"
        assert "feature/x" in controller.state.all

    @pytest.mark.anyio
    async def test_default_source_is_selected_branch(self, controller, backend):
        backend.branches = ["main", "dev"]
        await controller.refresh_branches()
        controller.source_branch = "dev"
        await controller.create_branch("topic")
        payload = next(p for _, path, p in backend.calls if path == "/api/git/createBranch")
        assert payload["sourceBranch"] == "dev"

    @pytest.mark.anyio
    async def test_empty_name_rejected_without_request(self, controller, backend, outcomes):
        outcome = await controller.create_branch("", "main")
        assert outcome.status == OutcomeStatus.REJECTED
        assert _mutations(backend) == []
        assert not controller.busy
        assert outcomes == [outcome]

    @pytest.mark.anyio
    async def test_failure_message(self, controller, backend):
        backend.errors["/api/git/createBranch"] = (400, "branch already exists")
        outcome = await controller.create_branch("main2")
        assert outcome.message == "Create branch failed: branch already exists"
        assert not controller.busy


class TestCancellation:
    @pytest.mark.anyio
    async def test_switch_during_checkout_drops_outcome(self, controller, backend, outcomes, other_handle):
        gate = backend.gate("/api/git/checkout")
        first = asyncio.ensure_future(controller.checkout("dev"))
        await settle()

        old = controller._lifecycle
        old.cancel_all()
        controller.bind(RequestLifecycleManager(other_handle))
        gate.set()

        outcome = await first
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcomes == []
        assert controller.state.current == ""
        assert not controller.busy

    @pytest.mark.anyio
    async def test_switch_during_follow_up_refresh_drops_outcome(
        self, controller, engine, backend, outcomes, other_handle
    ):
        backend.branches = ["main", "dev"]
        gate = backend.gate("/api/git/branches")
        first = asyncio.ensure_future(controller.checkout("dev"))
        # Checkout has answered; the branch refresh that follows is held
        await settle_until(lambda: backend.count("/api/git/branches") == 1)
        assert backend.count("/api/git/checkout") == 1

        controller._lifecycle.cancel_all()
        lifecycle = RequestLifecycleManager(other_handle)
        engine.bind(lifecycle)
        controller.bind(lifecycle)
        gate.set()

        outcome = await first
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcomes == []
        assert controller.state.current == ""
        assert not controller.busy

    @pytest.mark.anyio
    async def test_switch_during_create_refresh_drops_outcome(
        self, controller, engine, backend, outcomes, other_handle
    ):
        gate = backend.gate("/api/git/branches")
        first = asyncio.ensure_future(controller.create_branch("feature"))
        await settle_until(lambda: backend.count("/api/git/branches") == 1)

        controller._lifecycle.cancel_all()
        lifecycle = RequestLifecycleManager(other_handle)
        engine.bind(lifecycle)
        controller.bind(lifecycle)
        gate.set()

        assert (await first).status == OutcomeStatus.SKIPPED
        assert outcomes == []
