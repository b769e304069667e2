# tests/test_session.py
"""
Save coordination and the editor session.

The coordinator is async; tests drive it with asyncio.run and a fake
persist function gated by an asyncio.Event.
"""

import asyncio

import pytest

from approvalflow.converters import encode
from approvalflow.errors import InvalidWorkflow, SelfLoop, UnknownStep
from approvalflow.graph import create_empty, move_step
from approvalflow.models import SUBMITTED_STEP_ID, ViolationCode
from approvalflow.session import EditorSession, SaveCoordinator
from approvalflow.templates import instantiate


class FakeStore:
    """Records persisted documents; blocks each call until ``gate`` is set."""

    def __init__(self, gate=None, fail_with=None):
        self.gate = gate
        self.fail_with = fail_with
        self.documents = []

    async def persist(self, workflow_id, document):
        self.documents.append((workflow_id, document))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return {"id": workflow_id}


async def _wait_until(condition):
    for _ in range(100):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _variants(count):
    base = instantiate("singleApproval")
    approval_id = base.steps[1].id
    return [move_step(base, approval_id, {"x": 250, "y": i * 10}) for i in range(count)]


# ============================================================================
# SaveCoordinator
# ============================================================================

def test_save_persists_encoded_document():
    graph = instantiate("twoStepApproval")
    store = FakeStore()

    async def scenario():
        coordinator = SaveCoordinator("wf_1", store.persist)
        result = await coordinator.save(graph)
        return coordinator, result

    coordinator, result = asyncio.run(scenario())
    assert result == encode(graph)
    assert store.documents == [("wf_1", encode(graph))]
    assert coordinator.latest == encode(graph)
    assert coordinator.persist_calls == 1
    assert not coordinator.busy


def test_saves_during_flight_are_coalesced():
    g1, g2, g3 = _variants(3)

    async def scenario():
        store = FakeStore(gate=asyncio.Event())
        coordinator = SaveCoordinator("wf_1", store.persist)

        first = asyncio.create_task(coordinator.save(g1))
        await _wait_until(lambda: len(store.documents) == 1)
        assert coordinator.busy

        second = asyncio.create_task(coordinator.save(g2))
        third = asyncio.create_task(coordinator.save(g3))
        await asyncio.sleep(0)
        # nothing new is persisted while the first save is in flight
        assert len(store.documents) == 1

        store.gate.set()
        results = await asyncio.gather(first, second, third)
        return store, coordinator, results

    store, coordinator, results = asyncio.run(scenario())
    assert [doc for _, doc in store.documents] == [encode(g1), encode(g3)]
    assert results == [encode(g1), encode(g3), encode(g3)]
    assert coordinator.persist_calls == 2
    assert coordinator.latest == encode(g3)


def test_invalid_graph_is_never_persisted():
    graph = create_empty().model_copy(update={"steps": ()})
    store = FakeStore()

    async def scenario():
        coordinator = SaveCoordinator("wf_1", store.persist)
        with pytest.raises(InvalidWorkflow) as exc_info:
            await coordinator.save(graph)
        return coordinator, exc_info.value

    coordinator, error = asyncio.run(scenario())
    assert [v.code for v in error.violations] == [ViolationCode.MISSING_SUBMITTED]
    assert store.documents == []
    assert coordinator.persist_calls == 0
    assert coordinator.latest is None


def test_persist_failure_reaches_caller():
    graph = instantiate("singleApproval")
    store = FakeStore(fail_with=RuntimeError("store unavailable"))

    async def scenario():
        coordinator = SaveCoordinator("wf_1", store.persist)
        with pytest.raises(RuntimeError, match="store unavailable"):
            await coordinator.save(graph)

        # the coordinator is usable again once the failed save has settled
        store.fail_with = None
        await coordinator.save(graph)
        return coordinator

    coordinator = asyncio.run(scenario())
    assert coordinator.persist_calls == 2
    assert coordinator.latest == encode(graph)


def test_cancelled_save_releases_every_waiting_caller():
    g1, g2, g3 = _variants(3)

    async def scenario():
        store = FakeStore(gate=asyncio.Event())
        coordinator = SaveCoordinator("wf_1", store.persist)

        first = asyncio.create_task(coordinator.save(g1))
        await _wait_until(lambda: len(store.documents) == 1)
        second = asyncio.create_task(coordinator.save(g2))
        await asyncio.sleep(0)

        coordinator._worker.cancel()
        outcomes = await asyncio.gather(first, second, return_exceptions=True)
        assert not coordinator.busy

        # a later save starts a fresh worker
        store.gate.set()
        result = await coordinator.save(g3)
        return store, outcomes, result

    store, outcomes, result = asyncio.run(scenario())
    assert all(isinstance(outcome, asyncio.CancelledError) for outcome in outcomes)
    assert result == encode(g3)
    assert [doc for _, doc in store.documents] == [encode(g1), encode(g3)]


# ============================================================================
# EditorSession
# ============================================================================

def _session(store=None):
    store = store or FakeStore()
    return EditorSession("wf_1", create_empty(), store.persist), store


def test_session_builds_valid_graph():
    session, store = _session()
    approval_id = session.add_step("approval", {"x": 250, "y": 0})
    fulfillment_id = session.add_step("fulfillment", {"x": 500, "y": 0})
    session.connect(SUBMITTED_STEP_ID, approval_id)
    session.connect(approval_id, fulfillment_id)

    codes = [v.code for v in session.violations()]
    assert codes == [ViolationCode.EMPTY_ROLE_LIST, ViolationCode.EMPTY_ROLE_LIST]

    session.assign_roles(approval_id, ["finance", "hr", "finance"])
    session.toggle_role(fulfillment_id, "operations")
    assert session.violations() == []
    assert session.graph.get_step(approval_id).data.approver_roles == ("finance", "hr")

    document = asyncio.run(session.save())
    approval_data = next(n["data"] for n in document["nodes"] if n["id"] == approval_id)
    assert approval_data["approverRole1"] == "finance"
    assert approval_data["approverRole2"] == "hr"
    assert "approverRole3" not in approval_data
    assert len(store.documents) == 1


def test_session_failed_operation_keeps_graph():
    session, _ = _session()
    approval_id = session.add_step("approval")
    before = session.graph

    with pytest.raises(SelfLoop):
        session.connect(approval_id, approval_id)
    with pytest.raises(UnknownStep):
        session.assign_roles("ghost", ["a"])

    assert session.graph is before


def test_session_remove_and_disconnect():
    session, _ = _session()
    approval_id = session.add_step("approval")
    connection_id = session.connect(SUBMITTED_STEP_ID, approval_id)

    session.disconnect(connection_id)
    assert session.graph.connections == ()
    session.disconnect(connection_id)

    session.connect(SUBMITTED_STEP_ID, approval_id)
    session.remove_step(approval_id)
    assert session.graph.step_ids() == [SUBMITTED_STEP_ID]
    assert session.graph.connections == ()


def test_session_configure_and_move():
    session, _ = _session()
    approval_id = session.add_step("approval")
    session.configure_step(approval_id, {"approverRoles": ["a", "b"], "minApprovals": 2})
    session.move_step(approval_id, {"x": 5, "y": 6})

    step = session.graph.get_step(approval_id)
    assert step.data.min_approvals == 2
    assert (step.position.x, step.position.y) == (5, 6)


def test_session_refuses_invalid_save():
    session, store = _session()
    session.add_step("fulfillment")

    with pytest.raises(InvalidWorkflow):
        asyncio.run(session.save())
    assert store.documents == []
