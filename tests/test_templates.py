# tests/test_templates.py
import pytest

from approvalflow.errors import UnknownTemplate
from approvalflow.models import SUBMITTED_STEP_ID, StepType
from approvalflow.templates import TemplateFactory, TemplateKind, available_templates, instantiate
from approvalflow.validator import validate


def _types(graph):
    return [step.type for step in graph.steps]


def test_single_approval_shape():
    g = instantiate("singleApproval")
    assert _types(g) == [StepType.submitted, StepType.approval, StepType.fulfillment]
    assert len(g.connections) == 2
    submitted, approval, fulfillment = g.steps
    assert submitted.id == SUBMITTED_STEP_ID
    assert [(c.source, c.target) for c in g.connections] == [
        (submitted.id, approval.id),
        (approval.id, fulfillment.id),
    ]
    assert validate(g) == []


@pytest.mark.parametrize("kind", list(TemplateKind))
def test_every_template_is_valid(kind):
    assert validate(instantiate(kind)) == []


def test_two_step_approval_is_a_chain():
    g = instantiate(TemplateKind.two_step_approval)
    assert _types(g) == [
        StepType.submitted,
        StepType.approval,
        StepType.approval,
        StepType.fulfillment,
    ]
    ids = g.step_ids()
    assert [(c.source, c.target) for c in g.connections] == list(zip(ids, ids[1:]))


def test_parallel_approval_branches_and_converges():
    g = instantiate("parallelApproval")
    approvals = [s.id for s in g.steps if s.type == StepType.approval]
    fulfillment = [s.id for s in g.steps if s.type == StepType.fulfillment]
    assert len(approvals) == 2 and len(fulfillment) == 1

    pairs = {(c.source, c.target) for c in g.connections}
    assert pairs == {
        (SUBMITTED_STEP_ID, approvals[0]),
        (SUBMITTED_STEP_ID, approvals[1]),
        (approvals[0], fulfillment[0]),
        (approvals[1], fulfillment[0]),
    }
    # side by side in the same column
    upper, lower = (g.get_step(step_id) for step_id in approvals)
    assert upper.position.x == lower.position.x
    assert upper.position.y < lower.position.y


def test_templates_prefill_roles():
    g = instantiate("singleApproval", approver_role="finance", fulfiller_role="it_support")
    approval = g.steps[1]
    fulfillment = g.steps[2]
    assert approval.data.approver_roles == ("finance",)
    assert approval.data.min_approvals == 1
    assert fulfillment.data.fulfiller_roles == ("it_support",)


def test_each_call_generates_fresh_ids():
    first = instantiate("twoStepApproval")
    second = instantiate("twoStepApproval")
    first_ids = {s.id for s in first.steps if s.type != StepType.submitted}
    second_ids = {s.id for s in second.steps if s.type != StepType.submitted}
    assert first_ids.isdisjoint(second_ids)
    assert {c.id for c in first.connections}.isdisjoint({c.id for c in second.connections})


def test_layout_uses_spacing():
    g = TemplateFactory(column_spacing=100, row_spacing=50).instantiate("singleApproval")
    assert [s.position.x for s in g.steps] == [0, 100, 200]
    assert all(s.position.y == 0 for s in g.steps)


def test_unknown_template():
    with pytest.raises(UnknownTemplate) as exc_info:
        instantiate("threeWayHandshake")
    assert exc_info.value.code == "UNKNOWN_TEMPLATE"


def test_available_templates_lists_every_kind():
    kinds = [t.kind for t in available_templates()]
    assert kinds == ["singleApproval", "twoStepApproval", "parallelApproval"]
