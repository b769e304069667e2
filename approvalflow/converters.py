"""
Format Converters
Translates between the in-memory WorkflowGraph and the persisted document.

Document format:
    {
        "version": 1,
        "nodes": [
            {"id": "submitted", "type": "submitted", "data": {"label": "Submitted"},
             "position": {"x": 0, "y": 0}, "deletable": false},
            {"id": "step_A", "type": "approval",
             "data": {"approvalMode": "role", "approverRole1": "manager",
                      "minApprovals": 1, "delegationEnabled": false},
             "position": {"x": 250, "y": 0}, "deletable": true}
        ],
        "edges": [{"id": "edge_B", "source": "submitted", "target": "step_A"}]
    }
"""

import logging
from typing import Any, Dict, List, Mapping, Set

from pydantic import ValidationError

from .errors import InvalidWorkflow, MalformedDocument, UnsupportedVersion
from .graph import ensure_submitted
from .models import (
    SUPPORTED_VERSION,
    ApprovalConfig,
    ApprovalStep,
    Connection,
    FulfillmentConfig,
    FulfillmentStep,
    Position,
    StepType,
    SubmittedConfig,
    SubmittedStep,
    WorkflowGraph,
)
from .roles import (
    APPROVER_ROLE_PREFIX,
    FULFILLER_ROLE_PREFIX,
    from_indexed_fields,
    to_indexed_fields,
)
from .validator import validate

logger = logging.getLogger(__name__)


# ============================================================================
# Graph -> Document
# ============================================================================

def _encode_data(step) -> Dict[str, Any]:
    """Build the data payload field by field; keys outside the schema are dropped."""
    config = step.data
    if isinstance(step, SubmittedStep):
        return {"label": config.label}

    if isinstance(step, ApprovalStep):
        data: Dict[str, Any] = {"approvalMode": config.approval_mode.value}
        data.update(to_indexed_fields(APPROVER_ROLE_PREFIX, config.approver_roles))
        data["minApprovals"] = config.min_approvals
        data["delegationEnabled"] = config.delegation_enabled
        if config.delegate_role is not None:
            data["delegateRole"] = config.delegate_role
        return data

    return to_indexed_fields(FULFILLER_ROLE_PREFIX, config.fulfiller_roles)


def encode(graph: WorkflowGraph) -> Dict[str, Any]:
    """
    Convert a graph into the persisted document.

    Only contract fields are emitted: version, nodes (id, type, data,
    position, deletable) and edges (id, source, target).
    """
    return {
        "version": graph.version,
        "nodes": [
            {
                "id": step.id,
                "type": step.type,
                "data": _encode_data(step),
                "position": {"x": step.position.x, "y": step.position.y},
                "deletable": step.deletable,
            }
            for step in graph.steps
        ],
        "edges": [
            {"id": c.id, "source": c.source, "target": c.target}
            for c in graph.connections
        ],
    }


# ============================================================================
# Document -> Graph
# ============================================================================

def _read_version(document: Any) -> int:
    if not isinstance(document, Mapping):
        raise MalformedDocument("Workflow document must be an object")

    version = document.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise MalformedDocument(f"Invalid document version: {version!r}")
    if version > SUPPORTED_VERSION:
        raise UnsupportedVersion(version, SUPPORTED_VERSION)
    return version


def _read_list(document: Mapping[str, Any], key: str) -> List[Any]:
    value = document.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedDocument(f"'{key}' must be a list")
    return value


def _read_id(item: Mapping[str, Any], kind: str, index: int) -> str:
    item_id = item.get("id")
    if not isinstance(item_id, str) or not item_id:
        raise MalformedDocument(f"{kind}[{index}] has no id")
    return item_id


def _decode_step(node: Any, index: int):
    if not isinstance(node, Mapping):
        raise MalformedDocument(f"nodes[{index}] must be an object")

    step_id = _read_id(node, "nodes", index)
    step_type = node.get("type")
    data = node.get("data") or {}
    if not isinstance(data, Mapping):
        raise MalformedDocument(f"nodes[{index}].data must be an object")

    fields: Dict[str, Any] = {"id": step_id, "position": Position.model_validate(node.get("position") or {})}

    if step_type == StepType.submitted:
        fields["data"] = SubmittedConfig.model_validate(dict(data))
        return SubmittedStep(**fields)

    if "deletable" in node:
        fields["deletable"] = node["deletable"]

    if step_type == StepType.approval:
        roles, rest = from_indexed_fields(APPROVER_ROLE_PREFIX, data)
        fields["data"] = ApprovalConfig.model_validate({**rest, "approverRoles": roles})
        return ApprovalStep(**fields)

    if step_type == StepType.fulfillment:
        roles, rest = from_indexed_fields(FULFILLER_ROLE_PREFIX, data)
        fields["data"] = FulfillmentConfig.model_validate({**rest, "fulfillerRoles": roles})
        return FulfillmentStep(**fields)

    raise MalformedDocument(f"nodes[{index}] has unknown type {step_type!r}")


def _decode_edge(edge: Any, index: int) -> Connection:
    if not isinstance(edge, Mapping):
        raise MalformedDocument(f"edges[{index}] must be an object")
    return Connection(
        id=_read_id(edge, "edges", index),
        source=edge.get("source"),
        target=edge.get("target"),
    )


def _unique(ids: List[str], kind: str) -> None:
    seen: Set[str] = set()
    for item_id in ids:
        if item_id in seen:
            raise MalformedDocument(f"Duplicate {kind} id {item_id!r}")
        seen.add(item_id)


def decode_unchecked(document: Any) -> WorkflowGraph:
    """
    Rebuild a graph from a document without structural validation.

    The version is checked before anything is built. A missing submitted
    step is synthesized.

    Raises:
        UnsupportedVersion: document is newer than this reader
        MalformedDocument: document does not have the expected shape
    """
    version = _read_version(document)

    try:
        steps = [_decode_step(node, i) for i, node in enumerate(_read_list(document, "nodes"))]
        connections = [_decode_edge(edge, i) for i, edge in enumerate(_read_list(document, "edges"))]
    except ValidationError as exc:
        raise MalformedDocument(f"Invalid workflow document: {exc}") from exc

    _unique([s.id for s in steps], "step")
    _unique([c.id for c in connections], "connection")

    graph = WorkflowGraph(version=version, steps=tuple(steps), connections=tuple(connections))
    return ensure_submitted(graph)


def decode(document: Any) -> WorkflowGraph:
    """
    Rebuild and validate a graph from a persisted document.

    Raises:
        UnsupportedVersion: document is newer than this reader
        MalformedDocument: document does not have the expected shape
        InvalidWorkflow: the rebuilt graph has structural violations
    """
    graph = decode_unchecked(document)
    violations = validate(graph)
    if violations:
        logger.warning("Rejected workflow document with %d violation(s)", len(violations))
        raise InvalidWorkflow(violations)
    return graph
