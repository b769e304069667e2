"""
Graph Model Operations
Value-style mutations over a WorkflowGraph. Every operation returns a new
graph; on failure it raises and the input graph is left as it was.
"""

import logging
from typing import Any, Mapping, Union

from .errors import (
    DuplicateConnection,
    InvalidStepType,
    SelfLoop,
    StepNotDeletable,
    UnknownStep,
)
from .models import (
    SUBMITTED_STEP_ID,
    ApprovalConfig,
    ApprovalStep,
    Connection,
    FulfillmentConfig,
    FulfillmentStep,
    Position,
    StepConfig,
    StepType,
    SubmittedConfig,
    SubmittedStep,
    WorkflowGraph,
)
from .util.ids import new_id

logger = logging.getLogger(__name__)

PositionLike = Union[Position, Mapping[str, Any], None]
ConfigLike = Union[StepConfig, Mapping[str, Any], None]

# user-creatable step types
_STEP_CLASSES = {
    StepType.approval: (ApprovalStep, ApprovalConfig),
    StepType.fulfillment: (FulfillmentStep, FulfillmentConfig),
}


def _position(position: PositionLike) -> Position:
    if position is None:
        return Position()
    if isinstance(position, Position):
        return position
    return Position.model_validate(dict(position))


def _config(config_cls: type, configuration: ConfigLike) -> StepConfig:
    if configuration is None:
        return config_cls()
    if isinstance(configuration, config_cls):
        return configuration
    if isinstance(configuration, StepConfig):
        raise TypeError(
            f"Expected {config_cls.__name__}, got {type(configuration).__name__}"
        )
    return config_cls.model_validate(dict(configuration))


def _require_step(graph: WorkflowGraph, step_id: str):
    step = graph.get_step(step_id)
    if step is None:
        raise UnknownStep(step_id)
    return step


def _replace_step(graph: WorkflowGraph, updated) -> WorkflowGraph:
    steps = tuple(updated if step.id == updated.id else step for step in graph.steps)
    return graph.model_copy(update={"steps": steps})


def make_submitted_step(step_id: str = SUBMITTED_STEP_ID, position: PositionLike = None) -> SubmittedStep:
    return SubmittedStep(id=step_id, position=_position(position), data=SubmittedConfig())


def create_empty() -> WorkflowGraph:
    """A graph holding only the synthesized submitted step."""
    return WorkflowGraph(steps=(make_submitted_step(),))


def ensure_submitted(graph: WorkflowGraph) -> WorkflowGraph:
    """
    Guarantee a submitted step is present.

    If none exists, a non-deletable submitted step is prepended at the
    default position; otherwise the same graph is returned, so repeated
    application is a no-op.
    """
    if graph.submitted_steps():
        return graph

    step_id = SUBMITTED_STEP_ID
    if graph.get_step(step_id) is not None:
        step_id = new_id("step_")

    logger.info("Synthesizing missing submitted step %s", step_id)
    return graph.model_copy(update={"steps": (make_submitted_step(step_id),) + graph.steps})


def add_step(
    graph: WorkflowGraph,
    step_type: Union[StepType, str],
    position: PositionLike = None,
    configuration: ConfigLike = None,
) -> WorkflowGraph:
    """
    Append a new approval or fulfillment step with a freshly generated id.

    Args:
        graph: Current graph
        step_type: "approval" or "fulfillment"; submitted steps cannot be user-created
        position: Canvas position (Position or {"x", "y"})
        configuration: Config model for the type, or a mapping validated into one

    Returns:
        New graph with the step appended last

    Raises:
        InvalidStepType: for "submitted" or any unknown tag
    """
    try:
        kind = StepType(step_type)
    except ValueError:
        raise InvalidStepType(step_type) from None
    if kind not in _STEP_CLASSES:
        raise InvalidStepType(step_type)

    step_cls, config_cls = _STEP_CLASSES[kind]
    step = step_cls(
        id=new_id("step_"),
        position=_position(position),
        data=_config(config_cls, configuration),
    )
    logger.debug("Adding %s step %s", kind.value, step.id)
    return graph.model_copy(update={"steps": graph.steps + (step,)})


def remove_step(graph: WorkflowGraph, step_id: str) -> WorkflowGraph:
    """
    Remove a step together with every connection touching it.

    Raises:
        UnknownStep: if the id is absent
        StepNotDeletable: if the step is flagged non-deletable (the submitted step always is)
    """
    step = _require_step(graph, step_id)
    if not step.deletable or step.type == StepType.submitted:
        raise StepNotDeletable(step_id)

    steps = tuple(s for s in graph.steps if s.id != step_id)
    connections = tuple(
        c for c in graph.connections
        if c.source != step_id and c.target != step_id
    )
    logger.debug(
        "Removed step %s and %d connection(s)",
        step_id, len(graph.connections) - len(connections),
    )
    return graph.model_copy(update={"steps": steps, "connections": connections})


def add_connection(graph: WorkflowGraph, source: str, target: str) -> WorkflowGraph:
    """
    Connect two existing steps.

    Raises:
        UnknownStep: if either endpoint is absent
        SelfLoop: if source == target
        DuplicateConnection: if the ordered pair is already connected
    """
    _require_step(graph, source)
    _require_step(graph, target)
    if source == target:
        raise SelfLoop(source)
    if any(c.source == source and c.target == target for c in graph.connections):
        raise DuplicateConnection(source, target)

    connection = Connection(id=new_id("edge_"), source=source, target=target)
    logger.debug("Connecting %s -> %s (%s)", source, target, connection.id)
    return graph.model_copy(update={"connections": graph.connections + (connection,)})


def remove_connection(graph: WorkflowGraph, connection_id: str) -> WorkflowGraph:
    """Remove a connection; an absent id is a no-op."""
    connections = tuple(c for c in graph.connections if c.id != connection_id)
    if len(connections) == len(graph.connections):
        return graph
    return graph.model_copy(update={"connections": connections})


def update_step_config(graph: WorkflowGraph, step_id: str, configuration: ConfigLike) -> WorkflowGraph:
    """Replace a step's configuration; the step keeps its type."""
    step = _require_step(graph, step_id)
    updated = step.model_copy(update={"data": _config(type(step.data), configuration)})
    return _replace_step(graph, updated)


def move_step(graph: WorkflowGraph, step_id: str, position: PositionLike) -> WorkflowGraph:
    step = _require_step(graph, step_id)
    return _replace_step(graph, step.model_copy(update={"position": _position(position)}))


def get_step(graph: WorkflowGraph, step_id: str):
    return graph.get_step(step_id)
