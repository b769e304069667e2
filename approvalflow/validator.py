"""
Structural Validator
Chain of handlers, each checking one group of graph invariants and appending
Violations. The validator never mutates the graph and never raises.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List, Optional, Set, Tuple

from .models import (
    ApprovalStep,
    FulfillmentStep,
    StepType,
    Violation,
    ViolationCode,
    WorkflowGraph,
)

logger = logging.getLogger(__name__)


class ViolationHandler(ABC):
    """Base handler of the validation chain."""

    def __init__(self, next_handler: Optional["ViolationHandler"] = None):
        self._next_handler = next_handler

    def set_next(self, handler: "ViolationHandler") -> "ViolationHandler":
        """Set the next handler and return it, so calls can be chained."""
        self._next_handler = handler
        return handler

    def handle(self, graph: WorkflowGraph, violations: List[Violation]) -> List[Violation]:
        violations = self._process(graph, violations)
        if self._next_handler:
            return self._next_handler.handle(graph, violations)
        return violations

    @abstractmethod
    def _process(self, graph: WorkflowGraph, violations: List[Violation]) -> List[Violation]:
        """Check one group of invariants."""
        pass


class SubmittedStepHandler(ViolationHandler):
    """Exactly one submitted step, with no incoming connections."""

    def _process(self, graph: WorkflowGraph, violations: List[Violation]) -> List[Violation]:
        submitted = graph.submitted_steps()

        if not submitted:
            violations.append(Violation(
                code=ViolationCode.MISSING_SUBMITTED,
                message="Workflow has no submitted step.",
            ))
            return violations

        for extra in submitted[1:]:
            violations.append(Violation(
                code=ViolationCode.DUPLICATE_SUBMITTED,
                entity_ids=(extra.id,),
                message=f"Step {extra.id} is an additional submitted step.",
            ))

        submitted_ids = {step.id for step in submitted}
        for connection in graph.connections:
            if connection.target in submitted_ids and connection.source != connection.target:
                violations.append(Violation(
                    code=ViolationCode.SUBMITTED_HAS_INCOMING,
                    entity_ids=(connection.id, connection.target),
                    message=f"Connection {connection.id} points into the submitted step.",
                ))

        return violations


class ConnectionHandler(ViolationHandler):
    """Endpoints exist, no self-loops, no repeated (source, target) pair."""

    def _process(self, graph: WorkflowGraph, violations: List[Violation]) -> List[Violation]:
        step_ids = set(graph.step_ids())
        seen: Dict[Tuple[str, str], str] = {}

        for connection in graph.connections:
            missing = tuple(
                step_id for step_id in (connection.source, connection.target)
                if step_id not in step_ids
            )
            if missing:
                violations.append(Violation(
                    code=ViolationCode.DANGLING_CONNECTION,
                    entity_ids=(connection.id,) + missing,
                    message=f"Connection {connection.id} references missing step(s): {', '.join(missing)}.",
                ))
                continue

            if connection.source == connection.target:
                violations.append(Violation(
                    code=ViolationCode.SELF_LOOP,
                    entity_ids=(connection.id, connection.source),
                    message=f"Connection {connection.id} connects {connection.source} to itself.",
                ))
                continue

            pair = (connection.source, connection.target)
            if pair in seen:
                violations.append(Violation(
                    code=ViolationCode.DUPLICATE_CONNECTION,
                    entity_ids=(connection.id, seen[pair]),
                    message=f"Connection {connection.id} repeats {seen[pair]} ({pair[0]} -> {pair[1]}).",
                ))
            else:
                seen[pair] = connection.id

        return violations


class ReachabilityHandler(ViolationHandler):
    """Every non-submitted step is reachable from the submitted step."""

    def _process(self, graph: WorkflowGraph, violations: List[Violation]) -> List[Violation]:
        roots = [step.id for step in graph.submitted_steps()]
        if not roots:
            # already reported as MISSING_SUBMITTED
            return violations

        step_ids = set(graph.step_ids())
        adjacency: Dict[str, List[str]] = {}
        for connection in graph.connections:
            if connection.source in step_ids and connection.target in step_ids:
                adjacency.setdefault(connection.source, []).append(connection.target)

        visited: Set[str] = set(roots)
        queue = deque(roots)
        while queue:
            current = queue.popleft()
            for neighbor in adjacency.get(current, []):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        for step in graph.steps:
            if step.id not in visited and step.type != StepType.submitted:
                violations.append(Violation(
                    code=ViolationCode.UNREACHABLE_STEP,
                    entity_ids=(step.id,),
                    message=f"Step {step.id} cannot be reached from the submitted step.",
                ))

        return violations


class RoleAssignmentHandler(ViolationHandler):
    """Role lists are non-empty, contiguous and free of repeats; approval bounds hold."""

    def _process(self, graph: WorkflowGraph, violations: List[Violation]) -> List[Violation]:
        for step in graph.steps:
            if not isinstance(step, (ApprovalStep, FulfillmentStep)):
                continue

            config = step.data
            count = config.role_count

            if count == 0:
                violations.append(Violation(
                    code=ViolationCode.EMPTY_ROLE_LIST,
                    entity_ids=(step.id,),
                    message=f"Step {step.id} has no roles assigned.",
                ))
            if any(not role for role in config.roles):
                violations.append(Violation(
                    code=ViolationCode.NON_CONTIGUOUS_ROLE_INDEX,
                    entity_ids=(step.id,),
                    message=f"Step {step.id} has gaps in its role indices.",
                ))
            assigned = [role for role in config.roles if role]
            if len(assigned) != count:
                violations.append(Violation(
                    code=ViolationCode.DUPLICATE_ROLE,
                    entity_ids=(step.id,),
                    message=f"Step {step.id} assigns the same role more than once.",
                ))

            if isinstance(step, ApprovalStep):
                self._check_approval(step, count, violations)

        return violations

    @staticmethod
    def _check_approval(step: ApprovalStep, count: int, violations: List[Violation]) -> None:
        config = step.data
        # with no roles at all only EMPTY_ROLE_LIST is reported
        if config.min_approvals < 1 or (count and config.min_approvals > count):
            violations.append(Violation(
                code=ViolationCode.INVALID_MIN_APPROVALS,
                entity_ids=(step.id,),
                message=(
                    f"Step {step.id} requires {config.min_approvals} approval(s) "
                    f"but has {count} approver role(s)."
                ),
            ))
        if config.delegation_enabled and not config.delegate_role:
            violations.append(Violation(
                code=ViolationCode.MISSING_DELEGATE_ROLE,
                entity_ids=(step.id,),
                message=f"Step {step.id} allows delegation but has no delegate role.",
            ))


class ValidatorChainFactory:
    """Builds the chain of validation handlers."""

    @staticmethod
    def create_default_chain() -> ViolationHandler:
        """
        Order:
        1. SubmittedStepHandler
        2. ConnectionHandler
        3. ReachabilityHandler
        4. RoleAssignmentHandler
        """
        submitted_handler = SubmittedStepHandler()
        connection_handler = ConnectionHandler()
        reachability_handler = ReachabilityHandler()
        role_handler = RoleAssignmentHandler()

        submitted_handler.set_next(connection_handler)
        connection_handler.set_next(reachability_handler)
        reachability_handler.set_next(role_handler)

        return submitted_handler


def validate(graph: WorkflowGraph) -> List[Violation]:
    """
    Check every structural invariant of a graph.

    Returns:
        List of violations; empty means the graph is valid
    """
    violations = ValidatorChainFactory.create_default_chain().handle(graph, [])
    logger.debug("Validated graph with %d step(s): %d violation(s)", len(graph.steps), len(violations))
    return violations


def is_valid(graph: WorkflowGraph) -> bool:
    return not validate(graph)
