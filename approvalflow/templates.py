"""
Template Instantiator
Builds a canonical, valid graph for each supported workflow shape.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple, Union

from .config import settings
from .errors import UnknownTemplate
from .graph import add_connection, add_step, create_empty, ensure_submitted
from .models import (
    SUBMITTED_STEP_ID,
    ApprovalConfig,
    FulfillmentConfig,
    Position,
    StepType,
    TemplateInfo,
    WorkflowGraph,
)

logger = logging.getLogger(__name__)


class TemplateKind(str, Enum):
    single_approval = "singleApproval"
    two_step_approval = "twoStepApproval"
    parallel_approval = "parallelApproval"


TEMPLATE_INFO = {
    TemplateKind.single_approval: (
        "Single approval",
        "Submitted, one approval step, then fulfillment.",
    ),
    TemplateKind.two_step_approval: (
        "Two-step approval",
        "Submitted, two approval steps in sequence, then fulfillment.",
    ),
    TemplateKind.parallel_approval: (
        "Parallel approval",
        "Submitted, two approval steps side by side, converging on fulfillment.",
    ),
}


class TemplateFactory:
    """
    Factory for template graphs.

    Approval steps get one approver role and fulfillment steps one fulfiller
    role so that the result passes validation as soon as it is created.
    Every call generates fresh ids.
    """

    def __init__(
        self,
        approver_role: Optional[str] = None,
        fulfiller_role: Optional[str] = None,
        column_spacing: Optional[float] = None,
        row_spacing: Optional[float] = None,
    ):
        self.approver_role = approver_role or settings.template_approver_role
        self.fulfiller_role = fulfiller_role or settings.template_fulfiller_role
        self.column_spacing = column_spacing if column_spacing is not None else settings.template_column_spacing
        self.row_spacing = row_spacing if row_spacing is not None else settings.template_row_spacing

    def instantiate(self, kind: Union[TemplateKind, str]) -> WorkflowGraph:
        """
        Create a new editable graph for the given template kind.

        Raises:
            UnknownTemplate: if kind is not a supported template
        """
        try:
            kind = TemplateKind(kind)
        except ValueError:
            raise UnknownTemplate(kind) from None

        builders = {
            TemplateKind.single_approval: self._single_approval,
            TemplateKind.two_step_approval: self._two_step_approval,
            TemplateKind.parallel_approval: self._parallel_approval,
        }
        graph = ensure_submitted(builders[kind]())
        logger.info("Instantiated %s template with %d step(s)", kind.value, len(graph.steps))
        return graph

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------

    def _position(self, column: int, row: float = 0) -> Position:
        return Position(x=column * self.column_spacing, y=row * self.row_spacing)

    def _approval(self, graph: WorkflowGraph, column: int, row: float = 0) -> Tuple[WorkflowGraph, str]:
        config = ApprovalConfig(approver_roles=(self.approver_role,), min_approvals=1)
        graph = add_step(graph, StepType.approval, self._position(column, row), config)
        return graph, graph.steps[-1].id

    def _fulfillment(self, graph: WorkflowGraph, column: int) -> Tuple[WorkflowGraph, str]:
        config = FulfillmentConfig(fulfiller_roles=(self.fulfiller_role,))
        graph = add_step(graph, StepType.fulfillment, self._position(column), config)
        return graph, graph.steps[-1].id

    def _chain(self, approvals: int) -> WorkflowGraph:
        graph = create_empty()
        previous = SUBMITTED_STEP_ID
        for column in range(1, approvals + 1):
            graph, step_id = self._approval(graph, column)
            graph = add_connection(graph, previous, step_id)
            previous = step_id
        graph, fulfillment_id = self._fulfillment(graph, approvals + 1)
        return add_connection(graph, previous, fulfillment_id)

    # ------------------------------------------------------------------
    # Shapes
    # ------------------------------------------------------------------

    def _single_approval(self) -> WorkflowGraph:
        return self._chain(approvals=1)

    def _two_step_approval(self) -> WorkflowGraph:
        return self._chain(approvals=2)

    def _parallel_approval(self) -> WorkflowGraph:
        graph = create_empty()
        graph, upper_id = self._approval(graph, column=1, row=-1)
        graph, lower_id = self._approval(graph, column=1, row=1)
        graph, fulfillment_id = self._fulfillment(graph, column=2)
        for approval_id in (upper_id, lower_id):
            graph = add_connection(graph, SUBMITTED_STEP_ID, approval_id)
            graph = add_connection(graph, approval_id, fulfillment_id)
        return graph


def instantiate(
    kind: Union[TemplateKind, str],
    approver_role: Optional[str] = None,
    fulfiller_role: Optional[str] = None,
) -> WorkflowGraph:
    return TemplateFactory(approver_role=approver_role, fulfiller_role=fulfiller_role).instantiate(kind)


def available_templates() -> List[TemplateInfo]:
    return [
        TemplateInfo(kind=kind.value, display_name=name, description=description)
        for kind, (name, description) in TEMPLATE_INFO.items()
    ]
