"""
Operation-level failures.

Graph Model and Serializer operations raise these; the structural validator
never does (it reports Violations instead). Each error carries a stable
machine-readable ``code`` used by the HTTP layer.
"""

from typing import Any, Dict, List, Optional, Sequence


class WorkflowGraphError(Exception):
    """Base class for all failures of a graph operation."""

    code: str = "WORKFLOW_GRAPH_ERROR"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class InvalidStepType(WorkflowGraphError):
    code = "INVALID_STEP_TYPE"

    def __init__(self, step_type: Any):
        super().__init__(f"Steps of type {step_type!r} cannot be created")
        self.step_type = step_type


class StepNotDeletable(WorkflowGraphError):
    code = "STEP_NOT_DELETABLE"

    def __init__(self, step_id: str):
        super().__init__(f"Step {step_id!r} is not deletable")
        self.step_id = step_id


class UnknownStep(WorkflowGraphError):
    code = "UNKNOWN_STEP"

    def __init__(self, step_id: str):
        super().__init__(f"Step {step_id!r} does not exist")
        self.step_id = step_id


class SelfLoop(WorkflowGraphError):
    code = "SELF_LOOP"

    def __init__(self, step_id: str):
        super().__init__(f"Step {step_id!r} cannot connect to itself")
        self.step_id = step_id


class DuplicateConnection(WorkflowGraphError):
    code = "DUPLICATE_CONNECTION"

    def __init__(self, source: str, target: str):
        super().__init__(f"Connection {source!r} -> {target!r} already exists")
        self.source = source
        self.target = target


class UnsupportedVersion(WorkflowGraphError):
    code = "UNSUPPORTED_VERSION"

    def __init__(self, version: Any, supported: int):
        super().__init__(
            f"Document version {version!r} is newer than supported version {supported}"
        )
        self.version = version
        self.supported = supported


class MalformedDocument(WorkflowGraphError):
    code = "MALFORMED_DOCUMENT"


class InvalidWorkflow(WorkflowGraphError):
    """Raised when a graph fails structural validation at a save/load boundary."""

    code = "INVALID_WORKFLOW"

    def __init__(self, violations: Sequence[Any]):
        self.violations = list(violations)
        super().__init__(
            f"Workflow has {len(self.violations)} violation(s)",
            details=[v.model_dump(mode="json") for v in self.violations],
        )


class UnknownTemplate(WorkflowGraphError):
    code = "UNKNOWN_TEMPLATE"

    def __init__(self, kind: Any):
        super().__init__(f"Unknown template kind: {kind!r}")
        self.kind = kind


class WorkflowNotFound(WorkflowGraphError):
    code = "NOT_FOUND"

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id!r} not found")
        self.workflow_id = workflow_id
