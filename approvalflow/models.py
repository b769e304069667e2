"""
Workflow Graph Data Models
Typed steps (submitted / approval / fulfillment), connections and the graph
itself, plus the persisted table and the API DTOs.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, field_validator
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field


# Highest document version this build can read and the one it writes.
SUPPORTED_VERSION = 1

# Well-known id of the synthesized submitted step.
SUBMITTED_STEP_ID = "submitted"


class StepType(str, Enum):
    submitted = "submitted"
    approval = "approval"
    fulfillment = "fulfillment"


class ApprovalMode(str, Enum):
    role = "role"
    line_manager = "lineManager"
    department_head = "departmentHead"


# ============================================================================
# STEP CONFIGURATION (tagged by step type)
# ============================================================================

class Position(BaseModel):
    """Display position on the canvas. Opaque to validation."""
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


class StepConfig(BaseModel):
    """
    Base for step configuration payloads.

    Unknown keys are tolerated in memory (stray editor state); the serializer
    only ever writes the declared fields.
    """
    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _blank_as_hole(roles: Tuple[Optional[str], ...]) -> Tuple[Optional[str], ...]:
    # a blank id is not a role; it occupies its index like a missing one
    return tuple(role if role else None for role in roles)


def _distinct(roles: Tuple[Optional[str], ...]) -> int:
    return len({role for role in roles if role})


class SubmittedConfig(StepConfig):
    label: str = "Submitted"


class ApprovalConfig(StepConfig):
    approval_mode: ApprovalMode = ApprovalMode.role
    # None entries are holes left by missing wire indices
    approver_roles: Tuple[Optional[str], ...] = ()
    min_approvals: int = 1
    delegation_enabled: bool = False
    delegate_role: Optional[str] = None

    @field_validator("approver_roles")
    @classmethod
    def _blank_approvers(cls, value: Tuple[Optional[str], ...]) -> Tuple[Optional[str], ...]:
        return _blank_as_hole(value)

    @property
    def roles(self) -> Tuple[Optional[str], ...]:
        return self.approver_roles

    @property
    def role_count(self) -> int:
        """Number of distinct roles assigned"""
        return _distinct(self.approver_roles)


class FulfillmentConfig(StepConfig):
    fulfiller_roles: Tuple[Optional[str], ...] = ()

    @field_validator("fulfiller_roles")
    @classmethod
    def _blank_fulfillers(cls, value: Tuple[Optional[str], ...]) -> Tuple[Optional[str], ...]:
        return _blank_as_hole(value)

    @property
    def roles(self) -> Tuple[Optional[str], ...]:
        return self.fulfiller_roles

    @property
    def role_count(self) -> int:
        return _distinct(self.fulfiller_roles)


RoleConfig = Union[ApprovalConfig, FulfillmentConfig]


# ============================================================================
# GRAPH ENTITIES
# ============================================================================

class StepBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    position: Position = Position()
    deletable: bool = True


class SubmittedStep(StepBase):
    type: Literal["submitted"] = "submitted"
    data: SubmittedConfig = SubmittedConfig()
    deletable: bool = False

    @field_validator("deletable")
    @classmethod
    def _never_deletable(cls, value: bool) -> bool:
        return False


class ApprovalStep(StepBase):
    type: Literal["approval"] = "approval"
    data: ApprovalConfig = ApprovalConfig()


class FulfillmentStep(StepBase):
    type: Literal["fulfillment"] = "fulfillment"
    data: FulfillmentConfig = FulfillmentConfig()


Step = Annotated[
    Union[SubmittedStep, ApprovalStep, FulfillmentStep],
    Discriminator("type"),
]


class Connection(BaseModel):
    """Directed edge between two steps"""
    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str


class WorkflowGraph(BaseModel):
    """
    Full workflow: version marker, steps and connections.

    Frozen; every graph operation returns a new instance.
    """
    model_config = ConfigDict(frozen=True)

    version: int = SUPPORTED_VERSION
    steps: Tuple[Step, ...] = ()
    connections: Tuple[Connection, ...] = ()

    def get_step(self, step_id: str) -> Optional[Union[SubmittedStep, ApprovalStep, FulfillmentStep]]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    def submitted_steps(self) -> List[SubmittedStep]:
        return [step for step in self.steps if step.type == StepType.submitted]


# ============================================================================
# VALIDATION RESULTS
# ============================================================================

class ViolationCode(str, Enum):
    MISSING_SUBMITTED = "MISSING_SUBMITTED"
    DUPLICATE_SUBMITTED = "DUPLICATE_SUBMITTED"
    SUBMITTED_HAS_INCOMING = "SUBMITTED_HAS_INCOMING"
    DANGLING_CONNECTION = "DANGLING_CONNECTION"
    SELF_LOOP = "SELF_LOOP"
    DUPLICATE_CONNECTION = "DUPLICATE_CONNECTION"
    UNREACHABLE_STEP = "UNREACHABLE_STEP"
    INVALID_MIN_APPROVALS = "INVALID_MIN_APPROVALS"
    MISSING_DELEGATE_ROLE = "MISSING_DELEGATE_ROLE"
    EMPTY_ROLE_LIST = "EMPTY_ROLE_LIST"
    NON_CONTIGUOUS_ROLE_INDEX = "NON_CONTIGUOUS_ROLE_INDEX"
    DUPLICATE_ROLE = "DUPLICATE_ROLE"


class Violation(BaseModel):
    """A structural inconsistency, identified by code and offending entity ids"""
    model_config = ConfigDict(frozen=True)

    code: ViolationCode
    entity_ids: Tuple[str, ...] = ()
    message: str = ""


# ============================================================================
# DATABASE MODELS
# ============================================================================

class WorkflowRecord(SQLModel, table=True):
    """
    One persisted workflow. The document column holds the encoded graph
    (JSON) and is replaced wholesale on every save.
    """
    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    name: str
    version: int
    document: str  # JSON, see converters.encode
    created_at: str  # ISO timestamp
    updated_at: str  # ISO timestamp


# ============================================================================
# PYDANTIC MODELS (API DTOs)
# ============================================================================

class RoleOption(BaseModel):
    """Selectable role as supplied by the role directory"""
    id: str
    name: str
    slug: str


class TemplateInfo(BaseModel):
    kind: str
    display_name: str
    description: str


class CreateWorkflowDTO(BaseModel):
    """Request to create a workflow from a template"""
    name: str
    template: str = "singleApproval"
    approver_role: Optional[str] = None
    fulfiller_role: Optional[str] = None


class WorkflowSummary(BaseModel):
    id: str
    name: str
    version: int
    created_at: str
    updated_at: str


class StoredWorkflow(WorkflowSummary):
    document: Dict[str, Any]


class WorkflowDetailDTO(BaseModel):
    """Workflow with its encoded graph document"""
    id: str
    name: str
    document: Dict[str, Any]


class ValidationReport(BaseModel):
    valid: bool
    violations: List[Violation]
