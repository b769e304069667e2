"""
Approval workflow graph model.

Components:
- Graph Model: typed steps, connections and value-style mutations
- Roles: normalization of role selections and the indexed wire fields
- Validator: chain of structural checks producing Violations
- Templates: canonical graphs for the supported workflow shapes
- Converters: encode/decode of the persisted document
"""

from .converters import decode, encode
from .graph import (
    add_connection,
    add_step,
    create_empty,
    ensure_submitted,
    remove_connection,
    remove_step,
)
from .models import StepType, Violation, ViolationCode, WorkflowGraph
from .roles import normalize_roles
from .templates import TemplateKind, instantiate
from .validator import validate

__all__ = [
    "WorkflowGraph", "StepType", "Violation", "ViolationCode",
    "create_empty", "ensure_submitted", "add_step", "remove_step",
    "add_connection", "remove_connection",
    "normalize_roles",
    "validate",
    "TemplateKind", "instantiate",
    "encode", "decode",
]
