"""
Role Assignment Normalizer
Turns an editor's role selection into a dense, ordered role list and maps
role lists to and from the indexed wire fields (approverRole1, approverRole2, ...).
"""

import re
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import MalformedDocument
from .models import ApprovalConfig, FulfillmentConfig, RoleConfig


APPROVER_ROLE_PREFIX = "approverRole"
FULFILLER_ROLE_PREFIX = "fulfillerRole"

_INDEX_PATTERNS: Dict[str, "re.Pattern[str]"] = {}


def _role_field(config: RoleConfig) -> str:
    if isinstance(config, ApprovalConfig):
        return "approver_roles"
    if isinstance(config, FulfillmentConfig):
        return "fulfiller_roles"
    raise TypeError(f"{type(config).__name__} has no role assignments")


def dedupe_roles(selected: Iterable[Optional[str]]) -> Tuple[str, ...]:
    """Drop blanks and repeats, keeping first-occurrence order."""
    roles = []
    for role in selected:
        if not role or role in roles:
            continue
        roles.append(role)
    return tuple(roles)


def normalize_roles(config: RoleConfig, selected: Iterable[Optional[str]]) -> RoleConfig:
    """
    Replace every role assignment of an approval/fulfillment configuration
    with the given selection.

    The selection is in user interaction order and may contain duplicates
    from re-toggling. The result is contiguous (no holes), deduplicated by
    role identifier and keeps first-occurrence order, so applying it twice
    gives the same configuration.

    Args:
        config: Current step configuration
        selected: Role identifiers as picked in the editor

    Returns:
        A new configuration; other fields are left as they were
    """
    return config.model_copy(update={_role_field(config): dedupe_roles(selected)})


def toggle_role(config: RoleConfig, role: str) -> RoleConfig:
    """Add ``role`` at the end if it is not assigned yet, remove it otherwise."""
    current = [r for r in config.roles if r]
    if role in current:
        current.remove(role)
    else:
        current.append(role)
    return normalize_roles(config, current)


# ============================================================================
# Wire mapping (indexed fields)
# ============================================================================

def _index_pattern(prefix: str) -> "re.Pattern[str]":
    pattern = _INDEX_PATTERNS.get(prefix)
    if pattern is None:
        pattern = re.compile(rf"^{re.escape(prefix)}([1-9][0-9]*)$")
        _INDEX_PATTERNS[prefix] = pattern
    return pattern


def to_indexed_fields(prefix: str, roles: Iterable[Optional[str]]) -> Dict[str, str]:
    """
    Emit ``<prefix>1``, ``<prefix>2``, ... for a role list.

    Holes keep their position, so a list decoded with a gap is written back
    with the same gap.
    """
    return {
        f"{prefix}{index}": role
        for index, role in enumerate(roles, start=1)
        if role is not None
    }


def from_indexed_fields(
    prefix: str,
    data: Mapping[str, Any],
) -> Tuple[Tuple[Optional[str], ...], Dict[str, Any]]:
    """
    Collect ``<prefix><N>`` fields into an ordered role list.

    Missing indices up to the highest one present become ``None`` holes;
    blank values count as missing.

    Returns:
        Tuple of (role list, remaining non-role fields)

    Raises:
        MalformedDocument: if a role field holds anything but a string
    """
    pattern = _index_pattern(prefix)
    indexed: Dict[int, str] = {}
    rest: Dict[str, Any] = {}

    for key, value in data.items():
        match = pattern.match(key)
        if not match:
            rest[key] = value
            continue
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            raise MalformedDocument(f"{key} must be a role id string, got {type(value).__name__}")
        indexed[int(match.group(1))] = value

    if not indexed:
        return (), rest

    highest = max(indexed)
    return tuple(indexed.get(i) for i in range(1, highest + 1)), rest
