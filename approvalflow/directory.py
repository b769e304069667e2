"""
Role Directory
Read-only lookup of the roles an editor can pick for approval and
fulfillment steps. Role ids stored in graphs are opaque: nothing here checks
that a referenced role still exists.
"""

import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import RoleOption


DEFAULT_ROLE_NAMES = [
    "Manager",
    "Department Head",
    "Finance",
    "Human Resources",
    "IT Support",
    "Operations",
]


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class RoleDirectory(ABC):
    """Interface of the role lookup service."""

    @abstractmethod
    def list_roles(self) -> List[RoleOption]:
        """Return every role available for selection."""
        pass


class StaticRoleDirectory(RoleDirectory):
    """Role directory backed by a fixed list."""

    def __init__(self, roles: Iterable[RoleOption]):
        self._roles = list(roles)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "StaticRoleDirectory":
        roles = []
        for name in names:
            slug = slugify(name)
            roles.append(RoleOption(id=slug.replace("-", "_"), name=name, slug=slug))
        return cls(roles)

    def list_roles(self) -> List[RoleOption]:
        return list(self._roles)


_directory: Optional[RoleDirectory] = None


def get_role_directory() -> RoleDirectory:
    """Lazily created shared directory; tests override it through FastAPI dependencies."""
    global _directory
    if _directory is None:
        _directory = StaticRoleDirectory.from_names(DEFAULT_ROLE_NAMES)
    return _directory
