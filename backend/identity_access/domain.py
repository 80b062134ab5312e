"""
Identity domain types: roles, actors and profiles.

Why:
- Keep the role set closed (an Enum) so the policy table can be checked for
  exhaustiveness instead of matching free-form strings.
- Centralize how stored role names map onto roles to avoid drift between the
  directory, the guard and the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    SUPERVISOR = "supervisor"
    STUDENT = "student"
    PARENT = "parent"
    UNKNOWN = "unknown"


# Stored role names (legacy Indonesian labels included). Anything else is UNKNOWN.
_ROLE_NAMES = {
    "admin": Role.ADMIN,
    "teacher": Role.TEACHER,
    "guru": Role.TEACHER,
    "supervisor": Role.SUPERVISOR,
    "guruwali": Role.SUPERVISOR,
    "student": Role.STUDENT,
    "siswa": Role.STUDENT,
    "parent": Role.PARENT,
    "orangtua": Role.PARENT,
}

# Only staff roles may carry the supervision capability flag.
_SUPERVISION_ROLES = frozenset({Role.TEACHER, Role.SUPERVISOR})


def parse_role(value: object) -> Role:
    """Map a stored role name onto the closed enum (UNKNOWN when unmapped)."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return Role.UNKNOWN
    return _ROLE_NAMES.get(value.strip().lower().replace(" ", ""), Role.UNKNOWN)


@dataclass(frozen=True)
class Actor:
    """Authenticated identity with resolved role and scope.

    Immutable: an actor is resolved once per request and never mutated.
    """

    id: str
    role: Role
    home_class: Optional[str] = None
    supervised_classes: frozenset[str] = field(default_factory=frozenset)
    supervisor: bool = False
    dependent_id: Optional[str] = None

    @property
    def can_supervise(self) -> bool:
        """Supervision capability: the SUPERVISOR role or a flagged teacher."""
        if self.role is Role.SUPERVISOR:
            return True
        return self.supervisor and self.role in _SUPERVISION_ROLES

    @property
    def is_known(self) -> bool:
        return self.role is not Role.UNKNOWN

    @classmethod
    def unknown(cls, actor_id: str) -> "Actor":
        return cls(id=actor_id, role=Role.UNKNOWN)


@dataclass(frozen=True)
class Profile:
    """Durable profile row behind an actor (or a student listed in a roster)."""

    user_id: str
    role: Role
    username: Optional[str] = None
    email: Optional[str] = None
    home_class: Optional[str] = None
    supervisor: bool = False
    dependent_id: Optional[str] = None

    def contact_score(self) -> int:
        return sum(1 for v in (self.username, self.email) if v and str(v).strip())


__all__ = ["Role", "parse_role", "Actor", "Profile"]
