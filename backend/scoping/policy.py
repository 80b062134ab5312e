"""
Policy evaluator: who may read, write or comment on which rows.

Why:
    A single declarative rule table (`RULES`) drives three consumers:
    per-resource checks (`can_access`), list filtering (`scope_filter`) and
    the generated row-level-security policies (`backend.scoping.rls`). Adding
    a role means adding rows here, not editing code paths.

Behavior:
    - Rules are evaluated independently and OR-composed. A teacher who also
      holds the supervision capability matches through either branch.
    - WRITE and COMMENT additionally require the mutating identity to be the
      actor itself; the check is per resource, never only per route.
    - UNKNOWN actors match no rule and are always denied.
    - Pure functions: no I/O, no logging of payloads.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from backend.identity_access.domain import Actor, Role
from .predicates import Predicate


class Action(str, Enum):
    READ = "read"
    WRITE = "write"
    COMMENT = "comment"


class ResourceKind(str, Enum):
    PROFILE = "profile"
    RECORD = "record"
    FIELD_VALUE = "field_value"
    COMMENT = "comment"
    FILE = "file"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class Scope(str, Enum):
    ALL = "all"
    HOME_CLASS = "home_class"
    SUPERVISED_CLASSES = "supervised_classes"
    DEPENDENT = "dependent"
    SELF = "self"


@dataclass(frozen=True)
class ResourceDescriptor:
    """Resource identity as seen by the evaluator.

    `owner_class` and `owner_is_student` come from the scope directory, never
    from the caller; build instances via `ScopeDirectory.describe`.
    """

    owner_id: str
    owner_class: Optional[str]
    owner_is_student: bool
    kind: ResourceKind


@dataclass(frozen=True)
class Rule:
    name: str
    scope: Scope
    applies: Callable[[Actor], bool]
    actions: frozenset[Action]


_STAFF_ACTIONS = frozenset({Action.READ, Action.WRITE, Action.COMMENT})
_OWNER_ACTIONS = frozenset({Action.READ, Action.COMMENT})

RULES: tuple[Rule, ...] = (
    Rule("admin_all", Scope.ALL, lambda a: a.role is Role.ADMIN, _STAFF_ACTIONS),
    Rule("teacher_home_class", Scope.HOME_CLASS, lambda a: a.role is Role.TEACHER, _STAFF_ACTIONS),
    Rule("supervisor_classes", Scope.SUPERVISED_CLASSES, lambda a: a.can_supervise, _STAFF_ACTIONS),
    Rule("parent_dependent", Scope.DEPENDENT, lambda a: a.role is Role.PARENT, _OWNER_ACTIONS),
    Rule("student_self", Scope.SELF, lambda a: a.role is Role.STUDENT, _OWNER_ACTIONS),
)


def applicable_rules(actor: Actor) -> list[Rule]:
    if not actor.is_known:
        return []
    return [r for r in RULES if r.applies(actor)]


def _scope_predicate(scope: Scope, actor: Actor) -> Predicate:
    if scope is Scope.ALL:
        return Predicate.all()
    if scope is Scope.HOME_CLASS:
        return Predicate(owner_classes=frozenset({actor.home_class})) if actor.home_class else Predicate.nothing()
    if scope is Scope.SUPERVISED_CLASSES:
        return Predicate(owner_classes=frozenset(c for c in actor.supervised_classes if c))
    if scope is Scope.DEPENDENT:
        return Predicate(owner_ids=frozenset({actor.dependent_id})) if actor.dependent_id else Predicate.nothing()
    if scope is Scope.SELF:
        return Predicate(owner_ids=frozenset({actor.id}))
    raise ValueError(f"unhandled scope: {scope}")  # pragma: no cover


def scope_filter(actor: Actor, kind: ResourceKind) -> Predicate:
    """Union of the READ predicates of every rule that applies to `actor`.

    `kind` is accepted for symmetry with `can_access`; all kinds are scoped by
    their owner.
    """
    pred = Predicate.nothing()
    for rule in applicable_rules(actor):
        if Action.READ in rule.actions:
            pred = pred.union(_scope_predicate(rule.scope, actor))
    return pred


def can_access(
    actor: Actor,
    resource: ResourceDescriptor,
    action: Action,
    mutator_id: Optional[str] = None,
) -> Decision:
    if action in (Action.WRITE, Action.COMMENT) and mutator_id != actor.id:
        return Decision.DENY
    for rule in applicable_rules(actor):
        if action not in rule.actions:
            continue
        pred = _scope_predicate(rule.scope, actor)
        if pred.matches(
            owner_id=resource.owner_id,
            owner_class=resource.owner_class,
            owner_is_student=resource.owner_is_student,
        ):
            return Decision.ALLOW
    return Decision.DENY


@dataclass(frozen=True)
class RouteRequirement:
    """Route-level gate: any listed role, or the supervision capability."""

    roles: frozenset[Role] = field(default_factory=frozenset)
    supervision: bool = False


def can_enter(actor: Actor, requirement: RouteRequirement) -> bool:
    if not actor.is_known:
        return False
    if actor.role in requirement.roles:
        return True
    return requirement.supervision and actor.can_supervise


__all__ = [
    "Action",
    "ResourceKind",
    "Decision",
    "Scope",
    "ResourceDescriptor",
    "Rule",
    "RULES",
    "applicable_rules",
    "scope_filter",
    "can_access",
    "RouteRequirement",
    "can_enter",
]
