"""Scoping context: policy rules, row predicates and generated RLS policies.

Re-export the evaluator surface for convenient imports in handlers and tests.
"""

from .policy import (
    Action,
    Decision,
    ResourceDescriptor,
    ResourceKind,
    RouteRequirement,
    RULES,
    Scope,
    can_access,
    can_enter,
    scope_filter,
)
from .predicates import Predicate

__all__ = [
    "Action",
    "Decision",
    "ResourceDescriptor",
    "ResourceKind",
    "RouteRequirement",
    "RULES",
    "Scope",
    "can_access",
    "can_enter",
    "scope_filter",
    "Predicate",
]
