"""
Row predicates produced by the policy evaluator.

A `Predicate` is the storage-neutral form of "which owners may this actor
see". The in-memory repositories call `matches()`; the psycopg repositories
render it to a WHERE clause (see `to_sql`). Both derive from the same rule
table so list views and single-row checks cannot disagree.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Predicate:
    everything: bool = False
    owner_ids: frozenset[str] = field(default_factory=frozenset)
    # Class matches only apply to student-owned rows.
    owner_classes: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def nothing(cls) -> "Predicate":
        return cls()

    @classmethod
    def all(cls) -> "Predicate":
        return cls(everything=True)

    def is_empty(self) -> bool:
        return not self.everything and not self.owner_ids and not self.owner_classes

    def union(self, other: "Predicate") -> "Predicate":
        if self.everything or other.everything:
            return Predicate.all()
        return Predicate(
            owner_ids=self.owner_ids | other.owner_ids,
            owner_classes=self.owner_classes | other.owner_classes,
        )

    def matches(self, *, owner_id: str, owner_class: Optional[str], owner_is_student: bool) -> bool:
        if self.everything:
            return True
        if owner_id in self.owner_ids:
            return True
        return bool(owner_is_student and owner_class is not None and owner_class in self.owner_classes)

    def to_sql(self, *, owner_column: str, class_column: str, role_column: str) -> tuple[str, list]:
        """Render as a SQL boolean expression with positional parameters.

        Column names are trusted identifiers supplied by repository code,
        never user input.
        """
        if self.everything:
            return "true", []
        parts: list[str] = []
        params: list = []
        if self.owner_ids:
            parts.append(f"{owner_column} = any(%s)")
            params.append(sorted(self.owner_ids))
        if self.owner_classes:
            parts.append(f"({role_column} = 'student' and {class_column} = any(%s))")
            params.append(sorted(self.owner_classes))
        if not parts:
            return "false", []
        return "(" + " or ".join(parts) + ")", params


__all__ = ["Predicate"]
