"""
Directory use cases: the parent to dependent link and supervision listing.

Why:
    A parent's scope is exactly their linked dependent, and a supervisor's
    scope is the set of classes assigned to them. Changing the link changes
    what the parent may read, so every change drops the parent's cached actor
    and roster views at once.

Permissions:
    - Link, unlink and read the link: PARENT only, always for themselves.
    - Supervision assignment listing: ADMIN only.
"""
from __future__ import annotations

from typing import Optional
import logging

from backend.scoping.predicates import Predicate
from .directory import ScopeDirectory, display_name
from .domain import Actor, Profile, Role
from .errors import DependentAlreadyLinked

logger = logging.getLogger("harian.identity_access")

LINKED = "linked"
NO_RELATIONSHIP = "no_relationship"
BROKEN_LINK = "broken_link"


def _student_summary(profile: Profile) -> dict:
    return {"id": profile.user_id, "name": display_name(profile), "class": profile.home_class or ""}


def _require_parent(actor: Optional[Actor]) -> Actor:
    if actor is None or actor.role is not Role.PARENT:
        raise PermissionError("forbidden")
    return actor


class GetDependentUseCase:
    def __init__(self, directory: ScopeDirectory) -> None:
        self._directory = directory

    def execute(self, actor: Actor) -> dict:
        """Describe the caller's link; a link to a non-student is `broken_link`."""
        parent = _require_parent(actor)
        if not parent.dependent_id:
            return {"parent_id": parent.id, "relationship_status": NO_RELATIONSHIP, "student": None}
        student = self._directory.profile(parent.dependent_id)
        if student is None or student.role is not Role.STUDENT:
            return {"parent_id": parent.id, "relationship_status": BROKEN_LINK, "student": None}
        return {"parent_id": parent.id, "relationship_status": LINKED, "student": _student_summary(student)}


class LinkDependentUseCase:
    def __init__(self, directory: ScopeDirectory) -> None:
        self._directory = directory

    def execute(self, actor: Actor, student_id: str) -> dict:
        """Link the calling parent to `student_id`.

        Behavior:
            - `ValueError("invalid_student_id")` for a blank id
            - `LookupError("student_not_found")` unless the target is a student
            - `DependentAlreadyLinked` when another parent holds the student
            - Relinking to the current dependent is a no-op success
        """
        parent = _require_parent(actor)
        student_id = (student_id or "").strip()
        if not student_id:
            raise ValueError("invalid_student_id")
        student = self._directory.profile(student_id)
        if student is None or student.role is not Role.STUDENT:
            raise LookupError("student_not_found")
        store = self._directory.store
        holder = store.find_parent_of(student_id)
        if holder is not None and holder.user_id != parent.id:
            raise DependentAlreadyLinked(holder.user_id)
        store.set_dependent(parent.id, student_id)
        self._directory.invalidate(parent.id)
        logger.info("parent link updated")
        return {"parent_id": parent.id, "relationship_status": LINKED, "student": _student_summary(student)}


class UnlinkDependentUseCase:
    def __init__(self, directory: ScopeDirectory) -> None:
        self._directory = directory

    def execute(self, actor: Actor) -> dict:
        parent = _require_parent(actor)
        if not parent.dependent_id:
            raise ValueError("no_dependent")
        self._directory.store.set_dependent(parent.id, None)
        self._directory.invalidate(parent.id)
        logger.info("parent link removed")
        return {"parent_id": parent.id, "relationship_status": NO_RELATIONSHIP, "student": None}


class ListSupervisionAssignmentsUseCase:
    def __init__(self, directory: ScopeDirectory) -> None:
        self._directory = directory

    def execute(self, actor: Actor) -> list[dict]:
        """One row per student with the supervisors assigned to their class.

        Students without a class, or whose class has no supervisor, are listed
        with an empty `supervisors` list. Supervisor rows carry id and name
        only.
        """
        if actor is None or actor.role is not Role.ADMIN:
            raise PermissionError("forbidden")
        by_class: dict[str, list[dict]] = {}
        for supervisor_id, classes in sorted(self._directory.store.list_supervision().items()):
            profile = self._directory.profile(supervisor_id)
            entry = {"id": supervisor_id, "name": display_name(profile) if profile else supervisor_id}
            for kelas in sorted(classes):
                by_class.setdefault(kelas, []).append(entry)
        rows: list[dict] = []
        for student in self._directory.store.list_student_profiles(Predicate.all()):
            rows.append(
                {
                    "student": _student_summary(student),
                    "supervisors": list(by_class.get(student.home_class or "", [])),
                }
            )
        return rows


__all__ = [
    "LINKED",
    "NO_RELATIONSHIP",
    "BROKEN_LINK",
    "GetDependentUseCase",
    "LinkDependentUseCase",
    "UnlinkDependentUseCase",
    "ListSupervisionAssignmentsUseCase",
]
