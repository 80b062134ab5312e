"""
Policy evaluator: role matrix, mutator identity and list/check agreement.

Requirements:
- Admin reads and writes everything.
- Teachers see their home class; supervision widens to supervised classes;
  both branches compose with OR.
- Parents see exactly their dependent; students see themselves only.
- WRITE/COMMENT require the mutating identity to be the actor.
- UNKNOWN is always denied.
- `scope_filter(actor).matches(r)` agrees with `can_access(actor, r, READ)`.
"""
import itertools

import pytest

from backend.identity_access.domain import Actor, Role
from backend.scoping.policy import (
    Action,
    Decision,
    ResourceDescriptor,
    ResourceKind,
    RouteRequirement,
    can_access,
    can_enter,
    scope_filter,
)


ADMIN = Actor("admin-1", Role.ADMIN)
TEACHER_7A = Actor("teacher-7a", Role.TEACHER, home_class="7A")
TEACHER_7B_SUP = Actor(
    "teacher-7b", Role.TEACHER, home_class="7B", supervised_classes=frozenset({"7C"}), supervisor=True
)
WALI = Actor("wali-1", Role.SUPERVISOR, supervised_classes=frozenset({"7A", "7B"}))
PARENT = Actor("ortu-1", Role.PARENT, dependent_id="siswa-7a")
PARENT_NO_DEP = Actor("ortu-none", Role.PARENT)
STUDENT_7A = Actor("siswa-7a", Role.STUDENT, home_class="7A")
UNKNOWN = Actor.unknown("tamu-1")
TEACHER_NO_CLASS = Actor("teacher-none", Role.TEACHER)


def _res(owner_id, owner_class, *, student=True, kind=ResourceKind.RECORD):
    return ResourceDescriptor(owner_id=owner_id, owner_class=owner_class, owner_is_student=student, kind=kind)


R_7A = _res("siswa-7a", "7A")
R_7A_2 = _res("siswa-7a-2", "7A")
R_7B = _res("siswa-7b", "7B")
R_7C = _res("siswa-7c", "7C")
R_TEACHER_IN_7A = _res("teacher-7a", "7A", student=False, kind=ResourceKind.PROFILE)
R_NO_CLASS = _res("siswa-x", None)

ALL_ACTORS = [ADMIN, TEACHER_7A, TEACHER_7B_SUP, WALI, PARENT, PARENT_NO_DEP, STUDENT_7A, UNKNOWN, TEACHER_NO_CLASS]
ALL_RESOURCES = [R_7A, R_7A_2, R_7B, R_7C, R_TEACHER_IN_7A, R_NO_CLASS]


@pytest.mark.parametrize(
    "actor,resource,expected",
    [
        (ADMIN, R_7A, Decision.ALLOW),
        (ADMIN, R_NO_CLASS, Decision.ALLOW),
        (TEACHER_7A, R_7A, Decision.ALLOW),
        (TEACHER_7A, R_7B, Decision.DENY),
        (TEACHER_7A, R_NO_CLASS, Decision.DENY),
        (WALI, R_7A, Decision.ALLOW),
        (WALI, R_7B, Decision.ALLOW),
        (WALI, R_7C, Decision.DENY),
        (TEACHER_7B_SUP, R_7B, Decision.ALLOW),
        (TEACHER_7B_SUP, R_7C, Decision.ALLOW),
        (TEACHER_7B_SUP, R_7A, Decision.DENY),
        (PARENT, R_7A, Decision.ALLOW),
        (PARENT, R_7A_2, Decision.DENY),
        (PARENT_NO_DEP, R_7A, Decision.DENY),
        (STUDENT_7A, R_7A, Decision.ALLOW),
        (STUDENT_7A, R_7A_2, Decision.DENY),
        (UNKNOWN, R_7A, Decision.DENY),
        (TEACHER_NO_CLASS, R_NO_CLASS, Decision.DENY),
    ],
)
def test_read_matrix(actor, resource, expected):
    assert can_access(actor, resource, Action.READ) is expected


def test_class_scope_never_covers_staff_rows():
    # A teacher in class 7A is not a student; class scopes do not reach them.
    assert can_access(WALI, R_TEACHER_IN_7A, Action.READ) is Decision.DENY
    assert can_access(ADMIN, R_TEACHER_IN_7A, Action.READ) is Decision.ALLOW


def test_write_requires_mutator_to_be_actor():
    assert can_access(TEACHER_7A, R_7A, Action.WRITE, mutator_id="teacher-7a") is Decision.ALLOW
    assert can_access(TEACHER_7A, R_7A, Action.WRITE, mutator_id="wali-1") is Decision.DENY
    assert can_access(TEACHER_7A, R_7A, Action.WRITE) is Decision.DENY
    assert can_access(ADMIN, R_7A, Action.WRITE, mutator_id="teacher-7a") is Decision.DENY


def test_comment_requires_mutator_and_scope():
    assert can_access(PARENT, R_7A, Action.COMMENT, mutator_id="ortu-1") is Decision.ALLOW
    assert can_access(PARENT, R_7A, Action.COMMENT, mutator_id="siswa-7a") is Decision.DENY
    assert can_access(PARENT, R_7A_2, Action.COMMENT, mutator_id="ortu-1") is Decision.DENY
    assert can_access(STUDENT_7A, R_7A, Action.COMMENT, mutator_id="siswa-7a") is Decision.ALLOW


def test_owner_roles_cannot_write():
    assert can_access(STUDENT_7A, R_7A, Action.WRITE, mutator_id="siswa-7a") is Decision.DENY
    assert can_access(PARENT, R_7A, Action.WRITE, mutator_id="ortu-1") is Decision.DENY


def test_unknown_denied_for_every_action():
    for action in Action:
        assert can_access(UNKNOWN, R_7A, action, mutator_id=UNKNOWN.id) is Decision.DENY
    assert scope_filter(UNKNOWN, ResourceKind.RECORD).is_empty()


def test_teacher_and_supervision_branches_or_compose():
    pred = scope_filter(TEACHER_7B_SUP, ResourceKind.RECORD)
    assert pred.owner_classes == frozenset({"7B", "7C"})
    assert not pred.everything


def test_admin_scope_is_everything():
    assert scope_filter(ADMIN, ResourceKind.PROFILE).everything


def test_supervision_flag_ignored_for_non_staff():
    flagged_student = Actor("siswa-7a", Role.STUDENT, home_class="7A", supervised_classes=frozenset({"7B"}), supervisor=True)
    assert not flagged_student.can_supervise
    assert can_access(flagged_student, R_7B, Action.READ) is Decision.DENY


@pytest.mark.parametrize("actor,resource", list(itertools.product(ALL_ACTORS, ALL_RESOURCES)))
def test_scope_filter_agrees_with_can_access(actor, resource):
    pred = scope_filter(actor, resource.kind)
    matched = pred.matches(
        owner_id=resource.owner_id,
        owner_class=resource.owner_class,
        owner_is_student=resource.owner_is_student,
    )
    assert matched == (can_access(actor, resource, Action.READ) is Decision.ALLOW)


def test_can_enter_roles_and_supervision():
    staff = RouteRequirement(roles=frozenset({Role.ADMIN, Role.TEACHER}), supervision=True)
    supervision_only = RouteRequirement(supervision=True)
    assert can_enter(TEACHER_7A, staff)
    assert can_enter(WALI, staff)
    assert not can_enter(STUDENT_7A, staff)
    assert can_enter(TEACHER_7B_SUP, supervision_only)
    assert not can_enter(TEACHER_7A, supervision_only)
    assert not can_enter(UNKNOWN, RouteRequirement(roles=frozenset(Role)))


_EXPECTED_READ_7A = {
    Role.ADMIN: True,
    Role.TEACHER: True,
    Role.SUPERVISOR: True,
    Role.STUDENT: True,
    Role.PARENT: True,
    Role.UNKNOWN: False,
}

_ACTOR_BY_ROLE = {
    Role.ADMIN: ADMIN,
    Role.TEACHER: TEACHER_7A,
    Role.SUPERVISOR: WALI,
    Role.STUDENT: STUDENT_7A,
    Role.PARENT: PARENT,
    Role.UNKNOWN: UNKNOWN,
}


@pytest.mark.parametrize("role,kind", list(itertools.product(Role, ResourceKind)))
def test_role_by_kind_matrix_for_owned_row(role, kind):
    actor = _ACTOR_BY_ROLE[role]
    own_row = _res("siswa-7a", "7A", kind=kind)
    foreign_row = _res("siswa-7c", "7C", kind=kind)
    assert (can_access(actor, own_row, Action.READ) is Decision.ALLOW) == _EXPECTED_READ_7A[role]
    # Only the admin reaches a 7C student among these actors.
    assert (can_access(actor, foreign_row, Action.READ) is Decision.ALLOW) == (role is Role.ADMIN)
