from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol
import re

from backend.identity_access.directory import ScopeDirectory
from backend.identity_access.domain import Actor
from backend.scoping.policy import Action, Decision, ResourceKind, can_access, scope_filter
from backend.scoping.predicates import Predicate
from .domain import Comment, DailyRecord
from .gate import GateDecision, SubmissionGate


_TASK_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,99}$")
_FIELD_KEY_RE = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
_MAX_FIELDS = 50
_MAX_FIELD_VALUE = 5000
_MAX_COMMENT = 2000


class JournalRepoProtocol(Protocol):
    def get_record(self, *, actor_id: str, record_id: str) -> Optional[DailyRecord]:
        ...

    def list_records(
        self,
        *,
        actor_id: str,
        predicate: Predicate,
        owner_id: Optional[str] = None,
        task_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DailyRecord]:
        ...

    def set_validation(self, *, actor_id: str, record_id: str, validated: bool, validated_by: str) -> DailyRecord:
        ...

    def add_comment(
        self,
        *,
        actor_id: str,
        student_id: str,
        author_id: str,
        content: str,
        created_at: datetime,
        record_id: Optional[str] = None,
    ) -> Comment:
        ...

    def list_comments(self, *, actor_id: str, student_id: str, limit: int = 50, offset: int = 0) -> list[Comment]:
        ...


def validate_task_id(task_id: str) -> str:
    value = (task_id or "").strip()
    if not _TASK_ID_RE.match(value):
        raise ValueError("invalid_task_id")
    return value


def _clean_field_values(values: Optional[dict]) -> dict[str, str]:
    if values is None:
        return {}
    if not isinstance(values, dict) or len(values) > _MAX_FIELDS:
        raise ValueError("invalid_field_values")
    out: dict[str, str] = {}
    for key, value in values.items():
        if not isinstance(key, str) or not _FIELD_KEY_RE.match(key):
            raise ValueError("invalid_field_values")
        text = "" if value is None else str(value)
        if len(text) > _MAX_FIELD_VALUE:
            raise ValueError("invalid_field_values")
        out[key] = text
    return out


def _page(limit: int, offset: int) -> tuple[int, int]:
    return max(1, min(int(limit), 100)), max(0, int(offset))


@dataclass
class CreateRecordInput:
    task_id: str
    field_values: dict = field(default_factory=dict)


class CreateRecordUseCase:
    def __init__(self, gate: SubmissionGate) -> None:
        self._gate = gate

    def execute(self, actor: Actor, req: CreateRecordInput, now: datetime) -> DailyRecord:
        """Create today's record for the calling actor.

        Behavior:
            - Validates the task id and the field map (keys snake_case, at most
              50 entries, values up to 5000 chars).
            - Delegates to the submission gate, which raises
              `PermissionError("window_closed")` or `SubmissionConflict`.

        Permissions:
            Any known actor may submit their own record; the owner is always
            the actor, never taken from the request.
        """
        task_id = validate_task_id(req.task_id)
        values = _clean_field_values(req.field_values)
        return self._gate.submit(actor, task_id, now, values)


class SubmissionStatusUseCase:
    def __init__(self, gate: SubmissionGate) -> None:
        self._gate = gate

    def execute(self, actor: Actor, task_id: str, now: datetime) -> GateDecision:
        return self._gate.can_submit(actor, validate_task_id(task_id), now)


@dataclass
class ListRecordsInput:
    owner_id: Optional[str] = None
    task_id: Optional[str] = None
    limit: int = 50
    offset: int = 0


class ListRecordsUseCase:
    def __init__(self, repo: JournalRepoProtocol) -> None:
        self._repo = repo

    def execute(self, actor: Actor, req: ListRecordsInput) -> list[DailyRecord]:
        """Return records visible to the actor, newest first.

        The scope predicate is computed from the rule table and applied at the
        storage boundary; an empty scope short-circuits to an empty page.
        """
        predicate = scope_filter(actor, ResourceKind.RECORD)
        if predicate.is_empty():
            return []
        limit, offset = _page(req.limit, req.offset)
        return self._repo.list_records(
            actor_id=actor.id,
            predicate=predicate,
            owner_id=req.owner_id or None,
            task_id=req.task_id or None,
            limit=limit,
            offset=offset,
        )


class GetRecordUseCase:
    def __init__(self, repo: JournalRepoProtocol, directory: ScopeDirectory) -> None:
        self._repo = repo
        self._directory = directory

    def execute(self, actor: Actor, record_id: str) -> DailyRecord:
        record = self._repo.get_record(actor_id=actor.id, record_id=record_id)
        if record is None:
            raise LookupError("record_not_found")
        resource = self._directory.describe(record.owner_id, ResourceKind.RECORD)
        # Invisible rows look missing, like under row-level security.
        if can_access(actor, resource, Action.READ) is not Decision.ALLOW:
            raise LookupError("record_not_found")
        return record


@dataclass
class SetValidationInput:
    record_id: str
    validated: bool
    validated_by: Optional[str] = None


class SetValidationUseCase:
    def __init__(self, repo: JournalRepoProtocol, directory: ScopeDirectory) -> None:
        self._repo = repo
        self._directory = directory

    def execute(self, actor: Actor, req: SetValidationInput) -> DailyRecord:
        """Set or clear the validation flag of one record.

        Permissions:
            WRITE on the record's owner (admin, home-class teacher or
            supervisor of the owner's class). The mutating identity must be
            the actor itself; a body naming someone else is rejected.
        """
        record = self._repo.get_record(actor_id=actor.id, record_id=req.record_id)
        if record is None:
            raise LookupError("record_not_found")
        resource = self._directory.describe(record.owner_id, ResourceKind.RECORD)
        if can_access(actor, resource, Action.READ) is not Decision.ALLOW:
            raise LookupError("record_not_found")
        mutator = req.validated_by or actor.id
        if can_access(actor, resource, Action.WRITE, mutator_id=mutator) is not Decision.ALLOW:
            raise PermissionError("forbidden")
        return self._repo.set_validation(
            actor_id=actor.id, record_id=record.id, validated=bool(req.validated), validated_by=actor.id
        )


@dataclass
class AddCommentInput:
    student_id: str
    content: str
    record_id: Optional[str] = None
    author_id: Optional[str] = None


class AddCommentUseCase:
    def __init__(self, repo: JournalRepoProtocol, directory: ScopeDirectory) -> None:
        self._repo = repo
        self._directory = directory

    def execute(self, actor: Actor, req: AddCommentInput, now: datetime) -> Comment:
        content = (req.content or "").strip()
        if not content or len(content) > _MAX_COMMENT:
            raise ValueError("invalid_content")
        resource = self._directory.describe(req.student_id, ResourceKind.COMMENT)
        if can_access(actor, resource, Action.READ) is not Decision.ALLOW:
            raise LookupError("student_not_found")
        author = req.author_id or actor.id
        if can_access(actor, resource, Action.COMMENT, mutator_id=author) is not Decision.ALLOW:
            raise PermissionError("forbidden")
        if req.record_id:
            record = self._repo.get_record(actor_id=actor.id, record_id=req.record_id)
            if record is None or record.owner_id != req.student_id:
                raise ValueError("invalid_record_id")
        return self._repo.add_comment(
            actor_id=actor.id,
            student_id=req.student_id,
            author_id=actor.id,
            content=content,
            created_at=now,
            record_id=req.record_id or None,
        )


class ListCommentsUseCase:
    def __init__(self, repo: JournalRepoProtocol, directory: ScopeDirectory) -> None:
        self._repo = repo
        self._directory = directory

    def execute(self, actor: Actor, student_id: str, *, limit: int = 50, offset: int = 0) -> list[Comment]:
        resource = self._directory.describe(student_id, ResourceKind.COMMENT)
        if can_access(actor, resource, Action.READ) is not Decision.ALLOW:
            raise LookupError("student_not_found")
        limit, offset = _page(limit, offset)
        return self._repo.list_comments(actor_id=actor.id, student_id=student_id, limit=limit, offset=offset)


def records_to_dicts(records: Iterable[DailyRecord]) -> list[dict]:
    return [r.to_dict() for r in records]


__all__ = [
    "validate_task_id",
    "CreateRecordInput",
    "CreateRecordUseCase",
    "SubmissionStatusUseCase",
    "ListRecordsInput",
    "ListRecordsUseCase",
    "GetRecordUseCase",
    "SetValidationInput",
    "SetValidationUseCase",
    "AddCommentInput",
    "AddCommentUseCase",
    "ListCommentsUseCase",
    "records_to_dicts",
]
