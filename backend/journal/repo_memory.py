"""
In-memory journal repository for development and tests.

Behavior:
    - Emulates the storage uniqueness constraint on
      `(task_id, owner_id, submitted_date)` under a lock: of two concurrent
      inserts for the same key exactly one succeeds, the other raises
      `DuplicateRecord` carrying the winner.
    - Scope predicates are applied with `Predicate.matches`, using the owner
      profile lookup injected at construction.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional
from uuid import uuid4
import threading

from backend.identity_access.domain import Profile, Role
from backend.roster.aliases import Stats
from backend.scoping.predicates import Predicate
from backend.storage.errors import DuplicateRecord
from .domain import Comment, DailyRecord, WindowState


ProfileLookup = Callable[[str], Optional[Profile]]


class InMemoryJournalRepo:
    def __init__(self, profile_lookup: ProfileLookup | None = None) -> None:
        self._lookup = profile_lookup or (lambda _uid: None)
        self._lock = threading.Lock()
        self.records: Dict[str, DailyRecord] = {}
        self._by_key: Dict[tuple[str, str, date], str] = {}
        self.comments: List[Comment] = []

    def _visible(self, predicate: Predicate, owner_id: str) -> bool:
        profile = self._lookup(owner_id)
        return predicate.matches(
            owner_id=owner_id,
            owner_class=profile.home_class if profile else None,
            owner_is_student=bool(profile and profile.role is Role.STUDENT),
        )

    def find_record(self, *, actor_id: str, task_id: str, owner_id: str, submitted_date: date) -> Optional[DailyRecord]:
        rid = self._by_key.get((task_id, owner_id, submitted_date))
        return self.records.get(rid) if rid else None

    def insert_record(
        self,
        *,
        actor_id: str,
        task_id: str,
        owner_id: str,
        submitted_date: date,
        created_at: datetime,
        field_values: Optional[dict[str, str]] = None,
    ) -> DailyRecord:
        key = (task_id, owner_id, submitted_date)
        with self._lock:
            existing_id = self._by_key.get(key)
            if existing_id is not None:
                raise DuplicateRecord(existing=self.records[existing_id].to_dict())
            record = DailyRecord(
                id=str(uuid4()),
                task_id=task_id,
                owner_id=owner_id,
                submitted_date=submitted_date,
                created_at=created_at,
                field_values=dict(field_values or {}),
            )
            self.records[record.id] = record
            self._by_key[key] = record.id
        return record

    def get_record(self, *, actor_id: str, record_id: str) -> Optional[DailyRecord]:
        return self.records.get(record_id)

    def list_records(
        self,
        *,
        actor_id: str,
        predicate: Predicate,
        owner_id: Optional[str] = None,
        task_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DailyRecord]:
        items = [
            r
            for r in self.records.values()
            if (owner_id is None or r.owner_id == owner_id)
            and (task_id is None or r.task_id == task_id)
            and self._visible(predicate, r.owner_id)
        ]
        items.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return items[offset: offset + limit]

    def set_validation(self, *, actor_id: str, record_id: str, validated: bool, validated_by: str) -> DailyRecord:
        with self._lock:
            current = self.records.get(record_id)
            if current is None:
                raise LookupError("record_not_found")
            updated = replace(
                current,
                validated=validated,
                validated_by=validated_by if validated else None,
                status="completed" if validated else "pending",
            )
            self.records[record_id] = updated
        return updated

    def stats_for(self, *, actor_id: str, owner_ids: Iterable[str], predicate: Predicate) -> dict[str, Stats]:
        wanted = {uid for uid in owner_ids if self._visible(predicate, uid)}
        out: dict[str, Stats] = {}
        for r in self.records.values():
            if r.owner_id not in wanted:
                continue
            one = Stats(count=1, last_timestamp=r.created_at, completed=1 if r.status == "completed" else 0)
            out[r.owner_id] = out[r.owner_id].merge(one) if r.owner_id in out else one
        return out

    def owners_active_on(self, *, actor_id: str, owner_ids: Iterable[str], day: date, predicate: Predicate) -> set[str]:
        wanted = {uid for uid in owner_ids if self._visible(predicate, uid)}
        return {r.owner_id for r in self.records.values() if r.owner_id in wanted and r.submitted_date == day}

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
        comment = Comment(
            id=str(uuid4()),
            student_id=student_id,
            author_id=author_id,
            content=content,
            created_at=created_at,
            record_id=record_id,
        )
        with self._lock:
            self.comments.append(comment)
        return comment

    def list_comments(self, *, actor_id: str, student_id: str, limit: int = 50, offset: int = 0) -> List[Comment]:
        items = [c for c in self.comments if c.student_id == student_id]
        items.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return items[offset: offset + limit]


class InMemoryWindowStore:
    """Single submission window record; closed until an admin opens it."""

    def __init__(self, initial: WindowState | None = None) -> None:
        self._state = initial or WindowState(is_open=False)
        self._lock = threading.Lock()

    def read(self) -> WindowState:
        return self._state

    def write(self, *, is_open: bool, changed_by: str, changed_at: datetime) -> WindowState:
        with self._lock:
            self._state = WindowState(is_open=is_open, changed_at=changed_at, changed_by=changed_by)
            return self._state


__all__ = ["InMemoryJournalRepo", "InMemoryWindowStore"]
