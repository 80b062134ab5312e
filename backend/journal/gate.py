"""
Submission gate: at most one record per task, owner and civil day.

Why:
    Students may only submit while the global window is open and only once
    per task per day. The day is a civil date in the configured UTC offset,
    not the server's local date.

Behavior:
    - `can_submit` is a read-only pre-check for UI state and fast rejection.
    - `submit` re-checks and inserts. The storage uniqueness constraint is the
      arbiter: when two requests race, exactly one insert wins and the loser
      gets `SubmissionConflict` carrying the winner's timestamp.
    - Non-students skip the window check but not the uniqueness check.
    - Failed checks are business outcomes (`GateDecision(allowed=False)`),
      never exceptions; storage failures propagate as `StorageUnavailable`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol
import logging

from backend.identity_access.domain import Actor, Role
from backend.storage.errors import DuplicateRecord
from .calendar import civil_date
from .domain import DailyRecord
from .errors import SubmissionConflict
from .window import WindowService

logger = logging.getLogger("harian.journal")

REASON_WINDOW_CLOSED = "window closed"
REASON_ALREADY_SUBMITTED = "already submitted today"


class RecordStore(Protocol):
    def find_record(self, *, actor_id: str, task_id: str, owner_id: str, submitted_date) -> Optional[DailyRecord]:
        ...

    def insert_record(
        self,
        *,
        actor_id: str,
        task_id: str,
        owner_id: str,
        submitted_date,
        created_at: datetime,
        field_values: Optional[dict[str, str]] = None,
    ) -> DailyRecord:
        ...


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[str] = None
    last_submitted_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "can_submit": self.allowed,
            "reason": self.reason,
            "last_submitted_at": self.last_submitted_at.isoformat() if self.last_submitted_at else None,
        }


def _parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


class SubmissionGate:
    def __init__(self, records: RecordStore, window: WindowService, offset: timezone) -> None:
        self._records = records
        self._window = window
        self._offset = offset

    def can_submit(self, actor: Actor, task_id: str, now: datetime) -> GateDecision:
        if actor.role is Role.STUDENT and not self._window.is_open():
            return GateDecision(allowed=False, reason=REASON_WINDOW_CLOSED)
        today = civil_date(now, self._offset)
        existing = self._records.find_record(
            actor_id=actor.id, task_id=task_id, owner_id=actor.id, submitted_date=today
        )
        if existing is not None:
            return GateDecision(allowed=False, reason=REASON_ALREADY_SUBMITTED, last_submitted_at=existing.created_at)
        return GateDecision(allowed=True)

    def submit(
        self,
        actor: Actor,
        task_id: str,
        now: datetime,
        field_values: Optional[dict[str, str]] = None,
    ) -> DailyRecord:
        """Insert the actor's record for today.

        Raises `PermissionError("window_closed")` when a student submits into
        a closed window and `SubmissionConflict` when a record already exists.
        """
        decision = self.can_submit(actor, task_id, now)
        if not decision.allowed:
            if decision.reason == REASON_WINDOW_CLOSED:
                raise PermissionError("window_closed")
            raise SubmissionConflict(submitted_at=decision.last_submitted_at)
        try:
            record = self._records.insert_record(
                actor_id=actor.id,
                task_id=task_id,
                owner_id=actor.id,
                submitted_date=civil_date(now, self._offset),
                created_at=now if now.tzinfo else now.replace(tzinfo=timezone.utc),
                field_values=field_values,
            )
        except DuplicateRecord as exc:
            logger.info("submission lost uniqueness race")
            existing = exc.existing or {}
            raise SubmissionConflict(submitted_at=_parse_timestamp(existing.get("created_at"))) from exc
        return record


__all__ = [
    "REASON_WINDOW_CLOSED",
    "REASON_ALREADY_SUBMITTED",
    "RecordStore",
    "GateDecision",
    "SubmissionGate",
]
