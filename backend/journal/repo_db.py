"""Postgres-backed repository for the Journal context.

Every statement runs in a transaction that first sets `app.current_sub` so
the generated row-level-security policies see the acting identity. The
application-level scope predicate is applied on top (same rule table).
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterable, Iterator, List, Optional
from uuid import UUID
import logging

try:  # pragma: no cover -- optional dependency in some environments
    import psycopg
    from psycopg import errors as pg_errors

    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    pg_errors = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.roster.aliases import Stats
from backend.scoping.predicates import Predicate
from backend.storage.config import resolve_dsn
from backend.storage.errors import DuplicateRecord, StorageUnavailable
from .domain import Comment, DailyRecord, WindowState

logger = logging.getLogger("harian.journal")

_CONNECT_TIMEOUT_SECONDS = 5
_RECORD_COLUMNS = (
    "r.id::text, r.task_id, r.owner_id, r.submitted_date, r.created_at, "
    "r.status, r.validated, r.validated_by"
)


class _Base:
    def __init__(self, dsn: Optional[str] = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for the journal DB repositories")
        self._dsn = dsn or resolve_dsn()

    @contextmanager
    def _tx(self, actor_id: Optional[str]) -> Iterator:
        """Yield a cursor inside one transaction bound to `actor_id`."""
        try:
            with psycopg.connect(self._dsn, connect_timeout=_CONNECT_TIMEOUT_SECONDS) as conn:
                with conn.cursor() as cur:
                    if actor_id:
                        self._set_current_sub(cur, actor_id)
                    yield cur
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            logger.warning("journal store unavailable: %s", exc.__class__.__name__)
            raise StorageUnavailable(cause=exc) from exc

    def _set_current_sub(self, cur, sub: str) -> None:
        cur.execute("select set_config('app.current_sub', %s, true)", (sub,))


def _is_uuid(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _row_to_record(row, field_values: Optional[dict[str, str]] = None) -> DailyRecord:
    return DailyRecord(
        id=str(row[0]),
        task_id=str(row[1]),
        owner_id=str(row[2]),
        submitted_date=row[3],
        created_at=row[4],
        status=row[5] or "pending",
        validated=bool(row[6]),
        validated_by=row[7],
        field_values=dict(field_values or {}),
    )


class DBJournalRepo(_Base):
    """Persistence adapter used by the submission gate and journal use cases."""

    def _field_values(self, cur, record_id: str) -> dict[str, str]:
        cur.execute(
            "select field_key, value from public.record_field_values where record_id = %s::uuid order by field_key",
            (record_id,),
        )
        return {str(k): v for k, v in (cur.fetchall() or [])}

    def find_record(self, *, actor_id: str, task_id: str, owner_id: str, submitted_date: date) -> Optional[DailyRecord]:
        with self._tx(actor_id) as cur:
            cur.execute(
                f"select {_RECORD_COLUMNS} from public.daily_records r "
                "where r.task_id = %s and r.owner_id = %s and r.submitted_date = %s",
                (task_id, owner_id, submitted_date),
            )
            row = cur.fetchone()
        return _row_to_record(row) if row else None

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
        values = dict(field_values or {})
        try:
            with self._tx(actor_id) as cur:
                cur.execute(
                    "insert into public.daily_records (task_id, owner_id, submitted_date, created_at) "
                    "values (%s, %s, %s, %s) "
                    "returning id::text, task_id, owner_id, submitted_date, created_at, status, validated, validated_by",
                    (task_id, owner_id, submitted_date, created_at),
                )
                row = cur.fetchone()
                for key, value in values.items():
                    cur.execute(
                        "insert into public.record_field_values (record_id, owner_id, field_key, value) "
                        "values (%s::uuid, %s, %s, %s)",
                        (row[0], owner_id, key, value),
                    )
        except pg_errors.UniqueViolation as exc:
            # The transaction is gone; read the winner in a fresh one.
            existing = self.find_record(
                actor_id=actor_id, task_id=task_id, owner_id=owner_id, submitted_date=submitted_date
            )
            raise DuplicateRecord(existing=existing.to_dict() if existing else None) from exc
        return _row_to_record(row, values)

    def get_record(self, *, actor_id: str, record_id: str) -> Optional[DailyRecord]:
        if not _is_uuid(record_id):
            return None
        with self._tx(actor_id) as cur:
            cur.execute(
                f"select {_RECORD_COLUMNS} from public.daily_records r where r.id = %s::uuid",
                (record_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return _row_to_record(row, self._field_values(cur, row[0]))

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
        where, params = predicate.to_sql(owner_column="r.owner_id", class_column="p.kelas", role_column="p.role")
        clauses = [where]
        if owner_id is not None:
            clauses.append("r.owner_id = %s")
            params.append(owner_id)
        if task_id is not None:
            clauses.append("r.task_id = %s")
            params.append(task_id)
        params.extend([int(max(0, offset)), int(max(1, limit))])
        with self._tx(actor_id) as cur:
            cur.execute(
                f"select {_RECORD_COLUMNS} from public.daily_records r "
                "left join public.user_profiles p on p.userid = r.owner_id "
                f"where {' and '.join(clauses)} "
                "order by r.created_at desc, r.id desc offset %s limit %s",
                params,
            )
            rows = cur.fetchall() or []
        return [_row_to_record(r) for r in rows]

    def set_validation(self, *, actor_id: str, record_id: str, validated: bool, validated_by: str) -> DailyRecord:
        if not _is_uuid(record_id):
            raise LookupError("record_not_found")
        with self._tx(actor_id) as cur:
            cur.execute(
                "update public.daily_records r "
                "set validated = %s, validated_by = %s, status = %s "
                "where r.id = %s::uuid "
                "returning id::text, task_id, owner_id, submitted_date, created_at, status, validated, validated_by",
                (validated, validated_by if validated else None, "completed" if validated else "pending", record_id),
            )
            row = cur.fetchone()
        if not row:
            raise LookupError("record_not_found")
        return _row_to_record(row)

    def stats_for(self, *, actor_id: str, owner_ids: Iterable[str], predicate: Predicate) -> dict[str, Stats]:
        ids = sorted(set(owner_ids))
        if not ids or predicate.is_empty():
            return {}
        where, params = predicate.to_sql(owner_column="r.owner_id", class_column="p.kelas", role_column="p.role")
        with self._tx(actor_id) as cur:
            cur.execute(
                "select r.owner_id, count(*), max(r.created_at), count(*) filter (where r.status = 'completed') "
                "from public.daily_records r left join public.user_profiles p on p.userid = r.owner_id "
                f"where r.owner_id = any(%s) and {where} group by r.owner_id",
                [ids, *params],
            )
            rows = cur.fetchall() or []
        return {str(r[0]): Stats(count=int(r[1]), last_timestamp=r[2], completed=int(r[3])) for r in rows}

    def owners_active_on(self, *, actor_id: str, owner_ids: Iterable[str], day: date, predicate: Predicate) -> set[str]:
        ids = sorted(set(owner_ids))
        if not ids or predicate.is_empty():
            return set()
        where, params = predicate.to_sql(owner_column="r.owner_id", class_column="p.kelas", role_column="p.role")
        with self._tx(actor_id) as cur:
            cur.execute(
                "select distinct r.owner_id from public.daily_records r "
                "left join public.user_profiles p on p.userid = r.owner_id "
                f"where r.owner_id = any(%s) and r.submitted_date = %s and {where}",
                [ids, day, *params],
            )
            rows = cur.fetchall() or []
        return {str(r[0]) for r in rows}

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
        with self._tx(actor_id) as cur:
            cur.execute(
                "insert into public.comments (student_id, author_id, record_id, content, created_at) "
                "values (%s, %s, %s::uuid, %s, %s) returning id::text, created_at",
                (student_id, author_id, record_id, content, created_at),
            )
            row = cur.fetchone()
        return Comment(
            id=str(row[0]),
            student_id=student_id,
            author_id=author_id,
            content=content,
            created_at=row[1],
            record_id=record_id,
        )

    def list_comments(self, *, actor_id: str, student_id: str, limit: int = 50, offset: int = 0) -> List[Comment]:
        with self._tx(actor_id) as cur:
            cur.execute(
                "select id::text, student_id, author_id, content, created_at, record_id::text "
                "from public.comments where student_id = %s "
                "order by created_at desc, id desc offset %s limit %s",
                (student_id, int(max(0, offset)), int(max(1, limit))),
            )
            rows = cur.fetchall() or []
        return [
            Comment(id=r[0], student_id=r[1], author_id=r[2], content=r[3], created_at=r[4], record_id=r[5])
            for r in rows
        ]


class DBWindowStore(_Base):
    """Reads and updates the single `submission_window` row (id = 1)."""

    def read(self) -> WindowState:
        with self._tx(None) as cur:
            cur.execute("select is_open, changed_at, changed_by from public.submission_window where id = 1")
            row = cur.fetchone()
        if not row:
            return WindowState(is_open=False)
        return WindowState(is_open=bool(row[0]), changed_at=row[1], changed_by=row[2])

    def write(self, *, is_open: bool, changed_by: str, changed_at: datetime) -> WindowState:
        with self._tx(changed_by) as cur:
            cur.execute(
                "update public.submission_window set is_open = %s, changed_at = %s, changed_by = %s "
                "where id = 1 returning is_open, changed_at, changed_by",
                (is_open, changed_at, changed_by),
            )
            row = cur.fetchone()
        if not row:
            # Row missing (schema not bootstrapped) or the update was filtered by RLS.
            raise PermissionError("forbidden")
        return WindowState(is_open=bool(row[0]), changed_at=row[1], changed_by=row[2])


__all__ = ["DBJournalRepo", "DBWindowStore", "HAVE_PSYCOPG"]
