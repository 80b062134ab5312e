"""
Database-backed ProfileStore and SessionStore for production use (Postgres).

Why: The scope directory must read every profile's role and class to build
trusted resource descriptors. It therefore runs on a service connection
(`HARIAN_DIRECTORY_DSN`, falling back to the app DSN) instead of the per-actor
RLS context the journal repositories use. Sessions are read from
`app_sessions` on the same connection.

Errors: connection and protocol failures are wrapped into
`StorageUnavailable`; the directory never turns them into UNKNOWN actors.

Note: This module uses psycopg3. It is imported only when enabled via
`HARIAN_STORE_BACKEND=db`. Tests can continue to use the in-memory store.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional
import logging
import os
import re
import time

try:
    import psycopg
    from psycopg import sql
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    sql = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.storage.config import resolve_dsn
from backend.storage.errors import StorageUnavailable
from .domain import Profile, parse_role
from .errors import DependentAlreadyLinked
from .stores import SessionRecord

logger = logging.getLogger("harian.identity_access")

_CONNECT_TIMEOUT_SECONDS = 5
_PROFILE_COLUMNS = "userid, username, email, role, kelas, is_supervisor, parent_of_userid"
_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


def _row_to_profile(row) -> Profile:
    return Profile(
        user_id=str(row[0]),
        username=row[1],
        email=row[2],
        role=parse_role(row[3]),
        home_class=row[4] or None,
        supervisor=bool(row[5]),
        dependent_id=str(row[6]) if row[6] else None,
    )


class DBProfileStore:
    """Postgres-backed profile and supervision lookups plus the parent link.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string with read access to `user_profiles` and
        `supervision` regardless of RLS, and update access to
        `user_profiles.parent_of_userid`.
    """

    def __init__(self, dsn: str | None = None) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBProfileStore")
        self._dsn = dsn or os.getenv("HARIAN_DIRECTORY_DSN") or resolve_dsn()

    @contextmanager
    def _cursor(self) -> Iterator:
        try:
            with psycopg.connect(self._dsn, connect_timeout=_CONNECT_TIMEOUT_SECONDS) as conn:
                with conn.cursor() as cur:
                    yield cur
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            logger.warning("profile store unavailable: %s", exc.__class__.__name__)
            raise StorageUnavailable(cause=exc) from exc

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self._cursor() as cur:
            cur.execute(f"select {_PROFILE_COLUMNS} from public.user_profiles where userid = %s", (user_id,))
            row = cur.fetchone()
        return _row_to_profile(row) if row else None

    def get_supervised_classes(self, user_id: str) -> frozenset[str]:
        with self._cursor() as cur:
            cur.execute(
                "select distinct supervised_class from public.supervision where supervisor_id = %s",
                (user_id,),
            )
            rows = cur.fetchall() or []
        return frozenset(str(r[0]) for r in rows if r[0])

    def list_student_profiles(self, predicate) -> list[Profile]:
        where, params = predicate.to_sql(owner_column="userid", class_column="kelas", role_column="role")
        with self._cursor() as cur:
            cur.execute(
                f"select {_PROFILE_COLUMNS} from public.user_profiles "
                f"where role = 'student' and {where} order by username nulls last, userid",
                params,
            )
            rows = cur.fetchall() or []
        return [_row_to_profile(r) for r in rows]

    def list_supervision(self) -> dict[str, frozenset[str]]:
        with self._cursor() as cur:
            cur.execute(
                "select supervisor_id, supervised_class from public.supervision "
                "order by supervisor_id, supervised_class"
            )
            rows = cur.fetchall() or []
        out: dict[str, set[str]] = {}
        for supervisor_id, kelas in rows:
            if kelas:
                out.setdefault(str(supervisor_id), set()).add(str(kelas))
        return {sid: frozenset(classes) for sid, classes in out.items()}

    def find_parent_of(self, student_id: str) -> Optional[Profile]:
        with self._cursor() as cur:
            cur.execute(
                f"select {_PROFILE_COLUMNS} from public.user_profiles "
                "where parent_of_userid = %s and role = 'parent' order by userid limit 1",
                (student_id,),
            )
            row = cur.fetchone()
        return _row_to_profile(row) if row else None

    def set_dependent(self, parent_id: str, student_id: Optional[str]) -> Profile:
        """Point a parent at `student_id` (or clear it with None).

        The partial unique index on `parent_of_userid` decides concurrent
        links; the loser gets `DependentAlreadyLinked`.
        """
        try:
            with self._cursor() as cur:
                cur.execute(
                    "update public.user_profiles set parent_of_userid = %s "
                    f"where userid = %s and role = 'parent' returning {_PROFILE_COLUMNS}",
                    (student_id, parent_id),
                )
                row = cur.fetchone()
        except psycopg.errors.UniqueViolation as exc:
            raise DependentAlreadyLinked() from exc
        if row is None:
            raise LookupError("parent_not_found")
        return _row_to_profile(row)


class DBSessionStore:
    """Postgres-backed session lookups (`public.app_sessions`).

    Sessions are issued by the login integration, which writes rows into the
    same table; this service reads them by the opaque cookie id. Only the
    subject id is stored, no user PII.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Uses the service connection of the
        profile store; app clients must not read `app_sessions`.
    table:
        Qualified table name. Defaults to `public.app_sessions`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.app_sessions") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBSessionStore")
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        self._dsn = dsn or os.getenv("HARIAN_DIRECTORY_DSN") or resolve_dsn()
        schema, _, name = table.rpartition(".")
        self._table = sql.Identifier(schema or "public", name)

    @contextmanager
    def _cursor(self) -> Iterator:
        try:
            with psycopg.connect(self._dsn, autocommit=True, connect_timeout=_CONNECT_TIMEOUT_SECONDS) as conn:
                with conn.cursor() as cur:
                    yield cur
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            logger.warning("session store unavailable: %s", exc.__class__.__name__)
            raise StorageUnavailable(cause=exc) from exc

    def create(self, *, sub: str, ttl_seconds: int = 3600) -> SessionRecord:
        expires_at = int(time.time()) + ttl_seconds
        stmt = sql.SQL(
            "insert into {} (session_id, sub, expires_at) "
            "values (gen_random_uuid()::text, %s, to_timestamp(%s)) returning session_id"
        ).format(self._table)
        with self._cursor() as cur:
            cur.execute(stmt, (sub, expires_at))
            row = cur.fetchone()
        return SessionRecord(session_id=str(row[0]), sub=sub, expires_at=expires_at, ttl_seconds=ttl_seconds)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        stmt = sql.SQL(
            "select session_id, sub, extract(epoch from expires_at)::bigint "
            "from {} where session_id = %s and expires_at > now()"
        ).format(self._table)
        with self._cursor() as cur:
            cur.execute(stmt, (session_id,))
            row = cur.fetchone()
        if not row:
            return None
        return SessionRecord(
            session_id=str(row[0]),
            sub=str(row[1]),
            expires_at=int(row[2]) if row[2] is not None else None,
        )

    def delete(self, session_id: str) -> None:
        with self._cursor() as cur:
            cur.execute(sql.SQL("delete from {} where session_id = %s").format(self._table), (session_id,))


__all__ = ["DBProfileStore", "DBSessionStore", "HAVE_PSYCOPG"]
