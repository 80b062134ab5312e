"""
Database schema bootstrap helpers.

Intent:
    Create the Harian tables and (re)apply the row-level-security policies
    rendered from the policy rule table (dev/stage friendly).

Security & Safety:
    - Controlled by `HARIAN_AUTO_BOOTSTRAP_SCHEMA=true` env flag.
    - Requires a DSN allowed to run DDL (`HARIAN_MIGRATION_DSN`, falling back
      to the app DSN).
    - Idempotent: `create ... if not exists` for tables, drop/create for
      policies, so re-running converges on the current rule table.

Usage:
    Call `ensure_schema_from_env()` at startup, or `apply_schema(dsn)` from a
    migration script.
"""
from __future__ import annotations

from pathlib import Path
import logging
import os

try:  # pragma: no cover -- optional dependency in some environments
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

from backend.scoping.rls import render_policies
from .config import resolve_dsn
from .errors import StorageUnavailable

_log = logging.getLogger("harian.storage")

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def schema_script() -> str:
    return SCHEMA_PATH.read_text(encoding="utf-8")


def bootstrap_script() -> str:
    """Tables first, then helper functions and policies."""
    return schema_script().rstrip() + "\n\n" + render_policies()


def apply_schema(dsn: str) -> None:
    """Run the full bootstrap script in a single transaction."""
    if not HAVE_PSYCOPG:
        raise RuntimeError("psycopg3 is required to bootstrap the schema")
    script = bootstrap_script()
    try:
        with psycopg.connect(dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute(script)
    except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
        _log.warning("schema bootstrap failed: error=%s", type(exc).__name__)
        raise StorageUnavailable(cause=exc) from exc
    _log.info("schema and row-level policies applied")


def ensure_schema_from_env() -> bool:
    """Apply the schema when HARIAN_AUTO_BOOTSTRAP_SCHEMA=true.

    Behavior:
        - No-ops (returns False) unless the flag is exactly 'true'.
        - Returns True after a successful run; storage failures propagate.
    """
    if not _env_flag("HARIAN_AUTO_BOOTSTRAP_SCHEMA"):
        return False
    _log.warning(
        "HARIAN_AUTO_BOOTSTRAP_SCHEMA=true detected (dev/test convenience only). Use migrations in prod/stage."
    )
    dsn = (os.getenv("HARIAN_MIGRATION_DSN") or "").strip() or resolve_dsn()
    apply_schema(dsn)
    return True


__all__ = ["SCHEMA_PATH", "schema_script", "bootstrap_script", "apply_schema", "ensure_schema_from_env"]
