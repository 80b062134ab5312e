"""
Configuration and startup security checks for Harian.

Why: The engine decides who sees which student's data. A production
deployment with an in-memory store, a missing alias table or plaintext
database connections must never come up silently.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

from pathlib import Path
import os

from backend.journal.calendar import parse_utc_offset


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - HARIAN_UTC_OFFSET, when set, must parse (all environments).
    - A database DSN must be configured and must not disable TLS.
    - HARIAN_STORE_BACKEND must be `db` (the memory backend loses records).
    - HARIAN_ALIASES_FILE, when set, must point to an existing file.
    """
    raw_offset = os.getenv("HARIAN_UTC_OFFSET")
    if raw_offset:
        try:
            parse_utc_offset(raw_offset)
        except ValueError:
            raise SystemExit(f"Refusing to start: HARIAN_UTC_OFFSET is invalid ({raw_offset!r}).")

    env = os.getenv("HARIAN_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    # 1) Database DSN present and TLS not explicitly disabled
    dsn = (os.getenv("HARIAN_DATABASE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if not dsn:
        raise SystemExit("Refusing to start: DATABASE_URL is unset in production.")
    for key in ("HARIAN_DATABASE_URL", "DATABASE_URL", "HARIAN_DIRECTORY_DSN"):
        if "sslmode=disable" in (os.getenv(key) or ""):
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 2) Durable storage only
    backend = (os.getenv("HARIAN_STORE_BACKEND") or "memory").strip().lower()
    if backend != "db":
        raise SystemExit("Refusing to start: HARIAN_STORE_BACKEND must be 'db' in production/staging.")

    # 3) Curated alias table must exist when configured
    aliases = (os.getenv("HARIAN_ALIASES_FILE") or "").strip()
    if aliases and not Path(aliases).is_file():
        raise SystemExit(f"Refusing to start: HARIAN_ALIASES_FILE does not exist ({aliases}).")
