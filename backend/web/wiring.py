"""
Application wiring: build the collaborators the HTTP layer works with.

Why:
    Stores, caches and services are created once at startup and passed
    explicitly (via `app.state.ctx`) instead of living as module-level
    singletons. Tests build their own context with in-memory stores and swap
    it in.

Behavior:
    - `HARIAN_STORE_BACKEND=db` wires the psycopg repositories and reads
      sessions from `app_sessions`; anything else uses the in-memory stores
      (dev/test only; prod is rejected at startup).
    - The alias table is loaded from `HARIAN_ALIASES_FILE` when set.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
import logging
import os

from backend.identity_access.directory import ScopeDirectory
from backend.identity_access.stores import ActorCache, InMemoryProfileStore, SessionStore
from backend.journal.calendar import configured_offset, utc_now
from backend.journal.gate import SubmissionGate
from backend.journal.repo_memory import InMemoryJournalRepo, InMemoryWindowStore
from backend.journal.window import WindowService
from backend.roster.aliases import AliasTable, load_alias_table
from backend.storage.config import actor_cache_ttl_seconds, store_backend

logger = logging.getLogger("harian.web")


@dataclass
class AppContext:
    sessions: object
    directory: ScopeDirectory
    journal: object
    window: WindowService
    gate: SubmissionGate
    aliases: AliasTable
    cache: ActorCache
    offset: timezone
    clock: Callable[[], datetime] = field(default=utc_now)

    def now(self) -> datetime:
        return self.clock()


def build_memory_context(
    *,
    profiles: Optional[InMemoryProfileStore] = None,
    aliases: Optional[AliasTable] = None,
    cache_ttl_seconds: Optional[float] = None,
    offset: Optional[timezone] = None,
    clock: Callable[[], datetime] = utc_now,
) -> AppContext:
    """Context backed entirely by in-memory stores (development and tests)."""
    store = profiles or InMemoryProfileStore()
    cache = ActorCache(ttl_seconds=actor_cache_ttl_seconds() if cache_ttl_seconds is None else cache_ttl_seconds)
    journal = InMemoryJournalRepo(profile_lookup=store.get_profile)
    window = WindowService(InMemoryWindowStore())
    tz = offset or configured_offset()
    return AppContext(
        sessions=SessionStore(),
        directory=ScopeDirectory(store, cache),
        journal=journal,
        window=window,
        gate=SubmissionGate(journal, window, tz),
        aliases=aliases or AliasTable(),
        cache=cache,
        offset=tz,
        clock=clock,
    )


def build_context() -> AppContext:
    """Build the runtime context from environment configuration."""
    aliases = load_alias_table(os.getenv("HARIAN_ALIASES_FILE") or None)
    if store_backend() != "db":
        logger.info("using in-memory stores")
        return build_memory_context(aliases=aliases)

    from backend.identity_access.stores_db import DBProfileStore, DBSessionStore
    from backend.journal.repo_db import DBJournalRepo, DBWindowStore
    from backend.storage.bootstrap import ensure_schema_from_env

    ensure_schema_from_env()

    cache = ActorCache(ttl_seconds=actor_cache_ttl_seconds())
    journal = DBJournalRepo()
    window = WindowService(DBWindowStore())
    tz = configured_offset()
    logger.info("using database stores")
    return AppContext(
        sessions=DBSessionStore(),
        directory=ScopeDirectory(DBProfileStore(), cache),
        journal=journal,
        window=window,
        gate=SubmissionGate(journal, window, tz),
        aliases=aliases,
        cache=cache,
        offset=tz,
    )


__all__ = ["AppContext", "build_memory_context", "build_context"]
