"""
In-memory stores: SessionStore, ActorCache and a ProfileStore for development.

Why: Keep the session cookie opaque (it carries only a random id) and keep the
per-actor cache an explicit collaborator that is built once at startup and
injected, instead of module-level mutable state.

Concurrency: ActorCache writes a complete `(value, expires_at)` entry with a
single dict assignment. Concurrent writers for the same key race; the last
write wins and the TTL bounds staleness. Readers never see a partial entry.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Hashable, Iterable, Optional
import secrets
import threading
import time

from .domain import Profile, Role
from .errors import DependentAlreadyLinked


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    expires_at: Optional[int] = None
    ttl_seconds: int = 3600


class SessionStore:
    """Maps opaque session ids to an already authenticated subject id.

    Issuing sessions (login) happens outside this service; `create` exists for
    the identity provider integration and for tests.
    """

    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(self, *, sub: str, ttl_seconds: int = 3600) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(session_id=sid, sub=sub, expires_at=_now() + ttl_seconds, ttl_seconds=ttl_seconds)
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)


@dataclass(frozen=True)
class _CacheEntry:
    value: Any
    expires_at: float


class ActorCache:
    """Short-lived per-actor result cache with insert/evict semantics.

    Keys are `(actor_id, slot)` tuples so that `invalidate(actor_id)` can drop
    every derived value (resolved scope, roster views) of one actor at once.
    A TTL of 0 disables caching.
    """

    def __init__(self, ttl_seconds: float = 30.0, *, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self._clock = clock
        self._entries: Dict[tuple[str, Hashable], _CacheEntry] = {}

    def get(self, actor_id: str, slot: Hashable) -> Optional[Any]:
        entry = self._entries.get((actor_id, slot))
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop((actor_id, slot), None)
            return None
        return entry.value

    def put(self, actor_id: str, slot: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[(actor_id, slot)] = _CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def invalidate(self, actor_id: str) -> None:
        for key in [k for k in list(self._entries) if k[0] == actor_id]:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class InMemoryProfileStore:
    """Profile store used in development and tests (no RLS, no I/O)."""

    def __init__(self, profiles: Iterable[Profile] = (), supervision: Optional[Dict[str, Iterable[str]]] = None):
        self._profiles: Dict[str, Profile] = {}
        self._supervision: Dict[str, frozenset[str]] = {}
        self._lock = threading.Lock()
        for p in profiles:
            self.add(p)
        for supervisor_id, classes in (supervision or {}).items():
            self.set_supervision(supervisor_id, classes)

    def add(self, profile: Profile) -> None:
        self._profiles[profile.user_id] = profile

    def set_supervision(self, supervisor_id: str, classes: Iterable[str]) -> None:
        self._supervision[supervisor_id] = frozenset(c for c in classes if c)

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self._profiles.get(user_id)

    def get_supervised_classes(self, user_id: str) -> frozenset[str]:
        return self._supervision.get(user_id, frozenset())

    def list_supervision(self) -> dict[str, frozenset[str]]:
        return {sid: classes for sid, classes in self._supervision.items() if classes}

    def list_student_profiles(self, predicate) -> list[Profile]:
        """Return student profiles matching a scope predicate, in insertion order."""
        out: list[Profile] = []
        for p in self._profiles.values():
            if p.role is not Role.STUDENT:
                continue
            if predicate.matches(owner_id=p.user_id, owner_class=p.home_class, owner_is_student=True):
                out.append(p)
        return out

    def find_parent_of(self, student_id: str) -> Optional[Profile]:
        for p in self._profiles.values():
            if p.role is Role.PARENT and p.dependent_id == student_id:
                return p
        return None

    def set_dependent(self, parent_id: str, student_id: Optional[str]) -> Profile:
        """Point a parent at `student_id` (or clear it with None).

        A student has at most one parent link; a second parent gets
        `DependentAlreadyLinked`. Check and write happen under one lock.
        """
        with self._lock:
            if student_id is not None:
                holder = self.find_parent_of(student_id)
                if holder is not None and holder.user_id != parent_id:
                    raise DependentAlreadyLinked(holder.user_id)
            current = self._profiles.get(parent_id)
            if current is None or current.role is not Role.PARENT:
                raise LookupError("parent_not_found")
            updated = replace(current, dependent_id=student_id)
            self._profiles[parent_id] = updated
        return updated


__all__ = ["SessionRecord", "SessionStore", "ActorCache", "InMemoryProfileStore"]
