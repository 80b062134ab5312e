"""
Scope directory: resolve an authenticated id into an Actor with its scope.

Why:
    Every authorization decision starts from the actor's role, home class,
    supervised classes and dependent. Resolving these in one place (and
    deriving resource owners' classes here as well) keeps callers from
    passing class information they could forge.

Behavior:
    - A missing profile resolves to `Actor(role=UNKNOWN)`; that is a business
      outcome, not an error.
    - Store failures propagate as `StorageUnavailable` and are never cached.
    - Resolved actors and owner profiles are memoized in the injected
      `ActorCache` for its TTL.
"""
from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

from backend.scoping.policy import ResourceDescriptor, ResourceKind
from .domain import Actor, Profile, Role
from .stores import ActorCache

logger = logging.getLogger("harian.identity_access")

_ACTOR_SLOT = "actor"
_PROFILE_SLOT = "profile"


class ProfileStore(Protocol):
    def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    def get_supervised_classes(self, user_id: str) -> frozenset[str]:
        ...

    def list_student_profiles(self, predicate) -> list[Profile]:
        ...

    def list_supervision(self) -> dict[str, frozenset[str]]:
        ...

    def find_parent_of(self, student_id: str) -> Optional[Profile]:
        ...

    def set_dependent(self, parent_id: str, student_id: Optional[str]) -> Profile:
        ...


class ScopeDirectory:
    def __init__(self, store: ProfileStore, cache: Optional[ActorCache] = None) -> None:
        self._store = store
        self._cache = cache or ActorCache(ttl_seconds=0)

    @property
    def store(self) -> ProfileStore:
        return self._store

    @property
    def cache(self) -> ActorCache:
        return self._cache

    def resolve(self, actor_id: str) -> Actor:
        cached = self._cache.get(actor_id, _ACTOR_SLOT)
        if cached is not None:
            return cached
        profile = self._profile(actor_id)
        if profile is None or profile.role is Role.UNKNOWN:
            logger.info("actor without known role resolved to UNKNOWN")
            actor = Actor.unknown(actor_id)
        else:
            supervised: frozenset[str] = frozenset()
            if profile.role is Role.SUPERVISOR or profile.supervisor:
                supervised = frozenset(self._store.get_supervised_classes(actor_id))
            actor = Actor(
                id=actor_id,
                role=profile.role,
                home_class=profile.home_class or None,
                supervised_classes=supervised,
                supervisor=profile.supervisor,
                dependent_id=profile.dependent_id if profile.role is Role.PARENT else None,
            )
        self._cache.put(actor_id, _ACTOR_SLOT, actor)
        return actor

    def describe(self, owner_id: str, kind: ResourceKind) -> ResourceDescriptor:
        """Build a resource descriptor from the owner's stored profile.

        An unknown owner yields a descriptor without class that only the
        ALL and identity-based scopes can match.
        """
        profile = self._profile(owner_id)
        return ResourceDescriptor(
            owner_id=owner_id,
            owner_class=(profile.home_class or None) if profile else None,
            owner_is_student=bool(profile and profile.role is Role.STUDENT),
            kind=kind,
        )

    def profile(self, user_id: str) -> Optional[Profile]:
        return self._profile(user_id)

    def invalidate(self, actor_id: str) -> None:
        self._cache.invalidate(actor_id)

    def _profile(self, user_id: str) -> Optional[Profile]:
        cached = self._cache.get(user_id, _PROFILE_SLOT)
        if cached is not None:
            return cached
        profile = self._store.get_profile(user_id)
        if profile is not None:
            self._cache.put(user_id, _PROFILE_SLOT, profile)
        return profile


_splitter = re.compile(r"[^A-Za-z0-9]+")


def humanize_identifier(s: str) -> str:
    """Turn an email/username into a human display name.

    Rules:
    - For emails, use the part before '@'.
    - Split on non-alphanumeric separators (._- etc.).
    - Title-case each token and join with a single space.
    """
    if not s:
        return ""
    s = str(s)
    if "@" in s:
        s = s.split("@", 1)[0]
    parts = [p for p in _splitter.split(s) if p]
    if not parts:
        return ""
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)


def display_name(profile: Profile) -> str:
    """Username as stored, else a name derived from the email, else a placeholder."""
    if profile.username and profile.username.strip():
        return profile.username.strip()
    derived = humanize_identifier(profile.email or "")
    if derived:
        return derived
    return f"Siswa {profile.user_id[:8]}"


__all__ = ["ProfileStore", "ScopeDirectory", "humanize_identifier", "display_name"]
