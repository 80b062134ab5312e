"""
Roster views: scoped student lists with merged per-person statistics.

Intent:
    Produce the aggregated views staff and parents look at (student cards,
    per-class summary, daily inactivity report) without ever widening the
    actor's scope. Scope comes from the policy evaluator; aliases only change
    how statistics are attributed, never who is visible.

Behavior:
    - Student profiles are listed through `scope_filter(actor, PROFILE)`.
    - Seed ids are closed under alias groups before statistics are read so
      that records filed under a secondary account count for the primary.
      The statistics read itself is filtered by `scope_filter(actor, RECORD)`:
      an alias member outside the actor's scope contributes nothing.
    - A student is "active" when the last record is at most 3 days old.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Protocol

from backend.identity_access.directory import ScopeDirectory
from backend.identity_access.domain import Actor, Profile, Role
from backend.identity_access.stores import ActorCache
from backend.scoping.policy import Action, Decision, ResourceKind, can_access, scope_filter
from backend.scoping.predicates import Predicate
from .aliases import AliasTable, Stats

ACTIVE_WINDOW = timedelta(days=3)


class StatsSource(Protocol):
    def stats_for(self, *, actor_id: str, owner_ids: Iterable[str], predicate: Predicate) -> dict[str, Stats]:
        ...

    def owners_active_on(self, *, actor_id: str, owner_ids: Iterable[str], day: date, predicate: Predicate) -> set[str]:
        ...


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def activity_status(last: Optional[datetime], now: datetime) -> str:
    if last is None:
        return "inactive"
    return "active" if _aware(now) - _aware(last) <= ACTIVE_WINDOW else "inactive"


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


class _RosterBase:
    def __init__(self, directory: ScopeDirectory, stats: StatsSource, aliases: AliasTable) -> None:
        self._directory = directory
        self._stats = stats
        self._aliases = aliases

    def _scoped_students(self, actor: Actor) -> list[Profile]:
        predicate = scope_filter(actor, ResourceKind.PROFILE)
        if predicate.is_empty():
            return []
        return self._directory.store.list_student_profiles(predicate)

    def _merged(self, actor: Actor, profiles: list[Profile]) -> tuple[list[Profile], dict[str, Stats]]:
        ids = self._aliases.expand(p.user_id for p in profiles)
        return self._aliases.collapse_profiles(profiles), self._stats_by_primary(actor, ids)

    def _stats_by_primary(self, actor: Actor, ids: Iterable[str]) -> dict[str, Stats]:
        raw = self._stats.stats_for(
            actor_id=actor.id, owner_ids=ids, predicate=scope_filter(actor, ResourceKind.RECORD)
        )
        return self._aliases.aggregate(raw)


class ListScopedStudentsUseCase(_RosterBase):
    _SLOT = "students"

    def __init__(
        self,
        directory: ScopeDirectory,
        stats: StatsSource,
        aliases: AliasTable,
        cache: Optional[ActorCache] = None,
    ) -> None:
        super().__init__(directory, stats, aliases)
        self._cache = cache

    def execute(self, actor: Actor, now: datetime) -> list[dict]:
        """Return one card per (merged) student visible to the actor.

        Results are memoized per actor for the cache TTL; the status field is
        computed against the `now` of the request that filled the cache.
        """
        if self._cache is not None:
            cached = self._cache.get(actor.id, self._SLOT)
            if cached is not None:
                return list(cached)
        profiles, merged = self._merged(actor, self._scoped_students(actor))
        cards: list[dict] = []
        for profile in profiles:
            stats = merged.get(profile.user_id, Stats())
            cards.append(
                {
                    "id": profile.user_id,
                    "name": self._aliases.display_name_for(profile),
                    "class": profile.home_class or "",
                    "email": profile.email,
                    "activities_count": stats.count,
                    "completed_count": stats.completed,
                    "last_activity": _iso(stats.last_timestamp),
                    "status": activity_status(stats.last_timestamp, now),
                }
            )
        if self._cache is not None:
            self._cache.put(actor.id, self._SLOT, tuple(cards))
        return cards


class GetStudentUseCase(_RosterBase):
    def execute(self, actor: Actor, student_id: str, now: datetime) -> dict:
        """One merged card, addressable by any alias member the actor may read.

        The card is built from the group members inside the actor's scope
        only, so asking for the primary id of a dependent's secondary account
        answers with that account's data and never with the primary's.
        """
        visible = self._visible_members(actor, student_id)
        if not visible:
            raise LookupError("student_not_found")
        profile = self._aliases.collapse_profiles(visible)[0]
        stats = self._stats_by_primary(actor, self._aliases.expand([student_id])).get(profile.user_id, Stats())
        return {
            "id": profile.user_id,
            "name": self._aliases.display_name_for(profile),
            "class": profile.home_class or "",
            "email": profile.email,
            "activities_count": stats.count,
            "completed_count": stats.completed,
            "last_activity": _iso(stats.last_timestamp),
            "status": activity_status(stats.last_timestamp, now),
        }

    def _visible_members(self, actor: Actor, student_id: str) -> list[Profile]:
        out: list[Profile] = []
        for member in self._aliases.members_of(student_id):
            resource = self._directory.describe(member, ResourceKind.PROFILE)
            if not resource.owner_is_student or can_access(actor, resource, Action.READ) is not Decision.ALLOW:
                continue
            profile = self._directory.profile(member)
            if profile is not None:
                out.append(profile)
        return out


class ClassSummaryUseCase(_RosterBase):
    def execute(self, actor: Actor, now: datetime) -> list[dict]:
        """Per-class totals for administrators, sorted by class name.

        Permissions:
            ADMIN only (`PermissionError("forbidden")` otherwise). Students
            without a class are not counted.
        """
        if actor.role is not Role.ADMIN:
            raise PermissionError("forbidden")
        profiles, merged = self._merged(actor, self._scoped_students(actor))
        by_class: dict[str, list[Profile]] = {}
        for p in profiles:
            kelas = (p.home_class or "").strip()
            if kelas:
                by_class.setdefault(kelas, []).append(p)
        out: list[dict] = []
        for kelas in sorted(by_class):
            members = by_class[kelas]
            total = 0
            active = 0
            latest: Optional[datetime] = None
            for p in members:
                stats = merged.get(p.user_id, Stats())
                total += stats.count
                if stats.last_timestamp is not None:
                    if latest is None or _aware(stats.last_timestamp) > _aware(latest):
                        latest = stats.last_timestamp
                    if activity_status(stats.last_timestamp, now) == "active":
                        active += 1
            out.append(
                {
                    "class": kelas,
                    "total_students": len(members),
                    "active_students": active,
                    "average_activity": round(total / len(members)) if members else 0,
                    "last_activity": _iso(latest),
                }
            )
        return out


class DailyInactiveReportUseCase(_RosterBase):
    def execute(self, actor: Actor, day: date) -> dict:
        """Split the actor's scoped students into active/inactive for `day`."""
        profiles = self._aliases.collapse_profiles(self._scoped_students(actor))
        seeds = self._aliases.expand(p.user_id for p in profiles)
        hit = self._stats.owners_active_on(
            actor_id=actor.id, owner_ids=seeds, day=day, predicate=scope_filter(actor, ResourceKind.RECORD)
        )
        active_primaries = {self._aliases.primary_of(uid) for uid in hit}
        active: list[dict] = []
        inactive: list[dict] = []
        for p in profiles:
            row = {"id": p.user_id, "name": self._aliases.display_name_for(p), "class": p.home_class or ""}
            (active if p.user_id in active_primaries else inactive).append(row)
        total = len(profiles)
        return {
            "date": day.isoformat(),
            "total_students": total,
            "active_students": len(active),
            "active_students_list": active,
            "inactive_students": inactive,
            "active_rate": round(len(active) / total * 100) if total else 0,
        }


__all__ = [
    "ACTIVE_WINDOW",
    "activity_status",
    "ListScopedStudentsUseCase",
    "GetStudentUseCase",
    "ClassSummaryUseCase",
    "DailyInactiveReportUseCase",
]
