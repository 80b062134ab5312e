"""
Identity merge engine for curated alias groups.

Why:
    Some students ended up with more than one account. Their records must be
    counted once, under one representative (primary) id, without ever
    changing the primary's role or scope. Only manually curated groups are
    merged; there is no fuzzy matching.

Configuration (YAML, see `load_alias_table`):

    aliases:
      <id>: [<primary>, <member>, ...]   # every member lists the same group
    display_names:
      <id>: "Display Name"

Invariants:
    - Groups are symmetric and closed: every member has an entry listing
      exactly the same members with the same primary. Violations are rejected
      at load time with `ValueError`.
    - `aggregate` is order independent (sum and max are commutative).
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence
import logging

import yaml

from backend.identity_access.directory import display_name
from backend.identity_access.domain import Profile

logger = logging.getLogger("harian.roster")


@dataclass(frozen=True)
class Stats:
    count: int = 0
    last_timestamp: Optional[datetime] = None
    completed: int = 0

    def merge(self, other: "Stats") -> "Stats":
        if self.last_timestamp is None:
            last = other.last_timestamp
        elif other.last_timestamp is None:
            last = self.last_timestamp
        else:
            last = max(self.last_timestamp, other.last_timestamp)
        return Stats(
            count=self.count + other.count,
            last_timestamp=last,
            completed=self.completed + other.completed,
        )


class AliasTable:
    """Validated alias groups plus the display-name override table."""

    def __init__(self, groups: Mapping[str, Sequence[str]] | None = None, display_names: Mapping[str, str] | None = None):
        groups = dict(groups or {})
        _validate(groups)
        self._primary: dict[str, str] = {}
        self._members: dict[str, tuple[str, ...]] = {}
        for member, group in groups.items():
            self._primary[member] = group[0]
            self._members[group[0]] = tuple(group)
        self._display_names = {str(k): str(v) for k, v in (display_names or {}).items() if v}

    @classmethod
    def from_groups(cls, groups: Iterable[Sequence[str]], display_names: Mapping[str, str] | None = None) -> "AliasTable":
        """Build a symmetric table from plain member lists (first member is primary)."""
        table: dict[str, list[str]] = {}
        for group in groups:
            members = [str(m) for m in group]
            for m in members:
                if m in table:
                    raise ValueError(f"alias id listed in more than one group: {m}")
                table[m] = members
        return cls(table, display_names)

    def __len__(self) -> int:
        return len(self._members)

    def primary_of(self, raw_id: str) -> str:
        return self._primary.get(raw_id, raw_id)

    def members_of(self, raw_id: str) -> tuple[str, ...]:
        return self._members.get(self.primary_of(raw_id), (raw_id,))

    def expand(self, ids: Iterable[str]) -> set[str]:
        """Close `ids` under alias-group membership (idempotent)."""
        out: set[str] = set()
        for raw in ids:
            out.update(self.members_of(raw))
        return out

    def aggregate(self, raw_stats: Mapping[str, Stats]) -> dict[str, Stats]:
        """Fold member stats into their primary; non-aliased ids pass through."""
        out: dict[str, Stats] = {}
        for raw_id, stats in raw_stats.items():
            key = self.primary_of(raw_id)
            out[key] = out[key].merge(stats) if key in out else stats
        return out

    def collapse_profiles(self, profiles: Sequence[Profile]) -> list[Profile]:
        """Keep one profile per alias group, keyed by the primary id.

        Tie-break: the primary's own profile, else the profile with more
        non-empty contact fields (username, email), else input order. Groups
        keep the position of their first member in the input.
        """
        chosen: dict[str, tuple[int, Profile]] = {}
        order: list[str] = []
        for index, profile in enumerate(profiles):
            key = self.primary_of(profile.user_id)
            if key not in chosen:
                chosen[key] = (index, profile)
                order.append(key)
                continue
            _, current = chosen[key]
            if _rank(profile, key) > _rank(current, key):
                chosen[key] = (index, profile)
        out: list[Profile] = []
        for key in order:
            _, profile = chosen[key]
            out.append(profile if profile.user_id == key else replace(profile, user_id=key))
        return out

    def display_name_for(self, profile: Profile) -> str:
        if profile.username and profile.username.strip():
            return profile.username.strip()
        key = self.primary_of(profile.user_id)
        override = self._display_names.get(key) or self._display_names.get(profile.user_id)
        if override:
            return override
        return display_name(profile)


def _rank(profile: Profile, primary: str) -> tuple[int, int]:
    # Strictly greater wins; equal rank keeps the earlier profile.
    return (1 if profile.user_id == primary else 0, profile.contact_score())


def _validate(groups: Mapping[str, Sequence[str]]) -> None:
    for member, group in groups.items():
        if not group:
            raise ValueError(f"empty alias group for {member}")
        if member not in group:
            raise ValueError(f"alias group for {member} does not contain it")
        if len(set(group)) != len(group):
            raise ValueError(f"alias group for {member} lists duplicates")
        for other in group:
            peer = groups.get(other)
            if peer is None:
                raise ValueError(f"alias table not closed: {other} has no entry")
            if list(peer) != list(group):
                raise ValueError(f"alias table not symmetric between {member} and {other}")


def load_alias_table(path: str | Path | None) -> AliasTable:
    """Load the curated alias configuration; a missing path yields an empty table."""
    if not path:
        return AliasTable()
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError("alias file must contain a mapping")
    raw_aliases = data.get("aliases") or {}
    raw_names = data.get("display_names") or {}
    if isinstance(raw_aliases, list):
        table = AliasTable.from_groups(raw_aliases, raw_names)
    elif isinstance(raw_aliases, dict):
        table = AliasTable({str(k): [str(m) for m in (v or [])] for k, v in raw_aliases.items()}, raw_names)
    else:
        raise ValueError("aliases must be a mapping or a list of groups")
    logger.info("alias table loaded: %d group(s)", len(table))
    return table


__all__ = ["Stats", "AliasTable", "load_alias_table"]
