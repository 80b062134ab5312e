"""Roster context: alias merging and aggregated student views."""

from .aliases import AliasTable, Stats, load_alias_table

__all__ = ["AliasTable", "Stats", "load_alias_table"]
