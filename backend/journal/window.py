"""
Submission window: the single global open/closed switch for student records.

Permissions:
    Anyone may read the window state; only ADMIN actors may change it. The
    change records `changed_by` and `changed_at` for audit.
"""
from __future__ import annotations

from datetime import datetime
from typing import Protocol
import logging

from backend.identity_access.domain import Actor, Role
from .domain import WindowState

logger = logging.getLogger("harian.journal")


class WindowStore(Protocol):
    def read(self) -> WindowState:
        ...

    def write(self, *, is_open: bool, changed_by: str, changed_at: datetime) -> WindowState:
        ...


class WindowService:
    def __init__(self, store: WindowStore) -> None:
        self._store = store

    def read(self) -> WindowState:
        return self._store.read()

    def is_open(self) -> bool:
        return bool(self._store.read().is_open)

    def set_open(self, actor: Actor, is_open: bool, now: datetime) -> WindowState:
        if actor.role is not Role.ADMIN:
            raise PermissionError("forbidden")
        state = self._store.write(is_open=bool(is_open), changed_by=actor.id, changed_at=now)
        logger.info("submission window %s", "opened" if state.is_open else "closed")
        return state


__all__ = ["WindowStore", "WindowService"]
