"""
Storage boundary errors shared by all repositories.

Why:
    Infrastructure failures must stay distinguishable from business outcomes.
    A store that cannot be reached raises `StorageUnavailable`; it is never
    translated into "access denied" or "not found" by callers.
"""
from __future__ import annotations

from typing import Optional


class StorageUnavailable(RuntimeError):
    """Raised when the backing store cannot serve a bounded lookup or write."""

    def __init__(self, code: str = "storage_unavailable", *, cause: Optional[BaseException] = None):
        super().__init__(code)
        self.code = code
        self.cause_name = cause.__class__.__name__ if cause is not None else None


class DuplicateRecord(Exception):
    """Storage-level uniqueness violation on `(task_id, owner_id, submitted_date)`.

    Carries the already persisted row when the adapter could fetch it, so
    callers can report when the earlier submission happened.
    """

    def __init__(self, existing: Optional[dict] = None):
        super().__init__("duplicate_record")
        self.existing = existing


__all__ = ["StorageUnavailable", "DuplicateRecord"]
