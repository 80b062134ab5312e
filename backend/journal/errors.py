"""Journal errors surfaced to HTTP adapters."""
from __future__ import annotations

from datetime import datetime
from typing import Optional


class SubmissionConflict(Exception):
    """A record for (task, owner, civil day) already exists (lost the race)."""

    def __init__(self, submitted_at: Optional[datetime] = None):
        super().__init__("already submitted today")
        self.submitted_at = submitted_at


__all__ = ["SubmissionConflict"]
