"""Identity errors surfaced to HTTP adapters."""
from __future__ import annotations

from typing import Optional


class DependentAlreadyLinked(Exception):
    """The student is already the dependent of another parent."""

    def __init__(self, holder_id: Optional[str] = None):
        super().__init__("student already linked to another parent")
        self.holder_id = holder_id


__all__ = ["DependentAlreadyLinked"]
