"""Journal value objects: daily records, comments and the submission window."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class DailyRecord:
    id: str
    task_id: str
    owner_id: str
    submitted_date: date
    created_at: datetime
    status: str = "pending"
    validated: bool = False
    validated_by: Optional[str] = None
    field_values: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "owner_id": self.owner_id,
            "submitted_date": self.submitted_date.isoformat(),
            "created_at": self.created_at.isoformat(),
            "status": self.status,
            "validated": self.validated,
            "validated_by": self.validated_by,
            "field_values": dict(self.field_values),
        }


@dataclass(frozen=True)
class Comment:
    id: str
    student_id: str
    author_id: str
    content: str
    created_at: datetime
    record_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "author_id": self.author_id,
            "record_id": self.record_id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class WindowState:
    is_open: bool = False
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "is_open": self.is_open,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "changed_by": self.changed_by,
        }


__all__ = ["DailyRecord", "Comment", "WindowState"]
