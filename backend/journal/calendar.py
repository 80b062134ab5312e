"""Civil-date helpers: the school day is counted in a fixed UTC offset."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import os
import re

DEFAULT_UTC_OFFSET = "+07:00"  # Asia/Jakarta, no DST

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def parse_utc_offset(value: str | None) -> timezone:
    """Parse `+HH:MM` / `-HHMM` into a fixed timezone (raises ValueError)."""
    raw = (value or DEFAULT_UTC_OFFSET).strip()
    m = _OFFSET_RE.match(raw)
    if not m:
        raise ValueError(f"invalid utc offset: {raw!r}")
    sign, hours, minutes = m.group(1), int(m.group(2)), int(m.group(3))
    if hours > 14 or minutes > 59:
        raise ValueError(f"invalid utc offset: {raw!r}")
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(-delta if sign == "-" else delta)


def configured_offset() -> timezone:
    return parse_utc_offset(os.getenv("HARIAN_UTC_OFFSET") or DEFAULT_UTC_OFFSET)


def civil_date(now: datetime, offset: timezone) -> date:
    """Calendar date of `now` in `offset`. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(offset).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["DEFAULT_UTC_OFFSET", "parse_utc_offset", "configured_offset", "civil_date", "utc_now"]
