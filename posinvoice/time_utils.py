from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Server-side 'now', timezone-aware UTC."""
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime.

    - None / "" -> None
    - naive values are interpreted as UTC
    - a trailing "Z" is accepted
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(s))


def coerce_utc(value: Any) -> Any:
    # pydantic "before" validator body for stored timestamps
    if isinstance(value, str):
        return parse_iso_datetime(value)
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    dt_utc = as_utc(dt).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
