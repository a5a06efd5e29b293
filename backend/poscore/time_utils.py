# Overview: UTC timestamp helpers; every stored datetime is UTC-naive.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a UTC-naive datetime, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read a query-string timestamp such as ?since=2024-05-01T09:00:00Z.

    Blank input means "no filter" and returns None. Offsets are folded into
    UTC; a value without an offset is taken to already be UTC.
    Raises ValueError for anything fromisoformat rejects.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize for JSON as second-precision ISO-8601 with a trailing Z."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
