"""UTC time helpers shared by models and services.

Every timestamp in Connecto is a timezone-aware UTC datetime. Services take
an injectable clock so tests can pin "now".
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 (None passes through)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string written by to_iso (None passes through).

    Naive values are assumed to be UTC.
    """
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def not_before(now: datetime, previous: Optional[datetime]) -> datetime:
    """Return now, clamped so it never precedes the previous stamp."""
    if previous is not None and now < previous:
        return previous
    return now
