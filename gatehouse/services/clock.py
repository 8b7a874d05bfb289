"""Time source for every expiry, lock, and token timestamp.

Timestamps are naive UTC. Persisted values are ISO-8601 strings with
microsecond precision so that string comparison inside SQL predicates matches
chronological order.
"""
import calendar
from datetime import datetime, timezone


def now() -> datetime:
    """Current naive-UTC time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(now())


def to_timestamp(value: datetime) -> int:
    """Whole epoch seconds for a naive-UTC datetime (JWT NumericDate)."""
    return calendar.timegm(value.utctimetuple())


def from_timestamp(value: int | float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
