"""
Injectable "now" provider.

All timestamps are stored as naive UTC datetimes. Services never read the
system time directly; they ask the active clock so tests can pin "now".
"""
from datetime import date, datetime, timezone
from typing import Optional, Union

Timestamp = Union[datetime, date]


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_timestamp(value: Timestamp) -> datetime:
    """
    Coerce a date or datetime into the naive UTC form used for storage.

    Plain dates become midnight; aware datetimes are converted to UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Clock pinned to one instant; set() moves it."""

    def __init__(self, instant: Timestamp):
        self._instant = normalize_timestamp(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: Timestamp) -> None:
        self._instant = normalize_timestamp(instant)


_clock = SystemClock()


def get_clock():
    return _clock


def set_clock(clock) -> None:
    """Replace the process-wide clock (tests, replays)."""
    global _clock
    _clock = clock


def reset_clock() -> None:
    global _clock
    _clock = SystemClock()


def now() -> datetime:
    return _clock.now()


def resolve_timestamp(value: Optional[Timestamp]) -> datetime:
    """Normalize an explicit timestamp, or fall back to the clock's now."""
    if value is None:
        return _clock.now()
    return normalize_timestamp(value)
