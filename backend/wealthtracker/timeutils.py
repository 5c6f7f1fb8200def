"""
Time helpers

All timestamps handled by the services are timezone-aware UTC datetimes.
Values re-hydrated from storage may be naive (older clients wrote local
times without an offset); those are taken as UTC.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    return int(ensure_utc(dt).timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def iso_z(dt: Optional[datetime]) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix, e.g. 2024-01-15T00:00:00.000Z"""
    if dt is None:
        return ""
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def date_stamp(dt: datetime) -> str:
    """YYYY-MM-DD of the UTC date, used in generated filenames."""
    return ensure_utc(dt).strftime("%Y-%m-%d")


def epoch_id(clock: Clock) -> Callable[[], str]:
    """
    Id factory producing epoch-millisecond strings from ``clock``.

    Ids are strictly increasing even when called twice within the same
    millisecond (or against a frozen clock).
    """
    last = 0

    def _next_id() -> str:
        nonlocal last
        last = max(to_epoch_ms(clock()), last + 1)
        return str(last)

    return _next_id
