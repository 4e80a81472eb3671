# app/utils/clock.py
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default time source for every evaluation call."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime], clock: Clock = utc_now) -> datetime:
    return ensure_utc(now if now is not None else clock())


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_iso(value: datetime) -> str:
    """
    Serialize an instant as ISO-8601 UTC with millisecond precision,
    e.g. 2025-01-01T12:00:00.000Z. Snapshot checksums depend on this form.
    """
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
