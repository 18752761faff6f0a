"""
Time helpers.

All timestamps are stored as naive UTC datetimes (the driver default).
Day boundaries are computed in the clinic's local timezone.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import get_settings
from .errors import ValidationError

settings = get_settings()

END_OF_DAY = time(23, 59, 59, 999000)


def utcnow() -> datetime:
    """Current time as naive UTC, millisecond precision like BSON dates."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def local_zone(name: Optional[str] = None) -> tzinfo:
    name = name or settings.TIMEZONE
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as exc:
        raise ValidationError(f"Unknown timezone '{name}'") from exc


def to_local(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert a naive UTC datetime into the local timezone."""
    return moment.replace(tzinfo=timezone.utc).astimezone(tz or local_zone())


def _to_naive_utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(tz: Optional[tzinfo] = None) -> date:
    return to_local(utcnow(), tz).date()


def day_key(day: Optional[date] = None) -> str:
    """Key used to group queue entries by local day (``YYYY-MM-DD``)."""
    return (day or local_today()).isoformat()


def start_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    """Local midnight of ``day`` as naive UTC."""
    return _to_naive_utc(datetime.combine(day, time.min, tzinfo=tz or local_zone()))


def end_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    """Local 23:59:59.999 of ``day`` as naive UTC."""
    return _to_naive_utc(datetime.combine(day, END_OF_DAY, tzinfo=tz or local_zone()))


def day_bounds(day: date, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    return start_of_day(day, tz), end_of_day(day, tz)


def parse_day(value: str, field: str = "date") -> date:
    """Parse ``YYYY-MM-DD`` (or a full ISO timestamp, keeping its date)."""
    value = value.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}: '{value}'") from exc


def elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start) / timedelta(milliseconds=1)))
