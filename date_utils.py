from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

from dateutil.parser import parse as dateutil_parse

DEFAULT_TZ = "America/New_York"


def utc_now_iso(now: datetime | None = None) -> str:
    """ISO-8601 UTC with milliseconds and a trailing Z, e.g. 2025-06-05T16:02:11.123Z."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw, tz: str = DEFAULT_TZ) -> datetime | None:
    """
    Parse a free-text sheet timestamp into an aware datetime in ``tz``.
    Naive values are read as wall time in ``tz``. Returns None when the
    text cannot be parsed.
    """
    s = str(raw or "").strip()
    if not s:
        return None
    try:
        dt = dateutil_parse(s)
    except (ValueError, OverflowError, TypeError):
        return None
    zone = ZoneInfo(tz)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone)
    return dt.astimezone(zone)


def local_date(raw, tz: str = DEFAULT_TZ) -> date | None:
    dt = parse_timestamp(raw, tz)
    return dt.date() if dt else None


def now_in(tz: str = DEFAULT_TZ, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz))


def hour_label(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"
