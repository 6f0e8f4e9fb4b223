import os
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_datetime_setting(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """Parse a stored ``YYYY-MM-DD`` or ISO-8601 setting value.

    A bare date means the end of that day for deadlines and the start of it
    otherwise.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=_timezone())
        return ensure_timezone(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        return None
