from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from liacoach.config import settings


def _is_valid_zone(name: str | None) -> bool:
    if not name or not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(*candidates: str | None) -> str:
    """First valid IANA zone among candidates, then the configured default, then UTC."""
    for name in (*candidates, settings.default_timezone):
        if _is_valid_zone(name):
            return str(name)
    return "UTC"


def as_aware(now: dt.datetime | None) -> dt.datetime:
    # naive datetimes are treated as UTC
    if now is None:
        return dt.datetime.now(dt.timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=dt.timezone.utc)
    return now


def local_date(now: dt.datetime | None, timezone: str) -> dt.date:
    return as_aware(now).astimezone(ZoneInfo(resolve_timezone(timezone))).date()


def get_date_iso_in_timezone(now: dt.datetime | None, timezone: str) -> str:
    return local_date(now, timezone).isoformat()


def day_id_for_date(date_iso: str, timezone: str) -> str:
    return f"{date_iso}@{timezone}"


def build_day_id(now: dt.datetime | None, timezone: str) -> str:
    tz = resolve_timezone(timezone)
    return day_id_for_date(get_date_iso_in_timezone(now, tz), tz)


def split_day_id(day_id: str) -> tuple[str, str]:
    date_iso, _, tz = (day_id or "").partition("@")
    return date_iso, tz


def date_of_day_id(day_id: str) -> str:
    return split_day_id(day_id)[0]


def day_bounds_ms(date: dt.date, timezone: str) -> tuple[int, int]:
    """Epoch-ms [start, end) of a local calendar day; DST days may be 23h or 25h."""
    zone = ZoneInfo(resolve_timezone(timezone))
    start = dt.datetime.combine(date, dt.time.min, tzinfo=zone)
    end = dt.datetime.combine(date + dt.timedelta(days=1), dt.time.min, tzinfo=zone)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def iso_now(now: dt.datetime | None = None) -> str:
    return as_aware(now).astimezone(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def week_start_iso(now: dt.datetime | None, timezone: str) -> str:
    d = local_date(now, timezone)
    return (d - dt.timedelta(days=d.weekday())).isoformat()
