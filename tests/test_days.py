from __future__ import annotations

import datetime as dt

from liacoach.days import (
    build_day_id,
    date_of_day_id,
    day_bounds_ms,
    iso_now,
    local_date,
    resolve_timezone,
    split_day_id,
    week_start_iso,
)


def test_resolve_timezone_picks_first_valid_candidate() -> None:
    assert resolve_timezone("Not/AZone", "America/Bogota") == "America/Bogota"
    assert resolve_timezone(None, "") == "Europe/Madrid"


def test_resolve_timezone_falls_back_to_utc(monkeypatch) -> None:
    from liacoach import days

    monkeypatch.setattr(days.settings, "default_timezone", "Nowhere/Land")
    assert resolve_timezone("also/bad") == "UTC"


def test_day_id_uses_local_calendar_date() -> None:
    late = dt.datetime(2026, 2, 16, 23, 30, tzinfo=dt.timezone.utc)
    assert build_day_id(late, "Europe/Madrid") == "2026-02-17@Europe/Madrid"
    assert build_day_id(late, "America/New_York") == "2026-02-16@America/New_York"


def test_naive_datetime_is_utc() -> None:
    assert local_date(dt.datetime(2026, 2, 16, 23, 30), "UTC") == dt.date(2026, 2, 16)


def test_split_day_id() -> None:
    assert split_day_id("2026-02-16@Europe/Madrid") == ("2026-02-16", "Europe/Madrid")
    assert date_of_day_id("2026-02-16@UTC") == "2026-02-16"


def test_day_bounds_cover_dst_change() -> None:
    start, end = day_bounds_ms(dt.date(2026, 3, 29), "Europe/Madrid")
    assert end - start == 23 * 3600 * 1000

    start, end = day_bounds_ms(dt.date(2026, 2, 16), "UTC")
    assert start == int(dt.datetime(2026, 2, 16, tzinfo=dt.timezone.utc).timestamp() * 1000)
    assert end - start == 24 * 3600 * 1000


def test_iso_now_is_utc_millis() -> None:
    now = dt.datetime(2026, 2, 16, 13, 5, 7, 123456, tzinfo=dt.timezone(dt.timedelta(hours=1)))
    assert iso_now(now) == "2026-02-16T12:05:07.123Z"


def test_week_starts_on_monday() -> None:
    sunday = dt.datetime(2026, 2, 22, 10, 0, tzinfo=dt.timezone.utc)
    assert week_start_iso(sunday, "Europe/Madrid") == "2026-02-16"
    monday = dt.datetime(2026, 2, 16, 0, 30, tzinfo=dt.timezone.utc)
    assert week_start_iso(monday, "Europe/Madrid") == "2026-02-16"
