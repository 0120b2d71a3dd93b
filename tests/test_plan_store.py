from __future__ import annotations

import datetime as dt

import pytest

from liacoach.coach_plan import SCHEMA_VERSION
from liacoach.food_parser import parse_food_mutation
from liacoach.plan_store import CoachPlanStore, InMemoryPlanStorage, entries_by_day_id


TZ = "Europe/Madrid"
MON = dt.datetime(2026, 2, 16, 12, 0, tzinfo=dt.timezone.utc)
TUE = dt.datetime(2026, 2, 17, 9, 0, tzinfo=dt.timezone.utc)


class BrokenStorage:
    def load(self):
        raise OSError("disk gone")

    def save(self, plan):
        raise OSError("disk gone")


def _store(initial=None) -> tuple[CoachPlanStore, InMemoryPlanStorage]:
    storage = InMemoryPlanStorage(initial)
    return CoachPlanStore(storage), storage


def test_get_returns_none_without_storage_or_data() -> None:
    assert CoachPlanStore(None).get_coach_plan() is None
    store, _ = _store()
    assert store.get_coach_plan() is None


def test_corrupt_or_failing_storage_reads_as_absent() -> None:
    store, _ = _store("not a plan")
    assert store.get_coach_plan() is None
    assert CoachPlanStore(BrokenStorage()).get_coach_plan() is None


def test_save_errors_are_absorbed() -> None:
    plan = CoachPlanStore(BrokenStorage()).upsert_coach_plan({"physicalProfile": {"weightKg": 80}})
    assert plan["physicalProfile"]["weightKg"] == 80


def test_sequential_upserts_both_persist() -> None:
    store, _ = _store()
    store.upsert_coach_plan({"physicalProfile": {"weightKg": 80.0}})
    store.upsert_coach_plan({"physicalProfile": {"ageYears": 30}})
    plan = store.get_coach_plan()
    assert plan["physicalProfile"] == {"weightKg": 80.0, "ageYears": 30}


def test_upsert_requires_mapping() -> None:
    store, _ = _store()
    with pytest.raises(TypeError):
        store.upsert_coach_plan(["weightKg", 80])


def test_first_ensure_seeds_clock_without_rotation() -> None:
    store, storage = _store()
    r = store.ensure_current_day(MON, TZ)
    assert r.rotated is False
    assert r.plan["time"]["current_day_id"] == "2026-02-16@Europe/Madrid"
    assert r.plan["time"]["timezone"] == TZ
    assert r.plan["signals"]["today"]["dayId"] == "2026-02-16@Europe/Madrid"
    assert storage.saves == 1


def test_ensure_is_idempotent_within_a_day() -> None:
    store, storage = _store()
    first = store.ensure_current_day(MON, TZ)
    second = store.ensure_current_day(MON, TZ)
    assert second.rotated is False
    assert second.plan == first.plan
    assert storage.saves == 1


def test_rotation_snapshots_previous_day() -> None:
    store, _ = _store()
    store.ensure_current_day(MON, TZ)
    store.upsert_coach_plan({"signals": {"today": {"intakeKcal": 1800, "burnKcal": 300, "weightKg": 80.5}}})

    r = store.ensure_current_day(TUE, TZ)
    assert r.rotated is True
    assert r.previous_day_id == "2026-02-16@Europe/Madrid"

    snap = r.plan["history"]["days"]["2026-02-16@Europe/Madrid"]
    assert snap["kcalIn"] == 1800
    assert snap["kcalOut"] == 300
    assert snap["balance"] == 1500
    assert snap["weightKg"] == 80.5
    assert snap["closed"] is True

    today = r.plan["signals"]["today"]
    assert today["dayId"] == "2026-02-17@Europe/Madrid"
    assert "intakeKcal" not in today
    assert r.plan["metadata"]["version"] >= SCHEMA_VERSION
    assert store.get_coach_plan() == r.plan


def test_legacy_plan_is_upgraded_on_rotation() -> None:
    store, _ = _store({"time": {"current_day_id": "2026-02-16@Europe/Madrid"}, "metadata": {"version": 1}})
    r = store.ensure_current_day(TUE, TZ)
    assert r.rotated is True
    assert r.plan["metadata"]["version"] == SCHEMA_VERSION


def test_timezone_change_rotates() -> None:
    store, _ = _store()
    store.ensure_current_day(MON, TZ)
    r = store.ensure_current_day(MON, "America/New_York")
    assert r.rotated is True
    assert r.plan["time"]["current_day_id"] == "2026-02-16@America/New_York"


def test_first_ensure_archives_stale_unclocked_today() -> None:
    store, _ = _store({"signals": {"today": {"dateISO": "2026-02-15", "intakeKcal": 2100, "foods": ["pollo"]}}})
    r = store.ensure_current_day(MON, TZ)
    assert r.rotated is False

    snap = r.plan["history"]["days"]["2026-02-15@Europe/Madrid"]
    assert snap["kcalIn"] == 2100
    assert snap["foods"] == ["pollo"]
    assert snap["closed"] is True

    today = r.plan["signals"]["today"]
    assert today["dayId"] == "2026-02-16@Europe/Madrid"
    assert "intakeKcal" not in today
    assert store.get_coach_plan()["history"]["days"]["2026-02-15@Europe/Madrid"]["kcalIn"] == 2100


def test_first_ensure_keeps_unclocked_today_of_same_date() -> None:
    store, _ = _store({"signals": {"today": {"dateISO": "2026-02-16", "intakeKcal": 900}}})
    r = store.ensure_current_day(MON, TZ)
    assert r.plan["signals"]["today"]["intakeKcal"] == 900
    assert r.plan["signals"]["today"]["dayId"] == "2026-02-16@Europe/Madrid"
    assert not (r.plan.get("history") or {}).get("days")


def test_rotation_skips_day_without_signals() -> None:
    store, _ = _store()
    store.ensure_current_day(MON, TZ)
    r = store.ensure_current_day(TUE, TZ)
    assert r.rotated is True
    assert r.previous_day_id == "2026-02-16@Europe/Madrid"
    assert "2026-02-16@Europe/Madrid" not in r.plan["history"]["days"]


def test_rotation_closes_existing_snapshot_even_without_signals() -> None:
    day = "2026-02-16@Europe/Madrid"
    store, _ = _store(
        {
            "time": {"current_day_id": day, "last_rotation_iso": "2026-02-16T00:00:00Z", "timezone": TZ},
            "signals": {"today": {"dayId": day, "dateISO": "2026-02-16"}},
            "history": {"days": {day: {"kcalIn": 195, "kcalOut": 0, "closed": False}}},
        }
    )
    r = store.ensure_current_day(TUE, TZ)
    snap = r.plan["history"]["days"][day]
    assert snap["closed"] is True
    assert snap["kcalIn"] == 195


def test_record_food_mutation_updates_today_totals() -> None:
    store, _ = _store()
    plan = store.ensure_current_day(MON, TZ).plan
    m = parse_food_mutation("comi 2 huevos", timezone=TZ, current_day_id=plan["time"]["current_day_id"], now=MON)
    plan = store.record_food_mutation(m, MON)

    today = plan["signals"]["today"]
    assert today["intakeKcal"] == 172
    assert today["foods"] == ["huevo"]
    assert len(today["foodEntries"]) == 1
    assert entries_by_day_id(plan)["2026-02-16@Europe/Madrid"][0].kcal == 172


def test_record_food_mutation_reopens_closed_history_day() -> None:
    store, _ = _store()
    store.ensure_current_day(MON, TZ)
    store.upsert_coach_plan({"signals": {"today": {"weightKg": 81}}})
    plan = store.ensure_current_day(TUE, TZ).plan
    m = parse_food_mutation(
        "ayer comi pollo",
        timezone=TZ,
        current_day_id=plan["time"]["current_day_id"],
        now=TUE,
        existing_entries_by_day_id=entries_by_day_id(plan),
    )
    plan = store.record_food_mutation(m, TUE)

    snap = plan["history"]["days"]["2026-02-16@Europe/Madrid"]
    assert snap["autoReopened"] is True
    assert snap["kcalIn"] == 248
    assert snap["macros"]["proteinG"] == 46.5


def test_record_food_mutation_creates_missing_history_day() -> None:
    store, _ = _store()
    plan = store.ensure_current_day(TUE, TZ).plan
    m = parse_food_mutation("el 10/02 comi arroz", timezone=TZ, current_day_id=plan["time"]["current_day_id"], now=TUE)
    plan = store.record_food_mutation(m, TUE)
    snap = plan["history"]["days"]["2026-02-10@Europe/Madrid"]
    assert snap["kcalIn"] == 195
    assert snap["closed"] is False
    assert "autoReopened" not in snap


def test_none_mutation_is_noop() -> None:
    store, storage = _store()
    store.ensure_current_day(MON, TZ)
    m = parse_food_mutation("hola", timezone=TZ, current_day_id="2026-02-16@Europe/Madrid", now=MON)
    store.record_food_mutation(m, MON)
    assert storage.saves == 1


def test_save_weekly_plan_uses_monday_week_start() -> None:
    store, _ = _store()
    store.ensure_current_day(TUE, TZ)
    plan = store.save_weekly_plan("  Lunes: fuerza  ", TUE)
    assert plan["weeklyPlan"]["weekStartISO"] == "2026-02-16"
    assert plan["weeklyPlan"]["content"] == "Lunes: fuerza"
