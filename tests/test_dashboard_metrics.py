from __future__ import annotations

import datetime as dt

from liacoach.dashboard_metrics import (
    build_dashboard_metrics,
    extract_intake_kcal,
    extract_recurring_training,
    extract_training_burn_kcal,
    is_recurring_cancelled,
)
from liacoach.food_parser import parse_food_mutation


FRI = dt.datetime(2026, 2, 13, 12, 0, tzinfo=dt.timezone.utc)
MON = dt.datetime(2026, 2, 16, 12, 0, tzinfo=dt.timezone.utc)
DAY_MS = 24 * 3600 * 1000


def _ms(now: dt.datetime) -> int:
    return int(now.timestamp() * 1000)


def _ev(text: str, ts: int, role: str = "user") -> dict:
    return {"type": "text", "role": role, "id": f"e{ts}", "ts": ts, "text": text}


def test_infers_profile_from_checklist_and_fills_daily() -> None:
    start = _ms(FRI)
    events = [
        _ev("hoy he comido pasta, 120 gr sin cocer, y 200 gramos de secreto iberico", start - 60_000),
        _ev("he caminado unos 30 min aparte de eso no he hecho nada", start - 30_000),
        _ev("1 hombre, 2 31, 3 1,65 m, 4 91kgs, 5 trabajo sedentario pero hago tenis 2 veces por semana", start),
    ]
    m = build_dashboard_metrics(events, None, FRI)
    daily = m["daily"]
    assert daily["targetKcal"] is not None
    assert daily["burnKcal"] == 159
    assert daily["intakeKcal"] == 450
    assert daily["lastWeightKg"] == 91
    assert daily["energyMethod"] == "mifflin_st_jeor"

    profile = m["profile"]
    assert profile["sex"] == "male"
    assert profile["ageYears"] == 31
    assert profile["heightCm"] == 165
    assert profile["activityLevel"] == "sedentary"


def test_today_signals_take_priority() -> None:
    events = [_ev("hoy comi normal", _ms(FRI) - 60_000)]
    plan = {
        "goals": {},
        "preferences": {"language": "es", "tone": "concise"},
        "metadata": {"version": 1},
        "signals": {"today": {"dateISO": "2026-02-13", "intakeKcal": 2100, "burnKcal": 320, "weightKg": 90.5}},
    }
    daily = build_dashboard_metrics(events, plan, FRI)["daily"]
    assert daily["intakeKcal"] == 2100
    assert daily["burnKcal"] == 320
    assert daily["lastWeightKg"] == 90.5


def test_stale_today_signal_is_ignored() -> None:
    plan = {"signals": {"today": {"dateISO": "2026-02-12", "intakeKcal": 2100}}}
    assert build_dashboard_metrics([], plan, FRI)["daily"]["intakeKcal"] == 0


def test_no_profile_means_no_target() -> None:
    m = build_dashboard_metrics([], None, FRI)
    daily = m["daily"]
    assert daily["targetKcal"] is None
    assert daily["basalKcal"] is None
    assert daily["confidence"] == "none"
    assert daily["lastWeightKg"] is None
    assert m["weekly"]["dates"][-1] == "2026-02-13"
    assert len(m["weekly"]["intakeKcal"]) == 7


def test_cunningham_target_and_nutrition_targets() -> None:
    egg = parse_food_mutation("comi 2 huevos", timezone="Europe/Madrid", current_day_id="2026-02-16@Europe/Madrid", now=MON)
    plan = {
        "physicalProfile": {"weightKg": 80, "bodyFatPct": 20, "activityLevel": "moderate"},
        "goals": {"weight": {"targetKg": 75}},
        "time": {"current_day_id": "2026-02-16@Europe/Madrid", "timezone": "Europe/Madrid"},
        "signals": {"today": {"dayId": "2026-02-16@Europe/Madrid", "foodEntries": [egg.entry.to_dict()]}},
    }
    m = build_dashboard_metrics([], plan, MON)
    daily = m["daily"]
    assert daily["basalKcal"] == 1908
    assert daily["tdeeKcal"] == 2957
    assert daily["targetKcal"] == 2957
    assert daily["intakeKcal"] == 172
    assert daily["confidence"] == "high"

    nutrition = m["nutrition"]
    assert nutrition["intakeKcal"] == 172
    assert nutrition["estimatedEntries"] == 0
    assert nutrition["targets"] == {"kcal": 2957, "proteinG": 128, "fatG": 64, "carbsG": 467}


def test_target_never_below_floor_or_intake() -> None:
    plan = {"physicalProfile": {"weightKg": 40, "bodyFatPct": 30, "activityLevel": "sedentary"}}
    events = [_ev("cena de 3000 kcal", _ms(FRI) - 1000)]
    daily = build_dashboard_metrics(events, plan, FRI)["daily"]
    assert daily["intakeKcal"] == 3000
    assert daily["targetKcal"] == 3000

    daily = build_dashboard_metrics([], plan, FRI)["daily"]
    assert daily["targetKcal"] == 1200


def test_history_snapshot_fills_past_days() -> None:
    plan = {
        "time": {"current_day_id": "2026-02-16@Europe/Madrid", "timezone": "Europe/Madrid"},
        "history": {
            "days": {
                "2026-02-14@Europe/Madrid": {"kcalIn": 1900, "kcalOut": 250, "weightKg": 81, "closed": True},
            }
        },
    }
    weekly = build_dashboard_metrics([], plan, MON)["weekly"]
    i = weekly["dates"].index("2026-02-14")
    assert weekly["intakeKcal"][i] == 1900
    assert weekly["burnKcal"][i] == 250
    assert weekly["weightKg"][i] == 81


def test_latest_weight_falls_back_to_history() -> None:
    plan = {"history": {"days": {"2026-02-14@Europe/Madrid": {"kcalIn": 1900, "weightKg": 81}}}}
    assert build_dashboard_metrics([], plan, MON)["daily"]["lastWeightKg"] == 81


def test_weight_delta_over_thirty_days() -> None:
    now = _ms(MON)
    events = [_ev("peso 84 kg", now - 20 * DAY_MS), _ev("peso 82,5 kg", now - 1000)]
    assert build_dashboard_metrics(events, None, MON)["daily"]["weightDeltaKg30d"] == -1.5


def test_recurring_training_adds_burn_on_its_weekday() -> None:
    events = [_ev("todos los lunes juego tenis 1 hora", _ms(MON) - 20 * DAY_MS)]
    m = build_dashboard_metrics(events, None, MON)
    assert m["daily"]["burnKcal"] == 548
    assert sum(m["weekly"]["burnKcal"][:-1]) == 0


def test_recurring_training_cancelled_for_the_day() -> None:
    cancel = "hoy no he podido ir a tenis"
    events = [
        _ev("todos los lunes juego tenis 1 hora", _ms(MON) - 20 * DAY_MS),
        _ev(cancel, _ms(MON) - 1000),
    ]
    m = build_dashboard_metrics(events, None, MON)
    assert m["daily"]["burnKcal"] == extract_training_burn_kcal(cancel)


def test_plan_routine_wins_over_message_recurrence() -> None:
    plan = {
        "physicalProfile": {"weightKg": 80},
        "routines": {"weekly": [{"weekday": 0, "activity": "tenis", "burnKcal": 300}]},
    }
    events = [_ev("todos los lunes juego tenis 1 hora", _ms(MON) - 20 * DAY_MS)]
    assert build_dashboard_metrics(events, plan, MON)["daily"]["burnKcal"] == 300


def test_plan_routine_with_unknown_activity_uses_default_met() -> None:
    plan = {
        "physicalProfile": {"weightKg": 80},
        "routines": {"weekly": [{"weekday": 0, "activity": "natacion", "durationMin": 60}]},
    }
    assert build_dashboard_metrics([], plan, MON)["daily"]["burnKcal"] == 320


def test_activity_minutes_infer_today_burn() -> None:
    plan = {
        "physicalProfile": {"weightKg": 80},
        "time": {"current_day_id": "2026-02-16@Europe/Madrid", "timezone": "Europe/Madrid"},
        "signals": {"today": {"activityMinutes": 30, "activities": ["running"]}},
    }
    assert build_dashboard_metrics([], plan, MON)["daily"]["burnKcal"] == 332


def test_assistant_messages_are_ignored() -> None:
    events = [_ev("cena de 900 kcal", _ms(FRI) - 1000, role="assistant")]
    assert build_dashboard_metrics(events, None, FRI)["daily"]["intakeKcal"] == 0


def test_intake_heuristics() -> None:
    assert extract_intake_kcal("desayuno de 350 kcal y snack 150 kcal") == 500
    assert extract_intake_kcal("desayuno tostadas") == 400
    assert extract_intake_kcal("cena ligera") == 600
    assert extract_intake_kcal("comi algo") == 450


def test_training_burn_heuristics() -> None:
    assert extract_training_burn_kcal("gym 1,5 horas", 80) == 600
    assert extract_training_burn_kcal("cardio quemé 400 kcal") == 400
    assert extract_training_burn_kcal("sali a correr 45 minutos", 70) == 436


def test_recurring_extraction_floor_and_cancel_match() -> None:
    [r] = extract_recurring_training(["todos los martes paseo de 10 min"], 60)
    assert r.weekday == 1
    assert r.activity.name == "caminar"
    assert r.burn_per_session == 120
    assert is_recurring_cancelled("Al final no fui a pasear, paseo mañana", r.activity)
    assert not is_recurring_cancelled("paseo hecho", r.activity)
