from __future__ import annotations

import copy
import datetime as dt
import logging
from collections.abc import Mapping
from typing import Any

from liacoach.config import settings
from liacoach.days import date_of_day_id, iso_now, resolve_timezone
from liacoach.food_ledger import FoodEntry, compute_day_food_totals, parse_entries
from liacoach.validators import (
    as_mapping,
    bool_flag,
    clean_str,
    non_negative_int,
    number_in_range,
    one_of,
    str_list,
    to_number,
    union_recent,
)


logger = logging.getLogger(__name__)

# time/signals/history/routines arrived with version 2
SCHEMA_VERSION = 2
LEGACY_VERSION = 1

SEXES = ("male", "female")
ACTIVITY_LEVELS = ("sedentary", "light", "moderate", "very")
TECH_LEVELS = ("basico", "medio", "tecnico", "ultra")
STYLES = ("neutral", "humor_sutil", "serio", "ultra_resumido")
DETAIL_LEVELS = ("bajo", "medio", "alto")

# (min, max) accepted; anything outside is dropped, never clamped in
PHYSICAL_RANGES: dict[str, tuple[float, float]] = {
    "ageYears": (12, 100),
    "heightCm": (120, 230),
    "weightKg": (35, 250),
    "bodyFatPct": (3, 70),
}

TODAY_RANGES: dict[str, tuple[float, float]] = {
    "intakeKcal": (0, 20000),
    "burnKcal": (0, 10000),
    "weightKg": (35, 250),
    "activityMinutes": (0, 1440),
    "proteinG": (0, 2000),
    "carbsG": (0, 3000),
    "fatG": (0, 2000),
}

SECTIONS = (
    "time",
    "physicalProfile",
    "cognitiveProfile",
    "goals",
    "preferences",
    "routines",
    "weeklyPlan",
    "signals",
    "history",
    "metadata",
)

DEFAULT_COGNITIVE_PROFILE: dict[str, Any] = {
    "nivel_tecnico": "basico",
    "score_tecnico": 0,
    "estilo": "neutral",
    "preferencia_detalle": "medio",
}

DEFAULT_PREFERENCES: dict[str, Any] = {
    "language": "es",
    "tone": "concise",
}


def create_default_coach_plan() -> dict[str, Any]:
    return {
        "physicalProfile": {},
        "cognitiveProfile": dict(DEFAULT_COGNITIVE_PROFILE),
        "goals": {},
        "preferences": dict(DEFAULT_PREFERENCES),
        "routines": {"weekly": []},
        "signals": {},
        "history": {"days": {}},
        "metadata": {"version": SCHEMA_VERSION},
    }


# --- field-level cleaners: keep only valid fields that are present ---


def clean_time(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    out: dict[str, Any] = {}
    day_id = clean_str(m.get("current_day_id"))
    if day_id and "@" in day_id:
        out["current_day_id"] = day_id
    rotated = clean_str(m.get("last_rotation_iso"))
    if rotated:
        out["last_rotation_iso"] = rotated
    tz = clean_str(m.get("timezone"))
    if tz and resolve_timezone(tz) == tz:
        out["timezone"] = tz
    return out


def clean_physical_profile(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    out: dict[str, Any] = {}
    sex = one_of(m.get("sex"), SEXES)
    if sex:
        out["sex"] = sex
    for key, (lo, hi) in PHYSICAL_RANGES.items():
        v = number_in_range(m.get(key), lo, hi)
        if v is not None:
            out[key] = int(round(v)) if key == "ageYears" else v
    level = one_of(m.get("activityLevel"), ACTIVITY_LEVELS)
    if level:
        out["activityLevel"] = level
    return out


def clean_cognitive_profile(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    out: dict[str, Any] = {}
    nivel = one_of(m.get("nivel_tecnico"), TECH_LEVELS)
    if nivel:
        out["nivel_tecnico"] = nivel
    score = non_negative_int(m.get("score_tecnico"))
    if score is not None:
        out["score_tecnico"] = score
    estilo = one_of(m.get("estilo"), STYLES)
    if estilo:
        out["estilo"] = estilo
    detalle = one_of(m.get("preferencia_detalle"), DETAIL_LEVELS)
    if detalle:
        out["preferencia_detalle"] = detalle
    return out


def _clean_goal_object(raw: Any, numeric: tuple[str, ...], textual: tuple[str, ...]) -> str | dict[str, Any] | None:
    if isinstance(raw, str):
        return raw.strip() or None
    m = as_mapping(raw)
    if m is None:
        return None
    out: dict[str, Any] = {}
    for key in numeric:
        v = to_number(m.get(key))
        if v is not None:
            out[key] = v
    for key in textual:
        s = clean_str(m.get(key))
        if s:
            out[key] = s
    return out or None


def clean_goals(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    out: dict[str, Any] = {}
    weight = _clean_goal_object(m.get("weight"), ("targetKg",), ("deadline",))
    if weight is not None:
        out["weight"] = weight
    training = _clean_goal_object(m.get("training"), ("sessionsPerWeek",), ("focus",))
    if training is not None:
        out["training"] = training
    nutrition = _clean_goal_object(m.get("nutrition"), ("dailyProteinG", "dailyCalories"), ())
    if nutrition is not None:
        out["nutrition"] = nutrition
    habits = str_list(m.get("habits"))
    if habits:
        out["habits"] = habits
    return out


def clean_preferences(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    out: dict[str, Any] = {}
    # only one language and tone are supported for now
    if m.get("language") == "es":
        out["language"] = "es"
    if m.get("tone") == "concise":
        out["tone"] = "concise"
    mq = number_in_range(m.get("maxQuestionsPerTurn"), 1, 3)
    if mq is not None:
        out["maxQuestionsPerTurn"] = int(round(mq))
    return out


def clean_routine(raw: Any) -> dict[str, Any] | None:
    m = as_mapping(raw)
    if m is None:
        return None
    weekday = to_number(m.get("weekday"))
    activity = clean_str(m.get("activity"))
    if weekday is None or weekday != int(weekday) or not 0 <= weekday <= 6 or not activity:
        return None
    out: dict[str, Any] = {"weekday": int(weekday), "activity": activity}
    duration = number_in_range(m.get("durationMin"), 1, 600)
    if duration is not None:
        out["durationMin"] = duration
    burn = number_in_range(m.get("burnKcal"), 1, 5000)
    if burn is not None:
        out["burnKcal"] = int(round(burn))
    return out


def clean_routines(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    if "weekly" not in m or not isinstance(m.get("weekly"), list):
        return {}
    return {"weekly": [r for r in (clean_routine(x) for x in m["weekly"]) if r is not None]}


def clean_weekly_plan(raw: Any) -> dict[str, Any] | None:
    m = as_mapping(raw) or {}
    week_start = clean_str(m.get("weekStartISO"))
    content = clean_str(m.get("content"))
    generated = clean_str(m.get("generatedAtISO"))
    if not week_start or not content or not generated:
        return None
    return {"weekStartISO": week_start, "content": content, "generatedAtISO": generated}


def _clean_numbers(m: Mapping[str, Any], ranges: Mapping[str, tuple[float, float]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, (lo, hi) in ranges.items():
        v = number_in_range(m.get(key), lo, hi)
        if v is not None:
            out[key] = v
    return out


def _clean_entry_dicts(raw: Any) -> list[dict[str, Any]]:
    return [e.to_dict() for e in parse_entries(raw)]


def clean_today(raw: Any) -> dict[str, Any]:
    m = as_mapping(raw) or {}
    out: dict[str, Any] = {}
    day_id = clean_str(m.get("dayId"))
    if day_id and "@" in day_id:
        out["dayId"] = day_id
    date_iso = clean_str(m.get("dateISO"))
    if date_iso:
        out["dateISO"] = date_iso
    out.update(_clean_numbers(m, TODAY_RANGES))
    for key in ("intakeKcal", "burnKcal"):
        if key in out:
            out[key] = int(round(out[key]))
    for key in ("foods", "activities"):
        if key in m:
            out[key] = str_list(m.get(key))
    if "foodEntries" in m:
        out["foodEntries"] = _clean_entry_dicts(m.get("foodEntries"))
    for key in ("createdAtISO", "updatedAtISO"):
        s = clean_str(m.get(key))
        if s:
            out[key] = s
    return out


def clean_day_snapshot(day_id: str, raw: Any) -> dict[str, Any] | None:
    m = as_mapping(raw)
    if m is None or "@" not in day_id:
        return None
    out: dict[str, Any] = {"dayId": day_id, "dateISO": clean_str(m.get("dateISO")) or date_of_day_id(day_id)}
    for key in ("kcalIn", "kcalOut"):
        v = number_in_range(m.get(key), 0, 20000)
        out[key] = int(round(v)) if v is not None else 0
    balance = to_number(m.get("balance"))
    out["balance"] = int(round(balance)) if balance is not None else out["kcalIn"] - out["kcalOut"]
    macros = _clean_numbers(as_mapping(m.get("macros")) or {}, {"proteinG": (0, 2000), "carbsG": (0, 3000), "fatG": (0, 2000)})
    if macros:
        out["macros"] = macros
    micros_raw = as_mapping(m.get("micros")) or {}
    micros = {str(k): v for k, v in ((k, to_number(x)) for k, x in micros_raw.items()) if v is not None and v >= 0}
    if micros:
        out["micros"] = micros
    weight = number_in_range(m.get("weightKg"), 35, 250)
    if weight is not None:
        out["weightKg"] = weight
    for key in ("foods", "activities"):
        items = str_list(m.get(key))
        if items:
            out[key] = items
    if "foodEntries" in m:
        out["foodEntries"] = _clean_entry_dicts(m.get("foodEntries"))
    out["closed"] = bool_flag(m.get("closed")) or False
    if bool_flag(m.get("autoReopened")):
        out["autoReopened"] = True
    for key in ("createdAtISO", "updatedAtISO"):
        s = clean_str(m.get(key))
        if s:
            out[key] = s
    return out


def clean_history_days(raw: Any) -> dict[str, dict[str, Any]]:
    m = as_mapping(raw) or {}
    out: dict[str, dict[str, Any]] = {}
    for day_id, snap in m.items():
        if not isinstance(day_id, str):
            continue
        cleaned = clean_day_snapshot(day_id, snap)
        if cleaned is not None:
            out[day_id] = cleaned
    return out


def clean_version(raw: Any) -> int | None:
    m = as_mapping(raw) or {}
    v = m.get("version")
    if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 1:
        return None
    return int(v)


# --- whole-document normalization ---


def normalize_coach_plan(raw: Any) -> dict[str, Any] | None:
    """Best-effort plan from persisted data; None only when raw is not an object."""
    m = as_mapping(raw)
    if m is None:
        return None

    plan: dict[str, Any] = {
        "physicalProfile": clean_physical_profile(m.get("physicalProfile")),
        "cognitiveProfile": {**DEFAULT_COGNITIVE_PROFILE, **clean_cognitive_profile(m.get("cognitiveProfile"))},
        "goals": clean_goals(m.get("goals")),
        "preferences": {**DEFAULT_PREFERENCES, **clean_preferences(m.get("preferences"))},
        "routines": {"weekly": clean_routines(m.get("routines")).get("weekly", [])},
        "signals": {},
        "history": {"days": clean_history_days((as_mapping(m.get("history")) or {}).get("days"))},
        "metadata": {"version": clean_version(m.get("metadata")) or LEGACY_VERSION},
    }

    time = clean_time(m.get("time"))
    if "current_day_id" in time:
        time.setdefault("timezone", resolve_timezone(time["current_day_id"].partition("@")[2]))
        plan["time"] = time

    weekly_plan = clean_weekly_plan(m.get("weeklyPlan"))
    if weekly_plan:
        plan["weeklyPlan"] = weekly_plan

    signals = as_mapping(m.get("signals")) or {}
    if as_mapping(signals.get("today")) is not None:
        today = clean_today(signals.get("today"))
        current = plan.get("time", {}).get("current_day_id")
        if current and "dayId" not in today and today.get("dateISO") in (None, date_of_day_id(current)):
            today["dayId"] = current
            today.setdefault("dateISO", date_of_day_id(current))
        plan["signals"]["today"] = today

    return plan


# --- merging ---


def _merge_entry_dicts(current: list[dict[str, Any]], incoming: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen = {e["id"] for e in current}
    merged = list(current)
    for e in incoming:
        if e["id"] not in seen:
            seen.add(e["id"])
            merged.append(e)
    return merged


def merge_today(current: Mapping[str, Any], patch: Mapping[str, Any], current_day_id: str | None) -> dict[str, Any] | None:
    """Field-level merge of signals.today; None when the patch targets another day."""
    incoming = clean_today(patch)
    if current_day_id:
        if incoming.get("dayId", current_day_id) != current_day_id:
            return None
        if incoming.get("dateISO", date_of_day_id(current_day_id)) != date_of_day_id(current_day_id):
            return None
    elif current.get("dateISO") and incoming.get("dateISO") and incoming["dateISO"] != current["dateISO"]:
        # no clock seeded yet: a patch for a new date starts a fresh record
        current = {}

    merged = dict(current)
    for key, value in incoming.items():
        if key in ("foods", "activities"):
            merged[key] = union_recent(list(current.get(key) or []), value, settings.recent_items_cap)
        elif key == "foodEntries":
            merged[key] = _merge_entry_dicts(list(current.get(key) or []), value)
        else:
            merged[key] = value
    if current_day_id:
        merged["dayId"] = current_day_id
        merged["dateISO"] = date_of_day_id(current_day_id)
    return merged


def merge_coach_plan(current: Mapping[str, Any], partial: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(dict(current))

    if "time" in partial:
        time = {**merged.get("time", {}), **clean_time(partial["time"])}
        if "current_day_id" in time:
            merged["time"] = time

    for section, cleaner in (
        ("physicalProfile", clean_physical_profile),
        ("cognitiveProfile", clean_cognitive_profile),
        ("goals", clean_goals),
        ("preferences", clean_preferences),
        ("routines", clean_routines),
    ):
        if section in partial:
            merged[section] = {**merged.get(section, {}), **cleaner(partial[section])}

    if "weeklyPlan" in partial:
        weekly_plan = clean_weekly_plan(partial["weeklyPlan"])
        if weekly_plan:
            merged["weeklyPlan"] = weekly_plan

    signals = as_mapping(partial.get("signals")) or {}
    if as_mapping(signals.get("today")) is not None:
        current_day_id = (merged.get("time") or {}).get("current_day_id")
        cur_today = (merged.get("signals") or {}).get("today") or {}
        today = merge_today(cur_today, signals["today"], current_day_id)
        if today is None:
            logger.warning("Dropping signals.today patch for a day other than %s", current_day_id)
        else:
            merged.setdefault("signals", {})["today"] = today

    history = as_mapping(partial.get("history")) or {}
    if "days" in history:
        days = dict((merged.get("history") or {}).get("days") or {})
        days.update(clean_history_days(history["days"]))
        merged["history"] = {"days": days}

    cur_version = clean_version(merged.get("metadata")) or LEGACY_VERSION
    new_version = clean_version(partial.get("metadata")) if "metadata" in partial else None
    merged["metadata"] = {"version": max(cur_version, new_version or cur_version)}
    return merged


# --- day records ---


def fresh_today(day_id: str, now: dt.datetime | None = None) -> dict[str, Any]:
    stamp = iso_now(now)
    return {
        "dayId": day_id,
        "dateISO": date_of_day_id(day_id),
        "foods": [],
        "activities": [],
        "foodEntries": [],
        "createdAtISO": stamp,
        "updatedAtISO": stamp,
    }


# zero values and empty lists do not count
_SIGNAL_KEYS = (
    "intakeKcal", "burnKcal", "weightKg", "activityMinutes", "proteinG", "carbsG", "fatG",
    "foods", "activities", "foodEntries",
)


def has_signals(today: Mapping[str, Any] | None) -> bool:
    today = today or {}
    return any(today.get(k) for k in _SIGNAL_KEYS)


def entries_of(record: Mapping[str, Any] | None) -> list[FoodEntry]:
    return parse_entries((record or {}).get("foodEntries"))


def apply_ledger_totals(record: dict[str, Any], *, snapshot: bool) -> None:
    """Ledger totals are authoritative for intake and macros once a record holds entries."""
    entries = entries_of(record)
    if not entries:
        return
    totals = compute_day_food_totals(entries)
    if snapshot:
        record["kcalIn"] = totals.intake_kcal
        record["balance"] = totals.intake_kcal - int(record.get("kcalOut") or 0)
        record["macros"] = {"proteinG": totals.protein_g, "carbsG": totals.carbs_g, "fatG": totals.fat_g}
    else:
        record["intakeKcal"] = totals.intake_kcal
        record["proteinG"] = totals.protein_g
        record["carbsG"] = totals.carbs_g
        record["fatG"] = totals.fat_g


def snapshot_from_today(
    today: Mapping[str, Any],
    day_id: str,
    now: dt.datetime | None = None,
    existing: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Close out a day: today's signals folded over any snapshot already stored for it."""
    stamp = iso_now(now)
    base = dict(existing or {})
    kcal_in = int(today.get("intakeKcal") or base.get("kcalIn") or 0)
    kcal_out = int(today.get("burnKcal") or base.get("kcalOut") or 0)
    snap: dict[str, Any] = {
        **base,
        "dayId": day_id,
        "dateISO": date_of_day_id(day_id),
        "kcalIn": kcal_in,
        "kcalOut": kcal_out,
        "balance": kcal_in - kcal_out,
        "closed": True,
        "createdAtISO": base.get("createdAtISO") or today.get("createdAtISO") or stamp,
        "updatedAtISO": stamp,
    }
    macros = {k: today[k] for k in ("proteinG", "carbsG", "fatG") if k in today}
    if macros:
        snap["macros"] = macros
    if "weightKg" in today:
        snap["weightKg"] = today["weightKg"]
    for key in ("foods", "activities"):
        items = union_recent(list(base.get(key) or []), list(today.get(key) or []), settings.recent_items_cap)
        if items:
            snap[key] = items
    entries = _merge_entry_dicts(list(base.get("foodEntries") or []), list(today.get("foodEntries") or []))
    if entries:
        snap["foodEntries"] = entries
    apply_ledger_totals(snap, snapshot=True)
    return snap
