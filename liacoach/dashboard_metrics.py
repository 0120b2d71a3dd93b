from __future__ import annotations

import datetime as dt
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from liacoach.chat_events import UserEntry, user_entries
from liacoach.coach_plan import entries_of, normalize_coach_plan
from liacoach.days import as_aware, date_of_day_id, day_bounds_ms, local_date, resolve_timezone
from liacoach.food_ledger import compute_day_food_totals, resolve_effective_entries, round_half_up
from liacoach.nutrition import (
    MIN_DAILY_TARGET_KCAL,
    estimate_energy_model,
    goal_from_plan_goals,
    has_meaningful_data,
    macros_for_targets,
)
from liacoach.parsing import MessageClassifier, default_classifier, extract_weight
from liacoach.profile_evolution import merge_inferred_profile
from liacoach.textnorm import normalize, to_float


WINDOW_DAYS = 7
TODAY_INDEX = WINDOW_DAYS - 1
WEIGHT_DELTA_DAYS = 30
DEFAULT_BODY_WEIGHT_KG = 75
MIN_RECURRING_BURN_KCAL = 120

# kcal guesses by meal word when no number is given
MEAL_DEFAULT_KCAL: tuple[tuple[re.Pattern[str], int], ...] = (
    (re.compile(r"\bdesayuno\b"), 400),
    (re.compile(r"\b(almuerzo|comida)\b"), 650),
    (re.compile(r"\bcena\b"), 600),
    (re.compile(r"\b(snack|merienda)\b"), 250),
)
UNKNOWN_MEAL_KCAL = 450

_WEEKDAY_BY_NAME = {
    "lunes": 0,
    "martes": 1,
    "miercoles": 2,
    "jueves": 3,
    "viernes": 4,
    "sabado": 5,
    "domingo": 6,
}

_RECURRING_RE = re.compile(r"\btodos?\s+los?\s+(lunes|martes|miercoles|jueves|viernes|sabado|domingo)\b")
_CANCEL_RE = re.compile(r"\b(hoy no|no pude|no he podido|al final no)\b")
_KCAL_RE = re.compile(r"(\d{2,5})\s*(?:kcal|calorias?|cal)\b")
_HOURS_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*h(?:ora|oras)?\b")
_MINUTES_RE = re.compile(r"(\d{1,3})\s*min(?:uto|utos)?\b")


@dataclass(frozen=True)
class Activity:
    name: str
    pattern: re.Pattern[str]
    met: float


ACTIVITIES: tuple[Activity, ...] = (
    Activity("tenis", re.compile(r"\btenis\b"), 7.3),
    Activity("hiit", re.compile(r"\bhiit\b"), 8.5),
    Activity("running", re.compile(r"\b(running|correr)\b"), 8.3),
    Activity("fuerza", re.compile(r"\b(fuerza|pesas|gym|gimnasio)\b"), 5.0),
    Activity("cardio", re.compile(r"\bcardio\b"), 6.0),
    Activity("caminar", re.compile(r"\b(caminar|caminado|camine|caminata|paseo|andar)\b"), 3.5),
)
DEFAULT_MET = 4.0


@dataclass(frozen=True)
class RecurringTraining:
    weekday: int
    activity: Activity
    burn_per_session: int


def detect_activity(normalized: str) -> Activity | None:
    for a in ACTIVITIES:
        if a.pattern.search(normalized):
            return a
    return None


def estimate_met(activity_text: str) -> float:
    a = detect_activity(normalize(activity_text))
    return a.met if a else DEFAULT_MET


def extract_explicit_kcal(normalized: str) -> int:
    return sum(int(m.group(1)) for m in _KCAL_RE.finditer(normalized))


def extract_duration_hours(normalized: str) -> float | None:
    m = _HOURS_RE.search(normalized)
    if m:
        return to_float(m.group(1))
    m = _MINUTES_RE.search(normalized)
    if m:
        return int(m.group(1)) / 60
    return None


def extract_intake_kcal(text: str) -> int:
    normalized = normalize(text)
    explicit = extract_explicit_kcal(normalized)
    if explicit > 0:
        return explicit
    for pattern, kcal in MEAL_DEFAULT_KCAL:
        if pattern.search(normalized):
            return kcal
    return UNKNOWN_MEAL_KCAL


def extract_training_burn_kcal(text: str, body_weight_kg: float = DEFAULT_BODY_WEIGHT_KG) -> int:
    normalized = normalize(text)
    explicit = extract_explicit_kcal(normalized)
    if explicit > 0:
        return explicit
    hours = extract_duration_hours(normalized) or 1
    activity = detect_activity(normalized)
    met = activity.met if activity else DEFAULT_MET
    weight = extract_weight(text) or body_weight_kg
    return round_half_up(met * weight * hours)


def extract_recurring_training(texts: Iterable[str], body_weight_kg: float = DEFAULT_BODY_WEIGHT_KG) -> list[RecurringTraining]:
    """'todos los lunes tenis' -> a fixed burn every Monday."""
    out: list[RecurringTraining] = []
    for raw in texts:
        normalized = normalize(raw)
        m = _RECURRING_RE.search(normalized)
        if not m:
            continue
        activity = detect_activity(normalized)
        if activity is None:
            continue
        burn = extract_training_burn_kcal(raw, body_weight_kg)
        out.append(RecurringTraining(_WEEKDAY_BY_NAME[m.group(1)], activity, max(MIN_RECURRING_BURN_KCAL, burn)))
    return out


def routines_as_recurring(routines: Sequence[Mapping[str, Any]], body_weight_kg: float) -> list[RecurringTraining]:
    out: list[RecurringTraining] = []
    for r in routines:
        name = normalize(r["activity"])
        activity = detect_activity(name) or Activity(name, re.compile(rf"\b{re.escape(name)}\b"), DEFAULT_MET)
        burn = r.get("burnKcal") or round_half_up(activity.met * body_weight_kg * ((r.get("durationMin") or 60) / 60))
        out.append(RecurringTraining(r["weekday"], activity, max(MIN_RECURRING_BURN_KCAL, int(burn))))
    return out


def is_recurring_cancelled(day_text: str, activity: Activity) -> bool:
    # matches anywhere in the day's text, so one cancelled session can hide another
    text = normalize(day_text)
    return bool(_CANCEL_RE.search(text)) and bool(activity.pattern.search(text))


# --- weekly series ---


def _blank_series(dates: list[dt.date]) -> dict[str, Any]:
    return {
        "dates": [d.isoformat() for d in dates],
        "intakeKcal": [0] * WINDOW_DAYS,
        "burnKcal": [0] * WINDOW_DAYS,
        "weightKg": [None] * WINDOW_DAYS,
    }


def build_weekly_series(
    entries: Sequence[UserEntry],
    recurring: Sequence[RecurringTraining],
    dates: list[dt.date],
    timezone: str,
    classifier: MessageClassifier,
    body_weight_kg: float,
) -> dict[str, Any]:
    weekly = _blank_series(dates)
    for i, day in enumerate(dates):
        start, end = day_bounds_ms(day, timezone)
        day_entries = [e for e in entries if start <= e.ts < end]
        day_text = "\n".join(e.text for e in day_entries)

        for e in day_entries:
            kind = classifier.classify(e.text)
            if kind == "food":
                weekly["intakeKcal"][i] += extract_intake_kcal(e.text)
            elif kind == "training":
                weekly["burnKcal"][i] += extract_training_burn_kcal(e.text, body_weight_kg)
            weight = extract_weight(e.text)
            if weight is not None:
                weekly["weightKg"][i] = weight

        for r in recurring:
            if r.weekday != day.weekday() or is_recurring_cancelled(day_text, r.activity):
                continue
            weekly["burnKcal"][i] += r.burn_per_session
    return weekly


def _snapshot_for_date(days: Mapping[str, Mapping[str, Any]], date_iso: str, timezone: str) -> Mapping[str, Any] | None:
    snap = days.get(f"{date_iso}@{timezone}")
    if snap is not None:
        return snap
    for day_id, candidate in days.items():
        if date_of_day_id(day_id) == date_iso:
            return candidate
    return None


def apply_history_snapshots(weekly: dict[str, Any], days: Mapping[str, Mapping[str, Any]], timezone: str) -> None:
    for i, date_iso in enumerate(weekly["dates"]):
        snap = _snapshot_for_date(days, date_iso, timezone)
        if snap is None:
            continue
        entries = entries_of(snap)
        intake = compute_day_food_totals(entries).intake_kcal if entries else int(snap.get("kcalIn") or 0)
        if intake > 0:
            weekly["intakeKcal"][i] = intake
        burn = int(snap.get("kcalOut") or 0)
        if burn > 0:
            weekly["burnKcal"][i] = burn
        if snap.get("weightKg"):
            weekly["weightKg"][i] = snap["weightKg"]


def _today_signal(plan: Mapping[str, Any], today_iso: str) -> Mapping[str, Any] | None:
    today = (plan.get("signals") or {}).get("today")
    if not today:
        return None
    date_iso = today.get("dateISO") or (date_of_day_id(today["dayId"]) if today.get("dayId") else None)
    return today if date_iso == today_iso else None


def apply_today_signals(weekly: dict[str, Any], today: Mapping[str, Any] | None, body_weight_kg: float) -> None:
    """Max-merge live signals into today's slot; never lowers a heuristic estimate."""
    if not today:
        return
    i = TODAY_INDEX
    entries = entries_of(today)
    intake = compute_day_food_totals(entries).intake_kcal if entries else int(today.get("intakeKcal") or 0)
    if intake > 0:
        weekly["intakeKcal"][i] = max(weekly["intakeKcal"][i], intake)

    burn = int(today.get("burnKcal") or 0)
    if burn > 0:
        weekly["burnKcal"][i] = max(weekly["burnKcal"][i], burn)
    elif (today.get("activityMinutes") or 0) > 0:
        activities = today.get("activities") or []
        met = estimate_met(activities[0]) if activities else DEFAULT_MET
        weight = today.get("weightKg") or body_weight_kg
        inferred = round_half_up(met * weight * (today["activityMinutes"] / 60))
        weekly["burnKcal"][i] = max(weekly["burnKcal"][i], inferred)

    if today.get("weightKg"):
        weekly["weightKg"][i] = today["weightKg"]


def _latest_message_weight(entries: Sequence[UserEntry]) -> float | None:
    for e in reversed(entries):
        w = extract_weight(e.text)
        if w is not None:
            return w
    return None


def _old_weight_reference(entries: Sequence[UserEntry], window_start_ms: int) -> float | None:
    for e in entries:
        if e.ts < window_start_ms:
            continue
        w = extract_weight(e.text)
        if w is not None:
            return w
    return None


def _nutrition_projection(today: Mapping[str, Any] | None, target_kcal: int | None, profile: Mapping[str, Any], goals: Mapping[str, Any]) -> dict[str, Any]:
    entries = resolve_effective_entries(entries_of(today))
    totals = compute_day_food_totals(entries)
    weight = profile.get("weightKg")
    targets = None
    if target_kcal is not None and weight:
        targets = macros_for_targets(target_kcal, weight, goal_from_plan_goals(goals, weight)).to_dict()
    return {
        **totals.to_dict(),
        "estimatedEntries": sum(1 for e in entries if e.is_estimated),
        "entries": [e.to_dict() for e in entries],
        "targets": targets,
    }


def build_dashboard_metrics(
    events: Iterable[Mapping[str, Any]],
    plan: Mapping[str, Any] | None = None,
    now: dt.datetime | None = None,
    *,
    classifier: MessageClassifier | None = None,
) -> dict[str, Any]:
    """Read-only projection of the event log and coach plan into daily/weekly/nutrition metrics."""
    now = as_aware(now)
    plan = normalize_coach_plan(plan) if plan is not None else None
    plan = plan or {}
    classifier = classifier or default_classifier
    tz = resolve_timezone((plan.get("time") or {}).get("timezone"))

    entries = user_entries(events)
    today_date = local_date(now, tz)
    dates = [today_date - dt.timedelta(days=WINDOW_DAYS - 1 - i) for i in range(WINDOW_DAYS)]
    today_signal = _today_signal(plan, today_date.isoformat())

    latest_weight = (
        (today_signal or {}).get("weightKg")
        or _latest_message_weight(entries)
        or (plan.get("physicalProfile") or {}).get("weightKg")
    )
    profile = merge_inferred_profile(plan.get("physicalProfile"), entries, latest_weight)
    body_weight = profile.get("weightKg") or DEFAULT_BODY_WEIGHT_KG

    recurring = routines_as_recurring((plan.get("routines") or {}).get("weekly") or [], body_weight)
    planned = {(r.weekday, r.activity.name) for r in recurring}
    for r in extract_recurring_training((e.text for e in entries), body_weight):
        if (r.weekday, r.activity.name) not in planned:
            recurring.append(r)

    weekly = build_weekly_series(entries, recurring, dates, tz, classifier, body_weight)
    apply_history_snapshots(weekly, (plan.get("history") or {}).get("days") or {}, tz)
    apply_today_signals(weekly, today_signal, body_weight)

    if latest_weight is None:
        latest_weight = next((w for w in reversed(weekly["weightKg"]) if w is not None), None)
    start_ms, _ = day_bounds_ms(today_date - dt.timedelta(days=WEIGHT_DELTA_DAYS), tz)
    old_weight = _old_weight_reference(entries, start_ms)
    delta = round(latest_weight - old_weight, 1) if latest_weight is not None and old_weight is not None else None

    meaningful = has_meaningful_data(profile)
    energy = estimate_energy_model(profile)
    today_intake = weekly["intakeKcal"][TODAY_INDEX]
    today_burn = weekly["burnKcal"][TODAY_INDEX]
    target = None
    if meaningful:
        target = max(max(MIN_DAILY_TARGET_KCAL, energy.tdee_kcal + today_burn), today_intake)

    daily = {
        "dateISO": today_date.isoformat(),
        "intakeKcal": today_intake,
        "targetKcal": target,
        "basalKcal": energy.basal_kcal if meaningful else None,
        "tdeeKcal": energy.tdee_kcal if meaningful else None,
        "burnKcal": today_burn,
        "lastWeightKg": latest_weight,
        "weightDeltaKg30d": delta,
        "confidence": energy.confidence if meaningful else "none",
        "energyMethod": energy.method if meaningful else None,
    }
    return {
        "daily": daily,
        "weekly": weekly,
        "nutrition": _nutrition_projection(today_signal, target, profile, plan.get("goals") or {}),
        "profile": profile,
    }
