from __future__ import annotations

import copy
import datetime as dt
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from liacoach.coach_plan import (
    SCHEMA_VERSION,
    apply_ledger_totals,
    create_default_coach_plan,
    entries_of,
    fresh_today,
    has_signals,
    merge_coach_plan,
    normalize_coach_plan,
    snapshot_from_today,
)
from liacoach.config import settings
from liacoach.days import build_day_id, date_of_day_id, day_id_for_date, iso_now, resolve_timezone, week_start_iso
from liacoach.food_ledger import FoodEntry
from liacoach.food_parser import ParsedFoodMutation
from liacoach.validators import union_recent


logger = logging.getLogger(__name__)


class CoachPlanStorage(Protocol):
    """One opaque persisted slot for a single user's plan."""

    def load(self) -> Any | None: ...

    def save(self, plan: dict[str, Any]) -> None: ...


class InMemoryPlanStorage:
    def __init__(self, initial: Any | None = None):
        self.data = copy.deepcopy(initial)
        self.saves = 0

    def load(self) -> Any | None:
        return copy.deepcopy(self.data)

    def save(self, plan: dict[str, Any]) -> None:
        self.data = copy.deepcopy(plan)
        self.saves += 1


@dataclass(frozen=True)
class DayRotation:
    plan: dict[str, Any]
    rotated: bool
    previous_day_id: str | None = None


class CoachPlanStore:
    """Sole writer of the coach plan; everything else reads snapshots or submits patches."""

    def __init__(self, storage: CoachPlanStorage | None):
        # storage is None where no persistence context exists
        self.storage = storage

    def get_coach_plan(self) -> dict[str, Any] | None:
        if self.storage is None:
            return None
        try:
            raw = self.storage.load()
        except Exception as e:
            logger.warning("Coach plan load failed: %s: %s", type(e).__name__, e)
            return None
        if raw is None:
            return None
        plan = normalize_coach_plan(raw)
        if plan is None:
            logger.warning("Discarding persisted coach plan of type %s", type(raw).__name__)
        return plan

    def save_coach_plan(self, plan: dict[str, Any]) -> None:
        if self.storage is None:
            return
        try:
            self.storage.save(plan)
        except Exception as e:
            # last-write-wins slot; a failed write only loses this update
            logger.warning("Coach plan save failed: %s: %s", type(e).__name__, e)

    def upsert_coach_plan(self, partial: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(partial, Mapping):
            raise TypeError(f"partial must be a mapping, got {type(partial).__name__}")
        current = self.get_coach_plan() or create_default_coach_plan()
        merged = merge_coach_plan(current, partial)
        self.save_coach_plan(merged)
        return merged

    def ensure_current_day(self, now: dt.datetime | None = None, timezone: str | None = None) -> DayRotation:
        plan = self.get_coach_plan() or create_default_coach_plan()
        time = plan.get("time")
        tz = resolve_timezone(timezone, (time or {}).get("timezone"))
        expected = build_day_id(now, tz)
        stamp = iso_now(now)

        if not time:
            plan["time"] = {"current_day_id": expected, "last_rotation_iso": stamp, "timezone": tz}
            today = plan.setdefault("signals", {}).get("today") or {}
            held = today.get("dateISO") or (date_of_day_id(today["dayId"]) if today.get("dayId") else None)
            if today and held in (None, date_of_day_id(expected)):
                today["dayId"] = expected
                today["dateISO"] = date_of_day_id(expected)
            else:
                if today:
                    # unclocked plan still holding an older day
                    self._archive_day(plan, today, today.get("dayId") or day_id_for_date(held, tz), now)
                plan["signals"]["today"] = fresh_today(expected, now)
            self.save_coach_plan(plan)
            return DayRotation(plan=plan, rotated=False)

        previous = time["current_day_id"]
        if previous == expected:
            return DayRotation(plan=plan, rotated=False)

        today = (plan.get("signals") or {}).get("today") or {}
        self._archive_day(plan, today, today.get("dayId") or previous, now)

        plan.setdefault("signals", {})["today"] = fresh_today(expected, now)
        plan["time"] = {"current_day_id": expected, "last_rotation_iso": stamp, "timezone": tz}
        version = (plan.get("metadata") or {}).get("version") or SCHEMA_VERSION
        plan["metadata"] = {"version": max(int(version), SCHEMA_VERSION)}
        self.save_coach_plan(plan)
        logger.info("Rotated coach day %s -> %s", previous, expected)
        return DayRotation(plan=plan, rotated=True, previous_day_id=previous)

    @staticmethod
    def _archive_day(plan: dict[str, Any], today: Mapping[str, Any], day_id: str, now: dt.datetime | None) -> None:
        """Close `today` into history.days; a day that never produced signals leaves no snapshot."""
        days = plan.setdefault("history", {}).setdefault("days", {})
        existing = days.get(day_id)
        if existing is None and not has_signals(today):
            return
        days[day_id] = snapshot_from_today(today, day_id, now, existing)

    def record_food_mutation(self, mutation: ParsedFoodMutation, now: dt.datetime | None = None) -> dict[str, Any]:
        """Append a parsed add/correct to the day it targets and refresh that day's totals."""
        plan = self.get_coach_plan() or create_default_coach_plan()
        if mutation.kind == "none" or mutation.entry is None or mutation.day is None:
            return plan

        entry = mutation.entry.to_dict()
        stamp = iso_now(now)
        current_day_id = (plan.get("time") or {}).get("current_day_id")
        day_id = mutation.day.day_id

        if day_id == current_day_id:
            today = plan.setdefault("signals", {}).get("today") or fresh_today(day_id, now)
            today["foodEntries"] = [*(today.get("foodEntries") or []), entry]
            today["foods"] = union_recent(list(today.get("foods") or []), [entry["name"]], settings.recent_items_cap)
            today["updatedAtISO"] = stamp
            apply_ledger_totals(today, snapshot=False)
            plan["signals"]["today"] = today
        else:
            days = plan.setdefault("history", {}).setdefault("days", {})
            snap = days.get(day_id) or {
                "dayId": day_id,
                "dateISO": mutation.day.date_iso,
                "kcalIn": 0,
                "kcalOut": 0,
                "balance": 0,
                "closed": False,
                "createdAtISO": stamp,
            }
            if snap.get("closed"):
                snap["autoReopened"] = True
            snap["foodEntries"] = [*(snap.get("foodEntries") or []), entry]
            snap["foods"] = union_recent(list(snap.get("foods") or []), [entry["name"]], settings.recent_items_cap)
            snap["updatedAtISO"] = stamp
            apply_ledger_totals(snap, snapshot=True)
            days[day_id] = snap

        self.save_coach_plan(plan)
        return plan

    def save_weekly_plan(self, content: str, now: dt.datetime | None = None) -> dict[str, Any]:
        plan = self.get_coach_plan()
        tz = resolve_timezone(((plan or {}).get("time") or {}).get("timezone"))
        return self.upsert_coach_plan(
            {
                "weeklyPlan": {
                    "weekStartISO": week_start_iso(now, tz),
                    "content": content.strip(),
                    "generatedAtISO": iso_now(now),
                }
            }
        )


def entries_by_day_id(plan: Mapping[str, Any] | None) -> dict[str, list[FoodEntry]]:
    """Food entries per day id: closed history plus the live day."""
    if not plan:
        return {}
    out: dict[str, list[FoodEntry]] = {}
    for day_id, snap in ((plan.get("history") or {}).get("days") or {}).items():
        entries = entries_of(snap)
        if entries:
            out[day_id] = entries
    today = (plan.get("signals") or {}).get("today") or {}
    if today.get("dayId"):
        out[today["dayId"]] = [*out.get(today["dayId"], []), *entries_of(today)]
    return out
