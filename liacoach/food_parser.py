from __future__ import annotations

import datetime as dt
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from liacoach.days import as_aware, date_of_day_id, day_id_for_date, iso_now, local_date, resolve_timezone
from liacoach.food_catalog import FoodCatalogItem, find_catalog_item_by_name, find_catalog_item_by_text
from liacoach.food_ledger import (
    FoodEntry,
    compute_from_catalog,
    find_last_matching_entry,
)
from liacoach.textnorm import normalize, to_float


MutationKind = Literal["none", "add", "correct"]

# Named weekdays only map to a past date after the user confirms it.
WEEKDAY_REQUIRES_CONFIRMATION = True

_CORRECTION_RE = re.compile(r"\b(corrige|corregir|no era|eran|fueron|me equivoque|pon)\b")
_YESTERDAY_RE = re.compile(r"\bayer\b")
_GRAMS_RE = re.compile(r"\b(\d{1,4}(?:[.,]\d+)?)\s*g(?:r|ramos?)?\b")
_UNITS_RE = re.compile(r"\b(\d{1,2})\s*(unidad|unidades|huevo|huevos|platano|platanos|banana|bananas)\b")
_DATE_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?\b")

# Monday = 0, as datetime.date.weekday()
_WEEKDAYS: tuple[tuple[str, int], ...] = (
    ("lunes", 0),
    ("martes", 1),
    ("miercoles", 2),
    ("jueves", 3),
    ("viernes", 4),
    ("sabado", 5),
    ("domingo", 6),
)


@dataclass(frozen=True)
class DayContext:
    day_id: str
    date_iso: str
    is_retroactive: bool
    requires_confirmation: bool = False
    confirmation_label: str | None = None


@dataclass(frozen=True)
class ParsedFoodMutation:
    kind: MutationKind
    day: DayContext | None = None
    entry: FoodEntry | None = None
    linked_entry_id: str | None = None


NO_MUTATION = ParsedFoodMutation(kind="none")


def parse_food_mutation(
    text: str,
    *,
    timezone: str,
    current_day_id: str,
    now: dt.datetime | None = None,
    existing_entries_by_day_id: Mapping[str, Sequence[FoodEntry]] | None = None,
) -> ParsedFoodMutation:
    now = as_aware(now)
    normalized = normalize(text)
    if not normalized:
        return NO_MUTATION

    tz = resolve_timezone(timezone)
    day = resolve_day_context(normalized, current_day_id=current_day_id, timezone=tz, now=now)
    is_correction = bool(_CORRECTION_RE.search(normalized))
    item = find_catalog_item_by_text(normalized)
    grams_explicit = extract_grams(normalized)
    units = extract_units(normalized)
    created_at = iso_now(now)

    if item is None and not is_correction:
        return NO_MUTATION

    if is_correction:
        day_entries = list((existing_entries_by_day_id or {}).get(day.day_id, ()))
        target = find_last_matching_entry(day_entries, item.name if item else None)
        if target is None:
            return NO_MUTATION
        base = item or find_catalog_item_by_name(target.name)
        if base is None:
            return NO_MUTATION
        explicit = grams_explicit is not None or (units is not None and item is not None)
        if grams_explicit is not None:
            grams = grams_explicit
        elif units is not None and item is not None:
            grams = units * resolve_unit_grams(item, normalized)
        else:
            grams = target.grams
        entry = compute_from_catalog(
            base,
            grams,
            source="user" if explicit else "database",
            is_estimated=not explicit,
            assumption_note=None if explicit else f"ajuste sobre {base.name} con porcion previa",
            linked_entry_id=target.id,
            created_at=created_at,
        )
        return ParsedFoodMutation(kind="correct", day=day, entry=entry, linked_entry_id=target.id)

    if item is None:
        return NO_MUTATION
    if grams_explicit is not None:
        grams = grams_explicit
    elif units is not None:
        grams = units * resolve_unit_grams(item, normalized)
    else:
        grams = item.default_serving_grams
    assumed = grams_explicit is None and units is None
    entry = compute_from_catalog(
        item,
        grams,
        source="database" if assumed else "user",
        is_estimated=assumed,
        assumption_note=f"{item.name} mediano ~{item.default_serving_grams:g}g" if assumed else None,
        created_at=created_at,
    )
    return ParsedFoodMutation(kind="add", day=day, entry=entry)


def merge_food_entries(entries: Sequence[FoodEntry], mutation: ParsedFoodMutation) -> list[FoodEntry]:
    if mutation.kind == "none" or mutation.entry is None:
        return list(entries)
    return [*entries, mutation.entry]


def resolve_day_context(normalized: str, *, current_day_id: str, timezone: str, now: dt.datetime) -> DayContext:
    today = local_date(now, timezone)

    if _YESTERDAY_RE.search(normalized):
        date_iso = (today - dt.timedelta(days=1)).isoformat()
        return DayContext(day_id=day_id_for_date(date_iso, timezone), date_iso=date_iso, is_retroactive=True)

    weekday = extract_weekday(normalized)
    if weekday is not None:
        diff = (today.weekday() - weekday) % 7 or 7
        date_iso = (today - dt.timedelta(days=diff)).isoformat()
        return DayContext(
            day_id=day_id_for_date(date_iso, timezone),
            date_iso=date_iso,
            is_retroactive=True,
            requires_confirmation=WEEKDAY_REQUIRES_CONFIRMATION,
            confirmation_label=date_iso,
        )

    explicit = extract_explicit_date(normalized, today)
    current_date = date_of_day_id(current_day_id)
    if explicit:
        return DayContext(
            day_id=day_id_for_date(explicit, timezone),
            date_iso=explicit,
            is_retroactive=explicit != current_date,
        )

    return DayContext(day_id=current_day_id, date_iso=current_date, is_retroactive=False)


def extract_weekday(normalized: str) -> int | None:
    for name, idx in _WEEKDAYS:
        if re.search(rf"\b{name}\b", normalized):
            return idx
    return None


def extract_grams(normalized: str) -> float | None:
    m = _GRAMS_RE.search(normalized)
    if not m:
        return None
    v = to_float(m.group(1))
    return v if v > 0 else None


def extract_units(normalized: str) -> int | None:
    m = _UNITS_RE.search(normalized)
    if not m:
        return None
    v = int(m.group(1))
    return v if v > 0 else None


def resolve_unit_grams(item: FoodCatalogItem, normalized: str) -> float:
    for unit, grams in item.units.items():
        if unit in normalized:
            return grams
    return item.default_serving_grams


def extract_explicit_date(normalized: str, today: dt.date) -> str | None:
    m = _DATE_RE.search(normalized)
    if not m:
        return None
    dd, mm = int(m.group(1)), int(m.group(2))
    yy = int(m.group(3)) if m.group(3) else today.year
    yyyy = 2000 + yy if yy < 100 else yy
    try:
        return dt.date(yyyy, mm, dd).isoformat()
    except ValueError:
        return None
