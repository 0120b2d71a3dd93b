from __future__ import annotations

import math
import secrets
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from liacoach.food_catalog import FoodCatalogItem
from liacoach.textnorm import normalize
from liacoach.validators import clean_str, to_number


FoodEntrySource = Literal["user", "label", "database", "llm"]
FOOD_ENTRY_SOURCES: tuple[str, ...] = ("user", "label", "database", "llm")

MAX_CORRECTION_DEPTH = 10


@dataclass(frozen=True)
class FoodEntry:
    id: str
    name: str
    grams: float
    kcal: int
    protein_g: float
    carbs_g: float
    fat_g: float
    is_estimated: bool
    source: FoodEntrySource
    created_at: str
    assumption_note: str | None = None
    linked_entry_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "grams": self.grams,
            "kcal": self.kcal,
            "proteinG": self.protein_g,
            "carbsG": self.carbs_g,
            "fatG": self.fat_g,
            "isEstimated": self.is_estimated,
            "source": self.source,
            "createdAt": self.created_at,
        }
        if self.assumption_note:
            out["assumptionNote"] = self.assumption_note
        if self.linked_entry_id:
            out["linkedEntryId"] = self.linked_entry_id
        return out

    @classmethod
    def from_dict(cls, raw: Any) -> FoodEntry | None:
        """Parse a persisted entry; None when the shape is not an entry."""
        if isinstance(raw, FoodEntry):
            return raw
        if not isinstance(raw, Mapping):
            return None
        entry_id = clean_str(raw.get("id"))
        name = clean_str(raw.get("name"))
        created_at = clean_str(raw.get("createdAt"))
        grams = to_number(raw.get("grams"))
        kcal = to_number(raw.get("kcal"))
        if not entry_id or not name or not created_at or grams is None or grams <= 0 or kcal is None or kcal < 0:
            return None
        source = raw.get("source")
        return cls(
            id=entry_id,
            name=name,
            grams=grams,
            kcal=int(round(kcal)),
            protein_g=to_number(raw.get("proteinG")) or 0.0,
            carbs_g=to_number(raw.get("carbsG")) or 0.0,
            fat_g=to_number(raw.get("fatG")) or 0.0,
            is_estimated=raw.get("isEstimated") is True,
            source=source if source in FOOD_ENTRY_SOURCES else "database",
            created_at=created_at,
            assumption_note=clean_str(raw.get("assumptionNote")),
            linked_entry_id=clean_str(raw.get("linkedEntryId")),
        )


@dataclass(frozen=True)
class DayFoodTotals:
    intake_kcal: int
    protein_g: float
    carbs_g: float
    fat_g: float
    meals_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "intakeKcal": self.intake_kcal,
            "proteinG": self.protein_g,
            "carbsG": self.carbs_g,
            "fatG": self.fat_g,
            "mealsCount": self.meals_count,
        }


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def round1(x: float) -> float:
    return math.floor(x * 10 + 0.5) / 10


def new_food_entry_id() -> str:
    return f"food_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def parse_entries(raw: Any) -> list[FoodEntry]:
    """Drop anything that is not a well-formed entry."""
    if not isinstance(raw, list):
        return []
    out: list[FoodEntry] = []
    for item in raw:
        e = FoodEntry.from_dict(item)
        if e is not None:
            out.append(e)
    return out


def compute_from_catalog(
    item: FoodCatalogItem,
    grams: float,
    *,
    source: FoodEntrySource,
    is_estimated: bool,
    created_at: str,
    assumption_note: str | None = None,
    linked_entry_id: str | None = None,
    entry_id: str | None = None,
) -> FoodEntry:
    if grams <= 0:
        raise ValueError(f"grams must be positive, got {grams!r}")
    factor = grams / 100.0
    per = item.per_100g
    return FoodEntry(
        id=entry_id or new_food_entry_id(),
        name=item.name,
        grams=round1(grams),
        kcal=round_half_up(per.kcal * factor),
        protein_g=round1(per.protein_g * factor),
        carbs_g=round1(per.carbs_g * factor),
        fat_g=round1(per.fat_g * factor),
        is_estimated=is_estimated,
        source=source,
        created_at=created_at,
        assumption_note=assumption_note or None,
        linked_entry_id=linked_entry_id or None,
    )


def _resolve_root_id(entry: FoodEntry, by_id: Mapping[str, FoodEntry]) -> str:
    cursor = entry
    depth = 0
    while cursor.linked_entry_id and depth < MAX_CORRECTION_DEPTH:
        parent = by_id.get(cursor.linked_entry_id)
        if parent is None:
            break
        cursor = parent
        depth += 1
    return cursor.id


def resolve_effective_entries(entries: Iterable[FoodEntry]) -> list[FoodEntry]:
    """Latest entry per correction chain, oldest first."""
    ordered = sorted(entries, key=lambda e: e.created_at)
    by_id: dict[str, FoodEntry] = {}
    for e in ordered:
        by_id.setdefault(e.id, e)

    latest_by_root: dict[str, FoodEntry] = {}
    for e in ordered:
        latest_by_root[_resolve_root_id(e, by_id)] = e
    return sorted(latest_by_root.values(), key=lambda e: e.created_at)


def compute_day_food_totals(entries: Iterable[FoodEntry]) -> DayFoodTotals:
    effective = resolve_effective_entries(entries)
    return DayFoodTotals(
        intake_kcal=sum(e.kcal for e in effective),
        protein_g=round1(sum(e.protein_g for e in effective)),
        carbs_g=round1(sum(e.carbs_g for e in effective)),
        fat_g=round1(sum(e.fat_g for e in effective)),
        meals_count=len(effective),
    )


def find_last_matching_entry(entries: Iterable[FoodEntry], name_like: str | None = None) -> FoodEntry | None:
    newest_first = list(reversed(resolve_effective_entries(entries)))
    if not name_like:
        return newest_first[0] if newest_first else None
    target = normalize(name_like)
    for e in newest_first:
        if target in normalize(e.name):
            return e
    return None
