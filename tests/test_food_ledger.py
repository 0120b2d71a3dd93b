from __future__ import annotations

import pytest

from liacoach.food_catalog import find_catalog_item_by_name
from liacoach.food_ledger import (
    FoodEntry,
    compute_day_food_totals,
    compute_from_catalog,
    find_last_matching_entry,
    parse_entries,
    resolve_effective_entries,
    round1,
    round_half_up,
)


def _entry(entry_id: str, created_at: str, *, kcal: int = 100, name: str = "pollo", linked: str | None = None) -> FoodEntry:
    return FoodEntry(
        id=entry_id,
        name=name,
        grams=100,
        kcal=kcal,
        protein_g=10,
        carbs_g=5,
        fat_g=2.5,
        is_estimated=False,
        source="user",
        created_at=created_at,
        linked_entry_id=linked,
    )


def test_compute_from_catalog_scales_per_100g() -> None:
    egg = find_catalog_item_by_name("huevo")
    e = compute_from_catalog(egg, 120, source="user", is_estimated=False, created_at="2026-02-16T10:00:00.000Z")
    assert e.grams == 120
    assert e.kcal == 172
    assert e.protein_g == 15.1
    assert e.carbs_g == 0.8
    assert e.fat_g == 11.4
    assert e.id.startswith("food_")


def test_compute_from_catalog_rejects_non_positive_grams() -> None:
    rice = find_catalog_item_by_name("arroz")
    with pytest.raises(ValueError):
        compute_from_catalog(rice, 0, source="user", is_estimated=False, created_at="2026-02-16T10:00:00.000Z")


def test_rounding_is_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(171.6) == 172
    assert round1(0.25) == 0.3


def test_correction_chain_keeps_latest_version_only() -> None:
    a = _entry("a", "2026-02-16T08:00:00.000Z", kcal=100)
    b = _entry("b", "2026-02-16T09:00:00.000Z", kcal=150, linked="a")
    c = _entry("c", "2026-02-16T10:00:00.000Z", kcal=200, linked="b")
    d = _entry("d", "2026-02-16T09:30:00.000Z", kcal=50, name="pan")

    effective = resolve_effective_entries([c, a, d, b])
    assert [e.id for e in effective] == ["d", "c"]

    totals = compute_day_food_totals([a, b, c, d])
    assert totals.intake_kcal == 250
    assert totals.meals_count == 2
    assert totals.protein_g == 20
    assert totals.fat_g == 5


def test_cyclic_links_terminate() -> None:
    x = _entry("x", "2026-02-16T08:00:00.000Z", linked="y")
    y = _entry("y", "2026-02-16T09:00:00.000Z", linked="x")
    effective = resolve_effective_entries([x, y])
    assert 1 <= len(effective) <= 2


def test_chain_at_depth_bound_resolves_to_latest_entry() -> None:
    chain = [_entry("e0", "2026-02-16T08:00:00.000Z")]
    for i in range(1, 11):
        chain.append(_entry(f"e{i}", f"2026-02-16T08:{i:02d}:00.000Z", kcal=100 + i, linked=f"e{i - 1}"))

    effective = resolve_effective_entries(reversed(chain))
    assert [e.id for e in effective] == ["e10"]
    assert compute_day_food_totals(chain).intake_kcal == 110


def test_resolve_effective_entries_is_idempotent() -> None:
    a = _entry("a", "2026-02-16T08:00:00.000Z")
    b = _entry("b", "2026-02-16T09:00:00.000Z", linked="a")
    c = _entry("c", "2026-02-16T09:30:00.000Z", name="pan")
    x = _entry("x", "2026-02-16T10:00:00.000Z", linked="y")
    y = _entry("y", "2026-02-16T11:00:00.000Z", linked="x")

    once = resolve_effective_entries([y, b, x, c, a])
    assert resolve_effective_entries(once) == once


def test_link_to_missing_entry_is_its_own_root() -> None:
    orphan = _entry("o", "2026-02-16T08:00:00.000Z", linked="gone")
    assert resolve_effective_entries([orphan]) == [orphan]


def test_find_last_matching_entry() -> None:
    a = _entry("a", "2026-02-16T08:00:00.000Z", name="pollo")
    b = _entry("b", "2026-02-16T09:00:00.000Z", name="arroz")
    assert find_last_matching_entry([a, b]).id == "b"
    assert find_last_matching_entry([a, b], "Pollo").id == "a"
    assert find_last_matching_entry([a, b], "leche") is None
    assert find_last_matching_entry([]) is None


def test_entry_dict_uses_camel_case_keys() -> None:
    e = _entry("a", "2026-02-16T08:00:00.000Z", linked="z")
    d = e.to_dict()
    assert d["proteinG"] == 10
    assert d["isEstimated"] is False
    assert d["linkedEntryId"] == "z"
    assert d["createdAt"] == "2026-02-16T08:00:00.000Z"
    assert FoodEntry.from_dict(d) == e


def test_parse_entries_drops_malformed() -> None:
    good = _entry("a", "2026-02-16T08:00:00.000Z").to_dict()
    raw = [good, {"id": "b", "name": "pan"}, "nope", {**good, "id": "c", "grams": -5}]
    assert [e.id for e in parse_entries(raw)] == ["a"]
    assert parse_entries({"not": "a list"}) == []
