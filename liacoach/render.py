from __future__ import annotations

from collections.abc import Sequence

from tabulate import tabulate

from liacoach.food_ledger import DayFoodTotals, FoodEntry


def _num(x: float) -> str:
    return f"{x:g}"


def macros_line(kcal: int | None, p: float | None, c: float | None, f: float | None) -> str:
    if kcal is None:
        return "Macros: —"
    return f"Macros: {kcal} kcal | P {_num(p or 0)} g | C {_num(c or 0)} g | G {_num(f or 0)} g"


def totals_line(totals: DayFoodTotals) -> str:
    return macros_line(totals.intake_kcal, totals.protein_g, totals.carbs_g, totals.fat_g)


def food_entries_table(entries: Sequence[FoodEntry]) -> str:
    rows = []
    for e in entries:
        name = f"{e.name} (est.)" if e.is_estimated else e.name
        rows.append([name, _num(e.grams), e.kcal, _num(e.protein_g), _num(e.carbs_g), _num(e.fat_g)])

    return tabulate(
        rows,
        headers=["Alimento", "g", "kcal", "P", "C", "G"],
        tablefmt="github",
    )
