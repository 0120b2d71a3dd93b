from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from liacoach.food_ledger import round_half_up


Sex = Literal["male", "female"]
ActivityLevel = Literal["sedentary", "light", "moderate", "very"]
Confidence = Literal["high", "medium", "low", "none"]
Goal = Literal["loss", "maintain", "gain"]

DEFAULT_BASAL_KCAL = 1800
DEFAULT_ACTIVITY_FACTOR = 1.35
KCAL_PER_KG_HEURISTIC = 22
MIN_DAILY_TARGET_KCAL = 1200

ACTIVITY_FACTORS: dict[str, float] = {
    "sedentary": 1.2,
    "light": 1.375,
    "moderate": 1.55,
    "very": 1.725,
}


@dataclass(frozen=True)
class EnergyModel:
    basal_kcal: int
    tdee_kcal: int
    confidence: Confidence
    method: str


@dataclass(frozen=True)
class MacroTargets:
    calories: int
    protein_g: int
    fat_g: int
    carbs_g: int

    def to_dict(self) -> dict[str, int]:
        return {"kcal": self.calories, "proteinG": self.protein_g, "fatG": self.fat_g, "carbsG": self.carbs_g}


def activity_factor(level: str | None) -> float:
    if level is None:
        return DEFAULT_ACTIVITY_FACTOR
    return ACTIVITY_FACTORS.get(level, DEFAULT_ACTIVITY_FACTOR)


def bmr_cunningham(weight_kg: float, body_fat_pct: float) -> float:
    # RMR = 500 + 22 * fat-free mass
    ffm = weight_kg * (1 - body_fat_pct / 100)
    return 500 + 22 * ffm


def bmr_mifflin_st_jeor(sex: Sex, age: int, height_cm: float, weight_kg: float) -> float:
    # BMR = 10W + 6.25H - 5A + s
    s = 5 if sex == "male" else -161
    return 10 * weight_kg + 6.25 * height_cm - 5 * age + s


def has_cunningham_inputs(profile: Mapping[str, Any]) -> bool:
    w = profile.get("weightKg")
    bf = profile.get("bodyFatPct")
    return bool(w and w > 0 and bf is not None and 0 < bf < 70)


def has_mifflin_inputs(profile: Mapping[str, Any]) -> bool:
    return bool(profile.get("sex") and profile.get("ageYears") and profile.get("heightCm") and profile.get("weightKg"))


def has_meaningful_data(profile: Mapping[str, Any]) -> bool:
    # intent phrases alone never produce an energy target
    return has_cunningham_inputs(profile) or has_mifflin_inputs(profile)


def estimate_energy_model(profile: Mapping[str, Any]) -> EnergyModel:
    """Cunningham > Mifflin-St Jeor > kcal/kg heuristic > generic default."""
    factor = activity_factor(profile.get("activityLevel"))

    if has_cunningham_inputs(profile):
        basal = round_half_up(bmr_cunningham(profile["weightKg"], profile["bodyFatPct"]))
        return EnergyModel(basal, round_half_up(basal * factor), "high", "cunningham")

    if has_mifflin_inputs(profile):
        basal = round_half_up(
            bmr_mifflin_st_jeor(
                sex=profile["sex"],
                age=profile["ageYears"],
                height_cm=profile["heightCm"],
                weight_kg=profile["weightKg"],
            )
        )
        return EnergyModel(basal, round_half_up(basal * factor), "high", "mifflin_st_jeor")

    weight = profile.get("weightKg")
    if weight and weight > 0:
        basal = round_half_up(weight * KCAL_PER_KG_HEURISTIC)
        return EnergyModel(basal, round_half_up(basal * factor), "medium", "weight_heuristic")

    return EnergyModel(DEFAULT_BASAL_KCAL, round_half_up(DEFAULT_BASAL_KCAL * factor), "low", "default")


def goal_from_plan_goals(goals: Mapping[str, Any] | None, weight_kg: float | None) -> Goal:
    weight_goal = (goals or {}).get("weight")
    if isinstance(weight_goal, Mapping) and weight_kg:
        target = weight_goal.get("targetKg")
        if isinstance(target, (int, float)):
            if target < weight_kg - 0.5:
                return "loss"
            if target > weight_kg + 0.5:
                return "gain"
    return "maintain"


def macros_for_targets(calories: int, weight_kg: float, goal: Goal) -> MacroTargets:
    # protein: 1.6g/kg (loss/maintain), 1.8g/kg (gain)
    # fat: 0.8g/kg
    # carbs: remainder
    protein = round_half_up((1.8 if goal == "gain" else 1.6) * weight_kg)
    fat = round_half_up(0.8 * weight_kg)

    kcal_pf = protein * 4 + fat * 9
    carbs_kcal = max(calories - kcal_pf, 0)
    carbs = round_half_up(carbs_kcal / 4)
    return MacroTargets(calories=calories, protein_g=protein, fat_g=fat, carbs_g=carbs)
