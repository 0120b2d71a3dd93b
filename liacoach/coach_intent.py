from __future__ import annotations

from liacoach.textnorm import normalize


WEEKLY_PLAN_PHRASES = (
    "plan semanal",
    "plan de la semana",
    "plan de comidas",
    "meal plan",
    "entrenamiento semanal",
    "training plan",
    "plan de entrenamiento",
)
CHECK_IN_PHRASES = ("check-in", "check in", "revision del dia")
COACH_PHRASES = (
    *WEEKLY_PLAN_PHRASES,
    *CHECK_IN_PHRASES,
    "peso",
    "calorias",
    "nutricion",
    "habitos",
    "objetivos de salud",
    "quiero mejorar mi alimentacion",
    "quiero perder peso",
    "quiero ganar musculo",
)


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    t = normalize(text)
    return bool(t) and any(p in t for p in phrases)


def detect_coach_intent(text: str) -> bool:
    """True when the message asks for coaching (plans, check-ins, weight, nutrition, habits)."""
    return _contains_any(text, COACH_PHRASES)


def is_check_in_request(text: str) -> bool:
    return _contains_any(text, CHECK_IN_PHRASES)


def is_weekly_plan_request(text: str) -> bool:
    return _contains_any(text, WEEKLY_PLAN_PHRASES)
