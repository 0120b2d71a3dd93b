from __future__ import annotations

import re
from typing import Literal, Protocol

from liacoach.textnorm import normalize, to_float


MessageType = Literal["food", "training", "weight", "unknown"]

WEIGHT_KEYWORDS = ("peso", "kg", "kilo", "kilos", "kilogramo", "kilogramos", "weigh", "weight")
TRAINING_KEYWORDS = (
    "entreno",
    "entrenamiento",
    "gym",
    "gimnasio",
    "correr",
    "running",
    "cardio",
    "fuerza",
    "pesas",
    "tenis",
    "caminar",
    "caminado",
    "camine",
    "paseo",
    "andar",
)
FOOD_KEYWORDS = (
    "comida",
    "comer",
    "comi",
    "comido",
    "ceno",
    "cenado",
    "almorce",
    "almorzado",
    "desayune",
    "desayunado",
    "desayuno",
    "almuerzo",
    "cena",
    "snack",
    "merienda",
    "proteina",
    "caloria",
    "kcal",
)

_WEIGHT_UNIT = r"(?:kg|kgs|kilo|kilos|kilogramo|kilogramos)"
_EXPLICIT_WEIGHT_RE = re.compile(rf"\bpeso(?:\s*(?:actual|hoy|de))?\s*[:=]?\s*(\d{{2,3}}(?:[.,]\d+)?)\s*{_WEIGHT_UNIT}\b")
_WEIGHT_RE = re.compile(rf"\b(\d{{2,3}}(?:[.,]\d+)?)\s*{_WEIGHT_UNIT}\b")

WEIGHT_MIN_KG = 35
WEIGHT_MAX_KG = 250


class MessageClassifier(Protocol):
    def classify(self, text: str) -> MessageType: ...


class KeywordClassifier:
    """Keyword heuristic; priority weight > training > food."""

    def classify(self, text: str) -> MessageType:
        lower = normalize(text)
        if not lower:
            return "unknown"
        if any(kw in lower for kw in WEIGHT_KEYWORDS):
            return "weight"
        if any(kw in lower for kw in TRAINING_KEYWORDS):
            return "training"
        if any(kw in lower for kw in FOOD_KEYWORDS):
            return "food"
        return "unknown"


default_classifier = KeywordClassifier()


def _weight_in_range(raw: str) -> float | None:
    v = to_float(raw)
    return v if WEIGHT_MIN_KG <= v <= WEIGHT_MAX_KG else None


def extract_weight(text: str) -> float | None:
    # a unit is required so "120 gr de pasta" never reads as a weight
    lower = normalize(text)
    if not lower:
        return None
    m = _EXPLICIT_WEIGHT_RE.search(lower)
    if m:
        v = _weight_in_range(m.group(1))
        if v is not None:
            return v
    m = _WEIGHT_RE.search(lower)
    if not m:
        return None
    return _weight_in_range(m.group(1))
