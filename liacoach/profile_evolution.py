from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from liacoach.chat_events import UserEntry
from liacoach.coach_plan import DEFAULT_COGNITIVE_PROFILE, clean_physical_profile
from liacoach.food_ledger import round_half_up
from liacoach.parsing import extract_weight
from liacoach.textnorm import normalize, to_float


_SEX_CHECKLIST_RE = re.compile(r"\b1\s*[:.)-]?\s*(hombre|masculino|varon|mujer|femenino)\b")
_AGE_CHECKLIST_RE = re.compile(r"\b2\s*[:.)-]?\s*(\d{2})\b")
_HEIGHT_CM_CHECKLIST_RE = re.compile(r"\b3\s*[:.)-]?\s*(1[4-9]\d|2[0-2]\d)\s*cm\b")
_HEIGHT_M_CHECKLIST_RE = re.compile(r"\b3\s*[:.)-]?\s*(1(?:[.,]\d{1,2})?)\s*m\b")
_WEIGHT_CHECKLIST_RE = re.compile(r"\b4\s*[:.)-]?\s*(\d{2,3}(?:[.,]\d+)?)\s*(?:kg|kgs|kilo|kilos|kilogramo|kilogramos)\b")
_ACTIVITY_CHECKLIST: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b5\s*[:.)-]?[^,\n]*\bsedentari"), "sedentary"),
    (re.compile(r"\b5\s*[:.)-]?[^,\n]*\bliger"), "light"),
    (re.compile(r"\b5\s*[:.)-]?[^,\n]*\bmoderad"), "moderate"),
    (re.compile(r"\b5\s*[:.)-]?[^,\n]*\b(alta|intensa|muy activa)"), "very"),
)

_HEIGHT_CM_RE = re.compile(r"\b(1[4-9]\d|2[0-2]\d)\s*cm\b")
_HEIGHT_M_RE = re.compile(r"\b(1(?:[.,]\d{1,2})?)\s*m\b")
_AGE_RE = re.compile(r"\b(\d{2})\s*anos\b")
_AGE_LABEL_RE = re.compile(r"\bedad\s*[:=]?\s*(\d{2})\b")
_BODY_FAT_RE = re.compile(r"\b(\d{1,2})\s*%(?:\s*(?:grasa|bf)\b)?")
_ACTIVITY_TEXT: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bsedentari"), "sedentary"),
    (re.compile(r"\b(ligera|ligero)\b"), "light"),
    (re.compile(r"\bmoderad"), "moderate"),
    (re.compile(r"\b(alta|intensa|muy activa)"), "very"),
)


def _last_match(rules: Sequence[tuple[re.Pattern[str], str]], text: str) -> str | None:
    # later rules win, so "muy activa" beats "ligera" in the same text
    found = None
    for pattern, value in rules:
        if pattern.search(text):
            found = value
    return found


def extract_profile_from_checklist(normalized: str) -> dict[str, Any]:
    """Answers to the numbered onboarding checklist: 1 sex, 2 age, 3 height, 4 weight, 5 activity."""
    out: dict[str, Any] = {}
    m = _SEX_CHECKLIST_RE.search(normalized)
    if m:
        out["sex"] = "female" if m.group(1) in ("mujer", "femenino") else "male"
    m = _AGE_CHECKLIST_RE.search(normalized)
    if m:
        out["ageYears"] = int(m.group(1))
    m = _HEIGHT_CM_CHECKLIST_RE.search(normalized)
    if m:
        out["heightCm"] = int(m.group(1))
    else:
        m = _HEIGHT_M_CHECKLIST_RE.search(normalized)
        if m:
            out["heightCm"] = round_half_up(to_float(m.group(1)) * 100)
    m = _WEIGHT_CHECKLIST_RE.search(normalized)
    if m:
        out["weightKg"] = to_float(m.group(1))
    level = _last_match(_ACTIVITY_CHECKLIST, normalized)
    if level:
        out["activityLevel"] = level
    return out


def extract_profile_from_text(normalized: str) -> dict[str, Any]:
    out: dict[str, Any] = {}
    m = _HEIGHT_CM_RE.search(normalized)
    if m:
        out["heightCm"] = int(m.group(1))
    else:
        m = _HEIGHT_M_RE.search(normalized)
        if m:
            out["heightCm"] = round_half_up(to_float(m.group(1)) * 100)
    m = _AGE_RE.search(normalized) or _AGE_LABEL_RE.search(normalized)
    if m:
        out["ageYears"] = int(m.group(1))
    if re.search(r"\b(mujer|femenino)\b", normalized):
        out["sex"] = "female"
    elif re.search(r"\b(hombre|masculino|varon)\b", normalized):
        out["sex"] = "male"
    level = _last_match(_ACTIVITY_TEXT, normalized)
    if level:
        out["activityLevel"] = level
    m = _BODY_FAT_RE.search(normalized)
    if m:
        out["bodyFatPct"] = int(m.group(1))
    return out


def merge_inferred_profile(
    physical_profile: Mapping[str, Any] | None,
    entries: Sequence[UserEntry],
    latest_weight: float | None,
) -> dict[str, Any]:
    """Fills missing fields only: newest message first, checklist answers before free text."""
    profile = dict(physical_profile or {})
    if not profile.get("weightKg") and latest_weight:
        profile["weightKg"] = latest_weight

    for entry in reversed(entries):
        normalized = normalize(entry.text)
        for source in (extract_profile_from_checklist(normalized), extract_profile_from_text(normalized)):
            for key, value in clean_physical_profile(source).items():
                if not profile.get(key):
                    profile[key] = value
    return profile


def evolve_physical_profile(profile: Mapping[str, Any] | None, text: str) -> dict[str, Any]:
    """Fill missing physical fields from one message; a reported weight always replaces the old one."""
    current = dict(profile or {})
    normalized = normalize(text)
    if not normalized:
        return current
    for source in (extract_profile_from_checklist(normalized), extract_profile_from_text(normalized)):
        for key, value in clean_physical_profile(source).items():
            if not current.get(key):
                current[key] = value
    weight = extract_weight(text)
    if weight is not None:
        current["weightKg"] = weight
    return current


# --- cognitive profile ---

_FORCE_TECHNICAL_RE = re.compile(r"\b(mas tecnico|ultra tecnico|tecnico)\b")
_FORCE_SIMPLER_RE = re.compile(r"\b(mas simple|hablame simple|explicalo simple|no entiendo|en cristiano)\b")
_ULTRA_SHORT_RE = re.compile(r"\bultra resumido\b")
_SERIOUS_RE = re.compile(r"\b(tono serio|serio)\b")
_HUMOR_RE = re.compile(r"\b(bromas|humor)\b")

_TECH_DELTAS: tuple[tuple[re.Pattern[str], int], ...] = (
    (re.compile(r"\b\d+(?:[.,]\d+)?\s?(?:kcal|cal|kg|g|ml|rpe|vo2|max|g/kg)\b|\b\d+(?:[.,]\d+)?\s?%"), 2),
    (re.compile(r"\b(mps|deficit calorico|fatiga central|neat|rpe|glucogeno|vo2max|periodizacion|volumen)\b"), 2),
    (re.compile(r"\b(por que|como funciona|evidencia|mecanismo|estudio|paper)\b"), 2),
    (re.compile(r"\b(mas tecnico|ultra tecnico|explicalo tecnico)\b"), 3),
    (re.compile(r"\b(mas simple|no entiendo|en cristiano|sin tecnicismos)\b"), -3),
)

LEVEL_MEDIO_SCORE = 5
LEVEL_TECNICO_SCORE = 12
LEVEL_ULTRA_SCORE = 20
OVERRIDE_SCORE_STEP = 4

_LEVELS = ("basico", "medio", "tecnico", "ultra")


def parse_style_override(normalized: str) -> dict[str, Any]:
    force_technical = bool(_FORCE_TECHNICAL_RE.search(normalized))
    force_simpler = bool(_FORCE_SIMPLER_RE.search(normalized))
    ultra_short = bool(_ULTRA_SHORT_RE.search(normalized))

    estilo = None
    if ultra_short:
        estilo = "ultra_resumido"
    elif _SERIOUS_RE.search(normalized):
        estilo = "serio"
    elif _HUMOR_RE.search(normalized):
        estilo = "humor_sutil"

    detalle = None
    if ultra_short or (force_simpler and not force_technical):
        detalle = "bajo"
    elif force_technical:
        detalle = "alto"
    return {"force_technical": force_technical, "force_simpler": force_simpler, "estilo": estilo, "preferencia_detalle": detalle}


def technical_score_delta(normalized: str) -> int:
    return sum(delta for pattern, delta in _TECH_DELTAS if pattern.search(normalized))


def level_from_score(score: int, current: str) -> str:
    if score >= LEVEL_ULTRA_SCORE:
        return "ultra"
    if score >= LEVEL_TECNICO_SCORE:
        return "tecnico"
    if score >= LEVEL_MEDIO_SCORE:
        return "medio"
    if current == "ultra" and score < 10:
        return "tecnico"
    if current in ("ultra", "tecnico") and 0 < score < LEVEL_MEDIO_SCORE:
        return "medio"
    if score <= 0:
        return "basico"
    return "basico" if current == "basico" else "medio"


def _shift_level(level: str, step: int) -> str:
    i = _LEVELS.index(level) + step
    return _LEVELS[max(0, min(len(_LEVELS) - 1, i))]


def detail_from_level(level: str) -> str:
    if level == "basico":
        return "bajo"
    if level == "medio":
        return "medio"
    return "alto"


def evolve_cognitive_profile(profile: Mapping[str, Any] | None, text: str) -> dict[str, Any]:
    current = {**DEFAULT_COGNITIVE_PROFILE, **(profile or {})}
    normalized = normalize(text)
    if not normalized:
        return current
    override = parse_style_override(normalized)

    score = current["score_tecnico"] + technical_score_delta(normalized)
    if override["force_simpler"]:
        score -= OVERRIDE_SCORE_STEP
    if override["force_technical"]:
        score += OVERRIDE_SCORE_STEP
    score = max(0, round_half_up(score))

    nivel = level_from_score(score, current["nivel_tecnico"])
    if override["force_simpler"]:
        nivel = _shift_level(nivel, -1)
    if override["force_technical"]:
        nivel = _shift_level(nivel, 1)

    return {
        "nivel_tecnico": nivel,
        "score_tecnico": score,
        "estilo": override["estilo"] or current["estilo"],
        "preferencia_detalle": override["preferencia_detalle"] or detail_from_level(nivel),
    }


_LEVEL_HINTS = {
    "basico": "Nivel basico: lenguaje cotidiano, pocas cifras, una accion clara, sin formulas.",
    "medio": "Nivel medio: incluye alguna cifra y un por que breve.",
    "tecnico": "Nivel tecnico: usa terminos fisiologicos con precision y rangos breves.",
    "ultra": "Nivel ultra: explica mecanismos de forma concisa y comparativa.",
}
_STYLE_HINTS = {
    "ultra_resumido": "Estilo ultra resumido: maximo 4 lineas y termina con una accion concreta.",
    "serio": "Tono serio: directo, claro y sin bromas.",
    "humor_sutil": "Humor sutil permitido: una broma corta maximo.",
}


def resolve_max_questions_per_turn(plan: Mapping[str, Any]) -> int:
    configured = (plan.get("preferences") or {}).get("maxQuestionsPerTurn")
    if isinstance(configured, (int, float)) and not isinstance(configured, bool):
        return min(3, max(1, round_half_up(configured)))
    level = (plan.get("cognitiveProfile") or {}).get("nivel_tecnico")
    return 2 if level in ("tecnico", "ultra") else 1


def build_style_hint(text: str, profile: Mapping[str, Any] | None, max_questions_per_turn: int) -> str:
    current = {**DEFAULT_COGNITIVE_PROFILE, **(profile or {})}
    override = parse_style_override(normalize(text))
    estilo = override["estilo"] or current["estilo"]
    level_hint = _LEVEL_HINTS[current["nivel_tecnico"]]
    style_hint = _STYLE_HINTS.get(estilo, "Tono neutral cercano y maduro.")
    return (
        f"{level_hint} {style_hint} Haz como maximo {max_questions_per_turn} pregunta(s) por turno. "
        "Trabaja por fases: primero datos energeticos faltantes; luego registro de comida/ejercicio del dia. "
        "Nutricion detallada solo bajo peticion explicita."
    )


_MISSING_LABELS = (
    ("sex", "sexo"),
    ("ageYears", "edad"),
    ("heightCm", "altura"),
    ("weightKg", "peso"),
    ("activityLevel", "actividad base"),
)


def build_missing_data_hint(profile: Mapping[str, Any] | None) -> str:
    p = profile or {}
    missing = [label for key, label in _MISSING_LABELS if not p.get(key)]
    if not missing:
        return "Datos energeticos completos. Ahora si, pide registro de comida y ejercicio del dia para actualizar progreso."
    return (
        "Fase actual: completar estimacion energetica. "
        f"Enumera y pide juntos estos faltantes: {', '.join(missing)}. "
        "Puedes registrar comida/ejercicio del dia, pero no cierres objetivo calorico final aun."
    )
