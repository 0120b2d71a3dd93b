from __future__ import annotations

import datetime as dt
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from openai import OpenAIError

from liacoach import openai_client
from liacoach.ai_context import AIContext, build_ai_context, build_llm_messages, window_messages
from liacoach.chat_events import create_assistant_text_event, event_text, latest_user_text
from liacoach.coach_intent import detect_coach_intent, is_check_in_request, is_weekly_plan_request
from liacoach.coach_plan import DEFAULT_COGNITIVE_PROFILE, create_default_coach_plan
from liacoach.config import settings
from liacoach.dashboard_metrics import build_dashboard_metrics
from liacoach.days import as_aware, get_date_iso_in_timezone, resolve_timezone
from liacoach.food_ledger import compute_day_food_totals, resolve_effective_entries
from liacoach.food_parser import ParsedFoodMutation, parse_food_mutation
from liacoach.jsonutil import dumps
from liacoach.plan_store import CoachPlanStore, DayRotation, entries_by_day_id
from liacoach.profile_evolution import (
    build_missing_data_hint,
    build_style_hint,
    evolve_cognitive_profile,
    evolve_physical_profile,
    resolve_max_questions_per_turn,
)
from liacoach.prompts import COACH_SYSTEM_PROMPT, FALLBACK_REPLY, MEMORY_EXTRACT_JSON, REPLY_RULES, WELCOME_CONTEXT_HINT
from liacoach.render import food_entries_table, totals_line
from liacoach.textnorm import normalize, truncate


logger = logging.getLogger(__name__)

MAX_USER_MEMORY_CHARS = 2400
WEEKLY_PLAN_SUMMARY_CHARS = 320
RECENT_EVENTS_IN_CONTEXT = 6
MEMORY_MAX_OUTPUT_TOKENS = 220
MAX_SELECTED_FILES = 3
MAX_SELECTED_EXCERPT_CHARS = 2000


@dataclass(frozen=True)
class TurnOutcome:
    plan: dict[str, Any]
    rotation: DayRotation
    mutation: ParsedFoodMutation
    recorded: bool
    reply: str | None = None


def _plan_timezone(plan: Mapping[str, Any]) -> str:
    return resolve_timezone((plan.get("time") or {}).get("timezone"))


def process_user_message(
    store: CoachPlanStore,
    text: str,
    now: dt.datetime | None = None,
    timezone: str | None = None,
) -> TurnOutcome:
    """Deterministic part of a user turn: day rollover, profile evolution, food ledger update."""
    now = as_aware(now)
    rotation = store.ensure_current_day(now, timezone)
    plan = rotation.plan

    cognitive = evolve_cognitive_profile(plan.get("cognitiveProfile"), text)
    physical = evolve_physical_profile(plan.get("physicalProfile"), text)
    if cognitive != {**DEFAULT_COGNITIVE_PROFILE, **(plan.get("cognitiveProfile") or {})} or physical != (
        plan.get("physicalProfile") or {}
    ):
        plan = store.upsert_coach_plan({"cognitiveProfile": cognitive, "physicalProfile": physical})

    current_day_id = (plan.get("time") or rotation.plan["time"])["current_day_id"]
    mutation = parse_food_mutation(
        text,
        timezone=_plan_timezone(plan),
        current_day_id=current_day_id,
        now=now,
        existing_entries_by_day_id=entries_by_day_id(plan),
    )

    recorded = False
    if mutation.kind != "none" and mutation.day is not None and not mutation.day.requires_confirmation:
        plan = store.record_food_mutation(mutation, now)
        recorded = True

    return TurnOutcome(
        plan=plan,
        rotation=rotation,
        mutation=mutation,
        recorded=recorded,
        reply=build_food_mutation_reply(mutation, plan, recorded=recorded),
    )


def confirm_food_mutation(store: CoachPlanStore, mutation: ParsedFoodMutation, now: dt.datetime | None = None) -> dict[str, Any]:
    """Record a mutation that was held back for confirmation (weekday references)."""
    return store.record_food_mutation(mutation, now)


def build_food_mutation_reply(mutation: ParsedFoodMutation, plan: Mapping[str, Any], *, recorded: bool) -> str | None:
    if mutation.kind == "none" or mutation.entry is None or mutation.day is None:
        return None
    entry = mutation.entry

    if not recorded:
        label = mutation.day.confirmation_label or mutation.day.date_iso
        return f"¿Lo apunto en el día {label}? {entry.name}, {entry.grams:g} g, {entry.kcal} kcal."

    title = "✅ Corregido" if mutation.kind == "correct" else "✅ Apuntado"
    if mutation.day.is_retroactive:
        title += f" ({mutation.day.date_iso})"
    lines = [f"{title}:", food_entries_table([entry])]
    if entry.assumption_note:
        lines.append(f"🧠 Supuesto: {entry.assumption_note}.")

    day_entries = entries_by_day_id(plan).get(mutation.day.day_id, [])
    totals = compute_day_food_totals(resolve_effective_entries(day_entries))
    lines.append(f"Total del día: {totals_line(totals)}")
    return "\n".join(lines)


# --- prompt context ---


def _format_recent_events(events: Sequence[Mapping[str, Any]]) -> str:
    recent = []
    for ev in events[-RECENT_EVENTS_IN_CONTEXT:]:
        kind = ev.get("type")
        if kind in ("text", "voice"):
            recent.append(f"{ev.get('role')}: {truncate(event_text(ev), 120)}")
        elif kind == "image":
            recent.append(f"{ev.get('role')}: [imagen]")
        elif kind == "file":
            recent.append(f"{ev.get('role')}: [archivo]")
    if not recent:
        return ""
    return f"RecentEvents: {' | '.join(recent)}"


def build_coach_context(plan: Mapping[str, Any], context: AIContext, text: str) -> str:
    plan_hint = (
        "Si piden plan semanal, entrega un plan semanal en bullets para lunes-domingo."
        if is_weekly_plan_request(text)
        else ""
    )
    check_in_hint = (
        "Si piden check-in, pregunta por comida, entrenamiento, peso y habitos." if is_check_in_request(text) else ""
    )
    parts = [
        COACH_SYSTEM_PROMPT,
        _format_recent_events(context.recent_events),
        build_style_hint(text, plan.get("cognitiveProfile"), resolve_max_questions_per_turn(plan)),
        build_missing_data_hint(plan.get("physicalProfile")),
        plan_hint,
        check_in_hint,
    ]
    return "\n".join(p for p in parts if p)


def build_user_memory_context(
    plan: Mapping[str, Any],
    context: AIContext,
    daily: Mapping[str, Any] | None = None,
) -> str:
    memory: dict[str, Any] = {
        "cognitiveProfile": plan.get("cognitiveProfile") or dict(DEFAULT_COGNITIVE_PROFILE),
        "goals": plan.get("goals") or {},
    }
    weekly_plan = plan.get("weeklyPlan")
    if weekly_plan:
        memory["weeklyPlan"] = {
            "weekStartISO": weekly_plan["weekStartISO"],
            "summary": truncate(weekly_plan["content"], WEEKLY_PLAN_SUMMARY_CHARS),
        }
    memory["signals"] = {
        "todayFood": context.today.food,
        "todayTraining": context.today.training,
        "weekFood": context.week.food,
        "weekTraining": context.week.training,
        "lastWeight": context.week.last_weight,
    }
    if daily:
        memory["dashboard"] = {
            k: daily.get(k) for k in ("intakeKcal", "targetKcal", "burnKcal", "lastWeightKg", "confidence")
        }
    blob = dumps(memory)
    return f"UserMemory: {truncate(blob, MAX_USER_MEMORY_CHARS)}"


def build_selected_files_context(events: Sequence[Mapping[str, Any]], selected_file_ids: Sequence[str]) -> str:
    """Summaries and excerpts of the ingested files the user picked for this turn."""
    if not selected_file_ids:
        return ""
    wanted = set(selected_file_ids)
    selected: list[dict[str, Any]] = []
    for ev in events:
        if len(selected) >= MAX_SELECTED_FILES:
            break
        if ev.get("type") != "file" or ev.get("id") not in wanted:
            continue
        file = ev.get("file") or {}
        ingest = file.get("ingest") or {}
        if ingest.get("status") != "done" or not ingest.get("summary"):
            continue
        item: dict[str, Any] = {"name": file.get("name"), "mimeType": file.get("mimeType"), "summary": ingest["summary"]}
        if ingest.get("extractedText"):
            item["excerpt"] = ingest["extractedText"][:MAX_SELECTED_EXCERPT_CHARS]
        selected.append(item)
    if not selected:
        return ""
    return f"SelectedFiles: {dumps(selected)}"


def build_system_content(today_summary: str, extra_context: str, user_name: str | None = None) -> str:
    name_rule = (
        f'El nombre del usuario es "{user_name}". Puedes usarlo cuando aporte cercania, pero no en cada respuesta.'
        if user_name
        else ""
    )
    parts = [
        REPLY_RULES,
        WELCOME_CONTEXT_HINT,
        name_rule,
        f"Today summary: {today_summary}" if today_summary else "",
        f"Contexto adicional:\n{extra_context}" if extra_context else "",
    ]
    return "\n".join(p for p in parts if p)


_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s*(.+)$", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_UNDERLINE_RE = re.compile(r"__([^_]+)__")
_FORMULA_NAMES_RE = re.compile(r"\b(Mifflin-St Jeor|Cunningham|METs?|Compendium of Physical Activities|papers?)\b", re.IGNORECASE)


def sanitize_assistant_output(text: str) -> str:
    """Plain-text chat output: no markdown headings or emphasis, no formula name drops, no blank runs."""
    out = _HEADING_RE.sub(lambda m: f"📌 {m.group(1).strip()}:", text)
    out = _FORMULA_NAMES_RE.sub("metodo estimado", out)
    out = _BOLD_RE.sub(r"\1", out)
    out = _UNDERLINE_RE.sub(r"\1", out)
    lines: list[str] = []
    for line in out.splitlines():
        line = line.rstrip()
        if line == "" and lines and lines[-1] == "":
            continue
        lines.append(line)
    return "\n".join(lines).strip()


# --- deterministic replies ---


def build_name_prefix(text: str, user_name: str | None) -> str:
    if not user_name:
        return ""
    t = text.strip().lower()
    if not t:
        return f"{user_name}, "
    use_name = (
        len(t) <= 35
        or re.match(r"^(hola|buenas|hey|lia|oye?|necesito|ayudame)", t) is not None
        or re.search(r"(agobiad[oa]|estresad[oa]|cansad[oa]|desmotivad)", t) is not None
    )
    return f"{user_name}, " if use_name else ""


def _format_goal_value(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return ", ".join(f"{k}:{v}" for k, v in value.items() if v is not None)
    return str(value)


def build_deterministic_weekly_plan_content(plan: Mapping[str, Any] | None) -> str:
    goals = (plan or {}).get("goals") or {}
    lines = [
        "Plan semanal (basico):",
        "- Lunes: fuerza + 20-30 min caminata.",
        "- Martes: comida enfocada en proteina y verduras.",
        "- Miercoles: entrenamiento segun objetivo.",
        "- Jueves: descanso activo + movilidad.",
        "- Viernes: sesion principal de la semana.",
        "- Sabado: actividad ligera y balance calorico.",
        "- Domingo: revisar progreso y planificar.",
    ]
    for key, label in (("nutrition", "nutricion"), ("training", "entrenamiento"), ("weight", "peso")):
        formatted = _format_goal_value(goals.get(key))
        if formatted:
            lines.append(f"Objetivo {label}: {formatted}.")
    if goals.get("habits"):
        lines.append(f"Habitos clave: {', '.join(goals['habits'])}.")
    return "\n".join(lines)


_GREETING_RE = re.compile(r"^(hola+|buenas+|hey+|que tal|lia+)\b")
_WEIGHT_LOSS_RE = re.compile(r"\b(perder peso|bajar peso|bajar grasa|deficit)\b")
_LOW_ENERGY_RE = re.compile(r"\b(reventad[oa]|sin energia|cansad[oa]|agotad[oa])\b")
_OVEREAT_RE = re.compile(r"\b(comi fatal|he comido fatal|me pase comiendo|comi demasiado)\b")
_WHY_RE = re.compile(r"\b(por que|porque)\b")
_PROTEIN_TIMING_RE = re.compile(r"\b(proteina|proteinas|toma|tomas|3|4)\b")
_SIMPLER_RE = re.compile(r"\b(hablame mas simple|mas simple|no entiendo)\b")
_TECHNICAL_RE = re.compile(r"\b(mas tecnico|ultra tecnico|tecnico)\b")
_ULTRA_SHORT_RE = re.compile(r"\bultra resumido\b")
_HUMOR_RE = re.compile(r"\b(bromas|humor)\b")


def build_coach_fallback_response(text: str, plan: Mapping[str, Any], user_name: str | None = None) -> str:
    """Rule-based reply used whenever the AI completion is unavailable."""
    name = build_name_prefix(text, user_name)
    estilo = (plan.get("cognitiveProfile") or {}).get("estilo", "neutral")
    style_prefix = "" if estilo == "serio" else "Perfecto. "
    t = normalize(text)

    if is_weekly_plan_request(text):
        return f"{name}{style_prefix}{build_deterministic_weekly_plan_content(plan)}"
    if _WEIGHT_LOSS_RE.search(t):
        return "\n".join(
            [
                f"{name}🔥 Objetivo: perder peso sin extremos",
                "",
                f"{style_prefix}vamos con base simple y sostenible:",
                "- Deficit suave (sin pasar hambre).",
                "- Proteina en 3-4 tomas al dia.",
                "- Pasos diarios + fuerza 2-4 dias por semana.",
                "",
                "✅ Siguiente paso: dime que has comido hoy y que ejercicio hiciste (o haras) para actualizar tu marcador.",
            ]
        )
    if _LOW_ENERGY_RE.search(t):
        return "\n".join(
            [
                f"{name}⚠️ Vamos a priorizar energia y seguridad",
                "",
                "Primero: es cansancio normal o te encuentras mal?",
                "",
                "✅ Si es cansancio normal: hoy minimo viable -> paseo suave + cena simple con proteina y verdura.",
                "⚠️ Si hay malestar real: mejor bajar carga y consultar profesional si empeora.",
            ]
        )
    if _OVEREAT_RE.search(t):
        return "\n".join(
            [
                f"{name}✅ No pasa nada, se puede reequilibrar hoy",
                "",
                "Sin castigos ni compensaciones extremas.",
                "",
                "🧠 Siguiente paso: dime que has comido (aprox) y te digo el mejor ajuste para el resto del dia.",
            ]
        )
    if is_check_in_request(text):
        return "\n".join(
            [
                f"{name}🧠 Check-in diario",
                "",
                "1) Comida: cumpliste tu objetivo hoy?",
                "2) Entreno: hiciste sesion? que tipo?",
                "3) Energia/descanso: como llegas hoy y que habito te costo mas?",
                "",
                "✅ Siguiente paso: si quieres, dime 1 ajuste simple para manana.",
            ]
        )
    if _GREETING_RE.search(t):
        return f"{name}hola.\n\n✅ Dime en una frase que quieres mejorar hoy y te propongo un plan simple."
    if _SIMPLER_RE.search(t):
        return f"{name}✅ Perfecto. Te lo digo simple y directo: vamos a lo basico que si funciona."
    if _TECHNICAL_RE.search(t):
        return f"{name}🧠 Perfecto. Subo nivel tecnico y te doy respuestas mas precisas desde ahora."
    if _ULTRA_SHORT_RE.search(t):
        return f"{name}1) Agua.\n2) Proteina en la cena.\n3) 20 min de paseo.\n\n✅ Manana afinamos."
    if _HUMOR_RE.search(t):
        return f"{name}Hecho. Broma corta y seguimos: disciplina > drama.\n\n✅ Que has comido hoy?"
    if _WHY_RE.search(t) and _PROTEIN_TIMING_RE.search(t):
        return "\n".join(
            [
                f"{name}🧠 Buena pregunta.",
                "",
                "Tomar proteina en 3-4 tomas ayuda a repartir mejor el estimulo muscular y a llegar mas facil al total diario.",
                "",
                "🔥 En la practica:",
                "- Objetivo principal: llegar a tu proteina total del dia.",
                "- Repartirla reduce picos de hambre y suele mejorar adherencia.",
                "- Si un dia haces 2 tomas y cumples total, tambien sirve.",
                "",
                "✅ Regla simple: prioriza el total diario; reparte en 3-4 tomas cuando te sea comodo.",
            ]
        )
    if _WHY_RE.search(t):
        return "\n".join(
            [
                f"{name}🧠 Te explico rapido el por que:",
                "",
                "- Buscamos una estrategia efectiva y sostenible.",
                "- Por eso priorizamos adherencia, hambre controlada y progreso semanal.",
                "",
                "✅ Si quieres, te lo bajo a tu caso con tus horarios y comidas reales.",
            ]
        )
    return (
        f"{name}{style_prefix}\n\n🔥 Foco principal ahora: registrar comida y ejercicio para actualizar tu progreso."
        "\n\n✅ Dime que has comido hoy y que actividad hiciste."
    )


# --- AI-backed steps ---


async def create_assistant_reply(
    store: CoachPlanStore,
    events: Sequence[Mapping[str, Any]],
    *,
    now: dt.datetime | None = None,
    user_name: str | None = None,
    turn_id: str | None = None,
    selected_file_ids: Sequence[str] = (),
) -> dict[str, Any]:
    """Assistant text event for the latest user turn; deterministic reply when the AI call fails."""
    now = as_aware(now)
    plan = store.get_coach_plan() or create_default_coach_plan()
    tz = _plan_timezone(plan)
    text = latest_user_text(events)

    context = build_ai_context(events, now, tz)
    messages = window_messages(build_llm_messages(events))
    intent = detect_coach_intent(text)
    daily = build_dashboard_metrics(events, plan, now)["daily"]

    memory = build_user_memory_context(plan, context, daily)
    files = build_selected_files_context(events, selected_file_ids)
    if intent:
        extra = "\n".join(p for p in [memory, files, build_coach_context(plan, context, text)] if p)
    else:
        week = f"Ultimos 7 dias: comida {context.week.food}, entrenamiento {context.week.training}."
        extra = "\n".join(p for p in [week, memory, files] if p)
    today_summary = f"Hoy: comida {context.today.food}, entrenamiento {context.today.training}."

    reply = ""
    if messages:
        try:
            reply = sanitize_assistant_output(
                await openai_client.chat_reply(
                    system=build_system_content(today_summary, extra, user_name),
                    messages=messages,
                )
            )
        except (RuntimeError, ValueError, OpenAIError) as e:
            logger.warning("AI reply failed, using fallback: %s: %s", type(e).__name__, e)
    if not reply:
        reply = build_coach_fallback_response(text, plan, user_name) if text else FALLBACK_REPLY

    if intent and is_weekly_plan_request(text):
        store.save_weekly_plan(reply, now)
    return create_assistant_text_event(reply, turn_id=turn_id)


def _memory_patch(obj: Mapping[str, Any]) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    if isinstance(obj.get("physicalProfile"), Mapping):
        patch["physicalProfile"] = obj["physicalProfile"]
    signals = obj.get("signals")
    if isinstance(signals, Mapping) and isinstance(signals.get("today"), Mapping):
        patch["signals"] = {"today": signals["today"]}
    return patch


async def apply_memory_patch(store: CoachPlanStore, message: str, now: dt.datetime | None = None) -> dict[str, Any] | None:
    """Extract profile/today signals from one message with the AI and merge them into the plan."""
    message = message.strip()
    if not message:
        return None
    now = as_aware(now)
    plan = store.get_coach_plan() or create_default_coach_plan()
    today_iso = get_date_iso_in_timezone(now, _plan_timezone(plan))

    user = "\n".join(
        [
            f"todayISO={today_iso}",
            f"existingProfile={dumps(plan.get('physicalProfile') or {})}",
            f"message={message}",
        ]
    )
    try:
        obj = await openai_client.text_json(
            system=MEMORY_EXTRACT_JSON,
            user=user,
            model=settings.openai_memory_model,
            max_output_tokens=MEMORY_MAX_OUTPUT_TOKENS,
        )
    except (RuntimeError, ValueError, OpenAIError) as e:
        logger.info("Memory extraction skipped: %s: %s", type(e).__name__, e)
        return None

    patch = _memory_patch(obj)
    if not patch:
        return None
    return store.upsert_coach_plan(patch)
