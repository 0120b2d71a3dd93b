from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from liacoach.chat_events import event_text, event_ts, user_entries
from liacoach.days import as_aware, day_bounds_ms, local_date, resolve_timezone
from liacoach.parsing import MessageClassifier, default_classifier, extract_weight


RECENT_EVENTS_LIMIT = 20
MAX_CHAT_MESSAGES = 12


@dataclass
class ActivitySummary:
    food: int = 0
    training: int = 0
    last_weight: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"food": self.food, "training": self.training, "lastWeight": self.last_weight}


@dataclass
class AIContext:
    today: ActivitySummary = field(default_factory=ActivitySummary)
    week: ActivitySummary = field(default_factory=ActivitySummary)
    recent_events: list[Mapping[str, Any]] = field(default_factory=list)


def _sorted_events(events: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    out = [ev for ev in events if isinstance(ev, Mapping) and event_ts(ev) is not None]
    out.sort(key=lambda ev: event_ts(ev) or 0)
    return out


def build_ai_context(
    events: Iterable[Mapping[str, Any]],
    now: dt.datetime | None = None,
    timezone: str | None = None,
    *,
    classifier: MessageClassifier | None = None,
) -> AIContext:
    """Counts of food/training messages and last weight for today and the trailing 7 days."""
    events = _sorted_events(events)
    classifier = classifier or default_classifier
    tz = resolve_timezone(timezone)
    today = local_date(as_aware(now), tz)
    today_start, today_end = day_bounds_ms(today, tz)
    week_start, _ = day_bounds_ms(today - dt.timedelta(days=6), tz)

    ctx = AIContext(recent_events=[ev for ev in events if ev.get("type") in ("text", "voice")][-RECENT_EVENTS_LIMIT:])
    for entry in user_entries(events):
        if not week_start <= entry.ts < today_end:
            continue
        summaries = [ctx.week]
        if entry.ts >= today_start:
            summaries.append(ctx.today)

        kind = classifier.classify(entry.text)
        weight = extract_weight(entry.text) if kind == "weight" else None
        for s in summaries:
            if kind == "food":
                s.food += 1
            elif kind == "training":
                s.training += 1
            elif weight is not None:
                s.last_weight = weight
    return ctx


def _size_kb(size_bytes: Any) -> str | None:
    if isinstance(size_bytes, (int, float)) and not isinstance(size_bytes, bool):
        return f"{max(1, round(size_bytes / 1024))}KB"
    return None


def _image_content(event: Mapping[str, Any]) -> str:
    meta = event.get("image") or {}
    parts = ["Image uploaded"]
    if meta.get("name"):
        parts.append(meta["name"])
    if isinstance(meta.get("width"), int) and isinstance(meta.get("height"), int):
        parts.append(f"{meta['width']}x{meta['height']}")
    size = _size_kb(meta.get("sizeBytes"))
    if size:
        parts.append(size)
    caption = event_text(event).strip()
    if caption:
        parts.append(f"caption: {caption}")
    return f"[{', '.join(parts)}]"


def _file_content(event: Mapping[str, Any]) -> str:
    meta = event.get("file") or {}
    parts = ["File"]
    if meta.get("name"):
        parts.append(meta["name"])
    if meta.get("mimeType"):
        parts.append(meta["mimeType"])
    size = _size_kb(meta.get("sizeBytes"))
    if size:
        parts.append(size)
    note = event_text(event).strip()
    if note:
        parts.append(f"Note: {note}")
    return f"[{'. '.join(parts)}]"


def build_llm_messages(events: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Role/content list for a completion call; attachments become one-line placeholders."""
    out: list[dict[str, str]] = []
    for ev in _sorted_events(events):
        role = ev.get("role")
        if role not in ("user", "assistant"):
            continue
        kind = ev.get("type")
        if kind == "text":
            out.append({"role": role, "content": event_text(ev)})
        elif kind == "voice":
            content = event_text(ev).strip()
            if content:
                out.append({"role": role, "content": content})
        elif kind == "image":
            out.append({"role": role, "content": _image_content(ev)})
        elif kind == "file":
            out.append({"role": role, "content": _file_content(ev)})
    return out


def window_messages(messages: list[dict[str, str]], max_messages: int = MAX_CHAT_MESSAGES) -> list[dict[str, str]]:
    if max_messages <= 0:
        return []
    return messages[-max_messages:]
