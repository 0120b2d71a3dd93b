from __future__ import annotations

import secrets
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal


EventType = Literal["text", "voice", "image", "file"]
Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class UserEntry:
    ts: int
    text: str


def _new_event_id() -> str:
    return f"evt_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_text_event(text: str, *, role: Role = "user", ts: int | None = None) -> dict[str, Any]:
    return {"type": "text", "role": role, "id": _new_event_id(), "ts": ts if ts is not None else _now_ms(), "text": text}


def create_assistant_text_event(text: str, *, turn_id: str | None = None) -> dict[str, Any]:
    ev = create_text_event(text, role="assistant")
    if turn_id:
        ev["turnId"] = turn_id
    return ev


def create_user_voice_event(transcription: str, *, duration_ms: int | None = None) -> dict[str, Any]:
    return {
        "type": "voice",
        "role": "user",
        "id": _new_event_id(),
        "ts": _now_ms(),
        "content": transcription,
        "voice": {"source": "microphone", "durationMs": duration_ms},
    }


def create_user_image_event(
    src: str,
    *,
    name: str | None = None,
    size_bytes: int | None = None,
    width: int | None = None,
    height: int | None = None,
    caption: str | None = None,
) -> dict[str, Any]:
    return {
        "type": "image",
        "role": "user",
        "id": _new_event_id(),
        "ts": _now_ms(),
        "content": caption or "",
        "image": {"src": src, "name": name, "sizeBytes": size_bytes, "width": width, "height": height},
    }


def create_user_file_event(
    name: str,
    *,
    mime_type: str | None = None,
    size_bytes: int | None = None,
    src: str | None = None,
    note: str | None = None,
) -> dict[str, Any]:
    return {
        "type": "file",
        "role": "user",
        "id": _new_event_id(),
        "ts": _now_ms(),
        "content": note or "",
        "file": {"name": name, "mimeType": mime_type, "sizeBytes": size_bytes, "src": src},
    }


def attach_file_ingest(event: Mapping[str, Any], ingest: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of a file event carrying its ingest result under `file.ingest`."""
    return {**event, "file": {**(event.get("file") or {}), "ingest": dict(ingest)}}


def event_text(event: Mapping[str, Any]) -> str:
    """Type-specific text projection: `text` for text events, `content` for the rest."""
    key = "text" if event.get("type") == "text" else "content"
    value = event.get(key)
    return value if isinstance(value, str) else ""


def event_ts(event: Mapping[str, Any]) -> int | None:
    ts = event.get("ts")
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    return int(ts)


def user_entries(events: Iterable[Mapping[str, Any]]) -> list[UserEntry]:
    out: list[UserEntry] = []
    for ev in events:
        if not isinstance(ev, Mapping) or ev.get("role") != "user":
            continue
        ts = event_ts(ev)
        text = event_text(ev)
        if ts is None or not text.strip():
            continue
        out.append(UserEntry(ts=ts, text=text))
    out.sort(key=lambda e: e.ts)
    return out


def latest_user_text(events: Iterable[Mapping[str, Any]]) -> str:
    """Last typed or spoken user message."""
    for ev in reversed(list(events)):
        if ev.get("role") != "user" or ev.get("type") not in ("text", "voice"):
            continue
        return event_text(ev).strip()
    return ""
