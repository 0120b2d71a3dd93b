from __future__ import annotations

from liacoach.chat_events import (
    create_assistant_text_event,
    create_text_event,
    create_user_voice_event,
    event_text,
    latest_user_text,
    user_entries,
)


def test_constructors_shape() -> None:
    ev = create_text_event("hola", ts=5)
    assert ev["type"] == "text"
    assert ev["role"] == "user"
    assert ev["ts"] == 5
    assert ev["id"].startswith("evt_")

    voice = create_user_voice_event("he corrido 5 km", duration_ms=3200)
    assert voice["content"] == "he corrido 5 km"
    assert voice["voice"]["durationMs"] == 3200

    reply = create_assistant_text_event("vale", turn_id="t9")
    assert reply["role"] == "assistant"
    assert reply["turnId"] == "t9"
    assert create_text_event("a")["id"] != create_text_event("a")["id"]


def test_event_text_projection() -> None:
    assert event_text({"type": "text", "text": "hola", "content": "x"}) == "hola"
    assert event_text({"type": "voice", "content": "dicho"}) == "dicho"
    assert event_text({"type": "image", "content": None}) == ""


def test_user_entries_sorted_and_filtered() -> None:
    events = [
        {"type": "text", "role": "user", "id": "b", "ts": 20, "text": "segundo"},
        {"type": "voice", "role": "user", "id": "a", "ts": 10, "content": "primero"},
        {"type": "text", "role": "assistant", "id": "c", "ts": 15, "text": "bot"},
        {"type": "text", "role": "user", "id": "d", "ts": 30, "text": "   "},
        {"type": "text", "role": "user", "id": "e", "ts": "ayer", "text": "sin ts"},
        "basura",
    ]
    assert [(e.ts, e.text) for e in user_entries(events)] == [(10, "primero"), (20, "segundo")]


def test_latest_user_text_skips_attachments_and_assistant() -> None:
    events = [
        create_text_event("  comi arroz  ", ts=1),
        {"type": "image", "role": "user", "id": "i", "ts": 2, "content": "foto"},
        create_text_event("ok", role="assistant", ts=3),
    ]
    assert latest_user_text(events) == "comi arroz"
    assert latest_user_text([]) == ""
