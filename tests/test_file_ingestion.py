from __future__ import annotations

import pytest

from liacoach import file_ingestion, openai_client
from liacoach.config import settings
from liacoach.file_ingestion import (
    EMPTY_FILE_SUMMARY,
    MAX_EXTRACTED_CHARS,
    MAX_SUMMARY_CHARS,
    fallback_summary,
    ingest_file,
)


LAB_REPORT = "\n".join(["Analitica 12/02", "", "Glucosa: 92 mg/dl", "Colesterol total: 180", "HDL: 55"])


def test_fallback_summary_bullets_first_lines() -> None:
    text = "\n".join(f"linea {i}" for i in range(10))
    summary = fallback_summary(text)
    assert summary.splitlines() == [f"- linea {i}" for i in range(6)]
    assert fallback_summary("  \n\n ") == "Resumen no disponible."


@pytest.mark.asyncio
async def test_empty_file_has_fixed_summary() -> None:
    ingest = await ingest_file("vacio.txt", "   ")
    assert ingest.extracted_text == ""
    assert ingest.summary == EMPTY_FILE_SUMMARY


@pytest.mark.asyncio
async def test_without_api_key_uses_deterministic_summary(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", None)

    async def unexpected_text_output(**kwargs):
        raise AssertionError("no AI call without a key")

    monkeypatch.setattr(openai_client, "text_output", unexpected_text_output)

    ingest = await ingest_file("analitica.txt", LAB_REPORT + "\n" + "x" * 30000, mime_type="text/plain")
    assert len(ingest.extracted_text) == MAX_EXTRACTED_CHARS
    assert ingest.summary.startswith("- Analitica 12/02\n- Glucosa: 92 mg/dl")
    assert ingest.to_dict()["status"] == "done"


@pytest.mark.asyncio
async def test_ai_summary_is_capped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    seen: dict = {}

    async def fake_text_output(*, system, user, model=None, max_output_tokens=800):
        seen["user"] = user
        return "- Glucosa normal\n" * 100

    monkeypatch.setattr(openai_client, "text_output", fake_text_output)

    ingest = await ingest_file("analitica.txt", LAB_REPORT, mime_type="text/plain", size_bytes=96)
    assert len(ingest.summary) <= MAX_SUMMARY_CHARS
    assert ingest.summary.startswith("- Glucosa normal")
    assert ingest.extracted_text == LAB_REPORT
    assert "Nombre: analitica.txt\nTipo: text/plain\nTamaño: 96 bytes" in seen["user"]
    assert seen["user"].endswith("Contenido:\n" + LAB_REPORT)


@pytest.mark.asyncio
async def test_ai_failure_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")

    async def failing_text_output(**kwargs):
        raise RuntimeError("Chat completion failed")

    monkeypatch.setattr(openai_client, "text_output", failing_text_output)

    ingest = await ingest_file("analitica.txt", LAB_REPORT)
    assert ingest.summary == file_ingestion.fallback_summary(LAB_REPORT)


@pytest.mark.asyncio
async def test_blank_ai_summary_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")

    async def blank_text_output(**kwargs):
        return ""

    monkeypatch.setattr(openai_client, "text_output", blank_text_output)

    ingest = await ingest_file("analitica.txt", LAB_REPORT)
    assert ingest.summary.startswith("- Analitica 12/02")
