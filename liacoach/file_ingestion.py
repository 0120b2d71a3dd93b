from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from openai import OpenAIError

from liacoach import openai_client
from liacoach.config import settings
from liacoach.prompts import FILE_SUMMARY_SYSTEM


logger = logging.getLogger(__name__)

MAX_EXTRACTED_CHARS = 20000
MAX_SUMMARY_CHARS = 600
SUMMARY_MAX_LINES = 6
SUMMARY_MAX_OUTPUT_TOKENS = 300

EMPTY_FILE_SUMMARY = "Archivo vacío o sin texto legible."
NO_SUMMARY = "Resumen no disponible."


@dataclass(frozen=True)
class FileIngest:
    extracted_text: str
    summary: str

    def to_dict(self) -> dict[str, Any]:
        return {"status": "done", "extractedText": self.extracted_text, "summary": self.summary}


def trim_text(text: str | None, max_chars: int) -> str:
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip()


def fallback_summary(text: str) -> str:
    """First non-blank lines as bullets."""
    lines = [line.strip() for line in text.splitlines() if line.strip()][:SUMMARY_MAX_LINES]
    if not lines:
        return NO_SUMMARY
    return trim_text("\n".join(f"- {line}" for line in lines), MAX_SUMMARY_CHARS)


def _summary_request(name: str, text: str, mime_type: str | None, size_bytes: int | None) -> str:
    header = [f"Nombre: {name}"]
    if mime_type:
        header.append(f"Tipo: {mime_type}")
    if size_bytes:
        header.append(f"Tamaño: {size_bytes} bytes")
    return "\n".join([*header, "", "Contenido:", text])


async def ingest_file(
    name: str,
    file_data: str,
    *,
    mime_type: str | None = None,
    size_bytes: int | None = None,
) -> FileIngest:
    """Extracted text (capped) plus a short summary; the AI writes it when configured."""
    extracted = trim_text(file_data, MAX_EXTRACTED_CHARS)
    if not extracted.strip():
        return FileIngest(extracted_text="", summary=EMPTY_FILE_SUMMARY)
    if not settings.openai_api_key:
        return FileIngest(extracted_text=extracted, summary=fallback_summary(extracted))

    try:
        summary = await openai_client.text_output(
            system=FILE_SUMMARY_SYSTEM,
            user=_summary_request(name, extracted, mime_type, size_bytes),
            max_output_tokens=SUMMARY_MAX_OUTPUT_TOKENS,
        )
    except (RuntimeError, ValueError, OpenAIError) as e:
        logger.info("File summary for %s failed, using fallback: %s: %s", name, type(e).__name__, e)
        summary = ""
    return FileIngest(extracted_text=extracted, summary=trim_text(summary, MAX_SUMMARY_CHARS) or fallback_summary(extracted))
