from __future__ import annotations

import json
import logging
from typing import Any

from openai import AsyncOpenAI

from liacoach.config import settings


logger = logging.getLogger(__name__)

# created on first use; the deterministic core runs without an API key
client: AsyncOpenAI | None = None


def _client() -> Any:
    global client
    if client is None:
        if not settings.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY is not configured")
        client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout_s)
    return client


def _is_unsupported_param_error(e: Exception, param: str) -> bool:
    # openai-python raises different exception types across versions; parse message best-effort
    msg = str(e).lower()
    p = param.lower()
    return ("unsupported parameter" in msg or "invalid_request_error" in msg) and (p in msg or f"'{p}'" in msg)


def _has_responses_api() -> bool:
    return getattr(_client(), "responses", None) is not None


def _try_parse_json(text: str) -> dict[str, Any] | None:
    t = text.strip()
    try:
        obj = json.loads(t)
        return obj if isinstance(obj, dict) else None
    except json.JSONDecodeError:
        pass

    # attempt to extract first {...} block
    start = t.find("{")
    end = t.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            obj = json.loads(t[start : end + 1])
            return obj if isinstance(obj, dict) else None
        except json.JSONDecodeError:
            return None
    return None


def _strict_json_suffix() -> str:
    return "\n\nIMPORTANTE: devuelve SOLO un objeto JSON valido. Sin texto, sin markdown."


# some models reject max_tokens and require max_completion_tokens, so that one goes first
_TOKEN_PARAMS = ("max_completion_tokens", "max_tokens")


async def _chat_create(
    *,
    model: str,
    messages: list[dict[str, Any]],
    max_output_tokens: int,
    response_format: dict[str, Any] | None,
    temperature: float | None = None,
) -> str:
    """
    Chat Completions call that steps down through the parameters a model rejects:
    response_format is dropped first, then max_completion_tokens gives way to max_tokens.
    """
    c = _client()
    extra: dict[str, Any] = {} if temperature is None else {"temperature": temperature}
    formats = [response_format, None] if response_format is not None else [None]
    last_err: Exception | None = None

    for token_param in _TOKEN_PARAMS:
        for fmt in formats:
            kwargs: dict[str, Any] = {token_param: max_output_tokens, **extra}
            if fmt is not None:
                kwargs["response_format"] = fmt
            try:
                cc = await c.chat.completions.create(model=model, messages=messages, **kwargs)
            except Exception as e:
                last_err = e
                if fmt is not None and _is_unsupported_param_error(e, "response_format"):
                    continue
                break
            return (cc.choices[0].message.content or "").strip()
        if last_err is None or not _is_unsupported_param_error(last_err, token_param):
            break

    raise RuntimeError(f"Chat completion failed. Last error: {last_err}") from last_err


def _pair(system: str, user: str) -> list[dict[str, Any]]:
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


async def _responses_text(*, model: str, system: str, user: str, max_output_tokens: int) -> str:
    resp = await _client().responses.create(
        model=model,
        input=[
            {"role": "system", "content": [{"type": "input_text", "text": system}]},
            {"role": "user", "content": [{"type": "input_text", "text": user}]},
        ],
        max_output_tokens=max_output_tokens,
    )
    return (getattr(resp, "output_text", None) or "").strip()


async def text_output(
    *,
    system: str,
    user: str,
    model: str | None = None,
    max_output_tokens: int = 800,
) -> str:
    m = model or settings.openai_text_model
    if _has_responses_api():
        return await _responses_text(model=m, system=system, user=user, max_output_tokens=max_output_tokens)
    return await _chat_create(model=m, messages=_pair(system, user), max_output_tokens=max_output_tokens, response_format=None)


async def chat_reply(
    *,
    system: str,
    messages: list[dict[str, str]],
    model: str | None = None,
    max_output_tokens: int = 220,
    temperature: float = 0.4,
) -> str:
    """Multi-turn completion: system prompt followed by the role/content conversation window."""
    m = model or settings.openai_text_model
    text = await _chat_create(
        model=m,
        messages=[{"role": "system", "content": system}, *messages],
        max_output_tokens=max_output_tokens,
        response_format=None,
        temperature=temperature,
    )
    if not text:
        raise RuntimeError("Empty AI response")
    logger.debug("AI reply model=%s messages=%d chars=%d", m, len(messages), len(text))
    return text


async def text_json(
    *,
    system: str,
    user: str,
    model: str | None = None,
    max_output_tokens: int = 800,
) -> dict[str, Any]:
    """One JSON object from the model; ValueError when none can be parsed."""
    m = model or settings.openai_text_model

    if _has_responses_api():
        text = await _responses_text(model=m, system=system, user=user, max_output_tokens=max_output_tokens)
        obj = _try_parse_json(text)
        if obj is None:
            raise ValueError(f"Model did not return JSON. Got: {text[:500] or '<empty>'}")
        return obj

    text = await _chat_create(
        model=m,
        messages=_pair(system, user),
        max_output_tokens=max_output_tokens,
        response_format={"type": "json_object"},
    )
    obj = _try_parse_json(text)
    if obj is not None:
        return obj

    # one retry with the JSON-only instruction in the prompt itself
    text = await _chat_create(
        model=m,
        messages=_pair(system + _strict_json_suffix(), user),
        max_output_tokens=max_output_tokens,
        response_format=None,
    )
    obj = _try_parse_json(text)
    if obj is None:
        raise ValueError(f"Model did not return JSON after retry. Got: {text[:500]}")
    return obj
