from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any


def as_mapping(x: Any) -> Mapping[str, Any] | None:
    return x if isinstance(x, Mapping) else None


def to_number(x: Any) -> float | None:
    # bool is an int subclass; never a measurement
    if isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        return float(x) if math.isfinite(x) else None
    if isinstance(x, str) and x.strip():
        try:
            v = float(x.strip().replace(",", "."))
        except ValueError:
            return None
        return v if math.isfinite(v) else None
    return None


def number_in_range(x: Any, lo: float, hi: float) -> float | None:
    v = to_number(x)
    if v is None or v < lo or v > hi:
        return None
    return round(v, 1)


def non_negative_int(x: Any) -> int | None:
    v = to_number(x)
    if v is None or v < 0:
        return None
    return int(round(v))


def one_of(x: Any, allowed: Iterable[str]) -> str | None:
    return x if isinstance(x, str) and x in allowed else None


def clean_str(x: Any) -> str | None:
    if not isinstance(x, str):
        return None
    s = x.strip()
    return s or None


def str_list(x: Any) -> list[str]:
    if not isinstance(x, list):
        return []
    out: list[str] = []
    for item in x:
        s = clean_str(item)
        if s:
            out.append(s)
    return out


def bool_flag(x: Any) -> bool | None:
    return x if isinstance(x, bool) else None


def union_recent(current: list[str], incoming: list[str], cap: int) -> list[str]:
    """Order-preserving union without duplicates, keeping the last `cap` items."""
    seen: set[str] = set()
    merged: list[str] = []
    for item in [*current, *incoming]:
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged[-cap:] if cap > 0 else merged
