from __future__ import annotations

import json
import logging
from typing import Any


logger = logging.getLogger(__name__)


def dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def loads(s: str | None) -> Any:
    """Decode a stored blob; empty or corrupt text reads as None."""
    if not s:
        return None
    try:
        return json.loads(s)
    except json.JSONDecodeError as e:
        logger.warning("Discarding corrupt JSON blob (%d chars): %s", len(s), e)
        return None
