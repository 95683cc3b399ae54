from __future__ import annotations

import math
import re
from typing import Any

_SPACES_RE = re.compile(r"\s+")

MISSING: Any = object()


def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def clip(text: str, max_len: int) -> str:
    return text[:max_len].rstrip() if len(text) > max_len else text


def as_trimmed_string(value: Any, max_len: int = 500) -> str | None:
    if not isinstance(value, str):
        return None
    text = clip(value.strip(), max_len)
    return text or None


def as_nullable_string(value: Any, max_len: int = 500) -> Any:
    """Like :func:`as_trimmed_string` but keeps an explicit ``None``.

    Returns the ``MISSING`` sentinel when the value is neither a usable string
    nor ``None`` so callers can tell "delete" apart from "absent".
    """
    if value is None:
        return None
    parsed = as_trimmed_string(value, max_len)
    return MISSING if parsed is None else parsed


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def as_integer(value: Any, minimum: int, maximum: int) -> int | None:
    number = _to_number(value)
    if number is None:
        return None
    number = min(float(maximum), max(float(minimum), number))
    return int(math.floor(number + 0.5))


def as_context_string(value: Any, max_len: int = 100) -> str | None:
    parsed = as_trimmed_string(value, max_len)
    if not parsed:
        return None
    return _SPACES_RE.sub(" ", parsed)


def as_string_list(value: Any, max_items: int, max_len: int, *, collapse: bool = False) -> list[str]:
    if not isinstance(value, list):
        return []
    output: list[str] = []
    for entry in value:
        parsed = as_context_string(entry, max_len) if collapse else as_trimmed_string(entry, max_len)
        if not parsed:
            continue
        if parsed not in output:
            output.append(parsed)
        if len(output) >= max_items:
            break
    return output
