"""Best-effort JSON extraction from model output.

Models are asked for strict JSON but regularly wrap it in code fences or add a
sentence before/after it.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*\s*(.*?)\s*```", re.DOTALL)
_DECODER = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    s = text.strip()
    m = _FENCE_RE.search(s)
    if m:
        return m.group(1).strip()
    return s


def _decode_from(text: str, open_ch: str) -> Any:
    """Decode the first JSON value starting at an `open_ch`; whatever follows it is ignored."""
    start = text.find(open_ch)
    while start != -1:
        try:
            value, _end = _DECODER.raw_decode(text, start)
            return value
        except ValueError:
            start = text.find(open_ch, start + 1)
    return None


def parse_json_object(raw_text: str | None) -> dict[str, Any] | None:
    if not raw_text:
        return None
    data = _decode_from(strip_code_fences(raw_text), "{")
    return data if isinstance(data, dict) else None


def parse_json_array(raw_text: str | None) -> list[Any] | None:
    if not raw_text:
        return None
    s = strip_code_fences(raw_text)
    data = _decode_from(s, "[")
    if isinstance(data, list):
        return data

    # Some models wrap the list: {"posts": [...]} / {"data": [...]}.
    obj = parse_json_object(s)
    if obj:
        for value in obj.values():
            if isinstance(value, list):
                return value
    return None
