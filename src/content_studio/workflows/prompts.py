from __future__ import annotations

import json
from typing import Any

from content_studio.config import settings
from content_studio.errors import ProviderError
from content_studio.providers.jsonish import parse_json_array, parse_json_object, strip_code_fences
from content_studio.workflows.engine import StepContext


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=2)


def language_rule() -> str:
    return f"Write every human-readable value in {settings.output_language}."


def finish(ctx: StepContext, prompt: str) -> str:
    """Append the output language and, when regenerating, the user's modification request."""
    parts = [prompt.rstrip(), "", language_rule()]
    if ctx.instructions:
        parts += [
            "",
            "[PREVIOUS RESULT]",
            as_text(ctx.previous)[:6000],
            "",
            "[MODIFICATION REQUEST]",
            "Regenerate the result above, applying this request from the user:",
            f'"{ctx.instructions}"',
        ]
    return "\n".join(parts)


async def ask_text(ctx: StepContext, prompt: str, temperature: float = 0.7) -> str:
    text = await ctx.text.generate_text(finish(ctx, prompt), temperature=temperature)
    text = (text or "").strip()
    if not text:
        raise ProviderError("The model returned an empty response")
    return text


async def ask_object(ctx: StepContext, prompt: str, temperature: float = 0.4) -> dict[str, Any]:
    raw = await ctx.text.generate_text(finish(ctx, prompt), temperature=temperature)
    data = parse_json_object(raw)
    if data is None:
        raise ProviderError("The model did not return a JSON object", details={"raw": (raw or "")[:500]})
    return data


async def ask_list(ctx: StepContext, prompt: str, temperature: float = 0.6) -> list[Any]:
    raw = await ctx.text.generate_text(finish(ctx, prompt), temperature=temperature)
    data = parse_json_array(raw)
    if data is None:
        raise ProviderError("The model did not return a JSON list", details={"raw": (raw or "")[:500]})
    return data


def transcript_text(transcript: list[dict[str, str]]) -> str:
    lines = []
    for turn in transcript:
        who = "User" if turn.get("role") == "user" else "AI"
        lines.append(f"{who}: {turn.get('text', '')}")
    return "\n".join(lines)


def normalize_improvements(data: Any) -> list[dict[str, Any]]:
    """Flatten the shapes models return for improvement lists into one list of dicts.

    Accepted: `[...]`, `{"improvements": [...]}`, `{"add": [...], "remove": [...]}` and
    per-section items carrying `additions` / `removals`.
    """
    if isinstance(data, dict):
        if isinstance(data.get("improvements"), list):
            data = data["improvements"]
        else:
            flat: list[Any] = []
            for kind in ("add", "remove", "change"):
                for item in data.get(kind) or []:
                    if isinstance(item, dict):
                        flat.append({"type": kind, **item})
                    else:
                        flat.append({"type": kind, "content": str(item)})
            data = flat
    out: list[dict[str, Any]] = []
    for item in data or []:
        if isinstance(item, dict) and ("additions" in item or "removals" in item):
            # Per-section shape: {"section", "additions": [...], "removals": [...]}.
            section = item.get("section", "")
            for kind, key in (("add", "additions"), ("remove", "removals")):
                for text in item.get(key) or []:
                    if str(text).strip():
                        out.append({"type": kind, "section": section, "content": str(text).strip()})
        elif isinstance(item, dict):
            out.append(item)
        elif str(item).strip():
            out.append({"type": "add", "content": str(item).strip()})
    return out


async def ask_improvements(ctx: StepContext, prompt: str, temperature: float = 0.7) -> list[dict[str, Any]]:
    raw = await ctx.text.generate_text(finish(ctx, prompt), temperature=temperature)
    if strip_code_fences(raw or "").startswith("["):
        data: Any = parse_json_array(raw)
    else:
        data = parse_json_object(raw)
    items = normalize_improvements(data)
    if not items:
        raise ProviderError("The model did not return any improvements", details={"raw": (raw or "")[:500]})
    return items
