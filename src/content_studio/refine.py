"""Free-text rewrites of generated content.

`refine_content` is the standalone editor pass; `refine_step` applies it to a
text result inside a workflow session, with the confirmed earlier steps as the
background the editor has to respect.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from content_studio.errors import InvalidInputError, ProviderError
from content_studio.providers.base import TextProvider
from content_studio.workflows import engine
from content_studio.workflows.engine import StepServices, WorkflowSession
from content_studio.workflows.prompts import language_rule

logger = logging.getLogger(__name__)

RefineKind = Literal["text", "script", "structure"]

MAX_CONTEXT_CHARS = 3000

_ROLE = {
    "text": "a professional editor and writer",
    "script": "a professional scriptwriter and editor",
    "structure": "a professional content strategist and editor",
}


def _context_text(context: Any) -> str:
    if context is None:
        return ""
    text = context if isinstance(context, str) else json.dumps(context, ensure_ascii=False, indent=2)
    return text[:MAX_CONTEXT_CHARS]


def build_refine_prompt(current_content: str, instruction: str, context: Any, kind: RefineKind = "text") -> str:
    return f"""You are {_ROLE.get(kind, _ROLE["text"])}.
Rewrite the CURRENT CONTENT following the user's INSTRUCTION.
Respect every premise in the BACKGROUND (target, product strengths, analysis results); do not ignore it.

[BACKGROUND]
{_context_text(context) or "(none)"}

[CURRENT CONTENT]
{current_content}

[INSTRUCTION]
"{instruction}"

[RULES]
- Output only the revised content. No explanations or greetings.
- Keep the Markdown formatting (headings, bullet lists).
- Even when the instruction targets one part, output the whole content so it stays consistent,
  copying unchanged parts as they are.
- {language_rule()}

[OUTPUT START]
"""


async def refine_content(
    provider: TextProvider,
    current_content: str,
    instruction: str,
    context: Any = None,
    kind: RefineKind = "text",
) -> str:
    instruction = (instruction or "").strip()
    if not instruction:
        raise InvalidInputError("Describe how the content should change", code="missing_instruction")
    if not (current_content or "").strip():
        raise InvalidInputError("There is no content to refine", code="missing_content")

    prompt = build_refine_prompt(current_content, instruction, context, kind)
    text = (await provider.generate_text(prompt, temperature=0.7) or "").strip()
    if not text:
        raise ProviderError("The model returned an empty revision")
    logger.info("Refined %s content (%d -> %d chars)", kind, len(current_content), len(text))
    return text


async def refine_step(
    session: WorkflowSession,
    step: str,
    instruction: str,
    services: StepServices,
    kind: RefineKind = "text",
) -> engine.StepRecord:
    """Rewrite a text step's result in place. Like a regeneration, it unconfirms the step and drops later ones."""
    idx = session.definition.step_index(step)
    engine.ensure_runnable(session, idx)
    ctx = engine.build_context(session, idx, services, instructions=instruction)
    record = session.steps[idx]
    if not isinstance(record.result, str):
        raise InvalidInputError(f"Step '{step}' has no text result to refine", code="not_refinable")

    context = {name: value for name, value in ctx.confirmed.items() if value is not None}
    upstream = engine.upstream_state(session, idx)
    context["inputs"] = session.inputs
    refined = await refine_content(ctx.text, record.result, instruction, context, kind)
    engine.ensure_current(session, idx, record, upstream)
    return engine.store_result(session, idx, refined, instructions=instruction)
