from __future__ import annotations

import asyncio
import json

import pytest

from content_studio import refine
from content_studio.errors import InvalidInputError, ProviderError, StepLockedError
from content_studio.workflows import engine
from content_studio.workflows.engine import StepSpec, WorkflowDefinition


async def _angles(ctx):
    return ["price", "speed"]


async def _draft(ctx):
    return f"Draft about {ctx.value('angles')[0]}"


DEFINITION = WorkflowDefinition(
    tool="copy",
    title="Copy",
    steps=(
        StepSpec("angles", "Angles", _angles, selectable=True),
        StepSpec("draft", "Draft", _draft, editable=True),
        StepSpec("polish", "Polish", _draft),
    ),
    required_inputs=("product",),
    artifact_type="seo_article",
)


def _ready_session(services):
    session = engine.start(DEFINITION, "u1", {"product": "Kettle"})
    asyncio.run(engine.run_step(session, "angles", services))
    engine.confirm_step(session, "angles", selection=[0])
    asyncio.run(engine.run_step(session, "draft", services))
    return session


def test_refine_content_validates_input(fake_text):
    with pytest.raises(InvalidInputError) as exc:
        asyncio.run(refine.refine_content(fake_text, "text", "   "))
    assert exc.value.code == "missing_instruction"

    with pytest.raises(InvalidInputError) as exc:
        asyncio.run(refine.refine_content(fake_text, " ", "shorter"))
    assert exc.value.code == "missing_content"
    assert fake_text.calls == []


def test_refine_content_rejects_empty_output(fake_text):
    fake_text.queue("   ")
    with pytest.raises(ProviderError):
        asyncio.run(refine.refine_content(fake_text, "text", "shorter"))


def test_refine_prompt_contains_everything_and_truncates_context(fake_text):
    fake_text.queue("  revised  ")
    context = {"notes": "x" * 10_000}

    out = asyncio.run(refine.refine_content(fake_text, "original body", "make it punchy", context, kind="script"))

    assert out == "revised"
    [(method, prompt)] = fake_text.calls
    assert method == "generate_text"
    assert "scriptwriter" in prompt
    assert "original body" in prompt
    assert '"make it punchy"' in prompt
    background = prompt.split("[BACKGROUND]")[1].split("[CURRENT CONTENT]")[0].strip()
    assert len(background) == refine.MAX_CONTEXT_CHARS
    assert background == json.dumps(context, ensure_ascii=False, indent=2)[: refine.MAX_CONTEXT_CHARS]


def test_refine_step_replaces_text_result(services, fake_text):
    session = _ready_session(services)
    fake_text.queue("Sharper draft about price")

    record = asyncio.run(refine.refine_step(session, "draft", "sharper", services))

    assert record.result == "Sharper draft about price"
    assert record.instructions == ["sharper"]
    assert record.runs == 2
    assert record.confirmed is False
    prompt = fake_text.calls[0][1]
    assert "Draft about price" in prompt
    assert "Kettle" in prompt


def test_refine_step_requires_text_result(services):
    session = _ready_session(services)
    with pytest.raises(InvalidInputError) as exc:
        asyncio.run(refine.refine_step(session, "angles", "fewer", services))
    assert exc.value.code == "not_refinable"


def test_refine_step_respects_locks(services):
    session = _ready_session(services)
    with pytest.raises(StepLockedError):
        asyncio.run(refine.refine_step(session, "polish", "tighter", services))
