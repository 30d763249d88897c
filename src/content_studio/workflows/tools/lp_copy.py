from __future__ import annotations

from typing import Any

from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import as_text, ask_list, ask_text, transcript_text

MAX_HEARING_QUESTIONS = 5
MAX_REFERENCE_CHARS = 15_000
DONE_MARKER = "[DONE]"

APPEAL_AXES = """- Novelty: the product or service is new
- Uniqueness: nothing else like it exists
- Authority: impressive results or creators
- Ease: results come easily and quickly
- Reproducibility: anyone can get the result"""


async def analyze_structure(ctx: StepContext) -> str:
    reference = await ctx.load_reference(ctx.input("reference"))
    prompt = f"""You are a world-class landing page (LP) architect.
Take the LP text below apart and explain the structure that makes it sell.

[LP TEXT]
{reference[:MAX_REFERENCE_CHARS]}

Answer in Markdown:
# Structure report
## 1. First view (FV)
- Catch copy
- What it emphasises (results, authority, benefits, ...)
- Main visual (as far as the text reveals it)
## 2. Section flow
Break everything below the FV into sections, describing what is actually written.
Do not force it into a template.
| Section | Role | Actual content and appeal |
|:---|:---|:---|
## 3. Main appeal axis
Pick the axis (or a combination) the LP pushes hardest and say why:
{APPEAL_AXES}"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def analyze_customer(ctx: StepContext) -> str:
    prompt = f"""You are a brilliant marketer.
From the LP analysis below, describe how the target customer's feelings change while reading.

[LP ANALYSIS]
{ctx.value("structure")}

Assume the reference LP scores 100/100. For each section explain what the reader feels and
why they keep reading.

Answer in Markdown:
# Customer and emotion analysis
## 1. Target
- Level (complete beginner to advanced)
- Demographics
- Surface problem and real insight
## 2. Emotional curve
| Section | Reference content | Reader's inner voice |
|:---|:---|:---|
## 3. Purchase hurdles and how they are overcome"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def hearing(ctx: StepContext) -> dict[str, Any]:
    answers = sum(1 for turn in ctx.transcript if turn.get("role") == "user")
    remaining = MAX_HEARING_QUESTIONS - answers
    if remaining <= 0:
        return {
            "message": "The interview is complete. Move on to review the product profile.",
            "gathered": {"answers": answers},
            "complete": True,
        }

    last_rule = ""
    if remaining <= 1:
        last_rule = f"This is the final question. End your message with {DONE_MARKER}."
    prompt = f"""You are a professional sales copywriter interviewing the user about the NEW product
or service they want an LP for.

Ignore the reference LP entirely: it is a different product. Dig only into facts about the new product,
so that it is clear who it is sold to, what is sold and how.

[KNOWN SO FAR]
{ctx.input("product_info")}

[CONVERSATION]
{transcript_text(ctx.transcript) or "(no messages yet)"}

[QUESTIONS LEFT] {remaining} of {MAX_HEARING_QUESTIONS}

Ask exactly ONE short, easy-to-answer question. Ask about whatever is still missing, in this priority:
1. Target persona, their pain and urgency
2. The product's biggest strength (USP)
3. Price and offer
4. Advantage over competitors
5. Track record and authority
{last_rule}"""
    text = await ask_text(ctx, prompt, temperature=0.7)
    return {"message": text.replace(DONE_MARKER, "").strip(), "gathered": {"answers": answers}, "complete": False}


async def build_profile(ctx: StepContext) -> str:
    interview = ctx.value("hearing") or {}
    prompt = f"""You are a skilled marketing strategist.
From the interview below, write the definition document for the product and target of the new LP.
The user will edit it by hand, so use simple Markdown.

[PRODUCT NOTES]
{ctx.input("product_info")}

[INTERVIEW]
{transcript_text(interview.get("transcript") or [])}

Format:
# Product and target definition
## 1. Target persona
- Attributes
- Pain (before)
- Ideal future (after)
## 2. Product overview
- Name (provisional if undecided)
- Strengths (USP)
- Price and offer
## 3. Differentiation and authority"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def propose_outline(ctx: StepContext) -> list[Any]:
    prompt = f"""You are the best LP structure writer in the world.
Apply the selling structure of the reference LP and the customer's emotional curve to the NEW product
and propose the strongest LP outline.

[REFERENCE STRUCTURE]
{ctx.value("structure")}

[CUSTOMER EMOTIONS]
{ctx.value("customer")}

[NEW PRODUCT]
{as_text(ctx.value("profile"))}

For each section say what to convey and which emotion the reader should be left with.
The list order is the LP order.

Return a JSON list only:
[
  {{"id": "1", "section": "First view", "title": "catch copy idea", "content": "detailed direction", "emotion": "reader's feeling"}}
]"""
    return await ask_list(ctx, prompt, temperature=0.6)


async def write_copy(ctx: StepContext) -> str:
    profile = as_text(ctx.value("profile"))
    prompt = f"""You are a legendary sales writer.
Write the full LP copy for the new product, following the outline the user finalised.

[PRODUCT]
{profile}

[FINAL OUTLINE]
{as_text(ctx.value("outline"))}

Rules:
- Keep the order and intent of every outline section.
- Use concrete benefits and numbers instead of abstractions.
- Keep to the product facts above. Never invent testimonials or results; use placeholders instead.
- Design the first view to stop readers leaving within three seconds.
- Place several CTAs and remove purchase barriers in an FAQ.

Answer in Markdown: one "## [Section N: name]" heading per outline section with headline and body copy,
then a "## CTA variations" section with 5 options."""
    return await ask_text(ctx, prompt, temperature=0.7)


DEFINITION = WorkflowDefinition(
    tool="lp_copy",
    title="LP Copy",
    description="Interview-driven landing page copy modelled on a reference LP.",
    steps=(
        StepSpec("structure", "LP structure", analyze_structure, editable=True),
        StepSpec("customer", "Customer emotions", analyze_customer, editable=True),
        StepSpec("hearing", "Product interview", hearing, conversational=True),
        StepSpec("profile", "Product profile", build_profile, editable=True),
        StepSpec("outline", "Outline", propose_outline, editable=True),
        StepSpec("copy", "LP copy", write_copy, editable=True),
    ),
    required_inputs=("reference", "product_info"),
    artifact_type="lp_writing",
    title_input="product_info",
)
