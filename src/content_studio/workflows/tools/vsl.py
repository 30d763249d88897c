from __future__ import annotations

from typing import Any

from content_studio.errors import ProviderError
from content_studio.providers.jsonish import parse_json_object
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import ask_list, ask_text, finish, transcript_text

CAMPAIGN_ELEMENTS = [
    "Simplicity: looks easy to do",
    "Benefit: the gain is obvious at a glance",
    "Named concept: a unique method name",
    "Exclusivity: feels like secret know-how",
    "Reproducibility: anyone can get the same result",
    "Mechanism: scientific or logical conviction",
    "Novelty: feels like a new method",
    "Targeting: 'this is about me'",
    "Speed: results come fast",
    "Risk reversal: nothing to lose",
]

HEARING_TOPICS = [
    "Is the video standalone or part of a series?",
    "Details of the know-how or method offered to viewers",
    "Why the method works for the target",
    "The presenter's own results with the method",
    "The presenter's situation before adopting it",
    "Other people's results or testimonials (several is best)",
    "Final CTA: concept, what they get, price, philosophy",
    "Scarcity for the CTA (first N people, N days only, ...)",
    "Bonuses for the CTA",
]

STRUCTURE_SECTIONS = [
    "Opening hook", "Self-introduction", "Special framing and cost", "Track record",
    "Video concept", "Target's pain", "Breaking common sense", "Worst future if nothing changes",
    "Episode", "Speaking for the viewer", "Failed past", "Turning point", "Run of successes",
    "Third-party results", "Benefits", "Ideal future", "Retention line", "Shared premise",
    "Conclusion", "Evidence", "Example", "Methods to avoid", "Why to avoid them",
    "Call to the viewer", "Solution", "Self-reflection question", "Unique know-how (PREP)",
    "Personal experience", "Reality fusion", "Ideal future with the method",
    "Worst future without it", "Message to the viewer", "Core claim", "Final push",
    "Next episode teaser (series only)", "CTA", "Empathy after watching", "Offer concept",
    "Offer details", "Bonuses", "Testimonials", "Scarcity", "Why this is offered",
    "Action prompt", "Ending",
]


def _target_block(ctx: StepContext) -> str:
    return (
        f"- Worst scenario: {ctx.input('worst_scenario')}\n"
        f"- Methods that failed: {ctx.input('failed_methods')}\n"
        f"- Desired future: {ctx.input('desired_future')}\n"
        f"- Why watch now: {ctx.input('urgency_reason')}"
    )


def _campaign_block(campaign: dict[str, Any] | None) -> str:
    campaign = campaign or {}
    return f"Title: {campaign.get('title', '')}\nConcept: {campaign.get('concept', '')}"


def _gathered_block(gathered: dict[str, Any]) -> str:
    return "\n".join(f"- {k}: {v}" for k, v in gathered.items() if v) or "(nothing gathered)"


async def propose_campaigns(ctx: StepContext) -> list[dict[str, Any]]:
    elements = "\n".join(f"{i}. {e}" for i, e in enumerate(CAMPAIGN_ELEMENTS, start=1))
    references = ctx.input("reference_copies") or "(no reference copy: propose the best campaigns on your own)"
    prompt = f"""You are a top video sales letter (VSL) producer.
Analyse the target and the reference copy and propose 3 campaigns the target will jump at.

[TARGET]
{_target_block(ctx)}

[REFERENCE COPY]
{references}

A campaign can use these 10 elements (not all are needed; weight depends on the genre):
{elements}

1. Briefly analyse how the reference copy uses the elements.
2. Build 3 campaigns optimised for the target.

Return a JSON list only:
[
  {{"id": 1, "title": "catchy campaign title", "concept": "2-3 sentences", "elements": ["Simplicity", "Benefit"], "reasoning": "why it lands"}}
]"""
    campaigns = await ask_list(ctx, prompt, temperature=0.6)
    campaigns = [c for c in campaigns if isinstance(c, dict) and c.get("title")]
    if not campaigns:
        raise ProviderError("The model did not return any campaigns")
    return campaigns


async def hearing(ctx: StepContext) -> dict[str, Any]:
    topics = "\n".join(f"{i}. {t}" for i, t in enumerate(HEARING_TOPICS, start=1))
    prompt = f"""You are a professional VSL interviewer gathering what the script needs.

[TARGET]
{_target_block(ctx)}

[CHOSEN CAMPAIGN]
{_campaign_block(ctx.value("campaigns"))}

[INFORMATION TO GATHER] (ask about missing items first)
{topics}

[CONVERSATION]
{transcript_text(ctx.transcript[:-1]) or "(no messages yet)"}

[LATEST USER MESSAGE]
{ctx.message or "(start the interview)"}

Rules:
- Ask one or two questions per reply; never interrogate.
- Acknowledge the answer before moving on and draw out concrete episodes.
- When every item is covered, say the interview is complete and set isComplete to true.

Return JSON only:
{{
  "message": "your reply, including any question",
  "isComplete": false,
  "gatheredInfo": {{"isSeriesOrStandalone": "", "methodDetails": "", "evidence": "", "ownResults": "",
    "beforeState": "", "testimonials": "", "cta": "", "scarcity": "", "bonuses": ""}}
}}"""
    raw = await ctx.text.generate_text(finish(ctx, prompt), temperature=0.5)
    data = parse_json_object(raw)
    if data is None:
        # A plain-text reply still moves the conversation forward.
        return {"message": (raw or "").strip(), "gathered": {}, "complete": False}
    info = data.get("gatheredInfo")
    gathered = {k: v for k, v in info.items() if v} if isinstance(info, dict) else {}
    return {"message": str(data.get("message") or ""), "gathered": gathered, "complete": bool(data.get("isComplete"))}


async def build_structure(ctx: StepContext) -> str:
    interview = ctx.value("hearing") or {}
    sections = "\n".join(f"{i}. {s}" for i, s in enumerate(STRUCTURE_SECTIONS, start=1))
    prompt = f"""You build VSL structures that have sold millions.
Fill every part of the VSL template below with concrete content based on the interview.

[TARGET]
{_target_block(ctx)}

[CAMPAIGN]
{_campaign_block(ctx.value("campaigns"))}

[INTERVIEW RESULTS]
{_gathered_block(interview.get("gathered") or {})}

[TEMPLATE]
{sections}

Skip sections that do not apply (e.g. the teaser when the video is standalone).
Answer as a Markdown table:
| # | Section | Summary of content |
|:--|:--|:--|"""
    return await ask_text(ctx, prompt, temperature=0.4)


async def write_script(ctx: StepContext) -> str:
    interview = ctx.value("hearing") or {}
    campaign = ctx.value("campaigns") or {}
    prompt = f"""You are a VSL writer whose scripts sell.
Write the full VSL script following the structure table the user approved.

[CAMPAIGN TITLE]
{campaign.get("title", "")}

[TARGET]
{_target_block(ctx)}

[INTERVIEW RESULTS]
{_gathered_block(interview.get("gathered") or {})}

[APPROVED STRUCTURE]
{ctx.value("structure")}

Rules:
1. Write the actual narration for every section of the structure.
2. Add visual and caption directions.
3. Keep a rhythm that never bores and choose words that move emotions.
4. Use natural spoken language and pull the viewer all the way to the CTA.

Answer in Markdown:
# VSL script: {campaign.get("title", "")}
## Section 1: <name>
**Visuals / captions**: ...
**Narration**: "..."
---
(repeat for every section)"""
    return await ask_text(ctx, prompt, temperature=0.7)


DEFINITION = WorkflowDefinition(
    tool="vsl",
    title="VSL Script",
    description="Campaign ideas, an interview and a full video sales letter script.",
    steps=(
        StepSpec("campaigns", "Campaign proposals", propose_campaigns, selectable=True, pick_one=True),
        StepSpec("hearing", "Interview", hearing, conversational=True),
        StepSpec("structure", "Structure", build_structure, editable=True),
        StepSpec("script", "Script", write_script, editable=True),
    ),
    required_inputs=("worst_scenario", "failed_methods", "desired_future", "urgency_reason"),
    artifact_type="vsl_script",
    title_input="desired_future",
)
