from __future__ import annotations

from content_studio.web import MAX_PAGE_CHARS
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import ask_text


async def analyze_structure(ctx: StepContext) -> str:
    reference = await ctx.load_reference(ctx.input("reference"))
    prompt = f"""You analyse sales letters for a living.
Break down the persuasion structure (the story) of the reference letter below.

[REFERENCE LETTER]
{reference[:MAX_PAGE_CHARS]}

[PRODUCT]
{ctx.input("product_info")}

Follow both the emotional arc and the logical progression. Answer in Markdown:

# Sales letter structure
## 1. Headline
- Hook: the words that grab the reader instantly
- Opening: which story or pain the letter opens with
## 2. Storyboard
| Phase | Role | What the letter actually says |
|:---|:---|:---|
| Problem | Shared pain | ... |
| Cause | Why nothing worked before | ... |
| Solution | New discovery or method | ... |
| Offer | Product | ... |
| Close | Call to action | ... |
## 3. Framework
Which framework it is closest to (PASONA, QUEST, PAS, ...)."""
    return await ask_text(ctx, prompt, temperature=0.4)


async def analyze_customer(ctx: StepContext) -> str:
    prompt = f"""You are a counsellor and a copywriter.
Read the hidden pain, despair and hope of the people this letter is written for.

[STRUCTURE ANALYSIS]
{ctx.value("structure")}

Answer in Markdown:
# Reader profile
## 1. State of mind before reading
- How cornered they feel
- Suspicion ("is this another scam?")
## 2. Emotional triggers that land
- Fear / Greed / Vanity / Curiosity
## 3. The future the letter promises
Beyond the functional fix, what emotional relief is promised?"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def analyze_deep(ctx: StepContext) -> str:
    prompt = f"""Explain the mechanics that make this sales letter sell:
the rhetoric and psychological techniques that move people with text alone.

{ctx.value("structure")}

{ctx.value("customer")}

Answer in Markdown:
# Rhetoric analysis
## 1. How trust is built (self-disclosure, failure stories, a common enemy, ...)
## 2. Objection handling ("too expensive", "no time", "not for me")
## 3. How the offer is framed as a life-changing opportunity
## 4. Urgency and scarcity"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def write_letter(ctx: StepContext) -> str:
    prompt = f"""You are a legendary sales copywriter.
Using the analyses, write a passionate sales letter that makes the reader act.

[PRODUCT]
{ctx.input("product_info")}

[STRUCTURE TO FOLLOW]
{ctx.value("structure")}

[READER PSYCHOLOGY]
{ctx.value("customer")}

[TECHNIQUES]
{ctx.value("deep")}

Mindset: write one-to-one, to a single struggling friend. Seventy percent emotion, thirty percent logic.
Use short paragraphs and a readable rhythm.

Answer in Markdown with these sections:
# Sales letter
## Headline (pre-head, main head, sub-head)
## Opening: empathy and the problem
## Story: discovery and solution
## Mechanism: why it works
## Offer
## Risk reversal
## Close
## P.S."""
    return await ask_text(ctx, prompt, temperature=0.7)


DEFINITION = WorkflowDefinition(
    tool="sales_letter",
    title="Sales Letter",
    description="Analyse a reference letter and write a new one for your product.",
    steps=(
        StepSpec("structure", "Structure analysis", analyze_structure, editable=True),
        StepSpec("customer", "Reader analysis", analyze_customer, editable=True),
        StepSpec("deep", "Rhetoric analysis", analyze_deep, editable=True),
        StepSpec("letter", "Sales letter", write_letter, editable=True),
    ),
    required_inputs=("reference", "product_info"),
    artifact_type="sales_letter",
    title_input="product_info",
)
