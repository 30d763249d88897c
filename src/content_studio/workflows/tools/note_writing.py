from __future__ import annotations

from typing import Any

from content_studio.errors import InvalidInputError
from content_studio.web import MAX_PAGE_CHARS
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import ask_text

NOTE_TYPES = {
    "free": "Free article (grow followers, build trust)",
    "paid": "Paid article (monetise, deliver value)",
}

NOTE_CATEGORIES = {
    "experience": "Personal story / essay (empathy, narrative)",
    "howto": "How-to / know-how (reproducible steps)",
    "lecture": "Course / lesson (structured learning)",
    "summary": "Roundup / curation (convenience)",
    "review": "Review / analysis (evaluation, evidence)",
}


def validate(inputs: dict[str, Any]) -> None:
    if inputs.get("note_type") not in NOTE_TYPES:
        raise InvalidInputError("note_type must be 'free' or 'paid'", details={"allowed": list(NOTE_TYPES)})
    if inputs.get("category") not in NOTE_CATEGORIES:
        raise InvalidInputError("Unknown note category", details={"allowed": list(NOTE_CATEGORIES)})


def _category(ctx: StepContext) -> str:
    return NOTE_CATEGORIES.get(ctx.input("category"), ctx.input("category"))


async def analyze_structure(ctx: StepContext) -> str:
    reference = ctx.input("reference_url")
    title = ""
    if reference.startswith("http"):
        page = await ctx.services.fetch_page(reference)
        title, body = page.title, page.text
    else:
        body = reference
    prompt = f"""You are the editor-in-chief of a blogging platform and a writer whose posts go viral.
Break the reference article below into the structure that makes it get read.
Take the platform's culture into account (like prompts, magazines, hashtags, paywall line).

[REFERENCE ARTICLE]
Title: {title or "(pasted text)"}
Body: {body[:MAX_PAGE_CHARS]}

[ARTICLE WE WANT TO WRITE]
Type: {NOTE_TYPES.get(ctx.input("note_type"), ctx.input("note_type"))}
Category: {_category(ctx)}
Theme: {ctx.input("theme")}

Answer in Markdown:
# Article structure analysis
## 1. Title and introduction (title elements, likely header image, how the first 3 lines hook)
## 2. Body flow
| Section | Role | Summary |
|:--|:--|:--|
## 3. Platform-specific devices (when and how it asks for likes; where the paywall starts, if any)"""
    return await ask_text(ctx, prompt, temperature=0.4)


async def analyze_reader(ctx: StepContext) -> str:
    prompt = f"""You analyse reader psychology for personal blogging platforms.
Profile the readers of an article with this structure.

[STRUCTURE]
{ctx.value("structure")}

Answer in Markdown:
# Reader profile
## 1. Level (complete beginner to advanced)
## 2. Search intent and insight (how they arrived; who they want to become)
## 3. Expectations of the platform's tone (personal feelings or pure information?)"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def analyze_deep(ctx: StepContext) -> str:
    category = _category(ctx)
    prompt = f"""Dig into where this article's value comes from. The category is "{category}".

{ctx.value("structure")}

{ctx.value("reader")}

Identify why an article in this category gets rated highly
(a story's candid failures, a how-to's clear images, and so on).

Answer in Markdown:
# Deep analysis
## 1. Core value
## 2. How it earns trust
## 3. What makes readers comment or share"""
    return await ask_text(ctx, prompt, temperature=0.5)


async def propose_improvements(ctx: StepContext) -> str:
    theme = ctx.input("theme")
    prompt = f"""You are a sharp editor. Using the reference structure and what makes it sell,
propose how the new article (theme: {theme}) can be better.

[REFERENCE STRUCTURE]
{ctx.value("structure")}

[DEEP ANALYSIS]
{ctx.value("deep")}

Keep what works in the reference, adapt it to the theme "{theme}",
and polish the structure for the category "{_category(ctx)}".

Answer in Markdown:
# Structure improvements
## 1. Add / remove (concrete sections to add, shorten or cut)
## 2. Originality (perspectives or experiences that set it apart)
## 3. Recommended final outline
1. ..."""
    return await ask_text(ctx, prompt, temperature=0.6)


async def write_article(ctx: StepContext) -> str:
    prompt = f"""You are a popular blogger whose articles keep collecting likes.
Write a new article from the material below.

[BRIEF]
- Theme: {ctx.input("theme")}
- Type: {NOTE_TYPES.get(ctx.input("note_type"), ctx.input("note_type"))}
- Category: {_category(ctx)}
- Target: {ctx.input("target") or "based on the analysis"}

[STRUCTURE BASE]
{ctx.value("structure")}

[READER PSYCHOLOGY]
{ctx.value("reader")}

[IMPROVED OUTLINE (takes priority)]
{ctx.value("improvements")}

Rules:
- Follow the final outline from the improvements.
- Warm, approachable prose; use Markdown headings, bold and lists.
- End with a line inviting likes and follows.
- For a paid article, mark where the paywall line goes.

Answer in Markdown:
# Title ideas
1. ...
2. ...
3. ...
# Body"""
    return await ask_text(ctx, prompt, temperature=0.7)


DEFINITION = WorkflowDefinition(
    tool="note_writing",
    title="Blog Article",
    description="Free or paid blog-platform articles modelled on a reference post.",
    steps=(
        StepSpec("structure", "Structure analysis", analyze_structure, editable=True),
        StepSpec("reader", "Reader analysis", analyze_reader, editable=True),
        StepSpec("deep", "Deep analysis", analyze_deep, editable=True),
        StepSpec("improvements", "Improvements", propose_improvements, editable=True),
        StepSpec("article", "Article", write_article, editable=True),
    ),
    required_inputs=("reference_url", "note_type", "category", "theme"),
    artifact_type="seo_article",
    title_input="theme",
    validate=validate,
)
