from __future__ import annotations

from typing import Any

from content_studio.errors import InvalidInputError, ProviderError
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import as_text, ask_list, ask_object

PLATFORMS = ("x", "threads")


def sample_posts(inputs: dict[str, Any]) -> list[str]:
    raw = inputs.get("sample_posts") or []
    if isinstance(raw, str):
        raw = raw.split("\n---\n")
    return [p.strip() for p in raw if isinstance(p, str) and p.strip()]


def validate(inputs: dict[str, Any]) -> None:
    if (inputs.get("platform") or "").strip().lower() not in PLATFORMS:
        raise InvalidInputError("platform must be 'x' or 'threads'", details={"allowed": list(PLATFORMS)})
    if not sample_posts(inputs):
        raise InvalidInputError("Provide at least one past post for tone analysis", code="missing_input")


async def analyze_structure(ctx: StepContext) -> dict[str, Any]:
    prompt = f"""You take viral social posts apart and rebuild them.
Analyze the reference post below and reduce it to an abstract, reusable template.

[REFERENCE POST]
{ctx.input("reference_post")}

1. Abstract the post into a template of elements (e.g. "past -> mistake -> turning point -> ...").
   For each element give a short label, what it does for the reader, and the matching passage.
2. Simplify the template into a bare list of element names.
3. Classify the post type (e.g. "story/empathy", "list", "contrarian").

Return JSON only:
{{
  "structureDetail": [{{"step": 1, "label": "...", "description": "...", "example": "..."}}],
  "simplifiedStructure": ["...", "..."],
  "postType": "...",
  "analysisSummary": "..."
}}"""
    return await ask_object(ctx, prompt, temperature=0.4)


async def analyze_tone(ctx: StepContext) -> dict[str, Any]:
    posts = "\n\n---\n\n".join(sample_posts(ctx.inputs))
    prompt = f"""You are a social media and linguistics specialist.
Describe the voice of this account from its past posts.

[PAST POSTS]
{posts}

Cover: register (casual, expert, blunt...), typical sentence endings, emoji usage,
first-person pronoun, and the overall personality.

Return JSON only:
{{
  "toneType": "...",
  "endings": ["...", "..."],
  "emojiFrequency": "...",
  "firstPerson": "...",
  "description": "..."
}}"""
    return await ask_object(ctx, prompt, temperature=0.3)


async def write_posts(ctx: StepContext) -> list[dict[str, Any]]:
    structure = ctx.value("structure") or {}
    platform = ctx.input("platform").lower()
    if platform == "x":
        platform_rule = "Platform: X (formerly Twitter). Long posts are allowed."
    else:
        platform_rule = "Platform: Threads. Keep each post within 500 characters."
    prompt = f"""You take viral social posts apart and rebuild them.
Using the template and the account voice below, write new posts about the given theme.
Follow the template closely, mirror the phrasing style, add some humour, and keep the language natural.

[TEMPLATE]
{as_text(structure.get("simplifiedStructure"))}
(post type: {structure.get("postType", "")})

[ACCOUNT VOICE]
{as_text(ctx.value("tone"))}

[THEME]
{ctx.input("theme")}

{platform_rule}
Write 3 alternative posts.

Return a JSON list only:
[
  {{"type": "pattern name", "content": "post body with line breaks", "explanation": "why this version works"}}
]"""
    posts = await ask_list(ctx, prompt, temperature=0.7)
    posts = [p for p in posts if isinstance(p, dict) and str(p.get("content", "")).strip()]
    if not posts:
        raise ProviderError("The model did not return any posts")
    return posts


DEFINITION = WorkflowDefinition(
    tool="social_post",
    title="Social Post",
    description="Rebuild a viral post's structure in your own account's voice.",
    steps=(
        StepSpec("structure", "Reference structure", analyze_structure, editable=True),
        StepSpec("tone", "Account tone", analyze_tone, editable=True),
        StepSpec("posts", "Posts", write_posts, selectable=True),
    ),
    required_inputs=("reference_post", "platform", "sample_posts", "theme"),
    artifact_type="social_post",
    title_input="theme",
    validate=validate,
)
