from __future__ import annotations

import asyncio
import logging
from typing import Any

from content_studio.assembly.render import encode_image
from content_studio.config import settings
from content_studio.errors import ConfigurationError, FetchError, InvalidInputError, ProviderError
from content_studio.providers.base import GeneratedImage, ReferenceImage
from content_studio.providers.jsonish import parse_json_object
from content_studio.storage import AssetStore
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import ask_list, ask_object, finish

logger = logging.getLogger(__name__)

MIN_REFERENCES = 3
MAX_ANALYZED_IMAGES = 5
MODEL_IMAGE_COUNT = 3
REFS_PER_IMAGE = 2
ASPECT_RATIO = "16:9"
VARIATION_NOTES = ("Standard composition", "Slightly more vibrant", "Alternative emphasis")


def references(inputs: dict[str, Any]) -> list[dict[str, str]]:
    out = []
    for ref in inputs.get("references") or []:
        if isinstance(ref, dict) and str(ref.get("url") or "").strip():
            out.append({"url": str(ref["url"]).strip(), "title": str(ref.get("title") or "").strip()})
    return out


def validate(inputs: dict[str, Any]) -> None:
    count = len(references(inputs))
    if count < MIN_REFERENCES:
        raise InvalidInputError(
            f"Select at least {MIN_REFERENCES} reference thumbnails",
            details={"count": count},
        )


def _asset_store(ctx: StepContext) -> AssetStore:
    if ctx.services.assets is None:
        raise ConfigurationError("Image steps need an asset store")
    return ctx.services.assets


async def _fetch_references(ctx: StepContext, urls: list[str]) -> list[ReferenceImage]:
    async def one(url: str) -> ReferenceImage | None:
        try:
            return await ctx.services.fetch_image(url)
        except FetchError as exc:
            logger.warning("Skipping reference image %s: %s", url, exc.message)
            return None

    fetched = await asyncio.gather(*(one(u) for u in urls))
    return [img for img in fetched if img is not None]


def _direction(ctx: StepContext) -> str:
    if not ctx.instructions:
        return ""
    return f"\n[ADDITIONAL DIRECTION FROM THE USER]\n{ctx.instructions}\n"


async def _generate_one(ctx: StepContext, prompt: str, refs: list[ReferenceImage]) -> GeneratedImage | None:
    """One image, retrying without references when the reference call fails. None if both fail."""
    try:
        images = await ctx.image.generate(prompt, refs, n=1, aspect_ratio=ASPECT_RATIO)
    except ProviderError as exc:
        if not refs:
            logger.warning("Image generation failed: %s", exc.message)
            return None
        logger.warning("Generation with references failed (%s); retrying without them", exc.message)
        try:
            images = await ctx.image.generate(prompt, [], n=1, aspect_ratio=ASPECT_RATIO)
        except ProviderError as retry_exc:
            logger.warning("Image generation failed: %s", retry_exc.message)
            return None
    return images[0] if images else None


def _store_image(ctx: StepContext, kind: str, gen: GeneratedImage, metadata: dict[str, Any]) -> dict[str, Any]:
    asset = _asset_store(ctx).add_asset(
        ctx.session_id,
        kind=kind,
        filename=f"{kind}.png",
        content=encode_image(gen.image, "png"),
        metadata={"provider": gen.provider, "model": gen.model, "prompt": gen.prompt_used, **metadata},
    )
    return {"asset_id": asset.asset_id, "filename": asset.filename}


def _subject_block(chars: dict[str, Any]) -> str:
    subject = chars.get("subjectType")
    attrs = chars.get("personAttributes") or {}
    if subject == "real_person":
        return (
            "[PERSON]\n"
            "- Copy the person from the references: same pose, angle and expression\n"
            f"- Position: {chars.get('personPosition', '')}\n"
            f"- Expression: {chars.get('personExpression') or 'engaging'}\n"
            f"- Clothing: {attrs.get('clothing') or 'match reference'}\n"
            f"- Hair: {attrs.get('hairStyle') or 'match reference'}\n"
            f"- Age: {attrs.get('ageGroup') or 'match reference'}"
        )
    if subject in ("illustration", "character"):
        return (
            "[CHARACTER / ILLUSTRATION]\n"
            "- Copy the art style, pose, colours, line weight and shading from the references\n"
            f"- Position: {chars.get('personPosition', '')}"
        )
    return (
        "[GRAPHICS]\n"
        "- Reproduce icons, stamps and badges from the references with the same colours and positions\n"
        f"- Main element: {chars.get('layout', '')}"
    )


async def analyze_patterns(ctx: StepContext) -> dict[str, Any]:
    refs = references(ctx.inputs)
    titles = "\n".join(f"{i}. {r['title'] or '(untitled)'}" for i, r in enumerate(refs, start=1))
    prompt = f"""You are a YouTube thumbnail designer.
Group the reference thumbnails by what they share (text position and scale, sentiment,
whether and where a person appears) and extract the 2-3 strongest design patterns.

[NEW VIDEO]
Title: {ctx.input("video_title")}
Description: {ctx.input("video_description") or "(none)"}

[REFERENCE THUMBNAIL TITLES]
{titles}

Describe typography in detail: it matters most.

Return JSON only:
{{
  "patterns": [
    {{
      "name": "pattern name",
      "description": "one-line summary",
      "matchCount": 3,
      "exampleImageIndices": [1, 3],
      "characteristics": {{
        "subjectType": "real_person|illustration|character|none",
        "textPosition": "...", "textScale": "...", "sentiment": "positive|negative|neutral|shocking",
        "textStyle": "...", "colorScheme": "...", "personPosition": "...", "personExpression": "...",
        "personAttributes": {{"ageGroup": "...", "gender": "...", "hairStyle": "...", "clothing": "..."}},
        "layout": "...", "visualTechniques": "..."
      }},
      "requiredMaterials": {{"background": "...", "person": "...", "props": ["..."]}},
      "designRules": ["..."]
    }}
  ],
  "summary": "overall trend"
}}"""
    images = await _fetch_references(ctx, [r["url"] for r in refs[:MAX_ANALYZED_IMAGES]])
    if images:
        logger.info("Analyzing %d reference thumbnails", len(images))
        raw = await ctx.text.analyze_images(finish(ctx, prompt), images)
    else:
        logger.warning("No reference thumbnail could be downloaded; analyzing titles only")
        raw = await ctx.text.generate_text(finish(ctx, prompt), temperature=0.5)
    data = parse_json_object(raw)
    if data is None:
        raise ProviderError("The model did not return a pattern analysis", details={"raw": (raw or "")[:500]})
    patterns = [p for p in data.get("patterns") or [] if isinstance(p, dict) and p.get("name")]
    if not patterns:
        raise ProviderError("The model did not find any thumbnail patterns")
    return {"patterns": patterns, "summary": str(data.get("summary") or ""), "images_analyzed": len(images)}


async def _suggest_texts(ctx: StepContext, pattern_name: str) -> list[dict[str, str]]:
    prompt = f"""Suggest 3 overlay texts (2-20 characters each) for the thumbnail of the video
"{ctx.input("video_title")}" in the "{pattern_name}" style.

Return JSON only:
{{"suggestedTexts": [{{"text": "...", "reason": "why it works"}}]}}"""
    try:
        data = await ask_object(ctx, prompt, temperature=0.7)
    except ProviderError as exc:
        logger.warning("Text suggestions failed for %s: %s", pattern_name, exc.message)
        return []
    return [t for t in data.get("suggestedTexts") or [] if isinstance(t, dict) and t.get("text")]


async def generate_models(ctx: StepContext) -> list[dict[str, Any]]:
    pattern = ctx.value("patterns") or {}
    chars = pattern.get("characteristics") or {}
    materials = pattern.get("requiredMaterials") or {}
    text = ctx.input("video_title")
    refs = references(ctx.inputs)
    example_urls = [
        refs[i - 1]["url"]
        for i in pattern.get("exampleImageIndices") or []
        if isinstance(i, int) and 1 <= i <= len(refs)
    ][:REFS_PER_IMAGE]
    ref_images = await _fetch_references(ctx, example_urls)
    props = ", ".join(materials.get("props") or [])

    def prompt_for(variant: int) -> str:
        return f"""Create a YouTube thumbnail image with text.

[TEXT]
- Render exactly: "{text}"
- Reproduce the font style and effects (outlines, shadows, gradients) of the references
- Text position: {chars.get("textPosition", "")}
- Font style: {chars.get("textStyle", "")}

{_subject_block(chars)}

[LAYOUT]
- Aspect ratio: 16:9 (1280x720)
- Layout: {chars.get("layout", "")}
- Color scheme: {chars.get("colorScheme", "")}
- Background: {materials.get("background", "")}
- Props: {props or "none"}

[VARIATION {variant}]
{VARIATION_NOTES[(variant - 1) % len(VARIATION_NOTES)]}
{_direction(ctx)}
[DO NOT]
- No garbled text, no distorted faces or hands, no blur
- No text other than the text above"""

    generated = await asyncio.gather(
        *(_generate_one(ctx, prompt_for(v), ref_images) for v in range(1, MODEL_IMAGE_COUNT + 1))
    )
    suggestions = await _suggest_texts(ctx, str(pattern.get("name") or "custom"))
    models = []
    for variant, gen in enumerate(generated, start=1):
        if gen is None:
            continue
        stored = _store_image(ctx, "model", gen, {"pattern": pattern.get("name"), "variation": variant})
        models.append(
            {
                **stored,
                "pattern_name": pattern.get("name"),
                "description": pattern.get("description", ""),
                "variation": variant,
                "suggested_texts": suggestions,
            }
        )
    if not models:
        raise ProviderError("Every model image failed to generate. Try again later.")
    return models


async def propose_copy(ctx: StepContext) -> list[dict[str, str]]:
    model = ctx.value("models") or {}
    pattern = ctx.value("patterns") or {}
    suggested = "\n".join(f"- {t.get('text')}: {t.get('reason', '')}" for t in model.get("suggested_texts") or [])
    prompt = f"""You write YouTube thumbnail overlay text that gets clicks.
Propose 5 overlay texts (2-20 characters, may use a line break) for this video.

[VIDEO TITLE]
{ctx.input("video_title")}

[DESIGN PATTERN]
{pattern.get("name", "")}: {pattern.get("description", "")}
Sentiment: {(pattern.get("characteristics") or {}).get("sentiment", "")}

[EARLIER SUGGESTIONS]
{suggested or "(none)"}

Return a JSON list only:
[{{"text": "...", "reason": "why it works"}}]"""
    items = await ask_list(ctx, prompt, temperature=0.8)
    items = [i for i in items if isinstance(i, dict) and str(i.get("text") or "").strip()]
    if not items:
        raise ProviderError("The model did not propose any overlay text")
    return items


async def generate_final(ctx: StepContext) -> list[dict[str, Any]]:
    model = ctx.value("models") or {}
    copy = ctx.value("copy") or {}
    text = str(copy.get("text") or "").strip()
    if not text:
        raise InvalidInputError("Choose the overlay text first")
    pattern = ctx.value("patterns") or {}
    chars = pattern.get("characteristics") or {}

    store = _asset_store(ctx)
    refs: list[ReferenceImage] = []
    if model.get("asset_id"):
        asset = store.get_asset(ctx.session_id, model["asset_id"])
        refs.append(ReferenceImage(data=store.read_bytes(ctx.session_id, asset), mime_type="image/png"))

    def prompt_for(variant: int) -> str:
        return f"""[TASK] Add the text overlay to the model thumbnail provided as reference.

[MANDATORY TEXT]
Render exactly: "{text}"
Write no other text, labels or watermarks.

[TYPOGRAPHY]
- Font style: {chars.get("textStyle") or "bold white with black outline"}
- Apply the outlines, shadows and gradients of the reference

[PRESERVE FROM THE MODEL IMAGE]
- The same person or character, background and composition
- The same color scheme: {chars.get("colorScheme") or "high contrast"}
- Icons, stamps and badges in their original positions

[SPECIFICATIONS]
- 1280x720 (16:9), sharp focus, vibrant high-contrast colors

[VARIATION {variant}]
{VARIATION_NOTES[(variant - 1) % len(VARIATION_NOTES)]}
{_direction(ctx)}"""

    count = max(1, settings.final_thumbnail_count)
    generated = await asyncio.gather(*(_generate_one(ctx, prompt_for(v), refs) for v in range(1, count + 1)))
    finals = []
    for variant, gen in enumerate(generated, start=1):
        if gen is None:
            continue
        stored = _store_image(ctx, "thumbnail", gen, {"text": text, "variation": variant})
        finals.append({**stored, "text": text, "variation": variant})
    if not finals:
        raise ProviderError("Every thumbnail failed to generate. Try again later.")
    logger.info("Generated %d/%d final thumbnails for session %s", len(finals), count, ctx.session_id)
    return finals


DEFINITION = WorkflowDefinition(
    tool="thumbnail",
    title="Thumbnail",
    description="Analyse reference thumbnails, pick a pattern and text, and generate final images.",
    steps=(
        StepSpec("patterns", "Pattern analysis", analyze_patterns, selectable=True, pick_one=True, items_key="patterns"),
        StepSpec("models", "Model images", generate_models, selectable=True, pick_one=True),
        StepSpec("copy", "Overlay text", propose_copy, selectable=True, pick_one=True, editable=True),
        StepSpec("final", "Final thumbnails", generate_final, selectable=True),
    ),
    required_inputs=("video_title", "references"),
    artifact_type="thumbnail",
    title_input="video_title",
    validate=validate,
)
