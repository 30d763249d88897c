"""Image-generation prompts for the header images an SEO draft asks for.

SEO drafts can carry `[EYECATCH: description]` markers. This workflow picks
them up, settles on a visual style (optionally learned from an existing media
site's images) and writes one detailed prompt per marker.
"""

from __future__ import annotations

import asyncio
import logging
import re
from io import BytesIO
from typing import Any

from PIL import Image

from content_studio.errors import FetchError, InvalidInputError
from content_studio.providers.base import ReferenceImage
from content_studio.providers.jsonish import parse_json_object
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import ask_text, finish

logger = logging.getLogger(__name__)

EYECATCH_RE = re.compile(r"\[EYECATCH:\s*([^\]]+)\]", re.IGNORECASE)
_H2_RE = re.compile(r"<h2[^>]*>([^<]+)</h2>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
CONTEXT_CHARS = 500
MIN_STYLE_IMAGE_SIDE = 100

IMAGE_STYLES = {
    "photorealistic": "Photorealistic, high quality, looks like a real photo",
    "illustration": "Digital illustration",
    "anime": "Japanese anime style",
    "watercolor": "Soft watercolour painting",
    "3d_render": "3D CG render",
    "minimal": "Simple, clean, minimal design",
    "flat_design": "Modern flat design",
}
ASPECT_RATIOS = ("16:9", "4:3", "3:2", "2:1", "1:1", "9:16")

FALLBACK_STYLES = (
    ("minimal", "Minimalist", "Clean, minimal design with muted colors and simple composition, flat vector art style"),
    ("vibrant", "Vivid", "Vibrant colors with dynamic composition and bold elements, digital illustration style"),
    ("professional", "Professional", "Professional, polished look with balanced lighting and refined aesthetics"),
)


def _style(inputs: dict[str, Any]) -> str:
    return (inputs.get("style") or "photorealistic").strip()


def _aspect_ratio(inputs: dict[str, Any]) -> str:
    return (inputs.get("aspect_ratio") or "16:9").strip()


def extract_eyecatches(html: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for idx, m in enumerate(EYECATCH_RE.finditer(html or "")):
        headings = _H2_RE.findall(html, 0, m.start())
        around = html[max(0, m.start() - CONTEXT_CHARS) : m.end() + CONTEXT_CHARS]
        out.append(
            {
                "index": idx,
                "description": m.group(1).strip(),
                "section_title": headings[-1].strip() if headings else None,
                "context": _WS_RE.sub(" ", _TAG_RE.sub(" ", around)).strip(),
            }
        )
    return out


def validate(inputs: dict[str, Any]) -> None:
    if _style(inputs) not in IMAGE_STYLES:
        raise InvalidInputError("Unknown image style", details={"allowed": list(IMAGE_STYLES)})
    if _aspect_ratio(inputs) not in ASPECT_RATIOS:
        raise InvalidInputError("Unknown aspect ratio", details={"allowed": list(ASPECT_RATIOS)})
    media_url = (inputs.get("media_url") or "").strip()
    if media_url and not media_url.startswith("http"):
        raise InvalidInputError("media_url must be an http(s) URL")
    if not extract_eyecatches(inputs.get("article_html") or ""):
        raise InvalidInputError(
            "No [EYECATCH: ...] markers found. Generate the SEO draft with eyecatch markers enabled.",
            code="no_eyecatches",
        )


async def find_eyecatches(ctx: StepContext) -> list[dict[str, Any]]:
    return extract_eyecatches(ctx.input("article_html"))


def _preset_option(ctx: StepContext) -> dict[str, Any]:
    style = _style(ctx.inputs)
    return {"id": style, "label": style, "description": IMAGE_STYLES[style], "image_url": None}


def _usable(image: ReferenceImage) -> bool:
    # Icons and tracking pixels say nothing about a site's style.
    try:
        with Image.open(BytesIO(image.data)) as img:
            return min(img.size) >= MIN_STYLE_IMAGE_SIDE
    except OSError:
        return False


async def _style_images(ctx: StepContext, media_url: str) -> list[tuple[str, ReferenceImage]]:
    try:
        urls = await ctx.services.find_images(media_url)
    except FetchError as exc:
        logger.warning("Could not read media site %s: %s", media_url, exc.message)
        return []

    async def one(url: str) -> tuple[str, ReferenceImage] | None:
        try:
            image = await ctx.services.fetch_image(url)
        except FetchError as exc:
            logger.warning("Skipping style image %s: %s", url, exc.message)
            return None
        return (url, image) if _usable(image) else None

    fetched = await asyncio.gather(*(one(u) for u in urls))
    return [f for f in fetched if f is not None]


async def analyze_style(ctx: StepContext) -> dict[str, Any]:
    media_url = ctx.input("media_url")
    images = await _style_images(ctx, media_url) if media_url else []
    if not images:
        return {"summary": "", "images": [], "options": [_preset_option(ctx)]}

    prompt = f"""Analyse these {len(images)} header images from one blog.

1. Summarise the overall style in 2-3 sentences.
2. Extract 3 theme patterns an image model can reproduce. For each, list which images (1-based) match,
   and write the description as a detailed style instruction in English
   (palette, lighting, composition, texture, mood).

Return JSON only:
{{"summary": "...", "styles": [{{"id": "pattern1", "label": "...", "description": "...", "matchImages": [1, 3]}}]}}"""
    raw = await ctx.text.analyze_images(finish(ctx, prompt), [img for _, img in images])
    data = parse_json_object(raw) or {}
    urls = [url for url, _ in images]

    options: list[dict[str, Any]] = []
    for opt in data.get("styles") or []:
        if not isinstance(opt, dict) or not opt.get("description"):
            continue
        matches = [i for i in opt.get("matchImages") or [] if isinstance(i, int) and 1 <= i <= len(urls)]
        options.append(
            {
                "id": str(opt.get("id") or f"pattern{len(options) + 1}"),
                "label": str(opt.get("label") or ""),
                "description": str(opt["description"]),
                "image_url": urls[matches[0] - 1] if matches else urls[0],
            }
        )
    if not options:
        logger.warning("Style analysis for %s returned no usable patterns; using generic ones", media_url)
        options = [
            {"id": sid, "label": label, "description": desc, "image_url": urls[min(i, len(urls) - 1)]}
            for i, (sid, label, desc) in enumerate(FALLBACK_STYLES)
        ]
    options.append(_preset_option(ctx))
    return {"summary": str(data.get("summary") or ""), "images": urls, "options": options}


async def write_prompts(ctx: StepContext) -> list[dict[str, Any]]:
    style = _style(ctx.inputs)
    ratio = _aspect_ratio(ctx.inputs)
    chosen = ctx.value("style") or {}
    article_context = ctx.input("article_context")
    prompts: list[dict[str, Any]] = []
    for eyecatch in ctx.value("eyecatches") or []:
        prompt = f"""You are a world-class prompt engineer for image models (Midjourney v6, SDXL).
Write one detailed, high-resolution prompt for the header image below.

[INPUT]
- Image description: {eyecatch.get("description")}
- Section: {eyecatch.get("section_title") or "none"}
- Article context: {eyecatch.get("context") or article_context or "none"}
- Style: {style} ({IMAGE_STYLES[style]})
- Aspect ratio: {ratio}

[HOUSE STYLE, MUST MATCH]
{chosen.get("description") or "none"}
Every header image in the article shares this palette, lighting and mood.

Rules:
- If people appear, depict them as Japanese (black hair, East Asian features) and say so in the prompt.
- Order: subject, environment, art style, lighting and color (3-4 hex colors), composition, texture,
  quality boosters.
- Comma-separated keywords and phrases, not sentences. Turn abstract ideas into concrete visuals.
- End with: --ar {ratio} --v 6.0 --q 2
- Output only the prompt."""
        text = await ask_text(ctx, prompt, temperature=0.7)
        prompts.append(
            {
                "index": eyecatch.get("index"),
                "description": eyecatch.get("description"),
                "prompt": text,
                "style": style,
                "aspect_ratio": ratio,
            }
        )
    return prompts


DEFINITION = WorkflowDefinition(
    tool="eyecatch_prompt",
    title="Eyecatch Prompts",
    description="Image prompts for the [EYECATCH] markers in an SEO draft, in one house style.",
    steps=(
        StepSpec("eyecatches", "Eyecatch markers", find_eyecatches, selectable=True),
        StepSpec("style", "Visual style", analyze_style, selectable=True, pick_one=True, items_key="options"),
        StepSpec("prompts", "Prompts", write_prompts, editable=True),
    ),
    required_inputs=("article_html",),
    artifact_type="eyecatch_prompt",
    validate=validate,
)
