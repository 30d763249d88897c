from __future__ import annotations

from typing import Any

from content_studio.errors import ProviderError
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import as_text, ask_improvements, ask_text, finish


def channel_style_block(style: Any) -> str:
    """Speaker profile lines for a channel style given as free text or as analysed fields."""
    if not style:
        return (
            "[SPEAKING RULES]\n"
            "1. Keep a friendly, casual tone.\n"
            "2. Use empathetic sentence endings.\n"
            "3. Explain jargon simply."
        )
    if isinstance(style, str):
        return f"[CHANNEL STYLE] Reproduce this speaker persona completely:\n{style}"
    endings = style.get("endings") or []
    catchphrases = style.get("catchphrases") or []
    return (
        "[CHANNEL STYLE] Reproduce this speaker persona completely:\n"
        f"- First person: {style.get('firstPerson') or 'I'}\n"
        f"- Addresses viewers as: {style.get('secondPerson') or 'everyone'}\n"
        f"- Speaking style: {style.get('speakingStyle') or 'friendly'} ({style.get('tone') or 'casual'})\n"
        f"- Typical endings: {', '.join(endings) or '(none)'}\n"
        f"- Catchphrases: {', '.join(catchphrases) or '(none)'}\n"
        f"- Expertise: {style.get('expertise') or 'specialist'}"
    )


async def analyze_structure(ctx: StepContext) -> str:
    url = ctx.input("reference_url")
    prompt = f"""You are a top YouTube consultant. Analyse the video and break its structure down in Markdown.
Reflect what is actually said, cover the video from start to finish, and never skip parts.

# Video analysis report
## Basics
- Title / Channel / Theme / Target viewers
## Structure
| Section | Item | What is actually said | Est. time |
|:--|:--|:--|:--|
| OP | Impactful result up front | ... | ~30s |
| | Greeting and intro | ... | ~15s |
| PASTOR | Empathy, pain, amplification, benefit, ideal state, credibility, CTA | ... | |
| Pre-main | Shocking conclusion, reasons, examples | ... | |
| Main | Point 1 / 2 / 3 | ... | |
| ED | Summary, final CTA | ... | |"""
    text = await ctx.text.analyze_video(finish(ctx, prompt), url, temperature=0.3)
    text = (text or "").strip()
    if not text:
        raise ProviderError("The model returned an empty video analysis", details={"url": url})
    return text


async def analyze_viewers(ctx: StepContext) -> str:
    thumbnail_text = ctx.input("thumbnail_text")
    thumbnail_block = ""
    if thumbnail_text:
        thumbnail_block = (
            f"\n[THUMBNAIL TEXT]\n{thumbnail_text}\n"
            "Consider what viewers expect when they click because of this text.\n"
        )
    prompt = f"""Based on the structure analysis of the reference video, analyse its intended viewers in detail.
{thumbnail_block}
[STRUCTURE ANALYSIS]
{ctx.value("structure")}

Answer in Markdown without emoji:
# Viewer analysis
## 1. Viewer level (complete beginner / beginner / intermediate / advanced) and the main target
## 2. Pains and needs: stated needs and why they clicked
## 3. Existing knowledge and state of mind before watching
## 4. Persona table (age, job, goal, biggest barrier, information sources)"""
    return await ask_text(ctx, prompt, temperature=0.7)


async def analyze_video(ctx: StepContext) -> str:
    prompt = f"""Using the structure analysis and the viewer analysis, analyse the video in depth.

[STRUCTURE ANALYSIS]
{ctx.value("structure")}

[VIEWERS]
{ctx.value("viewers")}

Answer in Markdown:
# Detailed video analysis
## 1. Opening (first 30-60 seconds)
- The core appeal (1-2 sentences)
- Key points that prevent drop-off
## 2. What is set up before the main part
## 3. Main value: why viewers keep watching, and a table of the content points
## 4. Mapping to the structure (OP, PASTOR, pre-main, main, ED)"""
    return await ask_text(ctx, prompt, temperature=0.7)


async def propose_improvements(ctx: StepContext) -> list[dict[str, Any]]:
    cta = ctx.input("cta")
    cta_block = f"\n[CTA]\n{cta}\n" if cta else ""
    prompt = f"""Propose improvements for each part of the structure, based on the analyses below.
{cta_block}
[STRUCTURE ANALYSIS]
{ctx.value("structure")}

[VIEWERS]
{ctx.value("viewers")}

[VIDEO ANALYSIS]
{ctx.value("video")}

For each section (OP, PASTOR, pre-main, main, ED) propose up to 5 things to add and up to 5 to remove.
No emoji, no ratings.

Return JSON only:
{{"improvements": [{{"section": "OP", "additions": ["..."], "removals": ["..."]}}]}}"""
    return await ask_improvements(ctx, prompt, temperature=0.7)


async def write_script(ctx: StepContext) -> str:
    cta = ctx.input("cta")
    cta_rule = f"- End with this CTA: {cta}" if cta else ""
    prompt = f"""Write a complete YouTube script for a new video, modelled on the analysed reference.

[THEME]
{ctx.input("theme")}

[STRUCTURE TO FOLLOW]
{ctx.value("structure")}

[VIEWERS]
{ctx.value("viewers")}

[IMPROVEMENTS TO APPLY]
{as_text(ctx.value("improvements"))}

{channel_style_block(ctx.inputs.get("channel_style"))}

Rules:
- Follow the structure section by section (OP, PASTOR, pre-main, main, ED) and apply every selected improvement.
- Write spoken lines exactly as the presenter would say them; no filler words, no emoji.
- Keep one consistent persona through the summary.
{cta_rule}

Answer in Markdown: a title line, then one "## <section>" heading per part with the script under it."""
    return await ask_text(ctx, prompt, temperature=0.7)


DEFINITION = WorkflowDefinition(
    tool="youtube_script",
    title="YouTube Script",
    description="Analyse a reference video and write a new script that improves on it.",
    steps=(
        StepSpec("structure", "Structure analysis", analyze_structure, editable=True),
        StepSpec("viewers", "Viewer analysis", analyze_viewers, editable=True),
        StepSpec("video", "Video analysis", analyze_video, editable=True),
        StepSpec("improvements", "Improvements", propose_improvements, selectable=True),
        StepSpec("script", "Script", write_script, editable=True),
    ),
    required_inputs=("reference_url", "theme"),
    artifact_type="video_script",
    title_input="theme",
)
