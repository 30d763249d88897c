from __future__ import annotations

from typing import Any

from content_studio.errors import ProviderError
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import as_text, ask_improvements, ask_text, finish
from content_studio.workflows.tools.youtube_script import channel_style_block


async def analyze_structure(ctx: StepContext) -> str:
    url = ctx.input("reference_url")
    platform = ctx.input("platform")
    prompt = f"""You are a short-form video scriptwriter. Break down the structure of this {platform} video.
In short-form video the first second's hook is everything, so focus on it.

Answer in Markdown:
# Short video structure
## 1. Estimated timeline
| Time | Section | What is said | Visual direction (guess) |
|:--|:--|:--|:--|
| 0:00-0:03 | Hook | ... | ... |
| ... | Problem / main / CTA | ... | ... |
## 2. Retention devices (visual hook, audio hook, pacing)
## 3. The winning pattern in one paragraph"""
    text = await ctx.text.analyze_video(finish(ctx, prompt), url, temperature=0.3)
    text = (text or "").strip()
    if not text:
        raise ProviderError("The model returned an empty video analysis", details={"url": url})
    return text


async def analyze_viewer(ctx: StepContext) -> str:
    prompt = f"""You are a social media marketer analysing {ctx.input("platform")} viewer psychology.
Whether a short is swiped away or watched is decided in half a second.

[STRUCTURE]
{ctx.value("structure")}

Answer in Markdown, concretely and critically:
1. The psychological trigger that stopped the scroll
2. Viewer attributes: age, gender, literacy, the pain they cannot put into words
3. Why they watched to the end"""
    return await ask_text(ctx, prompt, temperature=0.4)


async def propose_improvements(ctx: StepContext) -> list[dict[str, Any]]:
    prompt = f"""You produce short videos that go viral.
Propose 5 improvements that raise response rates beyond the analysed video.
Platform: {ctx.input("platform")} (vertical, short, often watched at speed).

[ANALYSIS]
{ctx.value("structure")}

{ctx.value("viewer")}

Cover direction (cuts, sound, captions) as well as content.

Return JSON only:
{{"improvements": [{{"type": "add", "section": "Hook", "content": "concrete direction", "reason": "why views go up"}}]}}"""
    return await ask_improvements(ctx, prompt, temperature=0.7)


async def write_script(ctx: StepContext) -> str:
    theme = ctx.input("theme")
    prompt = f"""You are a top {ctx.input("platform")} creator.
Write a complete short video script that maximises retention and engagement (saves, comments).

[THEME] {theme}

[STRUCTURE]
{ctx.value("structure")}

[IMPROVEMENTS TO APPLY]
{as_text(ctx.value("improvements"))}

{channel_style_block(ctx.inputs.get("channel_style"))}

Rules:
1. At most 60 seconds.
2. Show the conclusion, a shock or empathy in the first 3 seconds.
3. No filler words.
4. Include camera and caption directions.

Answer in Markdown:
# {theme} (short script)
## 1. Caption (with at least 5 hashtags)
## 2. Timeline
| Seconds | Scene / visuals | Narration | On-screen text |
|:--|:--|:--|:--|
## 3. Shooting and editing notes (BGM, cut pacing, effects)"""
    return await ask_text(ctx, prompt, temperature=0.7)


DEFINITION = WorkflowDefinition(
    tool="short_script",
    title="Short Video Script",
    description="Scripts for TikTok, Reels and Shorts modelled on a reference video.",
    steps=(
        StepSpec("structure", "Structure analysis", analyze_structure, editable=True),
        StepSpec("viewer", "Viewer psychology", analyze_viewer, editable=True),
        StepSpec("improvements", "Improvements", propose_improvements, selectable=True),
        StepSpec("script", "Script", write_script, editable=True),
    ),
    required_inputs=("reference_url", "platform", "theme"),
    artifact_type="video_script",
    title_input="theme",
)
