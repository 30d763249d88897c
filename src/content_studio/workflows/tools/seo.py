from __future__ import annotations

import logging
from typing import Any

from content_studio.errors import FetchError, InvalidInputError, ProviderError
from content_studio.providers.jsonish import parse_json_object, strip_code_fences
from content_studio.workflows.engine import StepContext, StepSpec, WorkflowDefinition
from content_studio.workflows.prompts import as_text, ask_list, ask_object, ask_text, finish

logger = logging.getLogger(__name__)

MAX_REFERENCE_URLS = 5
ARTICLE_EXCERPT_CHARS = 10_000
DEFAULT_WORD_COUNT = (3000, 5000)


def reference_urls(inputs: dict[str, Any]) -> list[str]:
    raw = inputs.get("reference_urls") or []
    if isinstance(raw, str):
        raw = raw.split()
    return [u.strip() for u in raw if isinstance(u, str) and u.strip()]


def secondary_keywords(inputs: dict[str, Any]) -> list[str]:
    raw = inputs.get("secondary_keywords") or []
    if isinstance(raw, str):
        raw = raw.replace("\n", ",").split(",")
    return [k.strip() for k in raw if isinstance(k, str) and k.strip()]


def validate(inputs: dict[str, Any]) -> None:
    urls = reference_urls(inputs)
    if not 1 <= len(urls) <= MAX_REFERENCE_URLS:
        raise InvalidInputError(
            f"Provide between 1 and {MAX_REFERENCE_URLS} reference URLs",
            details={"count": len(urls)},
        )
    bad = [u for u in urls if not u.startswith(("http://", "https://"))]
    if bad:
        raise InvalidInputError("Reference URLs must start with http:// or https://", details={"invalid": bad})


def _word_count(ctx: StepContext) -> tuple[int, int]:
    try:
        low = int(ctx.inputs.get("word_count_min") or DEFAULT_WORD_COUNT[0])
        high = int(ctx.inputs.get("word_count_max") or DEFAULT_WORD_COUNT[1])
    except (TypeError, ValueError):
        return DEFAULT_WORD_COUNT
    return (low, high) if low <= high else (high, low)


async def search_intent(ctx: StepContext) -> dict[str, Any]:
    articles: list[dict[str, Any]] = []
    failures: list[dict[str, str]] = []
    for url in reference_urls(ctx.inputs):
        try:
            page = await ctx.services.fetch_page(url)
        except FetchError as exc:
            logger.warning("Skipping reference article %s: %s", url, exc.message)
            failures.append({"url": url, "error": exc.message})
            continue
        articles.append(
            {
                "url": page.url,
                "title": page.title,
                "headings": list(page.headings),
                "excerpt": page.text[:ARTICLE_EXCERPT_CHARS],
            }
        )
    if not articles:
        raise FetchError("None of the reference articles could be fetched", details={"failures": failures})

    summary = "\n\n".join(
        f"Article {i}: {a['title']}\nHeadings: {', '.join(a['headings']) or '(none found)'}"
        for i, a in enumerate(articles, start=1)
    )
    prompt = f"""You are an SEO specialist. Identify the search intent from the top-ranking articles below.
Judge from what the articles provide, not from the keyword alone.

[PRIMARY KEYWORD]
{ctx.input("primary_keyword")}

[TOP ARTICLES: TITLES AND HEADINGS]
{summary}

Return JSON only:
{{
  "searchIntent": "informational|navigational|commercial|transactional",
  "evidence": "why, based on the articles",
  "searcherSituation": "the searcher's situation",
  "expectedInformation": ["..."],
  "requiredTopics": ["topics every article covers"]
}}"""
    analysis = await ask_object(ctx, prompt, temperature=0.4)
    analysis["articles"] = articles
    analysis["failures"] = failures
    return analysis


async def analyze_structure(ctx: StepContext) -> list[dict[str, Any]]:
    intent = ctx.value("search_intent") or {}
    out: list[dict[str, Any]] = []
    for article in intent.get("articles") or []:
        prompt = f"""You analyse the structure of SEO articles.

[ARTICLE TITLE]
{article.get("title", "")}

[ARTICLE BODY]
{article.get("excerpt", "")}

Analyse: the title (segments, word order intent, hooks, why it gets clicked), every H2 (text, its H3s,
value provided, reader question answered, keyword placement), statistics and examples used, and CTAs.

Return JSON only:
{{
  "titleAnalysis": {{"segments": ["..."], "wordOrderIntent": "...", "attractiveElements": "...", "clickReason": "..."}},
  "h2Analyses": [{{"h2Text": "...", "h3List": ["..."], "providedValue": "...", "readerQuestionAnswered": "...", "keywordPlacement": "..."}}],
  "usedData": {{"statistics": ["..."], "examples": ["..."]}},
  "ctaAnalysis": {{"placements": ["..."], "content": "..."}}
}}"""
        raw = await ctx.text.generate_text(finish(ctx, prompt), temperature=0.4)
        data = parse_json_object(raw)
        if data is None:
            logger.warning("Structure analysis for %s was not JSON; skipping", article.get("url"))
            continue
        out.append({"url": article.get("url"), "title": article.get("title"), **data})
    if not out:
        raise ProviderError("No article structure could be analysed")
    return out


async def analyze_reader(ctx: StepContext) -> dict[str, Any]:
    intent = ctx.value("search_intent") or {}
    articles = "\n".join(f"- {s.get('title')}: {len(s.get('h2Analyses') or [])} sections" for s in ctx.value("structure") or [])
    prompt = f"""You are a marketing specialist. Analyse the intended reader for this keyword in detail.

[PRIMARY KEYWORD]
{ctx.input("primary_keyword")}

[SEARCH INTENT]
- Intent: {intent.get("searchIntent", "")}
- Situation: {intent.get("searcherSituation", "")}
- Expected information: {", ".join(intent.get("expectedInformation") or [])}

[REFERENCE ARTICLES]
{articles}

Focus especially on what makes the reader keep reading after the introduction.

Return JSON only:
{{
  "level": "absolute_beginner|beginner|intermediate|advanced",
  "levelEvidence": "...",
  "psychologyAtSearch": "...",
  "painPoints": ["..."],
  "expectedOutcome": "...",
  "introductionInterest": {{"clickReason": "...", "interestPoints": ["..."], "continueReadingElements": "...", "bounceRiskAndSolution": "..."}},
  "informationLiteracy": {{"alreadyKnown": ["..."], "seekingNew": ["..."]}},
  "persona": {{"ageGroup": "...", "occupation": "...", "situation": "..."}}
}}"""
    return await ask_object(ctx, prompt, temperature=0.4)


async def propose_improvements(ctx: StepContext) -> list[dict[str, Any]]:
    reader = ctx.value("reader") or {}
    literacy = reader.get("informationLiteracy") or {}
    competitors = "\n\n".join(
        f"[Competitor {i} (rank {i})]\n"
        + "\n".join(f"- {h.get('h2Text')}: {h.get('providedValue') or '(no content)'}" for h in s.get("h2Analyses") or [])
        for i, s in enumerate(ctx.value("structure") or [], start=1)
    )
    prompt = f"""You are an SEO content strategist.
Abstract the competitor articles into content axes and propose improvements per axis.

[READER]
- Level: {reader.get("level", "")}
- Pains: {", ".join(reader.get("painPoints") or [])}
- Seeking: {", ".join(literacy.get("seekingNew") or [])}

[COMPETITOR STRUCTURE, BY RANK]
{competitors}

1. Extract 5-7 content axes shared by the competitors (intro, benefits, examples, caveats, ...).
2. For each axis summarise what each competitor provides in at most 30 characters.
3. Propose what to add and what to remove for this reader. Always find something to remove.

Return a JSON list only:
[{{"axis": "...", "competitorContent": ["A: ...", "B: ..."], "suggestedAddition": "...", "suggestedRemoval": "..."}}]"""
    axes = await ask_list(ctx, prompt, temperature=0.6)
    axes = [a for a in axes if isinstance(a, dict) and a.get("axis")]
    if not axes:
        raise ProviderError("The model did not return any content axes")
    return axes


async def build_outline(ctx: StepContext) -> dict[str, Any]:
    reader = ctx.value("reader") or {}
    persona = reader.get("persona") or {}
    structures = ctx.value("structure") or []
    lead = structures[0] if structures else {}
    title_analysis = lead.get("titleAnalysis") or {}
    h2_summary = "\n".join(f"- {h.get('h2Text')}: {h.get('providedValue', '')}" for h in lead.get("h2Analyses") or [])
    axes = ctx.value("improvements") or []
    additions = [a.get("suggestedAddition") for a in axes if a.get("suggestedAddition")]
    removals = [a.get("suggestedRemoval") for a in axes if a.get("suggestedRemoval")]
    low, high = _word_count(ctx)
    prompt = f"""You are an SEO article architect. Build an outline that can rank first.
Take a market-in view and follow the reference article's structure and word order.

[PRIMARY KEYWORD]
{ctx.input("primary_keyword")}

[SECONDARY KEYWORDS]
{", ".join(secondary_keywords(ctx.inputs)) or "none"}

[READER]
- Level: {reader.get("level", "")}
- Persona: {persona.get("occupation", "")}, {persona.get("ageGroup", "")}
- Pains: {", ".join(reader.get("painPoints") or [])}

[REFERENCE TITLE]
- Segments: {" / ".join(title_analysis.get("segments") or [])}
- Word order intent: {title_analysis.get("wordOrderIntent", "")}
- Hooks: {title_analysis.get("attractiveElements", "")}

[REFERENCE H2 STRUCTURE]
{h2_summary}

[IMPROVEMENTS TO APPLY]
Add: {", ".join(additions) or "none"}
Remove: {", ".join(removals) or "none"}

[TARGET LENGTH]
{low}-{high} characters

Return JSON only:
{{
  "titleCandidates": [{{"title": "...", "referenceElement": "...", "wordOrderIntent": "..."}}],
  "metaDescription": "...",
  "sections": [{{"h2": "...", "estimatedWordCount": 500, "h3List": ["..."], "sectionSummary": "...", "referenceH2Source": "..."}}]
}}"""
    return await ask_object(ctx, prompt, temperature=0.5)


def _eyecatch_rule(ctx: StepContext) -> str:
    if not ctx.inputs.get("insert_eyecatches"):
        return ""
    return "\n- Right after each <h2>, add <p>[EYECATCH: a one-sentence description of a fitting header image]</p>."


async def write_draft(ctx: StepContext) -> str:
    low, high = _word_count(ctx)
    prompt = f"""You are a professional SEO writer. Write the full article from the approved outline.

[PRIMARY KEYWORD]
{ctx.input("primary_keyword")}

[SECONDARY KEYWORDS]
{", ".join(secondary_keywords(ctx.inputs)) or "none"}

[READER]
{as_text(ctx.value("reader"))}

[APPROVED OUTLINE]
{as_text(ctx.value("outline"))}

Rules:
- Use the first title candidate as the <h1>, then follow the outline's H2/H3 order exactly.
- Answer the reader's question early in each section; use concrete examples and numbers.
- Place the primary keyword naturally in the title, the introduction and the H2s.
- Aim for {low}-{high} characters.
- Output HTML only (h1, h2, h3, p, ul, li, table, strong). No <html>, <head> or <body>, no code fences.{_eyecatch_rule(ctx)}"""
    return strip_code_fences(await ask_text(ctx, prompt, temperature=0.7))


DEFINITION = WorkflowDefinition(
    tool="seo",
    title="SEO Article",
    description="Competitor-driven SEO article: intent, structure, reader, outline and draft.",
    steps=(
        StepSpec("search_intent", "Search intent", search_intent),
        StepSpec("structure", "Competitor structure", analyze_structure),
        StepSpec("reader", "Reader analysis", analyze_reader, editable=True),
        StepSpec("improvements", "Improvements", propose_improvements, selectable=True),
        StepSpec("outline", "Outline", build_outline, editable=True),
        StepSpec("draft", "Draft", write_draft, editable=True),
    ),
    required_inputs=("primary_keyword", "reference_urls"),
    artifact_type="seo_article",
    title_input="primary_keyword",
    validate=validate,
)
