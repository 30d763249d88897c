from __future__ import annotations

from typing import Any

from content_studio.errors import NotFoundError
from content_studio.workflows.engine import WorkflowDefinition
from content_studio.workflows.tools import (
    eyecatch_prompt,
    lp_copy,
    note_writing,
    sales_letter,
    seo,
    short_script,
    social_post,
    thumbnail,
    vsl,
    youtube_script,
)

TOOLS: dict[str, WorkflowDefinition] = {
    d.tool: d
    for d in (
        thumbnail.DEFINITION,
        seo.DEFINITION,
        youtube_script.DEFINITION,
        short_script.DEFINITION,
        sales_letter.DEFINITION,
        lp_copy.DEFINITION,
        social_post.DEFINITION,
        vsl.DEFINITION,
        note_writing.DEFINITION,
        eyecatch_prompt.DEFINITION,
    )
}


def get_definition(tool: str) -> WorkflowDefinition:
    definition = TOOLS.get(tool)
    if definition is None:
        raise NotFoundError(f"Unknown tool '{tool}'", details={"tools": sorted(TOOLS)})
    return definition


def describe_tools() -> list[dict[str, Any]]:
    return [d.describe() for d in TOOLS.values()]
