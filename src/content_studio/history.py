from __future__ import annotations

import logging
from typing import Any

from content_studio.errors import InvalidInputError
from content_studio.storage import Artifact, HistoryProject, HistoryStore
from content_studio.workflows import engine
from content_studio.workflows.engine import WorkflowSession

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Creation"

# Creation type -> project type. History groups projects into these four kinds.
PROJECT_TYPES = {
    "video_script": "video_script",
    "vsl_script": "video_script",
    "seo_article": "seo_article",
    "lp_writing": "seo_article",
    "sales_letter": "seo_article",
    "thumbnail": "thumbnail",
    "image": "thumbnail",
    "eyecatch_prompt": "thumbnail",
    "social_post": "mixed",
    "mixed": "mixed",
}

ARTIFACT_TYPE_OVERRIDES = {
    "mixed": "image",
    "eyecatch_prompt": "image",
    "lp_writing": "seo_article",
}


def project_type_for(creation_type: str) -> str:
    try:
        return PROJECT_TYPES[creation_type]
    except KeyError:
        raise InvalidInputError(
            f"Unknown creation type '{creation_type}'",
            details={"types": sorted(PROJECT_TYPES)},
        ) from None


def artifact_type_for(creation_type: str) -> str:
    project_type_for(creation_type)
    return ARTIFACT_TYPE_OVERRIDES.get(creation_type, creation_type)


def save_creation(
    store: HistoryStore,
    owner_id: str,
    title: str | None,
    creation_type: str,
    content: Any,
) -> HistoryProject:
    project_type = project_type_for(creation_type)
    title = (title or "").strip() or DEFAULT_TITLE
    proj = store.create_project(
        owner_id=owner_id,
        title=title,
        project_type=project_type,
        artifact_title=title,
        artifact_type=artifact_type_for(creation_type),
        content=content,
    )
    logger.info("Saved %s creation %s for %s", creation_type, proj.project_id, owner_id)
    return proj


def list_history(store: HistoryStore, owner_id: str) -> list[HistoryProject]:
    return store.list_projects(owner_id)


def update_artifact(store: HistoryStore, owner_id: str, artifact_id: str, content: Any) -> Artifact:
    artifact = store.update_artifact(owner_id, artifact_id, content)
    logger.info("Updated artifact %s to v%d", artifact_id, artifact.version)
    return artifact


def delete_project(store: HistoryStore, owner_id: str, project_id: str) -> None:
    store.delete_project(owner_id, project_id)
    logger.info("Deleted history project %s", project_id)


def save_session(store: HistoryStore, session: WorkflowSession, title: str | None = None) -> HistoryProject:
    """Save a workflow's final output under the tool's artifact type."""
    final = engine.final_content(session)
    if final is None:
        raise InvalidInputError("Run the last step before saving", code="nothing_to_save")
    return save_creation(
        store,
        owner_id=session.owner_id,
        title=title or final["title"],
        creation_type=session.definition.artifact_type,
        content=final,
    )
