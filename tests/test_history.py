from __future__ import annotations

import asyncio

import pytest

from content_studio import history
from content_studio.errors import InvalidInputError, NotFoundError
from content_studio.storage import AssetStore, HistoryStore
from content_studio.workflows import engine
from content_studio.workflows.engine import StepSpec, WorkflowDefinition


@pytest.fixture
def store(tmp_path) -> HistoryStore:
    return HistoryStore(tmp_path)


@pytest.mark.parametrize(
    ("creation_type", "project_type", "artifact_type"),
    [
        ("video_script", "video_script", "video_script"),
        ("seo_article", "seo_article", "seo_article"),
        ("image", "thumbnail", "image"),
        ("eyecatch_prompt", "thumbnail", "image"),
        ("thumbnail", "thumbnail", "thumbnail"),
        ("lp_writing", "seo_article", "seo_article"),
        ("sales_letter", "seo_article", "sales_letter"),
        ("vsl_script", "video_script", "vsl_script"),
        ("social_post", "mixed", "social_post"),
        ("mixed", "mixed", "image"),
    ],
)
def test_save_creation_maps_types(store, creation_type, project_type, artifact_type):
    proj = history.save_creation(store, "u1", "My work", creation_type, {"body": "text"})

    assert proj.type == project_type
    assert proj.status == "completed"
    [artifact] = proj.artifacts
    assert artifact.type == artifact_type
    assert artifact.status == "final"
    assert artifact.version == 1
    assert artifact.content == {"body": "text"}


def test_save_creation_defaults_title_and_rejects_unknown_type(store):
    proj = history.save_creation(store, "u1", "  ", "seo_article", "<h1>x</h1>")
    assert proj.title == "Untitled Creation"

    with pytest.raises(InvalidInputError):
        history.save_creation(store, "u1", "t", "podcast", "x")


def test_history_is_per_owner(store):
    mine = history.save_creation(store, "u1", "one", "seo_article", "a")
    history.save_creation(store, "u2", "theirs", "seo_article", "b")

    projects = history.list_history(store, "u1")
    assert [p.project_id for p in projects] == [mine.project_id]
    assert projects[0].artifacts[0].content == "a"


def test_update_artifact_bumps_version(store):
    proj = history.save_creation(store, "u1", "one", "video_script", "v1 text")
    artifact_id = proj.artifacts[0].artifact_id

    updated = history.update_artifact(store, "u1", artifact_id, "v2 text")
    assert updated.version == 2
    assert store.read_project(proj.project_id).artifacts[0].content == "v2 text"

    with pytest.raises(NotFoundError):
        history.update_artifact(store, "someone-else", artifact_id, "stolen")


def test_delete_project_checks_owner(store):
    proj = history.save_creation(store, "u1", "one", "video_script", "text")
    with pytest.raises(NotFoundError):
        history.delete_project(store, "u2", proj.project_id)

    history.delete_project(store, "u1", proj.project_id)
    assert history.list_history(store, "u1") == []
    with pytest.raises(NotFoundError):
        store.read_project(proj.project_id)


def test_read_project_rejects_path_like_ids(store):
    with pytest.raises(NotFoundError):
        store.read_project("../users/abc")


def test_save_session_uses_final_content(store, services):
    async def write(ctx):
        return f"article about {ctx.input('keyword')}"

    definition = WorkflowDefinition(
        "demo", "Demo", (StepSpec("draft", "Draft", write),), ("keyword",), "seo_article", title_input="keyword"
    )
    session = engine.start(definition, "u1", {"keyword": "espresso"})
    with pytest.raises(InvalidInputError) as exc:
        history.save_session(store, session)
    assert exc.value.code == "nothing_to_save"

    asyncio.run(engine.run_step(session, "draft", services))
    proj = history.save_session(store, session)

    assert proj.title == "Demo: espresso"
    assert proj.owner_id == "u1"
    assert proj.type == "seo_article"
    assert proj.artifacts[0].content["content"] == "article about espresso"


def test_asset_store_round_trip(tmp_path):
    assets = AssetStore(tmp_path)
    asset = assets.add_asset("sess1", kind="model", filename="../model.png", content=b"\x89PNG", metadata={"a": 1})

    assert asset.filename == "model.png"
    assert assets.list_assets("sess1") == [asset]
    assert assets.get_asset("sess1", asset.asset_id) == asset
    assert assets.read_bytes("sess1", asset) == b"\x89PNG"
    assert len(asset.sha256) == 64

    with pytest.raises(NotFoundError):
        assets.get_asset("sess1", "missing")

    assets.delete_session("sess1")
    assert assets.list_assets("sess1") == []
