from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from content_studio import history
from content_studio.api.auth import get_current_user, get_history
from content_studio.api.schemas import SaveCreationRequest, UpdateArtifactRequest
from content_studio.storage import HistoryStore, UserRecord

router = APIRouter(prefix="/history", tags=["history"])


@router.get("")
def list_history(user: UserRecord = Depends(get_current_user), store: HistoryStore = Depends(get_history)):
    return {"projects": [asdict(p) for p in history.list_history(store, user.user_id)]}


@router.post("", status_code=201)
def save_creation(
    body: SaveCreationRequest,
    user: UserRecord = Depends(get_current_user),
    store: HistoryStore = Depends(get_history),
):
    proj = history.save_creation(store, user.user_id, body.title, body.type, body.content)
    return asdict(proj)


@router.put("/artifacts/{artifact_id}")
def update_artifact(
    artifact_id: str,
    body: UpdateArtifactRequest,
    user: UserRecord = Depends(get_current_user),
    store: HistoryStore = Depends(get_history),
):
    return asdict(history.update_artifact(store, user.user_id, artifact_id, body.content))


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    user: UserRecord = Depends(get_current_user),
    store: HistoryStore = Depends(get_history),
):
    history.delete_project(store, user.user_id, project_id)
    return {"ok": True}
