from __future__ import annotations

import io
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, Response
from PIL import Image

from content_studio import history
from content_studio.api.auth import get_assets, get_history, get_services, get_sessions, require_studio_access
from content_studio.api.schemas import (
    ConfirmStepRequest,
    ExportRequest,
    RefineRequest,
    RefineStepRequest,
    RunStepRequest,
    SaveSessionRequest,
    StartSessionRequest,
)
from content_studio.assembly.render import (
    build_layer_stack,
    bundle_layers,
    encode_image,
    media_type_for,
    render_thumbnail,
)
from content_studio.config import settings
from content_studio.errors import InvalidInputError, NotFoundError
from content_studio.refine import refine_content, refine_step
from content_studio.storage import AssetStore, HistoryStore, UserRecord
from content_studio.workflows import engine
from content_studio.workflows.engine import StepServices
from content_studio.workflows.registry import describe_tools, get_definition
from content_studio.workflows.sessions import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/studio", tags=["studio"])

IMAGE_KINDS = ("model", "thumbnail", "export")


@router.get("/tools")
def list_tools(_user: UserRecord = Depends(require_studio_access)):
    return {"tools": describe_tools()}


@router.post("/sessions", status_code=201)
def start_session(
    body: StartSessionRequest,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.create(get_definition(body.tool), user.user_id, body.inputs)
    return engine.session_to_dict(session)


@router.get("/sessions")
def list_sessions(user: UserRecord = Depends(require_studio_access), sessions: SessionRegistry = Depends(get_sessions)):
    return {
        "sessions": [
            {
                "session_id": s.session_id,
                "tool": s.tool,
                "title": engine.session_title(s),
                "created_at": s.created_at,
                "current_step": engine.current_step(s),
            }
            for s in sessions.list_for(user.user_id)
        ]
    }


@router.get("/sessions/{session_id}")
def get_session(
    session_id: str,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
):
    return engine.session_to_dict(sessions.get(session_id, user.user_id))


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: str,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    assets: AssetStore = Depends(get_assets),
):
    sessions.delete(session_id, user.user_id)
    assets.delete_session(session_id)
    return {"ok": True}


@router.post("/sessions/{session_id}/steps/{step}/run")
async def run_step(
    session_id: str,
    step: str,
    body: RunStepRequest,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    services: StepServices = Depends(get_services),
):
    session = sessions.get(session_id, user.user_id)
    await engine.run_step(session, step, services, instructions=body.instructions, message=body.message)
    return engine.session_to_dict(session)


@router.post("/sessions/{session_id}/steps/{step}/confirm")
def confirm_step(
    session_id: str,
    step: str,
    body: ConfirmStepRequest,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(session_id, user.user_id)
    engine.confirm_step(session, step, selection=body.selection, edited=body.edited)
    return engine.session_to_dict(session)


@router.post("/sessions/{session_id}/steps/{step}/back")
def go_back(
    session_id: str,
    step: str,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(session_id, user.user_id)
    engine.go_back(session, step)
    return engine.session_to_dict(session)


@router.post("/sessions/{session_id}/steps/{step}/refine")
async def refine_session_step(
    session_id: str,
    step: str,
    body: RefineStepRequest,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    services: StepServices = Depends(get_services),
):
    session = sessions.get(session_id, user.user_id)
    await refine_step(session, step, body.instruction, services, kind=body.kind)
    return engine.session_to_dict(session)


@router.post("/sessions/{session_id}/reset")
def reset_session(
    session_id: str,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(session_id, user.user_id)
    engine.reset(session)
    return engine.session_to_dict(session)


@router.post("/sessions/{session_id}/save", status_code=201)
def save_session(
    session_id: str,
    body: SaveSessionRequest,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    store: HistoryStore = Depends(get_history),
):
    session = sessions.get(session_id, user.user_id)
    return asdict(history.save_session(store, session, title=body.title))


@router.get("/sessions/{session_id}/images")
def list_images(
    session_id: str,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    assets: AssetStore = Depends(get_assets),
):
    sessions.get(session_id, user.user_id)
    return {"images": [asdict(a) for a in assets.list_assets(session_id)]}


@router.get("/sessions/{session_id}/images/{asset_id}")
def download_image(
    session_id: str,
    asset_id: str,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    assets: AssetStore = Depends(get_assets),
):
    sessions.get(session_id, user.user_id)
    asset = assets.get_asset(session_id, asset_id)
    path = assets.abs_asset_path(session_id, asset)
    if not path.exists():
        raise NotFoundError("asset file missing", details={"asset_id": asset_id})
    return FileResponse(path, filename=asset.filename)


@router.post("/sessions/{session_id}/images/{asset_id}/export")
def export_image(
    session_id: str,
    asset_id: str,
    body: ExportRequest,
    user: UserRecord = Depends(require_studio_access),
    sessions: SessionRegistry = Depends(get_sessions),
    assets: AssetStore = Depends(get_assets),
):
    sessions.get(session_id, user.user_id)
    asset = assets.get_asset(session_id, asset_id)
    if asset.kind not in IMAGE_KINDS:
        raise InvalidInputError(f"Asset {asset_id} is not an image", details={"kind": asset.kind})
    size = (body.width or settings.thumbnail_size[0], body.height or settings.thumbnail_size[1])
    with Image.open(io.BytesIO(assets.read_bytes(session_id, asset))) as src:
        src.load()
        if body.layered:
            layers = build_layer_stack(src, size, text=body.text)
            content = bundle_layers(layers, size)
            kind, filename, media_type = "layers", f"thumbnail_{size[0]}x{size[1]}_layers.zip", "application/zip"
        else:
            rendered = render_thumbnail(src, size, text=body.text)
            fmt = body.format.lower()
            content = encode_image(rendered.image, fmt)
            ext = "jpg" if fmt in ("jpeg", "jpg") else fmt
            kind, filename, media_type = "export", f"thumbnail_{size[0]}x{size[1]}.{ext}", media_type_for(fmt)

    stored = assets.add_asset(
        session_id,
        kind=kind,
        filename=filename,
        content=content,
        metadata={"source_asset_id": asset_id, "text": body.text, "size": list(size)},
    )
    logger.info("Exported %s from %s as %s", stored.asset_id, asset_id, filename)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"', "X-Asset-Id": stored.asset_id}
    return Response(content=content, media_type=media_type, headers=headers)


@router.post("/refine")
async def refine(
    body: RefineRequest,
    _user: UserRecord = Depends(require_studio_access),
    services: StepServices = Depends(get_services),
):
    text = await refine_content(services.require_text(), body.content, body.instruction, body.context, body.kind)
    return {"content": text}
