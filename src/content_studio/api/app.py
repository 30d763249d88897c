from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI

from content_studio.admin import ensure_bootstrap_admin
from content_studio.api import routes_account, routes_admin, routes_history, routes_studio
from content_studio.config import settings
from content_studio.errors import register_exception_handlers
from content_studio.logging_setup import setup_logging
from content_studio.storage import AssetStore, HistoryStore, UserStore
from content_studio.workflows.sessions import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(root_dir: Path | None = None) -> FastAPI:
    setup_logging(settings.log_level)

    app = FastAPI(title="content_studio")
    register_exception_handlers(app)

    app.state.users = UserStore(root_dir)
    app.state.history = HistoryStore(root_dir)
    app.state.assets = AssetStore(root_dir)
    app.state.sessions = SessionRegistry()
    ensure_bootstrap_admin(app.state.users)

    app.include_router(routes_account.router)
    app.include_router(routes_admin.router)
    app.include_router(routes_studio.router)
    app.include_router(routes_history.router)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    logger.info("content_studio ready (data dir %s)", app.state.users.root_dir)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run("content_studio.api.app:app", host=settings.host, port=settings.port)
