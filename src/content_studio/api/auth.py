from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from content_studio.access import check_studio_access
from content_studio.config import settings
from content_studio.errors import AccessDeniedError, AuthenticationError, ConfigurationError, NotFoundError
from content_studio.providers.gemini_provider import GeminiProvider
from content_studio.providers.openai_provider import OpenAITextProvider
from content_studio.storage import AssetStore, HistoryStore, UserRecord, UserStore
from content_studio.workflows.engine import StepServices
from content_studio.workflows.sessions import SessionRegistry

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

_bearer = HTTPBearer(auto_error=False)


def _secret() -> str:
    if not settings.secret_key:
        raise ConfigurationError("SECRET_KEY is not set; tokens cannot be issued or verified")
    return settings.secret_key


def create_access_token(user: UserRecord, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": user.user_id,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(seconds=settings.token_lifetime_seconds),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Your session has expired; log in again", code="token_expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid authentication token", code="invalid_token") from exc


def get_users(request: Request) -> UserStore:
    return request.app.state.users


def get_history(request: Request) -> HistoryStore:
    return request.app.state.history


def get_assets(request: Request) -> AssetStore:
    return request.app.state.assets


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    users: UserStore = Depends(get_users),
) -> UserRecord:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Login required")
    claims = decode_access_token(credentials.credentials)
    try:
        return users.read_user(str(claims.get("sub") or ""))
    except NotFoundError as exc:
        raise AuthenticationError("This account no longer exists", code="invalid_token") from exc


def require_studio_access(user: UserRecord = Depends(get_current_user)) -> UserRecord:
    access = check_studio_access(user)
    if not access.has_access:
        raise AccessDeniedError(access.message or "You do not have access to the studio", details=access.as_dict())
    return user


def get_services(assets: AssetStore = Depends(get_assets)) -> StepServices:
    """Providers configured from settings. Missing keys leave a provider unset."""
    text = None
    if settings.text_provider == "openai" and settings.openai_api_key:
        text = OpenAITextProvider(api_key=settings.openai_api_key)
    elif settings.gemini_api_key:
        text = GeminiProvider(api_key=settings.gemini_api_key)
    image = GeminiProvider(api_key=settings.gemini_api_key) if settings.gemini_api_key else None
    return StepServices(text=text, image=image, assets=assets)
