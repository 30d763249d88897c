from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from content_studio.access import check_studio_access
from content_studio.admin import authenticate
from content_studio.api.auth import create_access_token, get_current_user, get_users
from content_studio.api.schemas import LoginRequest
from content_studio.config import settings
from content_studio.errors import AuthenticationError
from content_studio.storage import UserRecord, UserStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["account"])


@router.post("/auth/login")
def login(body: LoginRequest, users: UserStore = Depends(get_users)):
    user = authenticate(users, body.email, body.password)
    if user is None:
        logger.info("Failed login for %s", body.email)
        raise AuthenticationError("Invalid email or password", code="invalid_credentials")
    token = create_access_token(user)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": settings.token_lifetime_seconds,
        "user": user.public_dict(),
    }


@router.get("/me")
def me(user: UserRecord = Depends(get_current_user)):
    return {"user": user.public_dict(), "access": check_studio_access(user).as_dict()}


@router.get("/me/access")
def my_access(user: UserRecord = Depends(get_current_user)):
    return check_studio_access(user).as_dict()
