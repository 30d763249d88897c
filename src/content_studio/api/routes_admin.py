from __future__ import annotations

from fastapi import APIRouter, Depends

from content_studio import admin
from content_studio.access import check_studio_access
from content_studio.api.auth import get_current_user, get_users
from content_studio.api.schemas import CreateUserRequest, ResetPasswordRequest, UpdateAccessRequest
from content_studio.storage import UserRecord, UserStore

router = APIRouter(prefix="/admin/users", tags=["admin"])


def _row(user: UserRecord) -> dict:
    data = user.public_dict()
    data["access"] = check_studio_access(user).as_dict()
    return data


@router.get("")
def list_users(actor: UserRecord = Depends(get_current_user), users: UserStore = Depends(get_users)):
    return {"users": admin.list_users(users, actor)}


@router.post("", status_code=201)
def create_user(
    body: CreateUserRequest,
    actor: UserRecord = Depends(get_current_user),
    users: UserStore = Depends(get_users),
):
    user = admin.create_user(
        users,
        actor,
        email=body.email,
        password=body.password,
        display_name=body.display_name,
        role=body.role,
        duration=body.duration.to_duration() if body.duration else None,
    )
    return _row(user)


@router.post("/{user_id}/access")
def update_access(
    user_id: str,
    body: UpdateAccessRequest,
    actor: UserRecord = Depends(get_current_user),
    users: UserStore = Depends(get_users),
):
    return _row(admin.update_access(users, actor, user_id, body.duration.to_duration()))


@router.post("/{user_id}/disable")
def disable_access(user_id: str, actor: UserRecord = Depends(get_current_user), users: UserStore = Depends(get_users)):
    return _row(admin.disable_access(users, actor, user_id))


@router.delete("/{user_id}")
def delete_user(user_id: str, actor: UserRecord = Depends(get_current_user), users: UserStore = Depends(get_users)):
    admin.delete_user(users, actor, user_id)
    return {"ok": True}


@router.post("/{user_id}/password")
def reset_password(
    user_id: str,
    body: ResetPasswordRequest,
    actor: UserRecord = Depends(get_current_user),
    users: UserStore = Depends(get_users),
):
    admin.reset_password(users, actor, user_id, body.new_password)
    return {"ok": True}
