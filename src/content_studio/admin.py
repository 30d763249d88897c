from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import bcrypt

from content_studio.access import AccessDuration, check_studio_access, compute_expiration, format_expiration
from content_studio.config import settings
from content_studio.errors import InvalidInputError, PermissionDeniedError
from content_studio.storage import UserRecord, UserStore

logger = logging.getLogger(__name__)

ROLES = ("admin", "instructor", "student")
MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.password_hash_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash on disk.
        return False


def require_admin(actor: UserRecord | None) -> UserRecord:
    if actor is None or actor.role != "admin":
        raise PermissionDeniedError("Administrator privileges are required")
    return actor


def create_user(
    users: UserStore,
    actor: UserRecord | None,
    email: str,
    password: str,
    display_name: str | None = None,
    role: str = "student",
    duration: AccessDuration | None = None,
    now: datetime | None = None,
) -> UserRecord:
    require_admin(actor)
    email = (email or "").strip()
    if not email or not password:
        raise InvalidInputError("Email and password are required")
    if role not in ROLES:
        raise InvalidInputError(f"Unknown role: {role}", details={"allowed": list(ROLES)})

    expires_at = None
    if role == "student":
        expires_at = format_expiration(compute_expiration(duration, now=now))

    user = users.create_user(
        email=email,
        password_hash=hash_password(password),
        display_name=(display_name or "").strip() or email.split("@")[0],
        role=role,
        studio_enabled=True,
        studio_expires_at=expires_at,
    )
    logger.info("User %s created %s user %s (expires %s)", actor.user_id, role, user.user_id, expires_at or "never")
    return user


def list_users(users: UserStore, actor: UserRecord | None, now: datetime | None = None) -> list[dict[str, Any]]:
    require_admin(actor)
    out: list[dict[str, Any]] = []
    for user in users.list_users():
        row = user.public_dict()
        row["access"] = check_studio_access(user, now=now).as_dict()
        out.append(row)
    return out


def update_access(
    users: UserStore,
    actor: UserRecord | None,
    user_id: str,
    duration: AccessDuration | None,
    now: datetime | None = None,
) -> UserRecord:
    require_admin(actor)
    expires_at = format_expiration(compute_expiration(duration, now=now))
    user = users.update_user(user_id, studio_enabled=True, studio_expires_at=expires_at)
    logger.info("User %s granted studio access to %s until %s", actor.user_id, user_id, expires_at or "unlimited")
    return user


def disable_access(users: UserStore, actor: UserRecord | None, user_id: str) -> UserRecord:
    require_admin(actor)
    user = users.update_user(user_id, studio_enabled=False, studio_expires_at=None)
    logger.info("User %s disabled studio access for %s", actor.user_id, user_id)
    return user


def delete_user(users: UserStore, actor: UserRecord | None, user_id: str) -> None:
    require_admin(actor)
    if actor.user_id == user_id:
        raise InvalidInputError("You cannot delete your own account", code="self_delete")
    users.delete_user(user_id)
    logger.info("User %s deleted user %s", actor.user_id, user_id)


def reset_password(users: UserStore, actor: UserRecord | None, user_id: str, new_password: str) -> UserRecord:
    """Admins may reset any password; instructors only those of students."""
    if actor is None or actor.role not in ("admin", "instructor"):
        raise PermissionDeniedError("Staff privileges are required")
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(
            f"Passwords must be at least {MIN_PASSWORD_LENGTH} characters",
            code="weak_password",
            details={"min_length": MIN_PASSWORD_LENGTH},
        )
    target = users.read_user(user_id)
    if actor.role == "instructor" and target.role != "student":
        raise PermissionDeniedError("Instructors can only reset student passwords")
    user = users.update_user(user_id, password_hash=hash_password(new_password))
    logger.info("User %s (%s) reset the password of %s", actor.user_id, actor.role, user_id)
    return user


def authenticate(users: UserStore, email: str, password: str) -> UserRecord | None:
    user = users.find_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def ensure_bootstrap_admin(users: UserStore) -> UserRecord | None:
    """Create the configured admin account on first start."""
    email = (settings.bootstrap_admin_email or "").strip()
    password = settings.bootstrap_admin_password
    if not email or not password:
        return None
    existing = users.find_by_email(email)
    if existing is not None:
        return existing
    user = users.create_user(
        email=email,
        password_hash=hash_password(password),
        display_name=email.split("@")[0],
        role="admin",
        studio_enabled=True,
        studio_expires_at=None,
    )
    logger.info("Bootstrap admin %s created", email)
    return user
