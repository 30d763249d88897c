from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as dateparser
from dateutil.relativedelta import relativedelta

from content_studio.errors import InvalidInputError
from content_studio.storage import UserRecord

DEFAULT_PRESET_MONTHS = 3
DEFAULT_CUSTOM_DAYS = 30
STAFF_ROLES = ("admin", "instructor")


@dataclass(frozen=True)
class StudioAccess:
    has_access: bool
    expires_at: datetime | None
    days_remaining: int | None
    is_expired: bool
    message: str | None
    role: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "has_access": self.has_access,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "days_remaining": self.days_remaining,
            "is_expired": self.is_expired,
            "message": self.message,
            "role": self.role,
        }


@dataclass(frozen=True)
class AccessDuration:
    """How long an entitlement should last.

    `type` is one of:
    - "preset": `preset` is a number of months ("1", "3", "6", ...) or "unlimited"
    - "custom": `days` from now
    - "date": an explicit ISO date or datetime
    """

    type: str = "preset"
    preset: str | None = None
    days: int | None = None
    date: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    dt = dateparser.isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def check_studio_access(user: UserRecord | None, now: datetime | None = None) -> StudioAccess:
    now = now or _utcnow()
    if user is None:
        return StudioAccess(False, None, None, False, "Login required", "guest")

    if user.role in STAFF_ROLES:
        return StudioAccess(True, None, None, False, None, user.role)

    if not user.studio_enabled:
        return StudioAccess(False, None, None, False, "You do not have access to the studio", user.role)

    if not user.studio_expires_at:
        # No expiry means unlimited access.
        return StudioAccess(True, None, None, False, None, user.role)

    expires_at = parse_timestamp(user.studio_expires_at)
    if expires_at < now:
        return StudioAccess(False, expires_at, 0, True, "Your studio access has expired", user.role)

    days_remaining = math.ceil((expires_at - now) / timedelta(days=1))
    return StudioAccess(True, expires_at, days_remaining, False, None, user.role)


def compute_expiration(duration: AccessDuration | None, now: datetime | None = None) -> datetime | None:
    """Return the expiry for `duration`, or None for unlimited access."""
    now = now or _utcnow()
    duration = duration or AccessDuration()

    if duration.type == "preset":
        preset = (duration.preset or "").strip().lower()
        if preset == "unlimited":
            return None
        try:
            months = int(preset)
        except ValueError:
            months = DEFAULT_PRESET_MONTHS
        if months <= 0:
            months = DEFAULT_PRESET_MONTHS
        # relativedelta clamps Jan 31 + 1 month to the end of February.
        return now + relativedelta(months=months)

    if duration.type == "custom":
        days = duration.days if duration.days and duration.days > 0 else DEFAULT_CUSTOM_DAYS
        return now + timedelta(days=days)

    if duration.type == "date" and duration.date:
        try:
            expires_at = parse_timestamp(duration.date)
        except (ValueError, OverflowError) as exc:
            raise InvalidInputError(f"Invalid expiration date: {duration.date}") from exc
        if expires_at <= now:
            raise InvalidInputError("The expiration date must be in the future", details={"date": duration.date})
        return expires_at

    return now + relativedelta(months=DEFAULT_PRESET_MONTHS)


def format_expiration(expires_at: datetime | None) -> str | None:
    return expires_at.astimezone(timezone.utc).isoformat() if expires_at else None
