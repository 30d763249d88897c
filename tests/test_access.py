from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from content_studio.access import AccessDuration, check_studio_access, compute_expiration, format_expiration
from content_studio.errors import InvalidInputError
from content_studio.storage import UserRecord

NOW = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)


def user(role="student", enabled=True, expires_at=None) -> UserRecord:
    return UserRecord(
        user_id="u1",
        display_name="Hana",
        email="hana@example.com",
        role=role,
        studio_enabled=enabled,
        studio_expires_at=expires_at,
        password_hash="x",
        created_at=NOW.isoformat(),
        updated_at=NOW.isoformat(),
    )


def test_guest_has_no_access():
    access = check_studio_access(None, now=NOW)
    assert access.has_access is False
    assert access.role == "guest"


@pytest.mark.parametrize("role", ["admin", "instructor"])
def test_staff_always_has_access(role):
    access = check_studio_access(user(role=role, enabled=False, expires_at="2000-01-01T00:00:00+00:00"), now=NOW)
    assert access.has_access is True
    assert access.is_expired is False


def test_disabled_student_has_no_access():
    access = check_studio_access(user(enabled=False), now=NOW)
    assert access.has_access is False
    assert access.message


def test_student_without_expiry_is_unlimited():
    access = check_studio_access(user(), now=NOW)
    assert access.has_access is True
    assert access.expires_at is None
    assert access.days_remaining is None


def test_expired_student():
    access = check_studio_access(user(expires_at="2025-01-30T12:00:00+00:00"), now=NOW)
    assert access.has_access is False
    assert access.is_expired is True
    assert access.days_remaining == 0


def test_days_remaining_rounds_up():
    expires = NOW + timedelta(days=2, hours=1)
    access = check_studio_access(user(expires_at=expires.isoformat()), now=NOW)
    assert access.has_access is True
    assert access.days_remaining == 3
    assert access.as_dict()["expires_at"] == expires.isoformat()


def test_naive_expiry_is_treated_as_utc():
    access = check_studio_access(user(expires_at="2025-02-01T12:00:00"), now=NOW)
    assert access.days_remaining == 1


def test_preset_months_clamp_to_month_end():
    assert compute_expiration(AccessDuration(preset="1"), now=NOW) == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert compute_expiration(AccessDuration(preset="6"), now=NOW) == datetime(2025, 7, 31, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("preset", [None, "", "soon", "0", "-2"])
def test_bad_preset_falls_back_to_three_months(preset):
    assert compute_expiration(AccessDuration(preset=preset), now=NOW) == datetime(
        2025, 4, 30, 12, 0, tzinfo=timezone.utc
    )


def test_unlimited_preset():
    assert compute_expiration(AccessDuration(preset="Unlimited"), now=NOW) is None


def test_custom_days():
    assert compute_expiration(AccessDuration(type="custom", days=10), now=NOW) == NOW + timedelta(days=10)
    assert compute_expiration(AccessDuration(type="custom"), now=NOW) == NOW + timedelta(days=30)


def test_explicit_date():
    expires = compute_expiration(AccessDuration(type="date", date="2025-03-01"), now=NOW)
    assert expires == datetime(2025, 3, 1, tzinfo=timezone.utc)
    assert format_expiration(expires) == "2025-03-01T00:00:00+00:00"


@pytest.mark.parametrize("date", ["2025-01-01", "not a date"])
def test_explicit_date_must_be_valid_and_future(date):
    with pytest.raises(InvalidInputError):
        compute_expiration(AccessDuration(type="date", date=date), now=NOW)


def test_missing_duration_defaults_to_three_months():
    assert compute_expiration(None, now=NOW) == datetime(2025, 4, 30, 12, 0, tzinfo=timezone.utc)
    assert compute_expiration(AccessDuration(type="date"), now=NOW) == datetime(
        2025, 4, 30, 12, 0, tzinfo=timezone.utc
    )
