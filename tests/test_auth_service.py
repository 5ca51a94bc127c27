from __future__ import annotations

from dataclasses import replace

import pytest

from backend.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from backend.utils.config import get_settings


class FakeClock:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


def _service(admin_token: str, clock: FakeClock) -> AuthService:
    settings = replace(get_settings(), admin_token=admin_token, admin_session_ttl_seconds=60.0)
    return AuthService(settings=settings, clock=clock)


def test_login_issues_session_that_expires():
    clock = FakeClock()
    service = _service("secret", clock)

    token = service.login("secret")
    service.validate_bearer_token(token)

    clock.value = 61.0
    with pytest.raises(InvalidAdminTokenError):
        service.validate_bearer_token(token)


def test_wrong_token_and_unknown_bearer_are_rejected():
    service = _service("secret", FakeClock())

    with pytest.raises(InvalidAdminTokenError):
        service.login("guess")

    service.login("secret")
    with pytest.raises(InvalidAdminTokenError):
        service.validate_bearer_token("forged")


def test_logout_ends_session():
    service = _service("secret", FakeClock())
    token = service.login("secret")

    service.logout(token)

    with pytest.raises(InvalidAdminTokenError):
        service.validate_bearer_token(token)


def test_unconfigured_token_disables_admin_checks():
    service = _service("", FakeClock())

    assert service.auth_enabled is False
    service.validate_bearer_token("anything")
    with pytest.raises(AdminTokenNotConfiguredError):
        service.login("anything")
