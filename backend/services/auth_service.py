"""Admin token login and bearer sessions for booking management endpoints."""

from __future__ import annotations

import secrets
import time
from threading import RLock
from typing import Callable, Optional

from backend.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class AdminTokenNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_TOKEN is missing."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when a login token or bearer session is invalid."""


class AuthService:
    """Exchanges the configured admin token for short-lived bearer sessions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._sessions: dict[str, float] = {}
        self._lock = RLock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    def _expected_token(self) -> str:
        if not self._settings.admin_token:
            raise AdminTokenNotConfiguredError(
                "ADMIN_TOKEN is not configured. Set ADMIN_TOKEN in environment variables."
            )
        return self._settings.admin_token

    def login(self, provided_admin_token: str) -> str:
        expected = self._expected_token()
        if not secrets.compare_digest(provided_admin_token, expected):
            raise InvalidAdminTokenError("Invalid admin token")
        session_token = secrets.token_urlsafe(32)
        with self._lock:
            self._purge_expired()
            self._sessions[session_token] = (
                self._clock() + self._settings.admin_session_ttl_seconds
            )
        return session_token

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def _purge_expired(self) -> None:
        current = self._clock()
        for token in [token for token, expiry in self._sessions.items() if expiry <= current]:
            del self._sessions[token]

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        with self._lock:
            self._purge_expired()
            if not self._sessions:
                raise InvalidAdminTokenError("No active session. Login first.")
            if not any(
                secrets.compare_digest(bearer_token, token) for token in self._sessions
            ):
                raise InvalidAdminTokenError("Invalid bearer token")
