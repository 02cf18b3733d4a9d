"""Application-level authentication lifecycle: boot, login, logout."""

from __future__ import annotations

import asyncio
from enum import Enum
from functools import lru_cache
from typing import Any

import structlog

from potencialize_sdk.client import (
    LOGIN_PATH,
    LOGOUT_PATH,
    AuthenticatedClient,
    get_authenticated_client,
)
from potencialize_sdk.exceptions import APIResponseError, ForbiddenRoleError, SDKError
from potencialize_sdk.jwt import decode_jwt
from potencialize_sdk.types import LoginRequest, Session

FALLBACK_ROLE = "teacher"

logger = structlog.get_logger(__name__)


class AuthState(str, Enum):
    """Authentication lifecycle states."""

    BOOTING = "booting"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


def session_from_access_token(access_secret: str) -> Session:
    """Derive a session from unverified claims, with a generic fallback."""
    claims = decode_jwt(access_secret)
    role = claims.get("role") if claims else None
    if not isinstance(role, str) or not role:
        return Session(role=FALLBACK_ROLE)
    owner_id = claims.get("teacher_id") if claims else None
    return Session(role=role, owner_id=owner_id if isinstance(owner_id, int) else None)


class SessionController:
    """Track who is signed in and drive the credential lifecycle around it."""

    def __init__(self, client: AuthenticatedClient) -> None:
        self._client = client
        self._store = client.store
        self._state = AuthState.BOOTING
        self._session: Session | None = None
        self._boot_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._state is AuthState.AUTHENTICATED

    async def boot(self) -> Session | None:
        """Silently restore a session at startup; runs at most once.

        Never raises: a failed restore settles unauthenticated.
        """
        if self._boot_task is None:
            self._boot_task = asyncio.create_task(self._boot())
        await asyncio.shield(self._boot_task)
        return self._session

    async def login(self, email: str, password: str) -> Session:
        """Exchange credentials for a session; errors propagate untouched."""
        await self._wait_for_boot()
        body: LoginRequest = {"email": email, "password": password}
        payload = self._login_payload(
            await self._client.request_json(
                "POST", LOGIN_PATH, json=body, retry_on_unauthorized=False
            )
        )

        self._store.set_access(payload["access_token"])
        if self._client.auth_mode == "bearer":
            self._store.set_refresh(payload.get("refresh_token"))
        owner_id = payload.get("teacher_id")
        session = Session(
            role=str(payload["role"]),
            owner_id=owner_id if isinstance(owner_id, int) else None,
        )
        self._settle(session)
        logger.info("auth_login_succeeded", role=session.role)
        return session

    async def logout(self) -> None:
        """Best-effort server notification, then always drop local credentials."""
        await self._wait_for_boot()
        try:
            if self._client.auth_mode == "cookie":
                if self._client.csrf.get_csrf_token("refresh"):
                    await self._client.request(
                        "POST", LOGOUT_PATH, json={}, retry_on_unauthorized=False
                    )
            elif self._store.get_refresh():
                await self._client.logout_refresh()
        except SDKError as exc:
            logger.warning("auth_logout_notify_failed", error_type=type(exc).__name__)

        self._store.clear_all()
        if self._client.auth_mode == "cookie":
            self._client.clear_cookies()
        self._settle(None)
        logger.info("auth_logout_completed")

    def require_role(self, *roles: str) -> Session:
        """Return the current session when its role is one of ``roles``."""
        session = self._session
        if session is None or session.role not in roles:
            raise ForbiddenRoleError(session.role if session else None, roles)
        return session

    async def _boot(self) -> None:
        if self._state is not AuthState.BOOTING:
            return
        if not self._has_refresh_hint():
            logger.info("auth_boot_skipped", auth_mode=self._client.auth_mode)
            self._settle(None)
            return

        try:
            access_secret = await self._client.refresh()
        except Exception as exc:
            if self._state is not AuthState.BOOTING:
                return
            self._store.clear_all()
            logger.warning("auth_boot_failed", error_type=type(exc).__name__)
            self._settle(None)
            return

        if self._state is not AuthState.BOOTING:
            return
        session = session_from_access_token(access_secret)
        self._settle(session)
        logger.info("auth_boot_restored", role=session.role)

    async def _wait_for_boot(self) -> None:
        """Let an in-flight boot settle before the session changes hands."""
        if self._boot_task is not None and not self._boot_task.done():
            await asyncio.shield(self._boot_task)

    def _has_refresh_hint(self) -> bool:
        """Whether a refresh is worth attempting without asking the user to log in.

        Cookie mode cannot see the HttpOnly refresh cookie, so the readable
        refresh CSRF marker stands in for it.
        """
        if self._client.auth_mode == "cookie":
            return self._client.csrf.get_csrf_token("refresh") is not None
        return self._store.get_refresh() is not None

    def _settle(self, session: Session | None) -> None:
        self._session = session
        self._state = AuthState.AUTHENTICATED if session else AuthState.UNAUTHENTICATED

    @staticmethod
    def _login_payload(payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise APIResponseError("Invalid login response payload.")
        access_secret = payload.get("access_token")
        role = payload.get("role")
        if not isinstance(access_secret, str) or not access_secret or not role:
            raise APIResponseError("Invalid login response payload.")
        return payload


@lru_cache
def get_session_controller() -> SessionController:
    """Return the process-wide session controller bound to the shared client."""
    return SessionController(get_authenticated_client())
