"""Async HTTP client that attaches credentials and renews expired access tokens."""

from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from http.cookiejar import Cookie
from typing import Any

import httpx
import structlog

from potencialize_sdk.config import get_settings
from potencialize_sdk.cookies import CsrfReader
from potencialize_sdk.exceptions import (
    APIResponseError,
    ConnectivityError,
    UnauthenticatedError,
)
from potencialize_sdk.routes import MUTATING_METHODS, csrf_kind_for
from potencialize_sdk.storage import CredentialStore, JSONFileStorage
from potencialize_sdk.types import AuthMode, StoredCookie

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=10.0, write=10.0, pool=5.0)
CSRF_HEADER = "X-CSRF-TOKEN"
LOGIN_PATH = "/auth/login"
LOGOUT_PATH = "/auth/logout"
REFRESH_PATH = "/auth/refresh"
LOGOUT_REFRESH_PATH = "/auth/logout-refresh"

logger = structlog.get_logger(__name__)


def _connectivity_error(exc: httpx.RequestError) -> ConnectivityError:
    """Translate a transport failure into the SDK connectivity error."""
    if isinstance(exc, httpx.TimeoutException):
        return ConnectivityError("API request timed out.", timed_out=True)
    return ConnectivityError("API unavailable.")


class AuthenticatedClient:
    """Send API requests with credentials attached and recover from expired access.

    In bearer mode the access secret travels as an ``Authorization`` header. In
    cookie mode the cookie jar carries credentials and mutating requests get an
    ``X-CSRF-TOKEN`` header read from the matching marker cookie. The jar is
    mirrored to the store's durable storage so a later process resumes with it.

    A first 401 on a request triggers one refresh of the access secret. While a
    refresh is running, other requests that hit 401 wait for it instead of
    starting their own, and are all resolved or all rejected when it settles.
    """

    def __init__(
        self,
        base_url: str,
        auth_mode: AuthMode = "bearer",
        store: CredentialStore | None = None,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._auth_mode: AuthMode = auth_mode
        self._store = store if store is not None else CredentialStore()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout or DEFAULT_TIMEOUT,
        )
        self._refreshing = False
        self._pending: list[asyncio.Future[str]] = []
        self._saved_cookies: list[StoredCookie] = []
        if self._auth_mode == "cookie":
            self._restore_cookies()

    @property
    def auth_mode(self) -> AuthMode:
        return self._auth_mode

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def csrf(self) -> CsrfReader:
        """Reader over the live cookie jar of the underlying HTTP client."""
        return CsrfReader(self._client.cookies)

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    async def request(
        self,
        method: str,
        url: str,
        *,
        retry_on_unauthorized: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Raises ``UnauthenticatedError`` for a final 401, ``APIResponseError`` for
        other error statuses and ``ConnectivityError`` when no response arrived.
        """
        return await self._send(
            method.upper(),
            url,
            kwargs,
            retry_on_unauthorized=retry_on_unauthorized,
            retried=False,
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body; empty bodies decode to ``None``."""
        response = await self.request(method, url, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise APIResponseError(
                "API returned invalid JSON.", response.status_code, response
            ) from exc

    async def refresh(self) -> str:
        """Obtain a new access secret, joining a refresh already in flight.

        On failure every waiter receives the same exception and all stored
        credentials are cleared.
        """
        if self._refreshing:
            waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            self._pending.append(waiter)
            logger.info("auth_refresh_joined", pending=len(self._pending))
            return await waiter

        # Flag must be set before the first suspension point.
        self._refreshing = True
        logger.info("auth_refresh_started", auth_mode=self._auth_mode)
        try:
            access_secret = await self._request_new_access()
        except asyncio.CancelledError:
            self._refreshing = False
            self._cancel_pending()
            raise
        except Exception as exc:
            self._refreshing = False
            self._reject_pending(exc)
            self._store.clear_all()
            logger.warning(
                "auth_refresh_failed",
                error_type=type(exc).__name__,
                status_code=getattr(exc, "status_code", None),
            )
            raise

        self._store.set_access(access_secret)
        self._refreshing = False
        resumed = self._resolve_pending(access_secret)
        logger.info("auth_refresh_succeeded", resumed=resumed)
        return access_secret

    async def logout_refresh(self) -> None:
        """Ask the API to invalidate the refresh credential."""
        await self._post_with_refresh_credential(LOGOUT_REFRESH_PATH)

    def reset(self) -> None:
        """Forget any refresh in flight and cancel its waiters."""
        self._refreshing = False
        self._cancel_pending()

    def clear_cookies(self) -> None:
        """Empty the cookie jar and, in cookie mode, its persisted copy."""
        self._client.cookies.clear()
        self._save_cookies()

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AuthenticatedClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _send(
        self,
        method: str,
        url: str,
        kwargs: dict[str, Any],
        *,
        retry_on_unauthorized: bool,
        retried: bool,
        access_secret: str | None = None,
    ) -> httpx.Response:
        """Execute one attempt and run the 401 recovery protocol when allowed."""
        request_kwargs = dict(kwargs)
        headers = self._attach_credentials(
            method, url, request_kwargs.pop("headers", None), access_secret
        )
        try:
            response = await self._client.request(method, url, headers=headers, **request_kwargs)
        except httpx.RequestError as exc:
            raise _connectivity_error(exc) from exc
        self._save_cookies()

        if response.status_code == 401 and retry_on_unauthorized and not retried:
            return await self._recover_unauthorized(method, url, kwargs, response)
        self._raise_for_status(response)
        return response

    def _attach_credentials(
        self,
        method: str,
        url: str,
        headers: Any,
        access_secret: str | None,
    ) -> httpx.Headers:
        """Return request headers with the mode-specific credential attached."""
        merged = httpx.Headers(headers)
        if self._auth_mode == "bearer":
            access = access_secret or self._store.get_access()
            if access:
                merged["Authorization"] = f"Bearer {access}"
            return merged

        if method in MUTATING_METHODS:
            csrf_token = self.csrf.get_csrf_token(csrf_kind_for(method, url))
            if csrf_token:
                merged[CSRF_HEADER] = csrf_token
        return merged

    async def _recover_unauthorized(
        self,
        method: str,
        url: str,
        kwargs: dict[str, Any],
        response: httpx.Response,
    ) -> httpx.Response:
        """Refresh the access secret once and re-issue the rejected request."""
        if self._auth_mode == "bearer" and not self._store.get_refresh():
            self._store.clear_all()
            raise UnauthenticatedError("Not authenticated.", response)

        access_secret = await self.refresh()
        return await self._send(
            method,
            url,
            kwargs,
            retry_on_unauthorized=True,
            retried=True,
            access_secret=access_secret,
        )

    async def _request_new_access(self) -> str:
        """Call the refresh endpoint and return the new access secret."""
        response = await self._post_with_refresh_credential(REFRESH_PATH)
        payload = self._json_object(response)
        access_secret = payload.get("access_token")
        if not isinstance(access_secret, str) or not access_secret:
            raise APIResponseError(
                "Invalid refresh response payload.", response.status_code, response
            )
        return access_secret

    async def _post_with_refresh_credential(self, path: str) -> httpx.Response:
        """POST directly on the transport with the refresh-scoped credential.

        Bypasses credential attachment and 401 recovery so a rejected refresh
        cannot recurse into another refresh.
        """
        headers: dict[str, str] = {}
        if self._auth_mode == "bearer":
            refresh_secret = self._store.get_refresh()
            if not refresh_secret:
                raise UnauthenticatedError("No refresh credential available.")
            headers["Authorization"] = f"Bearer {refresh_secret}"
        else:
            csrf_token = self.csrf.get_csrf_token("refresh")
            if csrf_token:
                headers[CSRF_HEADER] = csrf_token

        try:
            response = await self._client.post(path, json={}, headers=headers)
        except httpx.RequestError as exc:
            raise _connectivity_error(exc) from exc
        self._save_cookies()
        self._raise_for_status(response)
        return response

    def _restore_cookies(self) -> None:
        """Load persisted cookies into the jar, skipping expired ones."""
        now = time.time()
        for stored in self._store.get_cookies():
            expires = stored.get("expires")
            if isinstance(expires, int) and expires <= now:
                continue
            domain = stored.get("domain") or ""
            path = stored.get("path") or "/"
            cookie = Cookie(
                version=0,
                name=stored["name"],
                value=stored["value"],
                port=None,
                port_specified=False,
                domain=domain,
                domain_specified=bool(domain),
                domain_initial_dot=domain.startswith("."),
                path=path,
                path_specified=True,
                secure=False,
                expires=expires if isinstance(expires, int) else None,
                discard=not isinstance(expires, int),
                comment=None,
                comment_url=None,
                rest={},
            )
            self._client.cookies.jar.set_cookie(cookie)
        self._saved_cookies = self._cookie_snapshot()

    def _cookie_snapshot(self) -> list[StoredCookie]:
        return [
            {
                "name": cookie.name,
                "value": cookie.value or "",
                "domain": cookie.domain,
                "path": cookie.path,
                "expires": cookie.expires,
            }
            for cookie in self._client.cookies.jar
            if not cookie.is_expired()
        ]

    def _save_cookies(self) -> None:
        """Mirror the jar into durable storage when it changed; cookie mode only."""
        if self._auth_mode != "cookie":
            return
        snapshot = self._cookie_snapshot()
        if snapshot != self._saved_cookies:
            self._store.set_cookies(snapshot)
            self._saved_cookies = snapshot

    def _resolve_pending(self, access_secret: str) -> int:
        pending, self._pending = self._pending, []
        for waiter in pending:
            if not waiter.done():
                waiter.set_result(access_secret)
        return len(pending)

    def _reject_pending(self, exc: BaseException) -> None:
        pending, self._pending = self._pending, []
        for waiter in pending:
            if not waiter.done():
                waiter.set_exception(exc)

    def _cancel_pending(self) -> None:
        pending, self._pending = self._pending, []
        for waiter in pending:
            waiter.cancel()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        """Map error statuses onto the SDK exception hierarchy."""
        if response.status_code == 401:
            raise UnauthenticatedError("Not authenticated.", response)
        if response.status_code >= 400:
            raise APIResponseError(
                f"API request failed with status {response.status_code}.",
                response.status_code,
                response,
            )

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise APIResponseError(
                "API returned invalid JSON.", response.status_code, response
            ) from exc
        if not isinstance(payload, dict):
            raise APIResponseError(
                "API returned invalid JSON object.", response.status_code, response
            )
        return payload


@lru_cache
def get_authenticated_client() -> AuthenticatedClient:
    """Return the process-wide client built from settings."""
    settings = get_settings()
    return AuthenticatedClient(
        base_url=settings.base_url,
        auth_mode=settings.auth_mode,
        store=CredentialStore(JSONFileStorage(settings.storage_path)),
        timeout=settings.timeout_seconds,
    )
