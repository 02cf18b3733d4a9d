"""Unit tests for credential attachment and single-flight token refresh."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from potencialize_sdk.client import AuthenticatedClient
from potencialize_sdk.exceptions import APIResponseError, ConnectivityError, UnauthenticatedError
from potencialize_sdk.storage import CredentialStore
from potencialize_sdk.types import AuthMode

BASE_URL = "https://dashboard.local/api/v1"
REFRESH_URL_PATH = "/api/v1/auth/refresh"


def _client(
    http_client: httpx.AsyncClient,
    store: CredentialStore,
    auth_mode: AuthMode = "bearer",
) -> AuthenticatedClient:
    return AuthenticatedClient(
        base_url=BASE_URL, auth_mode=auth_mode, store=store, http_client=http_client
    )


@pytest.mark.asyncio
async def test_bearer_mode_attaches_access_secret_and_never_csrf(store: CredentialStore) -> None:
    """Bearer requests carry Authorization and no CSRF header, even for POST."""
    store.set_access("access-1")
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code=201, json={"id": 1})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        http_client.cookies.set("csrf_access_token", "csrf-access")
        client = _client(http_client, store)
        await client.post("/classes/", json={"name": "7A", "year": 2025})

    assert seen[0].url.path == "/api/v1/classes/"
    assert seen[0].headers["authorization"] == "Bearer access-1"
    assert "x-csrf-token" not in seen[0].headers


@pytest.mark.asyncio
async def test_cookie_mode_picks_csrf_kind_by_target_path(store: CredentialStore) -> None:
    """Mutating requests get the access or refresh CSRF token based on their path."""
    store.set_access("access-1")
    seen: dict[tuple[str, str], httpx.Headers] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen[(request.method, request.url.path)] = request.headers
        return httpx.Response(status_code=200, json={})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        http_client.cookies.set("csrf_access_token", "csrf-access")
        http_client.cookies.set("csrf_refresh_token", "csrf-refresh")
        client = _client(http_client, store, auth_mode="cookie")
        await client.get("/classes/")
        await client.delete("/classes/3")
        await client.post("/auth/logout-refresh/", json={})
        await client.post(f"{BASE_URL}/auth/refresh", json={})
        await client.post("/auth/logout", json={})

    assert "x-csrf-token" not in seen[("GET", "/api/v1/classes/")]
    assert seen[("DELETE", "/api/v1/classes/3")]["x-csrf-token"] == "csrf-access"
    assert seen[("POST", "/api/v1/auth/logout-refresh/")]["x-csrf-token"] == "csrf-refresh"
    assert seen[("POST", REFRESH_URL_PATH)]["x-csrf-token"] == "csrf-refresh"
    assert seen[("POST", "/api/v1/auth/logout")]["x-csrf-token"] == "csrf-access"
    assert all("authorization" not in headers for headers in seen.values())


@pytest.mark.asyncio
async def test_expired_access_is_refreshed_transparently(store: CredentialStore) -> None:
    """A single 401 triggers one refresh and the caller only sees the retried success."""
    store.set_access("stale")
    store.set_refresh("refresh-1")
    calls: list[tuple[str, str | None]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, request.headers.get("authorization")))
        if request.url.path == REFRESH_URL_PATH:
            return httpx.Response(status_code=200, json={"access_token": "fresh"})
        if request.headers.get("authorization") == "Bearer fresh":
            return httpx.Response(status_code=200, json=[{"id": 1}])
        return httpx.Response(status_code=401, json={"msg": "Token has expired"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        response = await client.get("/classes/")

    assert response.json() == [{"id": 1}]
    assert calls == [
        ("/api/v1/classes/", "Bearer stale"),
        (REFRESH_URL_PATH, "Bearer refresh-1"),
        ("/api/v1/classes/", "Bearer fresh"),
    ]
    assert store.get_access() == "fresh"
    assert store.get_refresh() == "refresh-1"
    assert client.is_refreshing is False


@pytest.mark.asyncio
async def test_concurrent_unauthorized_requests_share_one_refresh(store: CredentialStore) -> None:
    """Three requests rejected together cause exactly one refresh and all succeed."""
    store.set_access("stale")
    store.set_refresh("refresh-1")
    refresh_calls = 0
    rejected = 0
    all_rejected = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal refresh_calls, rejected
        if request.url.path == REFRESH_URL_PATH:
            refresh_calls += 1
            await all_rejected.wait()
            return httpx.Response(status_code=200, json={"access_token": "fresh"})
        if request.headers.get("authorization") != "Bearer fresh":
            rejected += 1
            if rejected == 3:
                all_rejected.set()
            return httpx.Response(status_code=401, json={"msg": "Token has expired"})
        return httpx.Response(status_code=200, json={"path": request.url.path})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        responses = await asyncio.gather(
            client.get("/classes/1"),
            client.get("/classes/2"),
            client.get("/students/"),
        )

    assert refresh_calls == 1
    assert [response.json()["path"] for response in responses] == [
        "/api/v1/classes/1",
        "/api/v1/classes/2",
        "/api/v1/students/",
    ]
    assert store.get_access() == "fresh"


@pytest.mark.asyncio
async def test_failed_refresh_rejects_every_waiting_request(store: CredentialStore) -> None:
    """When the shared refresh fails, all requests fail with it and none retry."""
    store.set_access("stale")
    store.set_refresh("expired-refresh")
    refresh_calls = 0
    data_calls = 0
    all_rejected = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal refresh_calls, data_calls
        if request.url.path == REFRESH_URL_PATH:
            refresh_calls += 1
            await all_rejected.wait()
            return httpx.Response(status_code=401, json={"msg": "Token has expired"})
        data_calls += 1
        if data_calls == 3:
            all_rejected.set()
        return httpx.Response(status_code=401, json={"msg": "Token has expired"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        results = await asyncio.gather(
            client.get("/classes/1"),
            client.get("/classes/2"),
            client.get("/classes/3"),
            return_exceptions=True,
        )

    assert refresh_calls == 1
    assert data_calls == 3
    assert all(isinstance(result, UnauthenticatedError) for result in results)
    assert len({id(result) for result in results}) == 1
    assert store.get_access() is None
    assert store.get_refresh() is None


@pytest.mark.asyncio
async def test_retried_request_rejected_again_is_not_retried_twice(
    store: CredentialStore,
) -> None:
    """A second 401 after a successful refresh propagates unchanged."""
    store.set_access("stale")
    store.set_refresh("refresh-1")
    refresh_calls = 0
    data_calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal refresh_calls, data_calls
        if request.url.path == REFRESH_URL_PATH:
            refresh_calls += 1
            return httpx.Response(status_code=200, json={"access_token": "fresh"})
        data_calls += 1
        return httpx.Response(status_code=401, json={"msg": "Signature verification failed"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        with pytest.raises(UnauthenticatedError) as exc_info:
            await client.get("/classes/")

    assert refresh_calls == 1
    assert data_calls == 2
    assert exc_info.value.status_code == 401
    assert exc_info.value.response is not None
    assert exc_info.value.response.json() == {"msg": "Signature verification failed"}


@pytest.mark.asyncio
async def test_bearer_401_without_refresh_secret_clears_and_fails(
    store: CredentialStore,
) -> None:
    """With no refresh secret the client gives up without calling refresh."""
    store.set_access("stale")
    paths: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(status_code=401, json={"msg": "Token has expired"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        with pytest.raises(UnauthenticatedError):
            await client.get("/classes/")

    assert paths == ["/api/v1/classes/"]
    assert store.get_access() is None


@pytest.mark.asyncio
async def test_cookie_mode_refresh_uses_refresh_csrf_and_no_authorization(
    store: CredentialStore,
) -> None:
    """Cookie-mode refresh relies on the jar plus the refresh-scoped CSRF header."""
    calls: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == REFRESH_URL_PATH:
            return httpx.Response(status_code=200, json={"access_token": "fresh"})
        if len(calls) == 1:
            return httpx.Response(status_code=401, json={"msg": "Token has expired"})
        return httpx.Response(status_code=200, json={"id": 9})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        http_client.cookies.set("csrf_access_token", "csrf-access")
        http_client.cookies.set("csrf_refresh_token", "csrf-refresh")
        client = _client(http_client, store, auth_mode="cookie")
        response = await client.put("/questions/9", json={"text": "?"})

    assert response.json() == {"id": 9}
    assert [request.url.path for request in calls] == [
        "/api/v1/questions/9",
        REFRESH_URL_PATH,
        "/api/v1/questions/9",
    ]
    assert calls[1].headers["x-csrf-token"] == "csrf-refresh"
    assert calls[2].headers["x-csrf-token"] == "csrf-access"
    assert all("authorization" not in request.headers for request in calls)
    assert store.get_access() == "fresh"


@pytest.mark.asyncio
async def test_other_error_statuses_pass_through_without_refresh(
    store: CredentialStore,
) -> None:
    """Validation and not-found failures are surfaced untouched."""
    store.set_access("access-1")
    store.set_refresh("refresh-1")
    paths: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(status_code=404, json={"message": "Turma not found"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        with pytest.raises(APIResponseError) as exc_info:
            await client.get("/classes/99")

    assert exc_info.value.status_code == 404
    assert not isinstance(exc_info.value, UnauthenticatedError)
    assert paths == ["/api/v1/classes/99"]
    assert store.get_access() == "access-1"


@pytest.mark.asyncio
async def test_transport_failures_raise_connectivity_error(store: CredentialStore) -> None:
    """Network failures and timeouts map to ConnectivityError."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/slow"):
            raise httpx.ReadTimeout("timed out", request=request)
        raise httpx.ConnectError("network down", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        with pytest.raises(ConnectivityError) as down:
            await client.get("/classes/")
        with pytest.raises(ConnectivityError) as slow:
            await client.get("/slow")

    assert down.value.timed_out is False
    assert slow.value.timed_out is True


@pytest.mark.asyncio
async def test_refresh_with_malformed_payload_fails_and_clears(store: CredentialStore) -> None:
    """A refresh response without an access token is an unrecoverable failure."""
    store.set_access("stale")
    store.set_refresh("refresh-1")

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == REFRESH_URL_PATH:
            return httpx.Response(status_code=200, json={"unexpected": True})
        return httpx.Response(status_code=401)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        with pytest.raises(APIResponseError, match="Invalid refresh response payload"):
            await client.get("/classes/")

    assert store.get_refresh() is None
    assert client.is_refreshing is False


@pytest.mark.asyncio
async def test_opting_out_of_recovery_propagates_first_401(store: CredentialStore) -> None:
    """Requests sent with retry_on_unauthorized=False never trigger a refresh."""
    store.set_refresh("refresh-1")
    paths: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(status_code=401, json={"msg": "Bad credentials"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        with pytest.raises(UnauthenticatedError):
            await client.post("/auth/login", json={}, retry_on_unauthorized=False)

    assert paths == ["/api/v1/auth/login"]
    assert store.get_refresh() == "refresh-1"


@pytest.mark.asyncio
async def test_cancelled_refresh_cancels_waiters_and_keeps_credentials(
    store: CredentialStore,
) -> None:
    """Cancelling the task driving a refresh cancels its waiters and keeps secrets."""
    store.set_access("stale")
    store.set_refresh("refresh-1")
    refresh_started = asyncio.Event()
    never = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == REFRESH_URL_PATH:
            refresh_started.set()
            await never.wait()
        return httpx.Response(status_code=401, json={"msg": "Token has expired"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        initiator = asyncio.create_task(client.get("/classes/1"))
        await refresh_started.wait()
        waiter = asyncio.create_task(client.refresh())
        await asyncio.sleep(0)

        initiator.cancel()
        with pytest.raises(asyncio.CancelledError):
            await initiator
        with pytest.raises(asyncio.CancelledError):
            await waiter

    assert waiter.cancelled()
    assert client.is_refreshing is False
    assert store.get_access() == "stale"
    assert store.get_refresh() == "refresh-1"


@pytest.mark.asyncio
async def test_reset_cancels_queued_waiters(store: CredentialStore) -> None:
    """reset() drops the in-flight flag and cancels everyone queued behind it."""
    store.set_refresh("refresh-1")
    refresh_started = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        refresh_started.set()
        await release.wait()
        return httpx.Response(status_code=200, json={"access_token": "fresh"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http_client:
        client = _client(http_client, store)
        initiator = asyncio.create_task(client.refresh())
        await refresh_started.wait()
        waiter = asyncio.create_task(client.refresh())
        await asyncio.sleep(0)

        client.reset()

        assert client.is_refreshing is False
        with pytest.raises(asyncio.CancelledError):
            await waiter
        release.set()
        assert await initiator == "fresh"

    assert store.get_access() == "fresh"
    assert client.is_refreshing is False
