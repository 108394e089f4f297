from __future__ import annotations

import json

import httpx
import pytest

from synthetic_probe.client import ProbeClient
from synthetic_probe.errors import AuthError, ProbeError


def _client(handler) -> ProbeClient:
    http = httpx.AsyncClient(base_url="https://platform.example", transport=httpx.MockTransport(handler))
    return ProbeClient("https://platform.example", "tenant@example.com", "secret", http_client=http)


@pytest.mark.asyncio
async def test_login_returns_and_stores_token() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/auth/login"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"token": "jwt-1", "refreshToken": "r-1"})

    async with _client(handler) as client:
        assert await client.login() == "jwt-1"
        assert client.token == "jwt-1"
    assert seen == [{"username": "tenant@example.com", "password": "secret"}]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"message": "Authentication failed"}),
        httpx.Response(200, json={"refreshToken": "r-1"}),
        httpx.Response(200, text="not json"),
    ],
)
@pytest.mark.asyncio
async def test_login_failures_raise_auth_error(response: httpx.Response) -> None:
    async with _client(lambda request: response) as client:
        with pytest.raises(AuthError):
            await client.login()
        assert client.token is None


@pytest.mark.asyncio
async def test_connection_error_raises_auth_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(AuthError, match="ConnectError"):
            await client.login()


@pytest.mark.asyncio
async def test_calls_before_login_are_rejected() -> None:
    async with _client(lambda request: httpx.Response(500)) as client:
        with pytest.raises(AuthError):
            await client.get_device_access_token("dev-1")


@pytest.mark.asyncio
async def test_get_or_create_device_creates_missing_device() -> None:
    requests: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, request.url.path))
        if request.url.path == "/api/auth/login":
            return httpx.Response(200, json={"token": "jwt-1"})
        assert request.headers["X-Authorization"] == "Bearer jwt-1"
        if request.url.path == "/api/tenant/devices":
            assert request.url.params["deviceName"] == "[http] https://a.example"
            return httpx.Response(404, json={"message": "not found"})
        if request.url.path == "/api/device":
            body = json.loads(request.content)
            assert body == {"name": "[http] https://a.example", "type": "default"}
            return httpx.Response(200, json={"id": {"id": "dev-new", "entityType": "DEVICE"}, "name": body["name"]})
        return httpx.Response(404)

    async with _client(handler) as client:
        await client.login()
        assert await client.get_or_create_device("[http] https://a.example") == "dev-new"

    assert requests == [
        ("POST", "/api/auth/login"),
        ("GET", "/api/tenant/devices"),
        ("POST", "/api/device"),
    ]


@pytest.mark.asyncio
async def test_existing_device_is_reused() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/login":
            return httpx.Response(200, json={"token": "jwt-1"})
        if request.url.path == "/api/tenant/devices":
            return httpx.Response(200, json={"id": {"id": "dev-1", "entityType": "DEVICE"}})
        raise AssertionError(f"unexpected request {request.method} {request.url}")

    async with _client(handler) as client:
        await client.login()
        assert await client.get_or_create_device("existing") == "dev-1"


@pytest.mark.asyncio
async def test_device_access_token_and_telemetry_save() -> None:
    saved: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/auth/login":
            return httpx.Response(200, json={"token": "jwt-1"})
        if path == "/api/device/dev-1/credentials":
            return httpx.Response(200, json={"credentialsType": "ACCESS_TOKEN", "credentialsId": "device-token"})
        if path == "/api/device/dev-2/credentials":
            return httpx.Response(200, json={"credentialsType": "X509_CERTIFICATE", "credentialsId": None})
        if path == "/api/plugins/telemetry/DEVICE/dev-1/timeseries/ANY":
            saved.append((path, json.loads(request.content)))
            return httpx.Response(200)
        return httpx.Response(404)

    async with _client(handler) as client:
        await client.login()
        assert await client.get_device_access_token("dev-1") == "device-token"
        with pytest.raises(ProbeError):
            await client.get_device_access_token("dev-2")
        await client.save_telemetry("DEVICE", "dev-1", {"logIn": 12.5})

    assert saved == [("/api/plugins/telemetry/DEVICE/dev-1/timeseries/ANY", {"logIn": 12.5})]
