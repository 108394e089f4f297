from __future__ import annotations

from typing import Any

import httpx
import structlog

from synthetic_probe.errors import AuthError, ProbeError


logger = structlog.get_logger(__name__)

AUTH_HEADER = "X-Authorization"


def auth_headers(access_token: str) -> dict[str, str]:
    return {AUTH_HEADER: f"Bearer {access_token}"}


class ProbeClient:
    """REST client for the monitored platform.

    ``login`` refreshes the session token used by every other call. Pass
    ``http_client`` to reuse a preconfigured ``httpx.AsyncClient`` (tests use one
    backed by ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        timeout_seconds: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._http = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_seconds)
        self._token: str | None = None

    @property
    def token(self) -> str | None:
        return self._token

    async def __aenter__(self) -> "ProbeClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def login(self) -> str:
        try:
            resp = await self._http.post(
                "/api/auth/login",
                json={"username": self._username, "password": self._password},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise AuthError(f"Login rejected with HTTP {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthError(f"Login failed: {type(exc).__name__}: {exc}") from exc

        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("Login response did not contain a token")
        self._token = token
        logger.debug("Logged in", base_url=self.base_url)
        return token

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self._token:
            raise AuthError("Not logged in")
        headers = {**kwargs.pop("headers", {}), **auth_headers(self._token)}
        return await self._http.request(method, path, headers=headers, **kwargs)

    async def get_device_by_name(self, name: str) -> dict[str, Any] | None:
        resp = await self._request("GET", "/api/tenant/devices", params={"deviceName": name})
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ProbeError("Unexpected device lookup response (not a JSON object)")
        return data

    async def create_device(self, name: str, device_type: str = "default") -> dict[str, Any]:
        resp = await self._request("POST", "/api/device", json={"name": name, "type": device_type})
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ProbeError("Unexpected device create response (not a JSON object)")
        logger.info("Created device", name=name)
        return data

    async def get_or_create_device(self, name: str) -> str:
        device = await self.get_device_by_name(name)
        if device is None:
            device = await self.create_device(name)
        return _entity_id(device)

    async def get_device_access_token(self, device_id: str) -> str:
        resp = await self._request("GET", f"/api/device/{device_id}/credentials")
        resp.raise_for_status()
        data = resp.json()
        token = data.get("credentialsId") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise ProbeError(f"Device {device_id} has no access token credentials")
        return token

    async def save_telemetry(self, entity_type: str, entity_id: str, values: dict[str, Any]) -> None:
        resp = await self._request(
            "POST",
            f"/api/plugins/telemetry/{entity_type}/{entity_id}/timeseries/ANY",
            json=values,
        )
        resp.raise_for_status()


def _entity_id(entity: dict[str, Any]) -> str:
    raw = entity.get("id")
    if isinstance(raw, dict):
        raw = raw.get("id")
    if not isinstance(raw, str) or not raw:
        raise ProbeError(f"Entity has no id: {entity!r}")
    return raw
