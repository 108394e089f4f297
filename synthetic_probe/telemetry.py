from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, AsyncContextManager, AsyncIterator, Protocol, Sequence

import httpx
import structlog

from synthetic_probe.client import auth_headers
from synthetic_probe.errors import SubscriptionError


logger = structlog.get_logger(__name__)

TEST_TELEMETRY_KEY = "testData"


class TelemetrySubscription(Protocol):
    async def subscribe(self, device_ids: Sequence[str], key: str) -> None: ...

    async def wait_for_update(self, device_id: str, key: str, expected_value: str) -> None: ...

    async def close(self) -> None: ...


class TelemetrySubscriber(Protocol):
    def connect(self, access_token: str) -> AsyncContextManager[TelemetrySubscription]: ...


class PollingTelemetrySubscription:
    """Follows the latest telemetry of a fixed device set over REST polling.

    ``subscribe`` reads a baseline for every device; a successful read for all of
    them is the acknowledgement. ``wait_for_update`` polls one device until the
    expected value shows up or the wait times out.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        poll_interval_seconds: float = 0.5,
        wait_timeout_seconds: float = 10.0,
    ) -> None:
        self._http = http
        self._poll_interval = max(0.01, float(poll_interval_seconds))
        self._wait_timeout = max(0.1, float(wait_timeout_seconds))
        self._baseline: dict[str, int | None] = {}
        self._key: str | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _latest(self, device_id: str, key: str) -> tuple[int, str] | None:
        resp = await self._http.get(
            f"/api/plugins/telemetry/DEVICE/{device_id}/values/timeseries",
            params={"keys": key},
        )
        resp.raise_for_status()
        try:
            data = resp.json()
            if not isinstance(data, dict):
                raise ValueError("not a JSON object")
            points = data.get(key)
            if not isinstance(points, list) or not points or not isinstance(points[0], dict):
                return None
            point = points[0]
            return int(point.get("ts") or 0), str(point.get("value"))
        except (TypeError, ValueError) as exc:
            raise SubscriptionError(
                f"Unexpected telemetry response for device {device_id}: {type(exc).__name__}: {exc}"
            ) from exc

    async def subscribe(self, device_ids: Sequence[str], key: str) -> None:
        if self._closed:
            raise SubscriptionError("Subscription is closed")
        for device_id in device_ids:
            try:
                latest = await self._latest(device_id, key)
            except (httpx.HTTPError, SubscriptionError) as exc:
                raise SubscriptionError(
                    f"Failed to subscribe to {key!r} of device {device_id}: {type(exc).__name__}: {exc}"
                ) from exc
            self._baseline[device_id] = latest[0] if latest else None
        self._key = key
        logger.debug("Subscribed for telemetry", key=key, devices=len(self._baseline))

    async def wait_for_update(self, device_id: str, key: str, expected_value: str) -> None:
        if self._closed:
            raise SubscriptionError("Subscription is closed")
        if key != self._key or device_id not in self._baseline:
            raise SubscriptionError(f"Device {device_id} is not subscribed for {key!r}")

        deadline = time.monotonic() + self._wait_timeout
        while True:
            latest = await self._latest(device_id, key)
            if latest is not None and latest[1] == expected_value:
                self._baseline[device_id] = latest[0]
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out waiting for {key!r} update of device {device_id}")
            await asyncio.sleep(self._poll_interval)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._http.aclose()


class PollingTelemetrySubscriber:
    def __init__(
        self,
        base_url: str,
        *,
        poll_interval_seconds: float = 0.5,
        wait_timeout_seconds: float = 10.0,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval_seconds
        self._wait_timeout = wait_timeout_seconds
        self._timeout = timeout_seconds
        self._transport = transport

    @contextlib.asynccontextmanager
    async def connect(self, access_token: str) -> AsyncIterator[PollingTelemetrySubscription]:
        kwargs: dict[str, Any] = {}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=auth_headers(access_token),
            timeout=self._timeout,
            **kwargs,
        )
        subscription = PollingTelemetrySubscription(
            http,
            poll_interval_seconds=self._poll_interval,
            wait_timeout_seconds=self._wait_timeout,
        )
        try:
            yield subscription
        finally:
            await subscription.close()
