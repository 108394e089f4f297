from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

import httpx
import structlog

from synthetic_probe.config import MonitoringConfig, MonitoringTarget
from synthetic_probe.errors import CheckerError, SubscriptionError
from synthetic_probe.stopwatch import StopWatch
from synthetic_probe.telemetry import TEST_TELEMETRY_KEY, TelemetrySubscription

if TYPE_CHECKING:
    from synthetic_probe.client import ProbeClient
    from synthetic_probe.reporter import Reporter


logger = structlog.get_logger(__name__)

# (http client, target, device access token, payload, timeout seconds)
PayloadSender = Callable[[httpx.AsyncClient, MonitoringTarget, str, dict[str, Any], float], Awaitable[None]]


class HealthChecker(Protocol):
    service_key: str
    device_id: str | None

    async def initialize(self, client: ProbeClient) -> None: ...

    async def check(self, subscription: TelemetrySubscription) -> None: ...


def service_key_for(transport: str, target: MonitoringTarget) -> str:
    return f"[{transport}] {target.base_url}"


class TransportHealthChecker:
    """Checks that a test value sent through a transport reaches the platform.

    The transport itself is a ``PayloadSender``; everything else (device
    provisioning, timing, waiting for the value over the shared subscription,
    reporting) is the same for every transport.
    """

    def __init__(
        self,
        config: MonitoringConfig,
        target: MonitoringTarget,
        *,
        send_payload: PayloadSender,
        reporter: Reporter,
        http: httpx.AsyncClient,
    ) -> None:
        self.config = config
        self.target = target
        self.service_key = service_key_for(config.transport, target)
        self.device_id: str | None = target.device_id
        self._send_payload = send_payload
        self._reporter = reporter
        self._http = http
        self._access_token: str | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.service_key!r})"

    async def initialize(self, client: ProbeClient) -> None:
        if self.device_id is None:
            self.device_id = await client.get_or_create_device(self.service_key)
        self._access_token = await client.get_device_access_token(self.device_id)
        logger.debug("Checker ready", service=self.service_key, device_id=self.device_id)

    async def check(self, subscription: TelemetrySubscription) -> None:
        if self.device_id is None or self._access_token is None:
            raise CheckerError(self.service_key, "Checker was not initialized")

        test_value = uuid.uuid4().hex
        payload = {TEST_TELEMETRY_KEY: test_value}
        stopwatch = StopWatch()
        stopwatch.start()
        try:
            await self._send_payload(
                self._http, self.target, self._access_token, payload, self.config.request_timeout_seconds
            )
        except Exception as exc:
            raise CheckerError(
                self.service_key, f"Failed to send test payload: {type(exc).__name__}: {exc}"
            ) from exc
        logger.debug("Sent test payload", service=self.service_key, value=test_value)

        try:
            await subscription.wait_for_update(self.device_id, TEST_TELEMETRY_KEY, test_value)
        except (TimeoutError, SubscriptionError, httpx.HTTPError, ValueError) as exc:
            raise CheckerError(
                self.service_key, f"Test value was not delivered: {type(exc).__name__}: {exc}"
            ) from exc

        self._reporter.report_latency(self.service_key, stopwatch.elapsed_ms())
        await self._reporter.service_is_ok(self.service_key)
