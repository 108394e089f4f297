"""Latency and failure reporting for probe runs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
import structlog

from synthetic_probe.config import ReportingSettings
from synthetic_probe.errors import ProbeError, ReportingError
from synthetic_probe.notifications import Notifier

if TYPE_CHECKING:
    from synthetic_probe.client import ProbeClient


logger = structlog.get_logger(__name__)

LOG_IN_LATENCY = "logIn"
GENERAL_SERVICE_KEY = "General"


class Reporter(Protocol):
    def report_latency(self, name: str, duration_ms: float) -> None: ...

    async def report_latencies(self, client: ProbeClient) -> None: ...

    async def service_failure(self, key: str, error: BaseException) -> None: ...

    async def service_is_ok(self, key: str) -> None: ...


def _format_ms(value: float) -> str:
    return f"{value:.0f} ms"


class MonitoringReporter:
    """Collects latencies between flushes and tracks consecutive failures per service key."""

    def __init__(self, settings: ReportingSettings, notifier: Notifier) -> None:
        self.settings = settings
        self._notifier = notifier
        self._latencies: dict[str, float] = {}
        self._failures: dict[str, int] = {}
        self._latencies_device_id: str | None = None

    @property
    def pending_latencies(self) -> dict[str, float]:
        return dict(self._latencies)

    def failure_count(self, key: str) -> int:
        return self._failures.get(key, 0)

    def report_latency(self, name: str, duration_ms: float) -> None:
        self._latencies[name] = float(duration_ms)

    async def report_latencies(self, client: ProbeClient) -> None:
        """Flush collected latencies to the log, notifications and the platform.

        Raises ``ReportingError`` when the platform write fails; the latencies are
        dropped either way.
        """
        if not self._latencies:
            return
        latencies = dict(self._latencies)
        self._latencies.clear()
        logger.info("Latencies", latencies={name: round(ms, 3) for name, ms in latencies.items()})

        threshold = float(self.settings.latency_threshold_ms)
        high = {name: ms for name, ms in latencies.items() if ms > threshold}
        if high:
            lines = [f"High latency (threshold {_format_ms(threshold)}):"]
            lines += [f"- {name}: {_format_ms(ms)}" for name, ms in sorted(high.items())]
            await self._notifier.send("\n".join(lines))

        if not self.settings.publish_latencies:
            return
        try:
            if self._latencies_device_id is None:
                self._latencies_device_id = await client.get_or_create_device(self.settings.monitoring_device_name)
            await client.save_telemetry(
                "DEVICE",
                self._latencies_device_id,
                {name: round(ms, 3) for name, ms in latencies.items()},
            )
        except (httpx.HTTPError, ProbeError) as exc:
            raise ReportingError(f"Failed to publish latencies: {type(exc).__name__}: {exc}") from exc

    async def service_failure(self, key: str, error: BaseException) -> None:
        count = self._failures.get(key, 0) + 1
        self._failures[key] = count
        logger.error("Service failure", service=key, failures=count, error=f"{type(error).__name__}: {error}")

        threshold = self.settings.failures_threshold
        repeat = self.settings.repeated_failure_notification
        notify = count == threshold or (repeat > 0 and count > threshold and (count - threshold) % repeat == 0)
        if notify:
            await self._notifier.send(f"{key} is failing ({count} times in a row): {error}")

    async def service_is_ok(self, key: str) -> None:
        count = self._failures.pop(key, 0)
        if count >= self.settings.failures_threshold:
            logger.info("Service recovered", service=key, failures=count)
            await self._notifier.send(f"{key} is OK again after {count} failures")
