from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from synthetic_probe.checkers.base import HealthChecker, PayloadSender, TransportHealthChecker, service_key_for
from synthetic_probe.checkers.http import send_http_payload
from synthetic_probe.config import MonitoringConfig, MonitoringTarget
from synthetic_probe.errors import BootstrapError

if TYPE_CHECKING:
    from synthetic_probe.reporter import Reporter


TRANSPORTS: dict[str, PayloadSender] = {
    "http": send_http_payload,
}


class TransportCheckerFactory:
    """Builds the checker for a (config, target) pair, keyed on ``config.transport``."""

    def __init__(
        self,
        reporter: Reporter,
        http: httpx.AsyncClient,
        transports: dict[str, PayloadSender] | None = None,
    ) -> None:
        self._reporter = reporter
        self._http = http
        self._transports = dict(TRANSPORTS if transports is None else transports)

    def __call__(self, config: MonitoringConfig, target: MonitoringTarget) -> HealthChecker:
        send_payload = self._transports.get(config.transport)
        if send_payload is None:
            raise BootstrapError(f"Unsupported transport {config.transport!r}")
        return TransportHealthChecker(
            config,
            target,
            send_payload=send_payload,
            reporter=self._reporter,
            http=self._http,
        )


__all__ = [
    "HealthChecker",
    "PayloadSender",
    "TRANSPORTS",
    "TransportCheckerFactory",
    "TransportHealthChecker",
    "send_http_payload",
    "service_key_for",
]
