from __future__ import annotations

from typing import Any

import httpx

from synthetic_probe.config import MonitoringTarget


async def send_http_payload(
    http: httpx.AsyncClient,
    target: MonitoringTarget,
    access_token: str,
    payload: dict[str, Any],
    timeout_seconds: float,
) -> None:
    """Post telemetry the way a device using the HTTP transport does."""
    url = f"{target.base_url.rstrip('/')}/api/v1/{access_token}/telemetry"
    resp = await http.post(url, json=payload, timeout=timeout_seconds)
    resp.raise_for_status()
