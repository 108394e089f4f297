"""Configuration management for the synthetic probe."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MonitoringTarget(BaseModel):
    """One logical endpoint to probe."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(description="Endpoint the transport sends test telemetry to")
    device_id: Optional[str] = Field(
        default=None,
        description="Platform device that receives the telemetry; created by name when omitted",
    )
    check_domain_ips: bool = Field(
        default=False, description="Probe every address the host resolves to instead of the host"
    )

    @field_validator("base_url")
    @classmethod
    def _require_host(cls, value: str) -> str:
        s = str(value or "").strip()
        parts = urlsplit(s)
        if not parts.hostname:
            raise ValueError(f"base_url must be an absolute URL with a host, got {value!r}")
        try:
            parts.port
        except ValueError as exc:
            raise ValueError(f"base_url has an invalid port, got {value!r}: {exc}") from exc
        return s

    @property
    def host(self) -> str:
        return urlsplit(self.base_url).hostname or ""


class MonitoringConfig(BaseModel):
    """Targets sharing one transport (one config per checker family)."""

    model_config = ConfigDict(frozen=True)

    transport: str = Field(default="http", description="Checker family used for every target")
    targets: list[MonitoringTarget] = Field(default_factory=list, description="Targets to probe")
    request_timeout_seconds: float = Field(default=10.0, description="Transport request timeout")

    @field_validator("transport")
    @classmethod
    def _normalize_transport(cls, value: str) -> str:
        return str(value or "").strip().lower()

    def create_target(self, base_url: str) -> MonitoringTarget:
        """Build a synthetic target for ``base_url`` (used by replica fan-out)."""
        return MonitoringTarget(base_url=base_url)


class SubscriptionSettings(BaseModel):
    poll_interval_seconds: float = Field(default=0.5, description="Delay between telemetry polls")
    wait_timeout_seconds: float = Field(default=10.0, description="How long a checker waits for its value")


class ReportingSettings(BaseModel):
    latency_threshold_ms: float = Field(default=2000.0, description="Notify when a latency exceeds this")
    failures_threshold: int = Field(default=2, ge=1, description="Consecutive failures before notifying")
    repeated_failure_notification: int = Field(
        default=10, ge=0, description="Re-notify every N failures past the threshold (0 disables)"
    )
    publish_latencies: bool = Field(default=True, description="Save latencies as platform telemetry")
    monitoring_device_name: str = Field(
        default="[Monitoring] Latencies", description="Device that stores published latencies"
    )
    telegram_bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    telegram_chat_id: Optional[str] = Field(default=None, description="Telegram chat for notifications")


class ProbeSettings(BaseModel):
    """Main configuration for the probe."""

    base_url: str = Field(default="http://localhost:8080", description="Platform REST API base URL")
    username: str = Field(default="tenant@thingsboard.org", description="Platform login")
    password: str = Field(default="tenant", description="Platform password")
    request_timeout_seconds: float = Field(default=15.0, description="REST request timeout")
    log_level: str = Field(default="INFO", description="Logging level")

    interval_seconds: int = Field(default=60, ge=1, description="Delay between run cycles")
    fail_fast: bool = Field(default=True, description="Stop a run at the first failing checker")
    on_resolution_error: Literal["fail", "skip"] = Field(
        default="fail", description="Whether an unresolvable host aborts bootstrap or is skipped"
    )

    subscription: SubscriptionSettings = Field(default_factory=SubscriptionSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)
    monitoring: list[MonitoringConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_device_ids(self) -> "ProbeSettings":
        seen: set[str] = set()
        for config in self.monitoring:
            for target in config.targets:
                if target.device_id is None:
                    continue
                if target.device_id in seen:
                    raise ValueError(f"Duplicate device_id {target.device_id!r}")
                seen.add(target.device_id)
        return self


def _env_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def load_settings(config_path: Optional[str | Path] = None) -> ProbeSettings:
    """Load settings from a YAML file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("PROBE_CONFIG", "config/probe.yaml")

    data: dict = {}
    path = Path(config_path)
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")

    env_overrides = {
        "base_url": os.getenv("PROBE_BASE_URL"),
        "username": os.getenv("PROBE_USERNAME"),
        "password": os.getenv("PROBE_PASSWORD"),
        "interval_seconds": os.getenv("PROBE_INTERVAL_SECONDS"),
        "fail_fast": os.getenv("PROBE_FAIL_FAST"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    for key, value in env_overrides.items():
        if value is None:
            continue
        if key == "interval_seconds":
            value = int(value)
        elif key == "fail_fast":
            value = _env_bool(value)
        data[key] = value

    reporting = dict(data.get("reporting") or {})
    for key, env_name in (("telegram_bot_token", "TELEGRAM_BOT_TOKEN"), ("telegram_chat_id", "TELEGRAM_CHAT_ID")):
        value = os.getenv(env_name)
        if value:
            reporting[key] = value
    data["reporting"] = reporting

    return ProbeSettings(**data)
