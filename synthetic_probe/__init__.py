"""Synthetic telemetry probe: checks that monitored endpoints deliver telemetry end to end."""

from synthetic_probe.bootstrap import Bootstrapper
from synthetic_probe.config import MonitoringConfig, MonitoringTarget, ProbeSettings, load_settings
from synthetic_probe.registry import CheckerRegistry
from synthetic_probe.service import MonitoringService, RunResult, RunStatus

__all__ = [
    "Bootstrapper",
    "CheckerRegistry",
    "MonitoringConfig",
    "MonitoringService",
    "MonitoringTarget",
    "ProbeSettings",
    "RunResult",
    "RunStatus",
    "load_settings",
]
