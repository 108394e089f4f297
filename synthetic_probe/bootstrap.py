from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Literal, Sequence

import structlog

from synthetic_probe.checkers import HealthChecker
from synthetic_probe.config import MonitoringConfig, MonitoringTarget
from synthetic_probe.errors import AuthError, BootstrapError, ResolutionError
from synthetic_probe.expander import HostResolver, expand_target, resolve_host_ips
from synthetic_probe.registry import CheckerRegistry

if TYPE_CHECKING:
    from synthetic_probe.client import ProbeClient


logger = structlog.get_logger(__name__)

CheckerFactory = Callable[[MonitoringConfig, MonitoringTarget], HealthChecker]


class Bootstrapper:
    """Builds the checker registry once at startup.

    Logs in once, expands every configured target (replica fan-out when the target
    asks for it), creates a checker per concrete target through ``checker_factory``
    and initializes it against the logged-in client. Any failure raises
    ``BootstrapError``; with ``on_resolution_error="skip"`` an unresolvable host is
    logged and left out instead.
    """

    def __init__(
        self,
        client: ProbeClient,
        checker_factory: CheckerFactory,
        *,
        resolve: HostResolver = resolve_host_ips,
        on_resolution_error: Literal["fail", "skip"] = "fail",
    ) -> None:
        self.client = client
        self._checker_factory = checker_factory
        self._resolve = resolve
        self._on_resolution_error = on_resolution_error

    async def initialize(self, configs: Sequence[MonitoringConfig] | None) -> CheckerRegistry:
        configs = list(configs or [])
        if not any(config.targets for config in configs):
            logger.info("No monitoring targets configured; monitoring disabled")
            return CheckerRegistry()

        try:
            await self.client.login()
        except AuthError as exc:
            raise BootstrapError(f"Initial login failed: {exc}") from exc

        pairs: list[tuple[HealthChecker, str]] = []
        seen_devices: set[str] = set()
        for config in configs:
            for target in config.targets:
                try:
                    concrete = await expand_target(target, config.create_target, self._resolve)
                except ResolutionError as exc:
                    if self._on_resolution_error != "skip":
                        raise
                    logger.warning("Skipping unresolvable target", base_url=target.base_url, error=str(exc))
                    continue

                for concrete_target in concrete:
                    checker, device_id = await self._init_checker(config, concrete_target)
                    if device_id in seen_devices:
                        raise BootstrapError(f"Device {device_id} is used by more than one target")
                    seen_devices.add(device_id)
                    pairs.append((checker, device_id))

        logger.info("Checkers initialized", count=len(pairs))
        return CheckerRegistry.of(pairs)

    async def _init_checker(self, config: MonitoringConfig, target: MonitoringTarget) -> tuple[HealthChecker, str]:
        try:
            checker = self._checker_factory(config, target)
        except BootstrapError:
            raise
        except Exception as exc:
            raise BootstrapError(f"Failed to create checker for {target.base_url}: {exc}") from exc

        logger.info("Initializing checker", checker=type(checker).__name__, base_url=target.base_url)
        try:
            await checker.initialize(self.client)
        except Exception as exc:
            raise BootstrapError(
                f"Failed to initialize checker for {target.base_url}: {type(exc).__name__}: {exc}"
            ) from exc

        if not checker.device_id:
            raise BootstrapError(f"Checker for {target.base_url} has no device after initialization")
        return checker, checker.device_id
