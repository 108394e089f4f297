"""One monitoring pass: authenticate, subscribe, check every target, report."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

import structlog

from synthetic_probe.errors import CheckerError, CheckersFailedError, ReportingError
from synthetic_probe.registry import CheckerRegistry
from synthetic_probe.reporter import GENERAL_SERVICE_KEY, LOG_IN_LATENCY, Reporter
from synthetic_probe.stopwatch import StopWatch
from synthetic_probe.telemetry import TEST_TELEMETRY_KEY, TelemetrySubscriber, TelemetrySubscription

if TYPE_CHECKING:
    from synthetic_probe.client import ProbeClient


logger = structlog.get_logger(__name__)


class RunStatus(str, Enum):
    SKIPPED = "skipped"
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class TargetOutcome:
    service_key: str
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class RunResult:
    status: RunStatus
    outcomes: tuple[TargetOutcome, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.FAILED


class MonitoringService:
    """Runs check cycles over a fixed checker registry.

    Callers must not overlap ``run_checks`` invocations. A run never raises: any
    login, subscription or checker error is reported once under the general
    service key, and a failure of that report is only logged.

    With ``fail_fast`` (the default) the first failing checker ends the run.
    Otherwise every checker runs, each failure is reported under its own key and
    the run fails with one aggregate error.
    """

    def __init__(
        self,
        name: str,
        registry: CheckerRegistry,
        client: ProbeClient,
        subscriber: TelemetrySubscriber,
        reporter: Reporter,
        *,
        stopwatch: StopWatch | None = None,
        fail_fast: bool = True,
        telemetry_key: str = TEST_TELEMETRY_KEY,
    ) -> None:
        self.name = name
        self.registry = registry
        self.client = client
        self.subscriber = subscriber
        self.reporter = reporter
        self.fail_fast = fail_fast
        self.telemetry_key = telemetry_key
        self._stopwatch = stopwatch or StopWatch()

    async def run_checks(self) -> RunResult:
        if self.registry.is_empty:
            return RunResult(RunStatus.SKIPPED)

        outcomes: list[TargetOutcome] = []
        try:
            logger.info("Starting run", service=self.name, checkers=len(self.registry))
            await self._run(outcomes)
        except Exception as error:
            logger.warning("Run failed", service=self.name, error=f"{type(error).__name__}: {error}")
            await self._report_service_failure(GENERAL_SERVICE_KEY, error)
            return RunResult(RunStatus.FAILED, tuple(outcomes), f"{type(error).__name__}: {error}")

        logger.debug("Finished run", service=self.name)
        return RunResult(RunStatus.OK, tuple(outcomes))

    async def _run(self, outcomes: list[TargetOutcome]) -> None:
        self._stopwatch.start()
        try:
            access_token = await self.client.login()
        finally:
            self.reporter.report_latency(LOG_IN_LATENCY, self._stopwatch.elapsed_ms())

        async with self.subscriber.connect(access_token) as subscription:
            await subscription.subscribe(self.registry.device_ids, self.telemetry_key)
            failures = await self._check_all(subscription, outcomes)

        if failures:
            raise CheckersFailedError(failures)

        try:
            await self.reporter.report_latencies(self.client)
        except ReportingError as exc:
            logger.error("Failed to report latencies", service=self.name, error=str(exc))
        await self.reporter.service_is_ok(GENERAL_SERVICE_KEY)

    async def _check_all(
        self, subscription: TelemetrySubscription, outcomes: list[TargetOutcome]
    ) -> list[CheckerError]:
        failures: list[CheckerError] = []
        for checker in self.registry:
            try:
                await checker.check(subscription)
            except Exception as exc:
                outcomes.append(TargetOutcome(checker.service_key, False, str(exc)))
                if self.fail_fast:
                    raise
                failure = exc if isinstance(exc, CheckerError) else CheckerError(
                    checker.service_key, f"{type(exc).__name__}: {exc}"
                )
                failures.append(failure)
                await self._report_service_failure(checker.service_key, exc)
                continue
            outcomes.append(TargetOutcome(checker.service_key, True))
        return failures

    async def _report_service_failure(self, key: str, error: BaseException) -> None:
        try:
            await self.reporter.service_failure(key, error)
        except Exception:
            logger.exception("Error occurred during service failure reporting", service=key)
