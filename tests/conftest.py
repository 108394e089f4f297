from __future__ import annotations

import contextlib
from typing import Any, Sequence

import pytest

from synthetic_probe.config import MonitoringConfig, MonitoringTarget
from synthetic_probe.errors import AuthError, CheckerError, SubscriptionError


class FakeClient:
    def __init__(self, *, fail_login: bool = False, events: list[str] | None = None) -> None:
        self.fail_login = fail_login
        self.login_calls = 0
        self.events = events if events is not None else []

    async def login(self) -> str:
        self.login_calls += 1
        self.events.append("login")
        if self.fail_login:
            raise AuthError("bad credentials")
        return f"token-{self.login_calls}"


class FakeSubscription:
    def __init__(self, *, fail_subscribe: bool = False) -> None:
        self.fail_subscribe = fail_subscribe
        self.subscribed: tuple[list[str], str] | None = None
        self.close_calls = 0

    async def subscribe(self, device_ids: Sequence[str], key: str) -> None:
        if self.fail_subscribe:
            raise SubscriptionError("no reply")
        self.subscribed = (list(device_ids), key)

    async def wait_for_update(self, device_id: str, key: str, expected_value: str) -> None:
        return None

    async def close(self) -> None:
        self.close_calls += 1


class FakeSubscriber:
    def __init__(self, subscription: FakeSubscription | None = None) -> None:
        self.subscription = subscription or FakeSubscription()
        self.tokens: list[str] = []

    @contextlib.asynccontextmanager
    async def connect(self, access_token: str):
        self.tokens.append(access_token)
        try:
            yield self.subscription
        finally:
            await self.subscription.close()


class RecordingReporter:
    def __init__(self, *, fail_failure_report: bool = False, flush_error: Exception | None = None) -> None:
        self.fail_failure_report = fail_failure_report
        self.flush_error = flush_error
        self.latencies: list[tuple[str, float]] = []
        self.pending: dict[str, float] = {}
        self.flushed: list[dict[str, float]] = []
        self.failures: list[tuple[str, BaseException]] = []
        self.ok_keys: list[str] = []

    def report_latency(self, name: str, duration_ms: float) -> None:
        self.latencies.append((name, duration_ms))
        self.pending[name] = duration_ms

    async def report_latencies(self, client: Any) -> None:
        if self.flush_error is not None:
            raise self.flush_error
        self.flushed.append(dict(self.pending))
        self.pending.clear()

    async def service_failure(self, key: str, error: BaseException) -> None:
        self.failures.append((key, error))
        if self.fail_failure_report:
            raise RuntimeError("reporter is down")

    async def service_is_ok(self, key: str) -> None:
        self.ok_keys.append(key)


class FakeChecker:
    def __init__(
        self,
        target: MonitoringTarget,
        *,
        reporter: RecordingReporter | None = None,
        fail: bool = False,
        calls: list[str] | None = None,
        events: list[str] | None = None,
    ) -> None:
        self.target = target
        self.service_key = f"[fake] {target.base_url}"
        self.device_id: str | None = target.device_id
        self.reporter = reporter
        self.fail = fail
        self.calls = calls if calls is not None else []
        self.events = events if events is not None else []
        self.initialized_with: Any = None

    async def initialize(self, client: Any) -> None:
        self.events.append(f"initialize {self.target.base_url}")
        self.initialized_with = client
        if self.device_id is None:
            self.device_id = f"device-{self.target.base_url}"

    async def check(self, subscription: Any) -> None:
        self.calls.append(self.service_key)
        if self.fail:
            raise CheckerError(self.service_key, "test value was not delivered")
        if self.reporter is not None:
            self.reporter.report_latency(self.service_key, 12.5)


def make_config(*targets: MonitoringTarget, transport: str = "http") -> MonitoringConfig:
    return MonitoringConfig(transport=transport, targets=list(targets))


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
