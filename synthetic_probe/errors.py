from __future__ import annotations


class ProbeError(Exception):
    """Base class for every error raised by the probe."""


class BootstrapError(ProbeError):
    """Checkers could not be built; monitoring cannot start."""


class ResolutionError(BootstrapError):
    def __init__(self, host: str, reason: str) -> None:
        super().__init__(f"Failed to resolve {host!r}: {reason}")
        self.host = host
        self.reason = reason


class AuthError(ProbeError):
    pass


class SubscriptionError(ProbeError):
    pass


class CheckerError(ProbeError):
    """A single target's probe failed. ``service_key`` names the target."""

    def __init__(self, service_key: str, message: str) -> None:
        super().__init__(f"[{service_key}] {message}")
        self.service_key = service_key


class CheckersFailedError(ProbeError):
    """Aggregate of every checker failure collected during one fail-isolated run."""

    def __init__(self, failures: list[CheckerError]) -> None:
        keys = ", ".join(f.service_key for f in failures)
        super().__init__(f"{len(failures)} target(s) failed: {keys}")
        self.failures = list(failures)


class ReportingError(ProbeError):
    pass
