from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from synthetic_probe.checkers import HealthChecker


@dataclass(frozen=True)
class RegisteredChecker:
    checker: HealthChecker
    device_id: str


@dataclass(frozen=True)
class CheckerRegistry:
    """Initialized checkers in registration order, with the devices they report under."""

    entries: tuple[RegisteredChecker, ...] = ()

    @classmethod
    def of(cls, pairs: list[tuple[HealthChecker, str]]) -> "CheckerRegistry":
        return cls(tuple(RegisteredChecker(checker, device_id) for checker, device_id in pairs))

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def device_ids(self) -> list[str]:
        return [e.device_id for e in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[HealthChecker]:
        return (e.checker for e in self.entries)
