from __future__ import annotations

import time


class StopWatch:
    """Monotonic timer reporting elapsed milliseconds since the last ``start``."""

    def __init__(self) -> None:
        self._started: float | None = None

    def start(self) -> None:
        self._started = time.perf_counter()

    def elapsed_ms(self) -> float:
        if self._started is None:
            raise RuntimeError("StopWatch was not started")
        return round((time.perf_counter() - self._started) * 1000.0, 3)
