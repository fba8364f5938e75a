"""
Wall-clock budget for one driver run.

Two layers: a cooperative Deadline checked at every state transition and poll
tick, and a SIGALRM backstop that interrupts a blocking browser call once the
budget is spent.
"""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager

from ..models import DriverTimeoutError

logger = logging.getLogger(__name__)


class Deadline:
    def __init__(self, budget_s: float, clock=time.monotonic):
        self.budget_s = budget_s
        self._clock = clock
        self._start = clock()

    @property
    def elapsed_s(self) -> float:
        return self._clock() - self._start

    @property
    def remaining_s(self) -> float:
        return max(0.0, self.budget_s - self.elapsed_s)

    @property
    def expired(self) -> bool:
        return self.elapsed_s >= self.budget_s

    def remaining_ms(self, cap_ms: int | None = None) -> int:
        """Remaining budget in ms, optionally capped (for Playwright timeouts)."""
        ms = int(self.remaining_s * 1000)
        if cap_ms is not None:
            ms = min(ms, cap_ms)
        return max(1, ms)

    def check(self, context: str = "") -> None:
        if self.expired:
            where = f" during {context}" if context else ""
            raise DriverTimeoutError(
                f"TIMEOUT: Process exceeded {self.budget_s:.0f}s{where}",
                {"elapsed_s": round(self.elapsed_s, 1)},
            )


@contextmanager
def alarm_budget(budget_s: int) -> Iterator[None]:
    """Raise DriverTimeoutError in the main thread once budget_s has passed."""
    if not hasattr(signal, "SIGALRM"):
        logger.warning("[Timeout] SIGALRM unavailable, relying on cooperative deadline only")
        yield
        return

    def _on_alarm(signum, frame):
        raise DriverTimeoutError(f"TIMEOUT: Process exceeded {budget_s}s")

    previous = signal.signal(signal.SIGALRM, _on_alarm)
    signal.alarm(budget_s)
    try:
        yield
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, previous)
