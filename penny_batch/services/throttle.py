"""
PerKeyThrottle -- per-user rate and concurrency limits for job attempts.

Contract:
    ``acquire(key)`` blocks until the key has fewer than
    ``policy.max_concurrent`` attempts in flight AND fewer than
    ``policy.limit`` attempts started in the trailing
    ``policy.period_seconds``.  ``release(key)`` ends an attempt.
    ``slot(key)`` wraps both as a context manager.

    The timer and sleep callables are injected so tests can drive the
    sliding window without real waiting.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Callable, Generator, Hashable

from penny_kernel.logging_config import get_logger

from penny_batch.domain.types import ThrottlePolicy

logger = get_logger("batch.throttle")


class PerKeyThrottle:
    def __init__(
        self,
        policy: ThrottlePolicy,
        timer: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy
        self._timer = timer
        self._sleep = sleep
        self._cond = threading.Condition()
        self._starts: dict[Hashable, deque[float]] = defaultdict(deque)
        self._active: dict[Hashable, int] = defaultdict(int)

    def acquire(self, key: Hashable) -> float:
        """Take a slot for ``key``; returns the seconds spent rate-limited."""
        waited = 0.0
        with self._cond:
            while True:
                now = self._timer()
                starts = self._starts[key]
                while starts and starts[0] <= now - self.policy.period_seconds:
                    starts.popleft()

                if self._active[key] >= self.policy.max_concurrent:
                    self._cond.wait()
                    continue

                if len(starts) < self.policy.limit:
                    starts.append(now)
                    self._active[key] += 1
                    return waited

                delay = starts[0] + self.policy.period_seconds - now
                logger.debug(
                    "throttle_rate_limited",
                    extra={"key": str(key), "delay_seconds": delay},
                )
                # Sleep without holding the lock so other keys proceed.
                self._cond.release()
                try:
                    self._sleep(delay)
                finally:
                    self._cond.acquire()
                waited += delay

    def release(self, key: Hashable) -> None:
        with self._cond:
            if self._active[key] <= 0:
                raise RuntimeError(f"release() without acquire() for key {key}")
            self._active[key] -= 1
            self._cond.notify_all()

    @contextmanager
    def slot(self, key: Hashable) -> Generator[float, None, None]:
        waited = self.acquire(key)
        try:
            yield waited
        finally:
            self.release(key)

    def in_flight(self, key: Hashable) -> int:
        with self._cond:
            return self._active[key]
