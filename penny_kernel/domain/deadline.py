"""Cooperative wall-clock budget for a single job attempt."""

from __future__ import annotations

import time
from typing import Callable

from penny_kernel.exceptions import JobDeadlineExceededError


class Deadline:
    """Expires ``budget_seconds`` after construction.

    Work checks the deadline at safe points (before each write and before
    commit).  Raising there lets the unit of work roll back cleanly instead
    of leaving a half-written attempt behind.
    """

    def __init__(
        self,
        budget_seconds: float,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.budget_seconds = budget_seconds
        self._timer = timer
        self._expires_at = timer() + budget_seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._timer())

    @property
    def expired(self) -> bool:
        return self._timer() >= self._expires_at

    def check(self, stage: str) -> None:
        """Raise JobDeadlineExceededError if the budget is spent."""
        if self.expired:
            raise JobDeadlineExceededError(stage, self.budget_seconds)
