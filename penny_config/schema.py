"""
PennyConfig schema -- frozen runtime configuration.

Each section mirrors a top-level key of ``defaults.yaml``.  The loader
builds these from the merged YAML plus environment overrides; nothing
else constructs them outside tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class SchedulerSettings:
    """Driver timing and catch-up bounds."""

    tick_interval_seconds: float = 60.0
    max_workers: int = 4
    job_timeout_seconds: float = 30.0
    catch_up_cron: str = "0 0 * * *"  # daily, 00:00 UTC
    budget_alert_cron: str = "0 */6 * * *"
    max_occurrences: int = 5000
    preview_dates: int = 5


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 60.0


@dataclass(frozen=True)
class ThrottleSettings:
    """Per-user limits applied to job attempts."""

    limit: int = 10
    period_seconds: float = 60.0
    max_concurrent: int = 2


@dataclass(frozen=True)
class BudgetSettings:
    alert_threshold_percent: Decimal = Decimal("80")


@dataclass(frozen=True)
class PennyConfig:
    database: DatabaseSettings
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    throttle: ThrottleSettings = field(default_factory=ThrottleSettings)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
    log_level: str = "INFO"
    checksum: str = ""
