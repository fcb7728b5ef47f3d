"""
Pure schedule evaluation.

Contract:
    ``should_fire(schedule, as_of)`` and ``compute_next_run()`` are PURE --
    no I/O and no clock reads.  Every timestamp comes from the caller.

Architecture: penny_batch/domain.  ZERO I/O.

Cron dialect: five fields ``minute hour day_of_month month day_of_week``
with ``*``, values, ranges (1-5), lists (1,15) and steps (*/6, 1-10/2).
Day of week is 0=Sunday .. 6=Saturday.  Times are evaluated in the
awareness of the datetime passed in (UTC in production).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from penny_kernel.domain.recurrence import align_to

from penny_batch.domain.types import JobSchedule, ScheduleFrequency


# =============================================================================
# CronSpec
# =============================================================================


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression; each field is the frozenset of allowed values."""

    minutes: frozenset[int] = field(default_factory=lambda: frozenset(range(60)))
    hours: frozenset[int] = field(default_factory=lambda: frozenset(range(24)))
    days_of_month: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 32)))
    months: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 13)))
    days_of_week: frozenset[int] = field(default_factory=lambda: frozenset(range(7)))


def _bounded(value: int, low: int, high: int) -> int:
    if not low <= value <= high:
        raise ValueError(f"Value {value} outside range [{low}, {high}]")
    return value


def _parse_cron_field(text: str, low: int, high: int) -> frozenset[int]:
    """Parse one cron field.

    Raises:
        ValueError: syntax error or a value outside ``[low, high]``.
    """
    values: set[int] = set()

    for part in text.split(","):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty cron field element in '{text}'")

        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            step = int(step_text)
            if step <= 0:
                raise ValueError(f"Step must be positive: {step}")

        if part == "*":
            start, end = low, high
        elif "-" in part:
            s, e = part.split("-", 1)
            start, end = _bounded(int(s), low, high), _bounded(int(e), low, high)
            if start > end:
                raise ValueError(f"Range start > end: {start}-{end}")
        else:
            start = _bounded(int(part), low, high)
            # "5/15" means every 15 starting at 5
            end = high if step > 1 else start

        values.update(range(start, end + 1, step))

    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a 5-field cron expression.

    Raises:
        ValueError: If the expression is malformed.
    """
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(
            f"Cron expression must have 5 fields, got {len(parts)}: '{expression}'"
        )

    return CronSpec(
        minutes=_parse_cron_field(parts[0], 0, 59),
        hours=_parse_cron_field(parts[1], 0, 23),
        days_of_month=_parse_cron_field(parts[2], 1, 31),
        months=_parse_cron_field(parts[3], 1, 12),
        days_of_week=_parse_cron_field(parts[4], 0, 6),
    )


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    # Python weekday() is 0=Monday; cron is 0=Sunday
    cron_dow = (dt.weekday() + 1) % 7
    return (
        dt.minute in spec.minutes
        and dt.hour in spec.hours
        and dt.day in spec.days_of_month
        and dt.month in spec.months
        and cron_dow in spec.days_of_week
    )


def next_cron_match(spec: CronSpec, after: datetime) -> datetime:
    """First minute strictly after ``after`` that matches ``spec``.

    Whole non-matching days and hours are skipped, so the scan stays short
    even for yearly expressions.

    Raises:
        ValueError: If nothing matches within 366 days.
    """
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = after + timedelta(days=366)

    while candidate <= limit:
        cron_dow = (candidate.weekday() + 1) % 7
        if (
            candidate.month not in spec.months
            or candidate.day not in spec.days_of_month
            or cron_dow not in spec.days_of_week
        ):
            candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
            continue
        if candidate.hour not in spec.hours:
            candidate = candidate.replace(minute=0) + timedelta(hours=1)
            continue
        if candidate.minute in spec.minutes:
            return candidate
        candidate += timedelta(minutes=1)

    raise ValueError(f"No cron match found within 366 days after {after}")


# =============================================================================
# Schedule evaluation
# =============================================================================


def should_fire(schedule: JobSchedule, as_of: datetime) -> bool:
    """Whether ``schedule`` is due at ``as_of``.

    Rules:
        - Inactive and ON_DEMAND schedules never fire.
        - A schedule without ``next_run_at`` fires immediately.
        - Otherwise it fires once ``as_of >= next_run_at``.  A scheduler
          that was down for several periods fires once, not once per
          missed period.
    """
    if not schedule.is_active:
        return False
    if schedule.frequency == ScheduleFrequency.ON_DEMAND:
        return False
    if schedule.next_run_at is None:
        return True
    return as_of >= align_to(as_of, schedule.next_run_at)


_FIXED_DELTAS = {
    ScheduleFrequency.HOURLY: timedelta(hours=1),
    ScheduleFrequency.DAILY: timedelta(days=1),
    ScheduleFrequency.WEEKLY: timedelta(weeks=1),
}


def compute_next_run(
    frequency: ScheduleFrequency,
    base_time: datetime,
    cron_expression: str | None = None,
) -> datetime | None:
    """Next run strictly after ``base_time``; None for ON_DEMAND.

    Raises:
        ValueError: ``cron_expression`` is malformed or never matches.
    """
    if frequency == ScheduleFrequency.ON_DEMAND:
        return None

    if cron_expression:
        return next_cron_match(parse_cron(cron_expression), base_time)

    if frequency == ScheduleFrequency.MONTHLY:
        return base_time + relativedelta(months=1)
    return base_time + _FIXED_DELTAS[frequency]
