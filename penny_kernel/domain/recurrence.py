"""
Recurrence -- pure calendar arithmetic for recurring templates.

Contract:
    ``next_occurrence(when, interval)`` is the Interval Calculator and
    ``missed_occurrences(template, now)`` is the Occurrence Enumerator.
    Both are pure and total for well-formed input; an unknown interval is a
    contract violation and raises ``InvalidIntervalError``.

Schedule:
    Occurrence ``k`` of a template is ``original_date + k * step`` with
    ``relativedelta``, so a day that does not exist in the target month
    clamps to that month's last day without losing the original day:
    Jan 31 -> Feb 29 -> Mar 31 -> Apr 30.  Occurrence 0 is the template
    itself and is never emitted.

Checkpoint:
    ``last_processed`` is the time of the last catch-up, which need not sit
    on the schedule.  Enumeration resumes at the first scheduled occurrence
    after it, so a checkpoint taken mid-period neither skips nor shifts
    any date.

Timezones:
    Comparisons happen in the awareness of ``now``: a naive checkpoint is
    read as UTC when ``now`` is aware, and an aware checkpoint is converted
    to naive UTC when ``now`` is naive.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import TypeVar

from dateutil.relativedelta import relativedelta

from penny_kernel.domain.dtos import MaterializedOccurrence, RecurringTemplate
from penny_kernel.domain.types import RecurringInterval
from penny_kernel.exceptions import CatchUpBacklogError, InvalidIntervalError

D = TypeVar("D", date, datetime)

STEPS = {
    RecurringInterval.DAILY: relativedelta(days=1),
    RecurringInterval.WEEKLY: relativedelta(weeks=1),
    RecurringInterval.MONTHLY: relativedelta(months=1),
    RecurringInterval.YEARLY: relativedelta(years=1),
}
_FIXED_DAYS = {
    RecurringInterval.DAILY: 1,
    RecurringInterval.WEEKLY: 7,
}
_MONTHS = {
    RecurringInterval.MONTHLY: 1,
    RecurringInterval.YEARLY: 12,
}


def coerce_interval(interval: RecurringInterval | str) -> RecurringInterval:
    """Return ``interval`` as a RecurringInterval or raise InvalidIntervalError."""
    if isinstance(interval, RecurringInterval):
        return interval
    try:
        return RecurringInterval(interval)
    except ValueError:
        raise InvalidIntervalError(interval) from None


def next_occurrence(
    when: D,
    interval: RecurringInterval | str,
    anchor_day: int | None = None,
) -> D:
    """Interval Calculator: the occurrence that follows ``when``.

    Always strictly later than ``when``.  Time of day and tzinfo of a
    datetime are preserved.  For MONTHLY and YEARLY, ``anchor_day`` is the
    day of month aimed for before clamping.

    Raises:
        InvalidIntervalError: ``interval`` is not a known RecurringInterval.
    """
    kind = coerce_interval(interval)
    step = STEPS[kind]
    if kind in _FIXED_DAYS or anchor_day is None:
        return when + step

    if not 1 <= anchor_day <= 31:
        raise ValueError(f"anchor_day must be within 1..31, got {anchor_day}")
    return when + relativedelta(months=step.months, years=step.years, day=anchor_day)


def occurrence_at(original_date: D, interval: RecurringInterval | str, index: int) -> D:
    """The ``index``-th scheduled occurrence; index 0 is ``original_date``."""
    return original_date + STEPS[coerce_interval(interval)] * index


def _first_index_after(
    original_date: datetime,
    kind: RecurringInterval,
    checkpoint: datetime,
) -> int:
    if checkpoint < original_date:
        return 1

    if kind in _FIXED_DAYS:
        index = (checkpoint - original_date) // timedelta(days=_FIXED_DAYS[kind])
    else:
        months = (
            (checkpoint.year - original_date.year) * 12
            + checkpoint.month - original_date.month
        )
        index = months // _MONTHS[kind]

    index = max(index, 1)
    while occurrence_at(original_date, kind, index) <= checkpoint:
        index += 1
    while index > 1 and occurrence_at(original_date, kind, index - 1) > checkpoint:
        index -= 1
    return index


def align_to(reference: datetime, value: datetime) -> datetime:
    """Express ``value`` with the same tz-awareness as ``reference``."""
    if reference.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    if reference.tzinfo is None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def next_scheduled(template: RecurringTemplate, after: datetime) -> datetime:
    """First scheduled occurrence of ``template`` strictly after ``after``."""
    kind = coerce_interval(template.interval)
    original = align_to(after, template.original_date)
    return occurrence_at(original, kind, _first_index_after(original, kind, after))


def missed_occurrences(
    template: RecurringTemplate,
    now: datetime,
    max_occurrences: int | None = None,
) -> tuple[datetime, ...]:
    """Occurrence Enumerator: every occurrence in (checkpoint, now], in order.

    A never-processed template starts after ``original_date``: the
    template row itself already stands for that first occurrence.

    Raises:
        InvalidIntervalError: template carries an unknown interval.
        CatchUpBacklogError: more than ``max_occurrences`` dates are due.
    """
    kind = coerce_interval(template.interval)
    original = align_to(now, template.original_date)
    checkpoint = (
        align_to(now, template.last_processed)
        if template.last_processed is not None
        else original
    )

    index = _first_index_after(original, kind, checkpoint)
    cursor = occurrence_at(original, kind, index)
    if cursor > now:
        return ()

    dates: list[datetime] = []
    while cursor <= now:
        dates.append(cursor)
        if max_occurrences is not None and len(dates) > max_occurrences:
            raise CatchUpBacklogError(template.template_id, max_occurrences)
        index += 1
        cursor = occurrence_at(original, kind, index)
    return tuple(dates)


def occurrence_description(template: RecurringTemplate, when: datetime) -> str:
    base = template.description or template.category
    return f"{base} (recurring {when:%Y-%m-%d})"


def build_occurrence(
    template: RecurringTemplate, when: datetime,
) -> MaterializedOccurrence:
    """Materialize one occurrence of ``template`` dated ``when``."""
    return MaterializedOccurrence(
        template_id=template.template_id,
        account_id=template.account_id,
        user_id=template.user_id,
        type=template.type,
        amount=template.amount,
        category=template.category,
        description=occurrence_description(template, when),
        date=when,
    )
