"""
Tests for penny_kernel.domain.recurrence -- interval arithmetic and the
missed-occurrence enumerator.  Pure functions, no database.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from penny_kernel.domain.dtos import RecurringTemplate
from penny_kernel.domain.recurrence import (
    build_occurrence,
    missed_occurrences,
    next_occurrence,
    next_scheduled,
    occurrence_at,
)
from penny_kernel.domain.types import RecurringInterval, TransactionType
from penny_kernel.exceptions import (
    CatchUpBacklogError,
    ContractViolationError,
    InvalidIntervalError,
)

DAILY = RecurringInterval.DAILY
WEEKLY = RecurringInterval.WEEKLY
MONTHLY = RecurringInterval.MONTHLY
YEARLY = RecurringInterval.YEARLY

datetimes = st.datetimes(
    min_value=datetime(1970, 1, 1),
    max_value=datetime(2999, 12, 31),
)


def _template(
    original_date: datetime,
    interval=MONTHLY,
    last_processed: datetime | None = None,
    **overrides,
) -> RecurringTemplate:
    fields = dict(
        template_id=uuid4(),
        account_id=uuid4(),
        user_id=uuid4(),
        type=TransactionType.EXPENSE,
        amount=Decimal("50.00"),
        category="rent",
        description="Rent",
        interval=interval,
        original_date=original_date,
        last_processed=last_processed,
    )
    fields.update(overrides)
    return RecurringTemplate(**fields)


# =============================================================================
# next_occurrence
# =============================================================================


class TestNextOccurrence:
    def test_daily_adds_one_day(self):
        assert next_occurrence(datetime(2024, 2, 28), DAILY) == datetime(2024, 2, 29)

    def test_weekly_adds_seven_days(self):
        assert next_occurrence(datetime(2024, 12, 30), WEEKLY) == datetime(2025, 1, 6)

    def test_monthly_keeps_day(self):
        assert next_occurrence(datetime(2024, 1, 15), MONTHLY) == datetime(2024, 2, 15)

    def test_monthly_clamps_to_leap_february(self):
        assert next_occurrence(datetime(2024, 1, 31), MONTHLY) == datetime(2024, 2, 29)

    def test_monthly_clamps_to_plain_february(self):
        assert next_occurrence(datetime(2023, 1, 31), MONTHLY) == datetime(2023, 2, 28)

    def test_monthly_rolls_over_year(self):
        assert next_occurrence(datetime(2024, 12, 31), MONTHLY) == datetime(2025, 1, 31)

    def test_monthly_anchor_restores_day_after_short_month(self):
        assert next_occurrence(
            datetime(2024, 2, 29), MONTHLY, anchor_day=31,
        ) == datetime(2024, 3, 31)

    def test_yearly_leap_day_clamps(self):
        assert next_occurrence(datetime(2024, 2, 29), YEARLY) == datetime(2025, 2, 28)

    def test_yearly_anchor_returns_to_leap_day(self):
        assert next_occurrence(
            datetime(2027, 2, 28), YEARLY, anchor_day=29,
        ) == datetime(2028, 2, 29)

    def test_preserves_time_and_tzinfo(self):
        when = datetime(2024, 1, 31, 9, 30, tzinfo=timezone.utc)
        assert next_occurrence(when, MONTHLY) == datetime(
            2024, 2, 29, 9, 30, tzinfo=timezone.utc,
        )

    def test_accepts_plain_dates(self):
        assert next_occurrence(date(2024, 3, 31), MONTHLY) == date(2024, 4, 30)

    def test_accepts_interval_name(self):
        assert next_occurrence(datetime(2024, 1, 1), "WEEKLY") == datetime(2024, 1, 8)

    def test_unknown_interval_is_contract_violation(self):
        with pytest.raises(InvalidIntervalError) as exc_info:
            next_occurrence(datetime(2024, 1, 1), "FORTNIGHTLY")
        assert isinstance(exc_info.value, ContractViolationError)
        assert exc_info.value.interval == "FORTNIGHTLY"

    def test_anchor_day_out_of_range(self):
        with pytest.raises(ValueError):
            next_occurrence(datetime(2024, 1, 1), MONTHLY, anchor_day=0)


class TestNextOccurrenceProperties:
    @given(datetimes)
    def test_daily_is_exactly_one_day(self, d):
        assert next_occurrence(d, DAILY) == d + timedelta(days=1)

    @given(datetimes)
    def test_two_weeks_is_fourteen_days(self, d):
        assert next_occurrence(next_occurrence(d, WEEKLY), WEEKLY) == d + timedelta(days=14)

    @given(datetimes, st.sampled_from(list(RecurringInterval)))
    def test_always_strictly_later(self, d, interval):
        assert next_occurrence(d, interval) > d

    @given(datetimes)
    def test_monthly_moves_one_calendar_month(self, d):
        result = next_occurrence(d, MONTHLY)
        assert (result.year * 12 + result.month) - (d.year * 12 + d.month) == 1
        assert result.day <= d.day
        assert result.time() == d.time()


class TestOccurrenceAt:
    def test_index_zero_is_original(self):
        assert occurrence_at(datetime(2024, 1, 31), MONTHLY, 0) == datetime(2024, 1, 31)

    def test_month_end_clamps_without_losing_day(self):
        assert [occurrence_at(datetime(2024, 1, 31), MONTHLY, k) for k in (1, 2, 3)] == [
            datetime(2024, 2, 29),
            datetime(2024, 3, 31),
            datetime(2024, 4, 30),
        ]

    def test_weekly_index(self):
        assert occurrence_at(date(2024, 1, 1), WEEKLY, 52) == date(2024, 12, 30)

    def test_yearly_leap_day(self):
        assert occurrence_at(datetime(2024, 2, 29), YEARLY, 4) == datetime(2028, 2, 29)


class TestNextScheduled:
    def test_on_schedule_checkpoint(self):
        template = _template(datetime(2024, 1, 31))

        assert next_scheduled(template, datetime(2024, 2, 29)) == datetime(2024, 3, 31)

    def test_mid_period_checkpoint(self):
        template = _template(datetime(2024, 1, 31))

        assert next_scheduled(template, datetime(2024, 3, 15, 8, 0)) == datetime(2024, 3, 31)

    def test_before_original_skips_template_itself(self):
        template = _template(datetime(2024, 6, 1), interval=DAILY)

        assert next_scheduled(template, datetime(2024, 5, 1)) == datetime(2024, 6, 2)


# =============================================================================
# missed_occurrences
# =============================================================================


class TestMissedOccurrences:
    def test_month_end_template_clamps_each_month(self):
        template = _template(datetime(2024, 1, 31))

        assert missed_occurrences(template, datetime(2024, 4, 15)) == (
            datetime(2024, 2, 29),
            datetime(2024, 3, 31),
        )

    def test_month_end_template_reaches_april_on_the_30th(self):
        template = _template(datetime(2024, 1, 31))

        assert missed_occurrences(template, datetime(2024, 4, 30)) == (
            datetime(2024, 2, 29),
            datetime(2024, 3, 31),
            datetime(2024, 4, 30),
        )

    def test_daily_catch_up_from_checkpoint(self):
        template = _template(
            datetime(2024, 5, 1), interval=DAILY, last_processed=datetime(2024, 6, 1),
        )

        assert missed_occurrences(template, datetime(2024, 6, 4, 12, 0)) == (
            datetime(2024, 6, 2),
            datetime(2024, 6, 3),
            datetime(2024, 6, 4),
        )

    def test_now_is_inclusive(self):
        template = _template(
            datetime(2024, 5, 1), interval=DAILY, last_processed=datetime(2024, 6, 1),
        )

        assert missed_occurrences(template, datetime(2024, 6, 2)) == (datetime(2024, 6, 2),)

    def test_original_date_is_never_emitted(self):
        template = _template(datetime(2024, 6, 1), interval=DAILY)

        dates = missed_occurrences(template, datetime(2024, 6, 3))

        assert datetime(2024, 6, 1) not in dates
        assert dates == (datetime(2024, 6, 2), datetime(2024, 6, 3))

    def test_caught_up_template_yields_nothing(self):
        now = datetime(2024, 6, 15, 12, 0)
        template = _template(datetime(2024, 1, 1), interval=DAILY, last_processed=now)

        assert missed_occurrences(template, now) == ()

    def test_not_yet_due(self):
        template = _template(datetime(2024, 6, 1), interval=DAILY)

        assert missed_occurrences(template, datetime(2024, 6, 1, 23, 59)) == ()

    def test_checkpoint_on_clamped_day_keeps_anchor(self):
        template = _template(datetime(2024, 1, 31), last_processed=datetime(2024, 2, 29))

        assert missed_occurrences(template, datetime(2024, 5, 31)) == (
            datetime(2024, 3, 31),
            datetime(2024, 4, 30),
            datetime(2024, 5, 31),
        )

    def test_run_time_checkpoint_resumes_on_schedule(self):
        template = _template(
            datetime(2024, 1, 31), last_processed=datetime(2024, 3, 15, 9, 45),
        )

        assert missed_occurrences(template, datetime(2024, 5, 31, 12, 0)) == (
            datetime(2024, 3, 31),
            datetime(2024, 4, 30),
            datetime(2024, 5, 31),
        )

    def test_mid_day_daily_checkpoint_keeps_time_of_day(self):
        template = _template(
            datetime(2024, 5, 1), interval=DAILY, last_processed=datetime(2024, 6, 4, 12, 0),
        )

        assert missed_occurrences(template, datetime(2024, 6, 6, 0, 0)) == (
            datetime(2024, 6, 5),
            datetime(2024, 6, 6),
        )

    def test_checkpoint_before_next_monthly_date_skips_nothing(self):
        template = _template(
            datetime(2024, 1, 1), last_processed=datetime(2024, 6, 15, 12, 0),
        )

        assert missed_occurrences(template, datetime(2024, 7, 1)) == (datetime(2024, 7, 1),)

    def test_yearly(self):
        template = _template(datetime(2020, 2, 29), interval=YEARLY)

        assert missed_occurrences(template, datetime(2024, 3, 1)) == (
            datetime(2021, 2, 28),
            datetime(2022, 2, 28),
            datetime(2023, 2, 28),
            datetime(2024, 2, 29),
        )

    def test_backlog_bound_raises(self):
        template = _template(
            datetime(2023, 1, 1), interval=DAILY, last_processed=datetime(2024, 1, 1),
        )

        with pytest.raises(CatchUpBacklogError) as exc_info:
            missed_occurrences(template, datetime(2024, 1, 11), max_occurrences=5)
        assert exc_info.value.limit == 5
        assert exc_info.value.template_id == template.template_id

    def test_backlog_bound_is_inclusive(self):
        template = _template(
            datetime(2023, 1, 1), interval=DAILY, last_processed=datetime(2024, 1, 1),
        )

        dates = missed_occurrences(template, datetime(2024, 1, 11), max_occurrences=10)

        assert len(dates) == 10

    def test_naive_checkpoint_against_aware_now(self):
        template = _template(
            datetime(2024, 5, 1), interval=DAILY, last_processed=datetime(2024, 6, 1),
        )

        dates = missed_occurrences(
            template, datetime(2024, 6, 3, tzinfo=timezone.utc),
        )

        assert dates == (
            datetime(2024, 6, 2, tzinfo=timezone.utc),
            datetime(2024, 6, 3, tzinfo=timezone.utc),
        )

    def test_aware_checkpoint_against_naive_now(self):
        template = _template(
            datetime(2024, 5, 1, tzinfo=timezone.utc),
            interval=DAILY,
            last_processed=datetime(2024, 6, 1, tzinfo=timezone.utc),
        )

        assert missed_occurrences(template, datetime(2024, 6, 2)) == (datetime(2024, 6, 2),)

    def test_malformed_interval(self):
        template = _template(datetime(2024, 1, 1), interval="BIWEEKLY")

        with pytest.raises(InvalidIntervalError):
            missed_occurrences(template, datetime(2024, 6, 1))

    @settings(max_examples=200)
    @given(
        st.sampled_from(list(RecurringInterval)),
        datetimes,
        st.integers(min_value=0, max_value=400),
    )
    def test_enumeration_is_ordered_and_complete(self, interval, checkpoint, days_later):
        template = _template(checkpoint, interval=interval, last_processed=checkpoint)
        now = checkpoint + timedelta(days=days_later)

        dates = missed_occurrences(template, now)

        assert all(a < b for a, b in zip(dates, dates[1:]))
        assert all(checkpoint < d <= now for d in dates)
        last = dates[-1] if dates else checkpoint
        assert next_scheduled(template, last) > now

    @settings(max_examples=200)
    @given(
        st.sampled_from(list(RecurringInterval)),
        st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2100, 1, 1)),
        st.integers(min_value=0, max_value=400 * 24),
        st.integers(min_value=0, max_value=400 * 24),
    )
    def test_split_runs_match_single_run(self, interval, original, first_hours, more_hours):
        template = _template(original, interval=interval)
        first_run = original + timedelta(hours=first_hours)
        second_run = first_run + timedelta(hours=more_hours)

        early = missed_occurrences(template, first_run)
        resumed = _template(original, interval=interval, last_processed=first_run)
        late = missed_occurrences(resumed, second_run)

        assert early + late == missed_occurrences(template, second_run)


class TestBuildOccurrence:
    def test_copies_template_and_annotates_description(self):
        template = _template(datetime(2024, 1, 1))

        occurrence = build_occurrence(template, datetime(2024, 6, 2))

        assert occurrence.template_id == template.template_id
        assert occurrence.account_id == template.account_id
        assert occurrence.amount == Decimal("50.00")
        assert occurrence.category == "rent"
        assert occurrence.description == "Rent (recurring 2024-06-02)"
        assert occurrence.date == datetime(2024, 6, 2)
        assert occurrence.signed_amount == Decimal("-50.00")

    def test_falls_back_to_category(self):
        template = _template(
            datetime(2024, 1, 1), description=None, type=TransactionType.INCOME,
        )

        occurrence = build_occurrence(template, datetime(2024, 2, 1))

        assert occurrence.description == "rent (recurring 2024-02-01)"
        assert occurrence.signed_amount == Decimal("50.00")
