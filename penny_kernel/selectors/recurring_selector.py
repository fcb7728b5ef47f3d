"""
RecurringSelector -- the due-set query and the catch-up dry run.

Contract:
    ``due_templates(now)`` returns the ids of recurring templates that are
    due: never processed, or ``next_recurring_date <= now``.
    ``preview(now)`` reports what a catch-up would create without writing.

Architecture: Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from penny_kernel.db.types import to_money
from penny_kernel.domain.dtos import CatchUpPreview, DueTemplate, TemplatePreview
from penny_kernel.domain.recurrence import missed_occurrences
from penny_kernel.exceptions import CatchUpBacklogError, InvalidIntervalError
from penny_kernel.logging_config import get_logger
from penny_kernel.models.transaction import Transaction
from penny_kernel.repositories.transaction_repository import template_from_row
from penny_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.recurring")


def _due_predicate(now: datetime):
    return and_(
        Transaction.is_recurring.is_(True),
        Transaction.recurring_interval.is_not(None),
        or_(
            Transaction.last_processed.is_(None),
            and_(
                Transaction.next_recurring_date.is_not(None),
                Transaction.next_recurring_date <= now,
            ),
        ),
    )


class RecurringSelector(BaseSelector):
    def __init__(self, session: Session, preview_dates: int = 5):
        super().__init__(session)
        self._preview_dates = preview_dates

    def due_jobs(self, now: datetime) -> tuple[DueTemplate, ...]:
        """Due templates with their owning user, oldest template first."""
        rows = self.session.execute(
            select(Transaction.id, Transaction.user_id)
            .where(_due_predicate(now))
            .order_by(Transaction.date, Transaction.id)
        ).all()
        return tuple(DueTemplate(template_id=r.id, user_id=r.user_id) for r in rows)

    def due_templates(self, now: datetime) -> frozenset[UUID]:
        """Due-Set Selector: ids of every template due at ``now``."""
        return frozenset(job.template_id for job in self.due_jobs(now))

    def preview(self, now: datetime, max_occurrences: int | None = None) -> CatchUpPreview:
        """Dry run over every recurring template (due or not).

        A template that cannot be enumerated is reported with ``error`` set
        instead of aborting the whole preview.
        """
        rows = self.session.execute(
            select(Transaction)
            .where(
                Transaction.is_recurring.is_(True),
                Transaction.recurring_interval.is_not(None),
            )
            .order_by(Transaction.date, Transaction.id)
        ).scalars().all()

        previews = [self._preview_row(row, now, max_occurrences) for row in rows]

        result = CatchUpPreview(total_recurring=len(rows), templates=tuple(previews))
        logger.debug(
            "catch_up_preview",
            extra={
                "total_recurring": result.total_recurring,
                "total_missed": result.total_missed,
                "needing_catch_up": result.needing_catch_up,
                "with_errors": result.with_errors,
            },
        )
        return result

    def _preview_row(
        self,
        row: Transaction,
        now: datetime,
        max_occurrences: int | None,
    ) -> TemplatePreview:
        error = None
        dates: tuple[datetime, ...] = ()
        try:
            dates = missed_occurrences(template_from_row(row), now, max_occurrences)
        except (InvalidIntervalError, CatchUpBacklogError) as exc:
            error = str(exc)
            logger.warning(
                "catch_up_preview_template_failed",
                extra={"template_id": str(row.id), "error_code": exc.code},
            )

        return TemplatePreview(
            template_id=row.id,
            description=row.description,
            interval=row.recurring_interval,
            original_date=row.date,
            last_processed=row.last_processed,
            next_due_date=row.next_recurring_date,
            missed_count=len(dates),
            first_dates=dates[: self._preview_dates],
            amount=to_money(row.amount),
            error=error,
        )
