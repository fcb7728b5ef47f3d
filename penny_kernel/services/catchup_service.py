"""
CatchUpService -- materializes missed occurrences of a recurring template.

Contract:
    ``catch_up(template_id)`` loads the template under a row lock,
    enumerates every occurrence in (checkpoint, now] and applies them.
    ``apply(template, occurrences)`` performs, inside the caller's unit of
    work:

        1. checkpoint advance, conditional on the previous last_processed
        2. one materialized transaction per occurrence
        3. one atomic balance increment by the signed sum

    The caller commits.  Any exception leaves the unit of work to roll
    back, so a retry recomputes from the untouched checkpoint.

Checkpoint semantics:
    ``last_processed`` is set to ``now`` (never earlier than the last
    occurrence) and ``next_recurring_date`` to the scheduled occurrence
    after the last one materialized.

Non-goals:
    - Does NOT commit or open sessions.
    - Does NOT send notifications (the batch task does, after commit).
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from penny_kernel.db.types import ZERO
from penny_kernel.domain.clock import Clock
from penny_kernel.domain.deadline import Deadline
from penny_kernel.domain.dtos import CatchUpResult, MaterializedOccurrence, RecurringTemplate
from penny_kernel.domain.ports import AccountRepository, TransactionRepository
from penny_kernel.domain.recurrence import (
    align_to,
    build_occurrence,
    missed_occurrences,
    next_scheduled,
)
from penny_kernel.exceptions import TemplateNotFoundError
from penny_kernel.logging_config import get_logger

logger = get_logger("services.catch_up")


class CatchUpService:
    """Catch-up Applier for a single template."""

    def __init__(
        self,
        transactions: TransactionRepository,
        accounts: AccountRepository,
        clock: Clock,
        max_occurrences: int | None = None,
    ):
        self._transactions = transactions
        self._accounts = accounts
        self._clock = clock
        self._max_occurrences = max_occurrences

    def catch_up(
        self,
        template_id: UUID,
        deadline: Deadline | None = None,
    ) -> CatchUpResult:
        """Enumerate and apply every missed occurrence of ``template_id``.

        Raises:
            TemplateNotFoundError: deleted or no longer recurring.
            CheckpointConflictError: a concurrent run advanced it first.
            InvalidIntervalError: stored interval is malformed (fatal).
        """
        template = self._transactions.get_template(template_id, for_update=True)
        if template is None:
            raise TemplateNotFoundError(template_id, "missing or not recurring")

        now = self._clock.now()
        dates = missed_occurrences(template, now, self._max_occurrences)
        if not dates:
            logger.debug(
                "catch_up_not_due",
                extra={
                    "template_id": str(template_id),
                    "last_processed": template.last_processed,
                    "next_due_date": template.next_due_date,
                },
            )
            return self._empty(template)

        return self._apply(template, dates, now, deadline)

    def apply(
        self,
        template: RecurringTemplate,
        occurrences: Sequence[datetime],
        deadline: Deadline | None = None,
    ) -> CatchUpResult:
        """Persist ``occurrences`` of ``template``; no-op when empty."""
        if not occurrences:
            return self._empty(template)
        return self._apply(template, occurrences, self._clock.now(), deadline)

    def _apply(
        self,
        template: RecurringTemplate,
        occurrences: Sequence[datetime],
        now: datetime,
        deadline: Deadline | None,
    ) -> CatchUpResult:
        dates = sorted(occurrences)
        last = align_to(now, dates[-1])
        next_due = next_scheduled(template, last)

        # Claim the checkpoint first so a concurrent runner fails before
        # writing anything.
        self._check(deadline, "checkpoint")
        self._transactions.advance_checkpoint(
            template.template_id,
            expected_last_processed=template.last_processed,
            last_processed=max(now, last),
            next_due_date=next_due,
        )

        created: list[MaterializedOccurrence] = []
        delta = ZERO
        for when in dates:
            self._check(deadline, "occurrence")
            occurrence = build_occurrence(template, when)
            self._transactions.add_occurrence(occurrence)
            created.append(occurrence)
            delta += occurrence.signed_amount

        self._check(deadline, "balance")
        self._accounts.increment_balance(template.account_id, delta)
        self._check(deadline, "commit")

        logger.info(
            "catch_up_applied",
            extra={
                "template_id": str(template.template_id),
                "account_id": str(template.account_id),
                "created_count": len(created),
                "balance_delta": delta,
                "first_date": dates[0],
                "last_date": last,
                "next_due_date": next_due,
            },
        )

        return CatchUpResult(
            template_id=template.template_id,
            user_id=template.user_id,
            created_count=len(created),
            balance_delta=delta,
            new_next_due=next_due,
            occurrences=tuple(created),
        )

    @staticmethod
    def _check(deadline: Deadline | None, stage: str) -> None:
        if deadline is not None:
            deadline.check(stage)

    @staticmethod
    def _empty(template: RecurringTemplate) -> CatchUpResult:
        return CatchUpResult(
            template_id=template.template_id,
            user_id=template.user_id,
            created_count=0,
            balance_delta=ZERO,
            new_next_due=template.next_due_date,
        )
