"""
SqlTransactionRepository -- SQLAlchemy implementation of TransactionRepository.

Contract:
    Maps ``transactions`` rows to RecurringTemplate DTOs, inserts
    materialized occurrences, and advances a template's checkpoint with a
    conditional UPDATE keyed on the previous ``last_processed`` value.

Non-goals:
    - Does NOT commit.  The unit of work owns the transaction boundary.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from penny_kernel.db.types import to_money
from penny_kernel.domain.dtos import MaterializedOccurrence, RecurringTemplate
from penny_kernel.domain.recurrence import coerce_interval
from penny_kernel.domain.types import TransactionStatus, TransactionType
from penny_kernel.exceptions import CheckpointConflictError
from penny_kernel.logging_config import get_logger
from penny_kernel.models.transaction import Transaction

logger = get_logger("repositories.transactions")


def template_from_row(row: Transaction) -> RecurringTemplate:
    """Build the read-only template snapshot for a recurring row.

    Raises:
        InvalidIntervalError: the stored interval is malformed.
    """
    return RecurringTemplate(
        template_id=row.id,
        account_id=row.account_id,
        user_id=row.user_id,
        type=TransactionType(row.type),
        amount=to_money(row.amount),
        category=row.category,
        description=row.description,
        interval=coerce_interval(row.recurring_interval),
        original_date=row.date,
        last_processed=row.last_processed,
        next_due_date=row.next_recurring_date,
    )


class SqlTransactionRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_template(
        self, template_id: UUID, for_update: bool = False,
    ) -> RecurringTemplate | None:
        stmt = select(Transaction).where(Transaction.id == template_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None or not row.is_recurring or row.recurring_interval is None:
            return None
        return template_from_row(row)

    def add_occurrence(self, occurrence: MaterializedOccurrence) -> None:
        self.session.add(
            Transaction(
                id=occurrence.occurrence_id,
                account_id=occurrence.account_id,
                user_id=occurrence.user_id,
                type=occurrence.type.value,
                amount=occurrence.amount,
                category=occurrence.category,
                description=occurrence.description,
                date=occurrence.date,
                status=TransactionStatus.COMPLETED.value,
                is_recurring=False,
                source_template_id=occurrence.template_id,
            )
        )
        self.session.flush()

    def advance_checkpoint(
        self,
        template_id: UUID,
        expected_last_processed: datetime | None,
        last_processed: datetime,
        next_due_date: datetime,
    ) -> None:
        stmt = update(Transaction).where(
            Transaction.id == template_id,
            Transaction.is_recurring.is_(True),
        )
        if expected_last_processed is None:
            stmt = stmt.where(Transaction.last_processed.is_(None))
        else:
            stmt = stmt.where(Transaction.last_processed == expected_last_processed)

        result = self.session.execute(
            stmt.values(
                last_processed=last_processed,
                next_recurring_date=next_due_date,
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "checkpoint_conflict",
                extra={
                    "template_id": str(template_id),
                    "expected_last_processed": expected_last_processed,
                },
            )
            raise CheckpointConflictError(template_id, expected_last_processed)
