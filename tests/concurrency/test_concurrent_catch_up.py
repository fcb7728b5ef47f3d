"""
Concurrency tests for catch-up on real threads.

Threads are released together through a Barrier so their units of work
genuinely overlap.  SQLite serializes the writers; the conditional
checkpoint update and the atomic balance increment must still keep every
occurrence and every cent accounted for exactly once.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import select

from penny_kernel.domain.types import TransactionType
from penny_kernel.exceptions import CheckpointConflictError
from penny_kernel.models import Account, Transaction
from penny_kernel.repositories import SqlUnitOfWork
from penny_kernel.services import CatchUpService, TransactionService

pytestmark = pytest.mark.slow


def _catch_up(session_factory, clock, template_id):
    with SqlUnitOfWork(session_factory) as uow:
        service = CatchUpService(uow.transactions, uow.accounts, clock)
        return service.catch_up(template_id)


def _signed_total(session_factory, account_id) -> Decimal:
    with session_factory() as session:
        rows = session.execute(
            select(Transaction.type, Transaction.amount).where(
                Transaction.account_id == account_id,
                Transaction.is_recurring.is_(False),
            )
        ).all()
    return sum(
        (amount if kind == TransactionType.INCOME.value else -amount for kind, amount in rows),
        Decimal("0"),
    )


class TestSameTemplateRace:
    def test_racing_runners_apply_once(
        self, session_factory, clock, make_account, make_template, reload, occurrences_of,
    ):
        account = make_account()
        template = make_template(account, date=datetime(2024, 1, 1))
        num_threads = 4
        barrier = Barrier(num_threads, timeout=30)

        def run(_):
            barrier.wait()
            try:
                return _catch_up(session_factory, clock, template.id)
            except CheckpointConflictError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            results = list(executor.map(run, range(num_threads)))

        applied = [r for r in results if not isinstance(r, Exception) and r.applied]
        conflicts = [r for r in results if isinstance(r, CheckpointConflictError)]
        empty = [r for r in results if not isinstance(r, Exception) and not r.applied]

        assert len(applied) == 1
        assert applied[0].created_count == 5
        assert len(conflicts) + len(empty) == num_threads - 1
        assert all(c.template_id == template.id for c in conflicts)

        assert [o.date for o in occurrences_of(template.id)] == [
            datetime(2024, 2, 1),
            datetime(2024, 3, 1),
            datetime(2024, 4, 1),
            datetime(2024, 5, 1),
            datetime(2024, 6, 1),
        ]
        assert reload(Account, account.id).balance == Decimal("500.00")
        assert reload(Transaction, template.id).next_recurring_date == datetime(2024, 7, 1)


class TestInterleavedManualTransactions:
    def test_balance_equals_signed_sum_of_rows(
        self, session_factory, clock, make_account, make_template, reload, occurrences_of,
    ):
        account = make_account(balance="0.00")
        template = make_template(account, date=datetime(2024, 1, 1), amount="100.00")
        manual = [
            (TransactionType.INCOME, "250.00"),
            (TransactionType.EXPENSE, "19.99"),
            (TransactionType.EXPENSE, "42.10"),
            (TransactionType.INCOME, "7.25"),
            (TransactionType.EXPENSE, "300.00"),
            (TransactionType.INCOME, "1200.00"),
        ]
        barrier = Barrier(len(manual) + 1, timeout=30)

        def add_manual(entry):
            kind, amount = entry
            barrier.wait()
            session = session_factory()
            try:
                TransactionService(session).create_transaction(
                    user_id=account.user_id,
                    account_id=account.id,
                    type=kind,
                    amount=amount,
                    category="misc",
                    date=datetime(2024, 6, 10),
                )
                session.commit()
            finally:
                session.close()

        def run_catch_up():
            barrier.wait()
            return _catch_up(session_factory, clock, template.id)

        with ThreadPoolExecutor(max_workers=len(manual) + 1) as executor:
            catch_up_future = executor.submit(run_catch_up)
            manual_futures = [executor.submit(add_manual, entry) for entry in manual]
            for future in manual_futures:
                future.result()
            result = catch_up_future.result()

        assert result.created_count == 5
        assert len(occurrences_of(template.id)) == 5

        manual_total = sum(
            (Decimal(a) if k == TransactionType.INCOME else -Decimal(a) for k, a in manual),
            Decimal("0"),
        )
        balance = reload(Account, account.id).balance
        assert balance == manual_total - Decimal("500.00")
        assert balance == _signed_total(session_factory, account.id)
