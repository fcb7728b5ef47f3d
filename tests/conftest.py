"""
Pytest fixtures for the penny test suite.

Provides:
- A file-backed SQLite database per test (worker threads and several
  sessions must see the same data, which ``:memory:`` cannot offer)
- A DeterministicClock with naive UTC time (SQLite drops tzinfo)
- Account / template / budget factories
- Structured-log capture
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

import penny_batch.models  # noqa: F401  (registers batch tables)
import penny_kernel.models  # noqa: F401
from penny_kernel.db.base import Base
from penny_kernel.db.engine import build_engine
from penny_kernel.domain.clock import DeterministicClock
from penny_kernel.domain.recurrence import next_occurrence
from penny_kernel.domain.types import RecurringInterval, TransactionType
from penny_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from penny_kernel.models import Account, Budget, Transaction


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: test waits on real threads or timers"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture penny logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "catch_up_applied" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("penny")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'penny.db'}"


@pytest.fixture
def engine(database_url):
    eng = build_engine(database_url)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=datetime(2024, 6, 15, 12, 0, 0))


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_account(db_session):
    def _make(
        user_id=None,
        balance: str = "1000.00",
        name: str = "Main",
        is_default: bool = True,
    ) -> Account:
        account = Account(
            user_id=user_id or uuid4(),
            name=name,
            balance=Decimal(balance),
            is_default=is_default,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture
def make_template(db_session):
    """Insert a recurring template the way the transaction flow leaves it."""

    def _make(
        account: Account,
        *,
        date: datetime = datetime(2024, 1, 1),
        interval: RecurringInterval = RecurringInterval.MONTHLY,
        type: TransactionType = TransactionType.EXPENSE,
        amount: str = "100.00",
        category: str = "rent",
        description: str | None = "Rent",
        last_processed: datetime | None = None,
        next_recurring_date: datetime | None = None,
        is_recurring: bool = True,
    ) -> Transaction:
        row = Transaction(
            account_id=account.id,
            user_id=account.user_id,
            type=type.value,
            amount=Decimal(amount),
            category=category,
            description=description,
            date=date,
            is_recurring=is_recurring,
            recurring_interval=interval.value if is_recurring else None,
            last_processed=last_processed,
            next_recurring_date=(
                next_recurring_date
                if next_recurring_date is not None or not is_recurring
                else next_occurrence(last_processed or date, interval)
            ),
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make


@pytest.fixture
def make_budget(db_session):
    def _make(user_id, amount: str = "1000.00", last_alert_sent=None) -> Budget:
        budget = Budget(
            user_id=user_id,
            amount=Decimal(amount),
            last_alert_sent=last_alert_sent,
        )
        db_session.add(budget)
        db_session.commit()
        return budget

    return _make


# =============================================================================
# Read-back helpers (fresh session, so writes from other sessions are visible)
# =============================================================================


@pytest.fixture
def reload(session_factory):
    def _reload(model, row_id):
        with session_factory() as session:
            return session.get(model, row_id)

    return _reload


@pytest.fixture
def occurrences_of(session_factory):
    """Materialized occurrences of a template, oldest first."""

    def _fetch(template_id) -> list[Transaction]:
        with session_factory() as session:
            return list(
                session.execute(
                    select(Transaction)
                    .where(Transaction.source_template_id == template_id)
                    .order_by(Transaction.date)
                ).scalars()
            )

    return _fetch
