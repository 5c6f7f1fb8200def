"""
Shared test fixtures for WealthTracker backend tests.

Provides reusable fixtures for:
- A settable clock
- In-memory key-value storage
- In-memory SQLite engine and session factory
- Sample financial records
"""

from datetime import datetime, timedelta, timezone

import pytest

from wealthtracker.database import build_engine, build_session_factory, init_db
from wealthtracker.schemas.finance import (
    Account,
    Budget,
    Category,
    FinancialData,
    Goal,
    Investment,
    Transaction,
)
from wealthtracker.services.key_value_store import InMemoryKeyValueStore


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Clock and storage
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock(utc(2024, 1, 15, 12, 0))


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """In-memory SQLite engine with the tables created."""
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_accounts():
    return [
        Account(id="acc-1", name="Checking", type="checking", balance=1500.0),
        Account(id="acc-2", name="Visa", type="credit", balance=-250.5),
    ]


@pytest.fixture
def sample_transactions():
    return [
        Transaction(
            id="t1", date=utc(2024, 1, 3), amount=3000.0, description="Salary",
            type="income", category="cat-salary", account_id="acc-1",
        ),
        Transaction(
            id="t2", date=utc(2024, 1, 5), amount=120.25, description="Groceries",
            type="expense", category="cat-food", account_id="acc-1", tags=["household"],
        ),
        Transaction(
            id="t3", date=utc(2024, 1, 10), amount=60.0, description="Dinner",
            type="expense", category="cat-food", account_id="acc-2",
        ),
        Transaction(
            id="t4", date=utc(2024, 1, 12), amount=900.0, description="Rent",
            type="expense", category="cat-housing", account_id="acc-1", tags=["household"],
        ),
        Transaction(
            id="t5", date=utc(2023, 12, 20), amount=80.0, description="Gift",
            type="expense", category="cat-gifts", account_id="acc-2",
        ),
    ]


@pytest.fixture
def sample_categories():
    return [
        Category(id="cat-salary", name="Salary", type="income"),
        Category(id="cat-food", name="Food", type="expense"),
        Category(id="cat-housing", name="Housing", type="expense"),
        Category(id="cat-gifts", name="Gifts", type="expense"),
    ]


@pytest.fixture
def sample_data(sample_accounts, sample_transactions, sample_categories):
    return FinancialData(
        transactions=sample_transactions,
        accounts=sample_accounts,
        investments=[
            Investment(id="inv-1", symbol="VTI", name="Total Market", quantity=10,
                       purchase_price=200.0, current_value=2300.0),
        ],
        budgets=[
            Budget(id="b1", category="cat-food", budgeted=150.0, spent=180.25),
            Budget(id="b2", category="cat-housing", amount=1000.0),
        ],
        goals=[
            Goal(id="g1", name="Emergency fund", target_amount=10000.0, current_amount=2500.0),
        ],
        categories=sample_categories,
    )
