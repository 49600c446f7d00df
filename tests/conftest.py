"""Pytest configuration and shared fixtures for ledger tests."""

from datetime import datetime, timezone

import pytest

from hoa_ledger.config import load_settings
from hoa_ledger.services.db import create_ledger_engine, create_session_factory, init_db
from hoa_ledger.services.ledger_service import LedgerService
from hoa_ledger.services.quarter_service import QuarterAggregator
from hoa_ledger.services.repository import HistoryEntry, SqlAlchemyLedgerRepository

LEDGER_ENV_VARS = (
    "DATABASE_URL",
    "TIMEZONE",
    "FISCAL_YEAR_START_MONTH",
    "CLIENT_FISCAL_YEAR_START_MONTHS",
    "DUES_SOURCES",
    "MANUAL_ENTRY_SOURCE",
    "HISTORY_DEFAULT_LIMIT",
    "HISTORY_MAX_LIMIT",
    "ALLOW_NEGATIVE_BALANCE",
    "MAX_WRITE_RETRIES",
    "LOCALE",
    "CURRENCY",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_ledger_env(monkeypatch):
    """Keep host environment variables out of settings."""
    for name in LEDGER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    """Settings for an in-memory database in the Cancun zone."""
    return load_settings(_env_file=None, database_url="sqlite:///:memory:", timezone="America/Cancun")


@pytest.fixture
def session_factory(settings):
    """Session factory over a fresh in-memory database."""
    engine = create_ledger_engine(settings.database_url)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return SqlAlchemyLedgerRepository(session_factory)


@pytest.fixture
def ledger(repository, settings):
    return LedgerService(repository, settings)


@pytest.fixture
def aggregator(ledger, settings):
    return QuarterAggregator(ledger, settings)


@pytest.fixture
def account():
    """Test account key."""
    return ("AVII", "101")


def make_entry(
    sequence: int,
    amount: int,
    resulting_balance: int,
    ref: str,
    occurred_at: datetime | None = None,
    source: str | None = "hoaDues",
) -> HistoryEntry:
    """Build a history entry for repository and aggregation tests."""
    return HistoryEntry(
        entry_id=f"credit_test_{ref}_{sequence}",
        sequence=sequence,
        occurred_at=occurred_at or datetime(2025, 9, 15, 17, 0, tzinfo=timezone.utc),
        amount=amount,
        resulting_balance=resulting_balance,
        transaction_ref=ref,
        note=None,
        source=source,
        recorded_at=datetime(2025, 9, 15, 17, 0, tzinfo=timezone.utc),
    )


def assert_history_consistent(history_oldest_first, balance):
    """Balance equals the sum of amounts and resulting balances chain."""
    running = 0
    for index, entry in enumerate(history_oldest_first, start=1):
        assert entry.sequence == index
        running += entry.amount
        assert entry.resulting_balance == running
    assert balance == running
