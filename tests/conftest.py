"""
Shared pytest fixtures for bullion tests.

Provides database connections, a record store, configuration and record
builders with sensible defaults.
"""

import pytest
import sys
from pathlib import Path
from datetime import date, datetime
from decimal import Decimal

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bullion.core.config import LedgerConfig
from bullion.core.database import DatabaseManager
from bullion.core.models import (
    FinancialRecord,
    GhaatTransaction,
    GhaatType,
    LedgerEntryType,
    LedgerSource,
    Merchant,
    RawGoldLedgerEntry,
    RecordKind,
    Trade,
    TradeType,
)
from bullion.core.record_store import RecordStore


@pytest.fixture
def db_manager():
    """Provide a fresh DatabaseManager instance for each test."""
    DatabaseManager.reset_instance()
    manager = DatabaseManager()
    yield manager
    manager.close()
    DatabaseManager.reset_instance()


@pytest.fixture
def db_connection(db_manager):
    """Provide an initialized in-memory database connection."""
    conn = db_manager.init(":memory:")
    yield conn


@pytest.fixture
def store(db_connection):
    """Record store over the in-memory database."""
    return RecordStore(db_connection, user="tester")


@pytest.fixture
def config():
    return LedgerConfig.default()


@pytest.fixture
def make_record():
    """Build an expense (default) or income record."""
    def _make(id, amount, on, category="Rent", description="", kind=RecordKind.EXPENSE):
        return FinancialRecord(
            id=id,
            kind=kind,
            category=category,
            description=description,
            amount=Decimal(str(amount)),
            date=on,
            created_at=datetime.combine(on, datetime.min.time()),
        )
    return _make


@pytest.fixture
def make_merchant():
    def _make(id="m-1", name="Shree Jewellers", total_due="0", total_owe="0", **kwargs):
        return Merchant(id=id, name=name, total_due=Decimal(total_due), total_owe=Decimal(total_owe), **kwargs)
    return _make


@pytest.fixture
def make_trade():
    def _make(id, type, on, total_amount="0", merchant_id="m-1", created_at=None, **kwargs):
        return Trade(
            id=id,
            type=TradeType(type),
            merchant_id=merchant_id,
            total_amount=Decimal(total_amount),
            trade_date=on,
            created_at=created_at or datetime.combine(on, datetime.min.time()),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_ghaat():
    def _make(id, type, units, weight, purity, category="Chains", on=date(2024, 4, 1), **kwargs):
        return GhaatTransaction(
            id=id,
            type=GhaatType(type),
            category=category,
            units=units,
            gross_weight_per_unit=Decimal(str(weight)),
            purity=Decimal(str(purity)),
            transaction_date=on,
            created_at=kwargs.pop("created_at", datetime.combine(on, datetime.min.time())),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_entry():
    def _make(id, type, fine, on, source=LedgerSource.MANUAL_ADJUSTMENT, created_at=None, **kwargs):
        return RawGoldLedgerEntry(
            id=id,
            type=LedgerEntryType(type),
            source=source,
            gross_weight=Decimal(str(fine)),
            purity=Decimal("100"),
            transaction_date=on,
            created_at=created_at or datetime.combine(on, datetime.min.time()),
            **kwargs,
        )
    return _make
