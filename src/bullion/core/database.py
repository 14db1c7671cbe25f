"""
SQLite database initialization and connection management.

Provides the schema for every record kind the ledger replays.
Uses singleton pattern for connection management.

Storage Notes:
- Identifiers are TEXT (hex UUIDs)
- Money, weight and purity columns are TEXT holding exact Decimal strings
- Dates and timestamps are ISO-8601 TEXT
- Use the transaction() context manager for atomic operations
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from bullion.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS merchants (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    total_due TEXT DEFAULT '0',
    total_owe TEXT DEFAULT '0',
    party_type TEXT NOT NULL DEFAULT 'merchant' CHECK(party_type IN ('merchant','karigar')),
    phone TEXT,
    email TEXT,
    address TEXT,
    created_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS financial_records (
    id TEXT PRIMARY KEY,
    kind TEXT NOT NULL CHECK(kind IN ('expense','income')),
    category TEXT,
    description TEXT,
    amount TEXT,
    date DATE NOT NULL,
    payment_type TEXT DEFAULT 'cash',
    created_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS trades (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK(type IN ('buy','sell','transfer','settlement')),
    merchant_id TEXT NOT NULL,
    merchant_name TEXT,
    metal_type TEXT,
    weight TEXT,
    purity TEXT,
    rate TEXT,
    total_amount TEXT,
    amount_paid TEXT,
    amount_received TEXT,
    settlement_direction TEXT CHECK(settlement_direction IS NULL OR settlement_direction IN ('receiving','paying')),
    settlement_type TEXT,
    transfer_charges TEXT,
    notes TEXT,
    trade_date DATE,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS ghaat_transactions (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK(type IN ('buy','sell')),
    category TEXT,
    units INTEGER,
    gross_weight_per_unit TEXT,
    purity TEXT,
    total_gross_weight TEXT,
    fine_gold TEXT,

    karigar_id TEXT,
    karigar_name TEXT,
    merchant_id TEXT,
    merchant_name TEXT,

    labor_type TEXT,
    labor_amount TEXT,
    gold_given_weight TEXT,
    gold_given_purity TEXT,
    cash_paid TEXT,
    amount_received TEXT,

    status TEXT CHECK(status IS NULL OR status IN ('pending','confirmed','sold')),
    group_id TEXT,
    group_size INTEGER,
    rate_per_10gm TEXT,
    total_amount TEXT,
    settlement_type TEXT,
    gold_returned_weight TEXT,
    gold_returned_purity TEXT,
    cash_received TEXT,
    confirmed_date DATE,
    confirmed_units INTEGER,
    confirmed_gross_weight TEXT,
    confirmed_fine_gold TEXT,
    dues_shortfall TEXT,

    source_transaction_id TEXT,
    notes TEXT,
    transaction_date DATE,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS raw_gold_ledger (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK(type IN ('in','out')),
    source TEXT NOT NULL CHECK(source IN ('merchant_return','karigar_payment','manual_adjustment','initial_balance')),
    gross_weight TEXT,
    purity TEXT,
    fine_gold TEXT,
    reference_id TEXT,
    counterparty_name TEXT,
    counterparty_id TEXT,
    cash_amount TEXT,
    notes TEXT,
    transaction_date DATE NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    table_name TEXT NOT NULL,
    record_id TEXT NOT NULL,
    action TEXT NOT NULL CHECK(action IN ('INSERT','UPDATE','DELETE')),
    old_values TEXT,
    new_values TEXT,
    user_id TEXT,
    description TEXT,
    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_financial_records_kind_date ON financial_records(kind, date);
CREATE INDEX IF NOT EXISTS idx_trades_merchant ON trades(merchant_id);
CREATE INDEX IF NOT EXISTS idx_ghaat_group ON ghaat_transactions(merchant_id, group_id);
CREATE INDEX IF NOT EXISTS idx_ghaat_source ON ghaat_transactions(source_transaction_id);
CREATE INDEX IF NOT EXISTS idx_raw_gold_reference ON raw_gold_ledger(reference_id);
CREATE INDEX IF NOT EXISTS idx_raw_gold_date ON raw_gold_ledger(transaction_date);
CREATE INDEX IF NOT EXISTS idx_audit_log_table ON audit_log(table_name, record_id);
"""


@contextmanager
def transaction(conn: sqlite3.Connection):
    """
    Run the enclosed statements as one transaction on a connection.

    Commits on success and rolls back on any exception. SQLite failures are
    re-raised as DatabaseError; other exceptions propagate unchanged.
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise DatabaseError(f"Transaction failed: {e}") from e
    except Exception:
        conn.rollback()
        raise


class DatabaseManager:
    """
    Singleton manager for SQLite database connections.

    Usage:
        db = DatabaseManager()
        conn = db.init("/path/to/bullion.db")
        # Use connection...
        db.close()
    """

    _instance: Optional["DatabaseManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._connection = None
                    cls._instance._db_path = None
        return cls._instance

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the current database connection."""
        if self._connection is None:
            raise DatabaseError("Database not initialized. Call init() first.")
        return self._connection

    def init(self, db_path: str) -> sqlite3.Connection:
        """
        Initialize the database and create missing tables.

        Args:
            db_path: Path to database file or ":memory:" for in-memory database

        Returns:
            Database connection

        Raises:
            DatabaseError: If initialization fails
        """
        try:
            self._db_path = db_path

            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            self._connection = sqlite3.connect(db_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row

            if db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

            self._execute_schema()
            logger.debug(f"Database ready at {db_path}")

            return self._connection

        except (sqlite3.Error, OSError) as e:
            raise DatabaseError(f"Failed to initialize database: {e}") from e

    def _execute_schema(self) -> None:
        """Create all tables if not exist."""
        try:
            self._connection.executescript(SCHEMA_SQL)
            self._connection.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to execute schema: {e}") from e

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a SQL statement."""
        return self.connection.execute(sql, params)

    @contextmanager
    def transaction(self):
        """
        Context manager for atomic transactions.

        Usage:
            db = DatabaseManager()
            with db.transaction():
                db.execute("INSERT INTO trades ...")
                db.execute("INSERT INTO raw_gold_ledger ...")
            # Auto-commits on success, auto-rolls back on exception
        """
        with transaction(self.connection) as conn:
            yield conn

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            self._db_path = None

    def get_tables(self) -> List[str]:
        """Get list of all tables in database."""
        cursor = self.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        )
        return [row[0] for row in cursor.fetchall()]

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        with cls._lock:
            if cls._instance and cls._instance._connection:
                cls._instance._connection.close()
            cls._instance = None
