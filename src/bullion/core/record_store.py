"""
SQLite-backed record store.

The engines never hold a connection: the store hands them fully parsed,
immutable snapshots and applies the commands they return. Every mutation
runs in one transaction, writes audit rows and keeps derived raw gold
ledger entries in step with their source record.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from bullion.core.audit import AuditLogger
from bullion.core.commands import LedgerEffect, RecordCommand, RecordGoldPayment, kind_of, new_id
from bullion.core.database import transaction
from bullion.core.exceptions import (
    NotAuthenticated,
    RecordNotFound,
    ReferentialIntegrityViolation,
    ValidationFailure,
    WorkflowStateError,
)
from bullion.core.models import (
    DataQualityWarning,
    FinancialRecord,
    GhaatTransaction,
    Merchant,
    PartyType,
    RawGoldLedgerEntry,
    RecordKind,
    SaleStatus,
    Trade,
)
from bullion.core.parsing import PARSERS, parse_raw_gold_entry, parse_rows, to_row

logger = logging.getLogger(__name__)

TABLES: Dict[RecordKind, str] = {
    RecordKind.EXPENSE: "financial_records",
    RecordKind.INCOME: "financial_records",
    RecordKind.TRADE: "trades",
    RecordKind.MERCHANT: "merchants",
    RecordKind.GHAAT_TRANSACTION: "ghaat_transactions",
    RecordKind.RAW_GOLD_ENTRY: "raw_gold_ledger",
}

FINANCIAL_KINDS = (RecordKind.EXPENSE, RecordKind.INCOME)
SOURCE_KINDS = (RecordKind.TRADE, RecordKind.GHAAT_TRANSACTION)

KindLike = Union[RecordKind, str]


@dataclass
class Snapshot:
    """Everything the engines need, read in one pass."""
    expenses: List[FinancialRecord] = field(default_factory=list)
    income: List[FinancialRecord] = field(default_factory=list)
    merchants: List[Merchant] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    ghaat_transactions: List[GhaatTransaction] = field(default_factory=list)
    raw_gold_entries: List[RawGoldLedgerEntry] = field(default_factory=list)
    warnings: List[DataQualityWarning] = field(default_factory=list)
    errors: List[ValidationFailure] = field(default_factory=list)


def _kind(kind: KindLike) -> RecordKind:
    if isinstance(kind, RecordKind):
        return kind
    try:
        return RecordKind(str(kind).lower())
    except ValueError:
        raise ValidationFailure(f"Unknown record kind: {kind}", field="kind")


class RecordStore:
    """
    Record store over a SQLite connection.

    Usage:
        store = RecordStore(conn, user="owner")
        store.append_record(trade)
        trades = store.list_trades()
        store.delete_record(RecordKind.TRADE, trade.id)

    Args:
        conn: Connection with the bullion schema
        user: Active user, written to the audit log
        require_user: Refuse mutations (and return empty lists) without a user
    """

    def __init__(self, conn: sqlite3.Connection, user: Optional[str] = None, require_user: bool = False):
        self.conn = conn
        self.user = user
        self.require_user = require_user
        self.audit = AuditLogger(conn, user_id=user)
        self.warnings: List[DataQualityWarning] = []
        self.errors: List[ValidationFailure] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _has_session(self) -> bool:
        return not (self.require_user and self.user is None)

    def _load(self, kind: RecordKind, sql: str, params: Sequence[Any] = ()) -> list:
        if not self._has_session():
            return []
        rows = [dict(row) for row in self.conn.execute(sql, tuple(params)).fetchall()]
        result = parse_rows(rows, PARSERS[kind])
        self.warnings.extend(result.warnings)
        self.errors.extend(result.errors)
        return result.records

    def list_financial_records(self, kind: KindLike) -> List[FinancialRecord]:
        """Expense or income records in insertion order."""
        kind = _kind(kind)
        if kind not in FINANCIAL_KINDS:
            raise ValidationFailure(f"Not a financial record kind: {kind.value}", field="kind")
        return self._load(kind, "SELECT * FROM financial_records WHERE kind = ? ORDER BY rowid", (kind.value,))

    def list_merchants(self, party_type: Optional[PartyType] = None) -> List[Merchant]:
        if party_type is None:
            return self._load(RecordKind.MERCHANT, "SELECT * FROM merchants ORDER BY rowid")
        return self._load(
            RecordKind.MERCHANT,
            "SELECT * FROM merchants WHERE party_type = ? ORDER BY rowid",
            (party_type.value,),
        )

    def list_trades(self) -> List[Trade]:
        return self._load(RecordKind.TRADE, "SELECT * FROM trades ORDER BY rowid")

    def list_ghaat_transactions(self) -> List[GhaatTransaction]:
        return self._load(RecordKind.GHAAT_TRANSACTION, "SELECT * FROM ghaat_transactions ORDER BY rowid")

    def list_raw_gold_ledger_entries(self) -> List[RawGoldLedgerEntry]:
        return self._load(RecordKind.RAW_GOLD_ENTRY, "SELECT * FROM raw_gold_ledger ORDER BY rowid")

    def load_snapshot(self) -> Snapshot:
        """Read every record kind; warnings and errors cover this read only."""
        self.warnings = []
        self.errors = []
        snapshot = Snapshot(
            expenses=self.list_financial_records(RecordKind.EXPENSE),
            income=self.list_financial_records(RecordKind.INCOME),
            merchants=self.list_merchants(),
            trades=self.list_trades(),
            ghaat_transactions=self.list_ghaat_transactions(),
            raw_gold_entries=self.list_raw_gold_ledger_entries(),
        )
        snapshot.warnings = list(self.warnings)
        snapshot.errors = list(self.errors)
        if snapshot.warnings or snapshot.errors:
            logger.warning(
                f"Snapshot loaded with {len(snapshot.warnings)} data-quality warnings "
                f"and {len(snapshot.errors)} unreadable rows"
            )
        return snapshot

    def get_record(self, kind: KindLike, record_id: str) -> Any:
        """
        Fetch one record by id.

        Raises:
            RecordNotFound: If no record of that kind has the id
        """
        kind = _kind(kind)
        row = self._fetch_row(kind, record_id)
        if row is None:
            raise RecordNotFound(kind.value, record_id)
        return PARSERS[kind](row, self.warnings)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append_record(self, record: Any) -> None:
        """Insert a record; trades and jewellery transactions bring their ledger effect."""
        if kind_of(record) in SOURCE_KINDS:
            self.apply(RecordGoldPayment(record=record))
        else:
            self.apply(RecordCommand(appends=(record,), description=f"Add {kind_of(record).value} {record.id}"))

    def update_record(self, record: Any) -> None:
        """Replace a record by id; its derived ledger entry is rewritten, created or removed."""
        self.apply(RecordCommand(updates=(record,), description=f"Edit {kind_of(record).value} {record.id}"))

    def delete_record(self, kind: KindLike, record_id: str, cascade: bool = True) -> None:
        """
        Delete a record.

        Args:
            kind: Record kind
            record_id: Record id
            cascade: Also delete derived ledger entries and buy-backs; when
                False a record with dependents is refused

        Raises:
            RecordNotFound: If the record does not exist
            ReferentialIntegrityViolation: If the record is a derived ledger
                entry, a merchant with trades, a member of a confirmed sale
                group, or has dependents and cascade is False
        """
        kind = _kind(kind)
        self.apply(RecordCommand(
            deletes=((kind, record_id),),
            cascade=cascade,
            description=f"Delete {kind.value} {record_id}",
        ))

    def apply(self, command: RecordCommand) -> None:
        """
        Apply every part of a command in one transaction.

        Raises:
            NotAuthenticated: If a user is required and none is set
        """
        if not self._has_session():
            raise NotAuthenticated()

        with transaction(self.conn):
            for record in command.appends:
                self._append(record, command)
            for record in command.updates:
                self._update(record, command)
            deleting = {record_id for _, record_id in command.deletes}
            for kind, record_id in command.deletes:
                self._delete(_kind(kind), record_id, command.cascade, command.description, deleting)

        logger.info(
            f"{command.description or 'Applied command'}: {len(command.appends)} added, "
            f"{len(command.updates)} updated, {len(command.deletes)} deleted"
        )

    # ------------------------------------------------------------------
    # Internals (called inside a transaction)
    # ------------------------------------------------------------------

    def _fetch_row(self, kind: RecordKind, record_id: str) -> Optional[Dict[str, Any]]:
        if kind in FINANCIAL_KINDS:
            cursor = self.conn.execute(
                "SELECT * FROM financial_records WHERE id = ? AND kind = ?", (record_id, kind.value)
            )
        else:
            cursor = self.conn.execute(f"SELECT * FROM {TABLES[kind]} WHERE id = ?", (record_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def _insert_row(self, table: str, row: Dict[str, Any], description: str) -> None:
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        self.conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(row.values()))
        self.audit.log_change(table, row["id"], "INSERT", new_values=row, description=description)

    def _update_row(self, table: str, old: Dict[str, Any], row: Dict[str, Any], description: str) -> None:
        assignments = ", ".join(f"{column} = ?" for column in row if column != "id")
        params = [value for column, value in row.items() if column != "id"]
        self.conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", (*params, row["id"]))
        changed_old = {k: v for k, v in old.items() if k in row and row[k] != v}
        changed_new = {k: row[k] for k in changed_old}
        self.audit.log_change(
            table, row["id"], "UPDATE", old_values=changed_old, new_values=changed_new, description=description
        )

    def _delete_row(self, table: str, old: Dict[str, Any], description: str) -> None:
        self.conn.execute(f"DELETE FROM {table} WHERE id = ?", (old["id"],))
        self.audit.log_change(table, old["id"], "DELETE", old_values=old, description=description)

    def _append(self, record: Any, command: RecordCommand) -> None:
        kind = kind_of(record)
        if isinstance(record, RawGoldLedgerEntry) and record.is_derived:
            raise ReferentialIntegrityViolation(
                "Derived raw gold entries are created from their source trade or jewellery transaction",
                record_id=record.id,
                reference_id=record.reference_id,
            )
        if self._fetch_row(kind, record.id) is not None:
            raise ValidationFailure(f"{kind.value} {record.id} already exists", field="id", record_id=record.id)

        self._insert_row(TABLES[kind], to_row(record), command.description)
        if kind in SOURCE_KINDS:
            self._sync_ledger(record, command.effect_for(record), command.description)

    def _update(self, record: Any, command: RecordCommand) -> None:
        kind = kind_of(record)
        old = self._fetch_row(kind, record.id)
        if old is None:
            raise RecordNotFound(kind.value, record.id)
        if kind == RecordKind.RAW_GOLD_ENTRY and (old["reference_id"] or record.is_derived):
            raise ReferentialIntegrityViolation(
                f"Raw gold entry {record.id} is derived from {old['reference_id'] or record.reference_id}; "
                f"edit the originating trade or jewellery transaction instead",
                record_id=record.id,
                reference_id=old["reference_id"] or record.reference_id,
            )

        expected = command.expected_status_of(record.id)
        if expected is not None:
            stored = PARSERS[kind](old, []).status
            if stored != expected:
                raise WorkflowStateError(
                    f"{record.id} is {stored.value if stored else 'without status'}, expected {expected.value}",
                    group_id=old.get("group_id"),
                )

        self._update_row(TABLES[kind], old, to_row(record), command.description)
        if kind in SOURCE_KINDS:
            self._sync_ledger(record, command.effect_for(record), command.description)

    def _derived_rows(self, reference_id: str) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM raw_gold_ledger WHERE reference_id = ? ORDER BY created_at, id", (reference_id,)
        )
        return [dict(row) for row in cursor.fetchall()]

    def _buy_back_rows(self, source_id: str) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM ghaat_transactions WHERE source_transaction_id = ? ORDER BY rowid", (source_id,)
        )
        return [dict(row) for row in cursor.fetchall()]

    def _sync_ledger(self, record: Any, effect: Optional[LedgerEffect], description: str) -> None:
        """Make the derived entries referencing record match its effect."""
        existing = self._derived_rows(record.id)

        if effect is None:
            for row in existing:
                self._delete_row("raw_gold_ledger", row, description)
            return

        if existing:
            current = parse_raw_gold_entry(existing[0])
            entry = effect.to_entry(current.id, record.id, current.created_at)
            self._update_row("raw_gold_ledger", existing[0], to_row(entry), description)
            for row in existing[1:]:
                self._delete_row("raw_gold_ledger", row, description)
        else:
            entry = effect.to_entry(new_id(), record.id, datetime.now())
            self._insert_row("raw_gold_ledger", to_row(entry), description)
            logger.debug(f"Derived {entry.type.value} {entry.fine_gold} gm from {record.id}")

    def _delete(
        self,
        kind: RecordKind,
        record_id: str,
        cascade: bool,
        description: str,
        deleting: Optional[Set[str]] = None,
    ) -> None:
        old = self._fetch_row(kind, record_id)
        if old is None:
            raise RecordNotFound(kind.value, record_id)

        if kind == RecordKind.RAW_GOLD_ENTRY and old["reference_id"]:
            raise ReferentialIntegrityViolation(
                f"Raw gold entry {record_id} was created by {old['reference_id']}; "
                f"edit or delete the originating trade or jewellery transaction instead",
                record_id=record_id,
                reference_id=old["reference_id"],
            )

        if kind == RecordKind.MERCHANT:
            trade_count = self.conn.execute(
                "SELECT COUNT(*) FROM trades WHERE merchant_id = ?", (record_id,)
            ).fetchone()[0]
            ghaat_count = self.conn.execute(
                "SELECT COUNT(*) FROM ghaat_transactions WHERE merchant_id = ? OR karigar_id = ?",
                (record_id, record_id),
            ).fetchone()[0]
            if trade_count or ghaat_count:
                raise ReferentialIntegrityViolation(
                    f"Merchant {record_id} still has {trade_count} trades and "
                    f"{ghaat_count} jewellery transactions",
                    record_id=record_id,
                )

        if kind == RecordKind.GHAAT_TRANSACTION:
            self._check_group_delete(old, deleting or {record_id})

        if kind in SOURCE_KINDS:
            self._delete_dependents(record_id, cascade, description)

        self._delete_row(TABLES[kind], old, description)

    def _delete_dependents(self, record_id: str, cascade: bool, description: str) -> None:
        derived = self._derived_rows(record_id)
        buy_backs = self._buy_back_rows(record_id)
        if (derived or buy_backs) and not cascade:
            raise ReferentialIntegrityViolation(
                f"{record_id} has {len(derived)} derived ledger entries and "
                f"{len(buy_backs)} returned-unit transactions",
                record_id=record_id,
                reference_id=(derived or buy_backs)[0]["id"],
            )
        for row in derived:
            self._delete_row("raw_gold_ledger", row, description)
        for row in buy_backs:
            self._delete_dependents(row["id"], cascade, description)
            self._delete_row("ghaat_transactions", row, description)

    def _check_group_delete(self, old: Dict[str, Any], deleting: Set[str]) -> None:
        """A confirmed group holds its settlement on one item, so it is only deleted whole."""
        txn = PARSERS[RecordKind.GHAAT_TRANSACTION](old, [])
        if txn.status != SaleStatus.CONFIRMED or not txn.group_id:
            return
        cursor = self.conn.execute(
            "SELECT id FROM ghaat_transactions WHERE type = 'sell' AND merchant_id IS ? AND group_id = ? AND id != ?",
            (txn.merchant_id, txn.group_id, txn.id),
        )
        remaining = [row["id"] for row in cursor.fetchall() if row["id"] not in deleting]
        if remaining:
            raise ReferentialIntegrityViolation(
                f"{txn.id} belongs to confirmed group {txn.group_id}; delete the whole group "
                f"({len(remaining)} other items) instead",
                record_id=txn.id,
                reference_id=txn.group_id,
            )
