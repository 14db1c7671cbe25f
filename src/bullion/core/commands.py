"""
Command objects for record store mutations.

A command bundles every append, update and delete of one user action together
with the raw gold ledger effects those records carry. The record store applies
a command inside a single transaction, so a source record and its derived
ledger entry are written, rewritten or removed together.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Tuple

from bullion.core.exceptions import ValidationFailure
from bullion.core.models import (
    ZERO,
    FinancialRecord,
    GhaatTransaction,
    GhaatType,
    LedgerEntryType,
    LedgerSource,
    Merchant,
    RawGoldLedgerEntry,
    RecordKind,
    SaleStatus,
    SettlementDirection,
    Trade,
)


def new_id() -> str:
    """Fresh record identifier."""
    return uuid.uuid4().hex


def kind_of(record: Any) -> RecordKind:
    """Record kind of a model instance."""
    if isinstance(record, FinancialRecord):
        return record.kind
    if isinstance(record, Trade):
        return RecordKind.TRADE
    if isinstance(record, Merchant):
        return RecordKind.MERCHANT
    if isinstance(record, GhaatTransaction):
        return RecordKind.GHAAT_TRANSACTION
    if isinstance(record, RawGoldLedgerEntry):
        return RecordKind.RAW_GOLD_ENTRY
    raise ValidationFailure(f"Unsupported record type: {type(record).__name__}")


@dataclass(frozen=True)
class LedgerEffect:
    """The raw gold movement a source record implies."""
    type: LedgerEntryType
    source: LedgerSource
    gross_weight: Decimal
    purity: Decimal
    transaction_date: date
    counterparty_name: str = ""
    counterparty_id: Optional[str] = None
    cash_amount: Decimal = ZERO
    notes: str = ""

    def to_entry(self, entry_id: str, reference_id: str, created_at: datetime) -> RawGoldLedgerEntry:
        return RawGoldLedgerEntry(
            id=entry_id,
            type=self.type,
            source=self.source,
            gross_weight=self.gross_weight,
            purity=self.purity,
            transaction_date=self.transaction_date,
            created_at=created_at,
            reference_id=reference_id,
            counterparty_name=self.counterparty_name,
            counterparty_id=self.counterparty_id,
            cash_amount=self.cash_amount,
            notes=self.notes,
        )


def derive_ledger_effect(record: Any) -> Optional[LedgerEffect]:
    """
    Raw gold movement implied by a trade or jewellery transaction.

    - jewellery bought from a karigar and paid (partly) in gold: gold out
    - jewellery sale confirmed with gold handed back by the merchant: gold in
    - gold settlement trade: gold in when receiving, out when paying

    Returns:
        LedgerEffect, or None when the record moves no loose gold
    """
    if isinstance(record, GhaatTransaction):
        if record.type == GhaatType.BUY and record.gold_given_weight > ZERO:
            return LedgerEffect(
                type=LedgerEntryType.OUT,
                source=LedgerSource.KARIGAR_PAYMENT,
                gross_weight=record.gold_given_weight,
                purity=record.gold_given_purity,
                transaction_date=record.effective_date,
                counterparty_name=record.karigar_name,
                counterparty_id=record.karigar_id,
                cash_amount=record.cash_paid,
                notes=f"Gold given for {record.category}",
            )
        if (
            record.type == GhaatType.SELL
            and record.status == SaleStatus.CONFIRMED
            and record.gold_returned_weight > ZERO
        ):
            return LedgerEffect(
                type=LedgerEntryType.IN,
                source=LedgerSource.MERCHANT_RETURN,
                gross_weight=record.gold_returned_weight,
                purity=record.gold_returned_purity,
                transaction_date=record.confirmed_date or record.effective_date,
                counterparty_name=record.merchant_name,
                counterparty_id=record.merchant_id,
                cash_amount=record.cash_received,
                notes="Gold returned on sale confirmation",
            )
        return None

    if isinstance(record, Trade) and record.carries_gold:
        receiving = record.settlement_direction == SettlementDirection.RECEIVING
        return LedgerEffect(
            type=LedgerEntryType.IN if receiving else LedgerEntryType.OUT,
            source=LedgerSource.MERCHANT_RETURN if receiving else LedgerSource.KARIGAR_PAYMENT,
            gross_weight=record.weight,
            purity=record.purity,
            transaction_date=record.effective_date,
            counterparty_name=record.merchant_name,
            counterparty_id=record.merchant_id,
            notes="Gold settlement",
        )

    return None


@dataclass(frozen=True)
class RecordCommand:
    """
    A set of mutations applied atomically.

    Attributes:
        appends: New records
        updates: Replacement records (matched by id)
        deletes: (kind, record_id) pairs
        ledger_effects: (reference_id, effect) pairs for appended or updated
            records; records not listed here get derive_ledger_effect()
        expected_status: (record_id, status) pairs the stored jewellery
            transaction must still have when its update is applied
        cascade: Delete dependents of deleted records instead of refusing
        description: Audit/log description of the user action
    """
    appends: Tuple[Any, ...] = ()
    updates: Tuple[Any, ...] = ()
    deletes: Tuple[Tuple[RecordKind, str], ...] = ()
    ledger_effects: Tuple[Tuple[str, Optional[LedgerEffect]], ...] = ()
    expected_status: Tuple[Tuple[str, SaleStatus], ...] = ()
    cascade: bool = True
    description: str = ""

    def effect_for(self, record: Any) -> Optional[LedgerEffect]:
        for reference_id, effect in self.ledger_effects:
            if reference_id == record.id:
                return effect
        return derive_ledger_effect(record)

    def expected_status_of(self, record_id: str) -> Optional[SaleStatus]:
        for expected_id, status in self.expected_status:
            if expected_id == record_id:
                return status
        return None


@dataclass(frozen=True)
class RecordGoldPayment(RecordCommand):
    """
    Append one source record together with its raw gold ledger effect.

    Usage:
        store.apply(RecordGoldPayment(record=purchase))
    """
    record: Any = None
    ledger_effect: Optional[LedgerEffect] = None

    def __post_init__(self):
        if self.record is None:
            raise ValidationFailure("RecordGoldPayment requires a record")
        effect = self.ledger_effect if self.ledger_effect is not None else derive_ledger_effect(self.record)
        object.__setattr__(self, "ledger_effect", effect)
        object.__setattr__(self, "appends", (self.record,))
        object.__setattr__(self, "ledger_effects", ((self.record.id, effect),))
        if not self.description:
            object.__setattr__(self, "description", f"Record {kind_of(self.record).value} {self.record.id}")
