"""
Core models for bullion - the immutable event records the engines replay.

This module provides:
- FinancialRecord: expense or income entry
- Trade: bullion buy/sell/transfer/settlement with a merchant
- Merchant: merchant or karigar with their opening ("older") balance
- GhaatTransaction: jewellery purchase from a karigar or sale to a merchant
- RawGoldLedgerEntry: loose fine-gold movement in or out
- WeightBracket: one range of the per-unit weight partition
- PendingSaleGroup: jewellery handed to a merchant and not yet settled

All money and weight values use Decimal for precision. Records are frozen;
an edit produces a new record via dataclasses.replace().
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from bullion.core.exceptions import ValidationFailure


ZERO = Decimal("0")
TEN = Decimal("10")
HUNDRED = Decimal("100")

# Tolerance between a stored fine gold value and its recomputation (grams)
FINE_GOLD_EPSILON = Decimal("0.000001")


class RecordKind(Enum):
    """Kinds of records held by the record store."""
    EXPENSE = "expense"
    INCOME = "income"
    TRADE = "trade"
    MERCHANT = "merchant"
    GHAAT_TRANSACTION = "ghaat_transaction"
    RAW_GOLD_ENTRY = "raw_gold_entry"


class PaymentType(Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class TradeType(Enum):
    BUY = "buy"
    SELL = "sell"
    TRANSFER = "transfer"
    SETTLEMENT = "settlement"


class MetalType(Enum):
    GOLD = "gold"
    SILVER = "silver"


class SettlementDirection(Enum):
    """Settlement direction from the business's point of view."""
    RECEIVING = "receiving"  # counterparty pays us
    PAYING = "paying"        # we pay the counterparty


class SettlementType(Enum):
    CASH = "cash"
    BANK = "bank"
    BILL = "bill"
    GOLD = "gold"
    SILVER = "silver"


class PartyType(Enum):
    MERCHANT = "merchant"
    KARIGAR = "karigar"


class GhaatType(Enum):
    """Jewellery transaction type."""
    BUY = "buy"    # bought from a karigar (or taken back from a merchant)
    SELL = "sell"  # handed to / sold to a merchant


class LaborType(Enum):
    CASH = "cash"
    GOLD = "gold"


class SaleStatus(Enum):
    """Status of a jewellery sale. Legacy sells carry no status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"


class LedgerEntryType(Enum):
    IN = "in"
    OUT = "out"


class LedgerSource(Enum):
    """Origin of a raw gold ledger entry."""
    MERCHANT_RETURN = "merchant_return"
    KARIGAR_PAYMENT = "karigar_payment"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    INITIAL_BALANCE = "initial_balance"


MANUAL_LEDGER_SOURCES = frozenset({LedgerSource.MANUAL_ADJUSTMENT, LedgerSource.INITIAL_BALANCE})


def fine_gold_of(gross_weight: Decimal, purity: Decimal) -> Decimal:
    """Metal content of a gross weight at a purity given in percent."""
    return gross_weight * purity / HUNDRED


def _check_fine_gold(record_id: str, stored: Decimal, gross_weight: Decimal, purity: Decimal) -> None:
    expected = fine_gold_of(gross_weight, purity)
    if abs(stored - expected) >= FINE_GOLD_EPSILON:
        raise ValidationFailure(
            f"fine_gold {stored} disagrees with gross weight x purity ({expected})",
            field="fine_gold",
            record_id=record_id,
        )


def _check_purity(record_id: str, purity: Decimal, field_name: str = "purity") -> None:
    if purity < ZERO or purity > HUNDRED:
        raise ValidationFailure(
            f"{field_name} must be between 0 and 100, got {purity}",
            field=field_name,
            record_id=record_id,
        )


@dataclass(frozen=True)
class DataQualityWarning:
    """A non-fatal finding on a stored record (e.g. a missing amount read as 0)."""
    record_id: str
    field: str
    message: str


@dataclass(frozen=True)
class FinancialRecord:
    """An expense or income entry."""
    id: str
    kind: RecordKind
    category: str
    description: str
    amount: Decimal
    date: date
    payment_type: PaymentType = PaymentType.CASH
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.kind not in (RecordKind.EXPENSE, RecordKind.INCOME):
            raise ValidationFailure(
                f"Financial record kind must be expense or income, got {self.kind.value}",
                field="kind",
                record_id=self.id,
            )
        if self.amount < ZERO:
            raise ValidationFailure(
                f"Amount cannot be negative: {self.amount}", field="amount", record_id=self.id
            )


@dataclass(frozen=True)
class Merchant:
    """
    A merchant or karigar.

    total_due / total_owe are the opening balance as of account creation;
    everything after that is derived by replaying trades.
    """
    id: str
    name: str
    total_due: Decimal = ZERO
    total_owe: Decimal = ZERO
    party_type: PartyType = PartyType.MERCHANT
    phone: str = ""
    email: str = ""
    address: str = ""
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Trade:
    """One dated economic event affecting a merchant's balance."""
    id: str
    type: TradeType
    merchant_id: str
    total_amount: Decimal
    created_at: datetime
    trade_date: Optional[date] = None
    merchant_name: str = ""
    metal_type: Optional[MetalType] = None
    weight: Decimal = ZERO
    purity: Decimal = HUNDRED
    rate: Decimal = ZERO
    amount_paid: Decimal = ZERO
    amount_received: Decimal = ZERO
    settlement_direction: Optional[SettlementDirection] = None
    settlement_type: Optional[SettlementType] = None
    transfer_charges: Decimal = ZERO
    notes: str = ""

    def __post_init__(self):
        if self.type == TradeType.SETTLEMENT and self.settlement_direction is None:
            raise ValidationFailure(
                "Settlement trade requires a settlement direction",
                field="settlement_direction",
                record_id=self.id,
            )
        _check_purity(self.id, self.purity)

    @property
    def effective_date(self) -> date:
        """Trade date, falling back to the creation date."""
        return self.trade_date or self.created_at.date()

    @property
    def carries_gold(self) -> bool:
        """Settlement paid or received in physical gold."""
        return (
            self.type == TradeType.SETTLEMENT
            and self.settlement_type == SettlementType.GOLD
            and self.weight > ZERO
        )


@dataclass(frozen=True)
class GhaatTransaction:
    """
    A jewellery purchase or sale.

    total_gross_weight defaults to units x gross_weight_per_unit and fine_gold
    to total_gross_weight x purity / 100. A supplied fine_gold must agree with
    the recomputation within FINE_GOLD_EPSILON.
    """
    id: str
    type: GhaatType
    category: str
    units: int
    gross_weight_per_unit: Decimal
    purity: Decimal
    created_at: datetime
    transaction_date: Optional[date] = None
    total_gross_weight: Optional[Decimal] = None
    fine_gold: Optional[Decimal] = None

    # Counterparties
    karigar_id: Optional[str] = None
    karigar_name: str = ""
    merchant_id: Optional[str] = None
    merchant_name: str = ""

    # Purchase from karigar
    labor_type: Optional[LaborType] = None
    labor_amount: Decimal = ZERO
    gold_given_weight: Decimal = ZERO
    gold_given_purity: Decimal = ZERO
    cash_paid: Decimal = ZERO

    # Legacy direct sale
    amount_received: Decimal = ZERO

    # Pending/confirmed sale flow
    status: Optional[SaleStatus] = None
    group_id: Optional[str] = None
    group_size: Optional[int] = None
    rate_per_10gm: Decimal = ZERO
    total_amount: Decimal = ZERO
    settlement_type: Optional[SettlementType] = None
    gold_returned_weight: Decimal = ZERO
    gold_returned_purity: Decimal = ZERO
    cash_received: Decimal = ZERO
    confirmed_date: Optional[date] = None
    confirmed_units: Optional[int] = None
    confirmed_gross_weight: Optional[Decimal] = None
    confirmed_fine_gold: Optional[Decimal] = None
    dues_shortfall: Decimal = ZERO

    # Buy-back created from a confirmed sale's returned units
    source_transaction_id: Optional[str] = None
    notes: str = ""

    def __post_init__(self):
        if self.units < 0:
            raise ValidationFailure("Units cannot be negative", field="units", record_id=self.id)
        if self.gross_weight_per_unit < ZERO:
            raise ValidationFailure(
                "Gross weight per unit cannot be negative",
                field="gross_weight_per_unit",
                record_id=self.id,
            )
        _check_purity(self.id, self.purity)
        _check_purity(self.id, self.gold_given_purity, "gold_given_purity")
        _check_purity(self.id, self.gold_returned_purity, "gold_returned_purity")

        if self.total_gross_weight is None:
            object.__setattr__(self, "total_gross_weight", self.gross_weight_per_unit * self.units)
        if self.fine_gold is None:
            object.__setattr__(self, "fine_gold", fine_gold_of(self.total_gross_weight, self.purity))
        else:
            _check_fine_gold(self.id, self.fine_gold, self.total_gross_weight, self.purity)

    @property
    def effective_date(self) -> date:
        return self.transaction_date or self.created_at.date()

    @property
    def gold_given_fine(self) -> Decimal:
        """Fine gold handed to the karigar as payment."""
        return fine_gold_of(self.gold_given_weight, self.gold_given_purity)

    @property
    def gold_returned_fine(self) -> Decimal:
        """Fine gold the merchant handed back when settling."""
        return fine_gold_of(self.gold_returned_weight, self.gold_returned_purity)

    @property
    def realized_fine_gold(self) -> Decimal:
        """Fine gold actually sold (the kept part of a confirmed sale)."""
        if self.confirmed_fine_gold is not None:
            return self.confirmed_fine_gold
        return self.fine_gold

    @property
    def is_karigar_purchase(self) -> bool:
        """Buys from a karigar or without counterparty; excludes merchant returns."""
        return self.type == GhaatType.BUY and (
            bool(self.karigar_id) or (not self.karigar_id and not self.merchant_id)
        )

    @property
    def is_realized_sale(self) -> bool:
        """Confirmed sells and legacy sells without status."""
        return self.type == GhaatType.SELL and self.status != SaleStatus.PENDING


@dataclass(frozen=True)
class RawGoldLedgerEntry:
    """
    A loose fine-gold movement.

    Entries with a reference_id were created as a side effect of a trade or
    jewellery transaction and follow that record's lifecycle.
    """
    id: str
    type: LedgerEntryType
    source: LedgerSource
    gross_weight: Decimal
    purity: Decimal
    transaction_date: date
    created_at: datetime
    fine_gold: Optional[Decimal] = None
    reference_id: Optional[str] = None
    counterparty_name: str = ""
    counterparty_id: Optional[str] = None
    cash_amount: Decimal = ZERO
    notes: str = ""

    def __post_init__(self):
        if self.gross_weight < ZERO:
            raise ValidationFailure(
                "Gross weight cannot be negative", field="gross_weight", record_id=self.id
            )
        _check_purity(self.id, self.purity)
        if self.fine_gold is None:
            object.__setattr__(self, "fine_gold", fine_gold_of(self.gross_weight, self.purity))
        else:
            _check_fine_gold(self.id, self.fine_gold, self.gross_weight, self.purity)

    @property
    def is_derived(self) -> bool:
        return self.reference_id is not None

    @property
    def signed_fine_gold(self) -> Decimal:
        return self.fine_gold if self.type == LedgerEntryType.IN else -self.fine_gold


@dataclass(frozen=True)
class WeightBracket:
    """Half-open per-unit weight range [min, max); max None means unbounded."""
    label: str
    min: Decimal
    max: Optional[Decimal] = None

    def contains(self, weight: Decimal) -> bool:
        if weight < self.min:
            return False
        return self.max is None or weight < self.max


@dataclass(frozen=True)
class PendingSaleGroup:
    """Jewellery items handed to one merchant under one group id, not yet settled."""
    group_id: str
    merchant_id: str
    merchant_name: str
    date_given: Optional[date]
    items: Tuple[GhaatTransaction, ...] = field(default_factory=tuple)

    @property
    def total_fine_gold(self) -> Decimal:
        return sum((item.fine_gold for item in self.items), ZERO)

    @property
    def total_units(self) -> int:
        return sum(item.units for item in self.items)

    @property
    def total_gross_weight(self) -> Decimal:
        return sum((item.total_gross_weight for item in self.items), ZERO)
