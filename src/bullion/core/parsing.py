"""
Store-boundary parsing.

Raw rows (dicts with snake_case keys, as stored) become typed, frozen records.
Null-defaulting happens here and only here:

- malformed values (non-numeric text, bad dates, unknown enum values) raise
  ValidationFailure
- absent numeric fields needed for replay become Decimal("0") and produce a
  DataQualityWarning
- a stored fine_gold that disagrees with gross weight x purity is replaced by
  the recomputed value and produces a DataQualityWarning
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type

import pandas as pd

from bullion.core.exceptions import ValidationFailure
from bullion.core.models import (
    FINE_GOLD_EPSILON,
    HUNDRED,
    ZERO,
    DataQualityWarning,
    FinancialRecord,
    GhaatTransaction,
    GhaatType,
    LaborType,
    LedgerEntryType,
    LedgerSource,
    Merchant,
    MetalType,
    PartyType,
    PaymentType,
    RawGoldLedgerEntry,
    RecordKind,
    SaleStatus,
    SettlementDirection,
    SettlementType,
    Trade,
    TradeType,
    fine_gold_of,
)

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]
Warnings = Optional[List[DataQualityWarning]]

# Older rows marked confirmed sales as "sold"
_STATUS_ALIASES = {"sold": SaleStatus.CONFIRMED.value}


@dataclass
class ParseResult:
    """Result of parsing a batch of stored rows."""
    records: list = field(default_factory=list)
    errors: List[ValidationFailure] = field(default_factory=list)
    warnings: List[DataQualityWarning] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def _is_missing(value: Any) -> bool:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return True
    return pd.api.types.is_scalar(value) and pd.isna(value)


def _warn(warnings: Warnings, record_id: str, field_name: str, message: str) -> None:
    warning = DataQualityWarning(record_id=record_id, field=field_name, message=message)
    logger.warning(f"{record_id}: {message}")
    if warnings is not None:
        warnings.append(warning)


def _record_id(row: Row) -> str:
    value = row.get("id")
    if _is_missing(value):
        raise ValidationFailure("Record has no id", field="id")
    return str(value)


def _to_decimal(value: Any, record_id: str, field_name: str) -> Decimal:
    try:
        result = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        raise ValidationFailure(
            f"{field_name} is not a number: {value!r}", field=field_name, record_id=record_id
        )
    if not result.is_finite():
        raise ValidationFailure(
            f"{field_name} is not a finite number: {value!r}", field=field_name, record_id=record_id
        )
    return result


def _decimal(
    row: Row,
    field_name: str,
    record_id: str,
    warnings: Warnings,
    warn_if_missing: bool = False,
    default: Decimal = ZERO,
) -> Decimal:
    """Read a Decimal field; an absent value is the default, optionally flagged."""
    value = row.get(field_name)
    if _is_missing(value):
        if warn_if_missing:
            _warn(warnings, record_id, field_name, f"{field_name} is missing, treated as {default}")
        return default
    return _to_decimal(value, record_id, field_name)


def _optional_decimal(row: Row, field_name: str, record_id: str) -> Optional[Decimal]:
    value = row.get(field_name)
    if _is_missing(value):
        return None
    return _to_decimal(value, record_id, field_name)


def _non_negative(value: Decimal, field_name: str, record_id: str) -> Decimal:
    if value < ZERO:
        raise ValidationFailure(
            f"{field_name} cannot be negative: {value}", field=field_name, record_id=record_id
        )
    return value


def _purity(row: Row, field_name: str, record_id: str, warnings: Warnings,
            warn_if_missing: bool = False, default: Decimal = ZERO) -> Decimal:
    value = _decimal(row, field_name, record_id, warnings, warn_if_missing, default)
    if value < ZERO or value > HUNDRED:
        raise ValidationFailure(
            f"{field_name} must be between 0 and 100, got {value}",
            field=field_name,
            record_id=record_id,
        )
    return value


def _optional_int(row: Row, field_name: str, record_id: str) -> Optional[int]:
    value = row.get(field_name)
    if _is_missing(value):
        return None
    number = _to_decimal(value, record_id, field_name)
    if number != number.to_integral_value():
        raise ValidationFailure(
            f"{field_name} must be a whole number, got {value!r}", field=field_name, record_id=record_id
        )
    return int(number)


def _timestamp(value: Any, record_id: str, field_name: str) -> pd.Timestamp:
    try:
        ts = pd.to_datetime(value)
    except (ValueError, TypeError) as e:
        raise ValidationFailure(
            f"{field_name} is not a valid date: {value!r}", field=field_name, record_id=record_id
        ) from e
    if pd.isna(ts):
        raise ValidationFailure(
            f"{field_name} is not a valid date: {value!r}", field=field_name, record_id=record_id
        )
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


def _date(row: Row, field_name: str, record_id: str) -> Optional[date]:
    value = row.get(field_name)
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return _timestamp(value, record_id, field_name).date()


def _datetime(row: Row, field_name: str, record_id: str) -> Optional[datetime]:
    value = row.get(field_name)
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return _timestamp(value, record_id, field_name).to_pydatetime()


def _created_at(row: Row, record_id: str, fallback: Optional[date], warnings: Warnings) -> datetime:
    created_at = _datetime(row, "created_at", record_id)
    if created_at is not None:
        return created_at
    if fallback is None:
        raise ValidationFailure("Record has neither a date nor created_at", field="created_at",
                                record_id=record_id)
    _warn(warnings, record_id, "created_at", "created_at is missing, using the record date")
    return datetime.combine(fallback, datetime.min.time())


def _enum(
    enum_cls: Type[Enum],
    row: Row,
    field_name: str,
    record_id: str,
    required: bool = False,
    aliases: Optional[Dict[str, str]] = None,
):
    value = row.get(field_name)
    if _is_missing(value):
        if required:
            raise ValidationFailure(f"{field_name} is required", field=field_name, record_id=record_id)
        return None
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    if aliases:
        text = aliases.get(text, text)
    try:
        return enum_cls(text)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailure(
            f"Unknown {field_name} {value!r} (expected one of: {allowed})",
            field=field_name,
            record_id=record_id,
        )


def _text(row: Row, field_name: str) -> str:
    value = row.get(field_name)
    return "" if _is_missing(value) else str(value)


def _optional_text(row: Row, field_name: str) -> Optional[str]:
    value = row.get(field_name)
    return None if _is_missing(value) else str(value)


def _checked_fine_gold(
    row: Row, record_id: str, gross_weight: Decimal, purity: Decimal, warnings: Warnings
) -> Optional[Decimal]:
    """Stored fine gold if it agrees with the recomputation, otherwise None."""
    stored = _optional_decimal(row, "fine_gold", record_id)
    if stored is None:
        return None
    expected = fine_gold_of(gross_weight, purity)
    if abs(stored - expected) >= FINE_GOLD_EPSILON:
        _warn(warnings, record_id, "fine_gold",
              f"stored fine_gold {stored} differs from computed {expected}, recomputed")
        return None
    return stored


def parse_financial_record(row: Row, warnings: Warnings = None) -> FinancialRecord:
    """Parse an expense or income row."""
    record_id = _record_id(row)
    kind = _enum(RecordKind, row, "kind", record_id, required=True)
    record_date = _date(row, "date", record_id)
    if record_date is None:
        raise ValidationFailure("date is required", field="date", record_id=record_id)
    amount = _decimal(row, "amount", record_id, warnings, warn_if_missing=True)

    return FinancialRecord(
        id=record_id,
        kind=kind,
        category=_text(row, "category"),
        description=_text(row, "description"),
        amount=_non_negative(amount, "amount", record_id),
        date=record_date,
        payment_type=_enum(PaymentType, row, "payment_type", record_id) or PaymentType.CASH,
        created_at=_datetime(row, "created_at", record_id),
    )


def parse_merchant(row: Row, warnings: Warnings = None) -> Merchant:
    """Parse a merchant or karigar row. Opening balances default to 0."""
    record_id = _record_id(row)
    name = _text(row, "name")
    if not name:
        raise ValidationFailure("name is required", field="name", record_id=record_id)

    return Merchant(
        id=record_id,
        name=name,
        total_due=_decimal(row, "total_due", record_id, warnings),
        total_owe=_decimal(row, "total_owe", record_id, warnings),
        party_type=_enum(PartyType, row, "party_type", record_id) or PartyType.MERCHANT,
        phone=_text(row, "phone"),
        email=_text(row, "email"),
        address=_text(row, "address"),
        created_at=_datetime(row, "created_at", record_id),
    )


def parse_trade(row: Row, warnings: Warnings = None) -> Trade:
    """Parse a trade row."""
    record_id = _record_id(row)
    trade_type = _enum(TradeType, row, "type", record_id, required=True)
    merchant_id = _optional_text(row, "merchant_id")
    if merchant_id is None:
        raise ValidationFailure("merchant_id is required", field="merchant_id", record_id=record_id)

    trade_date = _date(row, "trade_date", record_id)
    created_at = _created_at(row, record_id, trade_date, warnings)

    is_metal_trade = trade_type in (TradeType.BUY, TradeType.SELL)
    amounts = {
        name: _non_negative(
            _decimal(row, name, record_id, warnings, warn_if_missing=needed), name, record_id
        )
        for name, needed in (
            ("total_amount", True),
            ("amount_paid", trade_type == TradeType.BUY),
            ("amount_received", trade_type == TradeType.SELL),
            ("weight", is_metal_trade),
            ("rate", False),
            ("transfer_charges", False),
        )
    }

    return Trade(
        id=record_id,
        type=trade_type,
        merchant_id=merchant_id,
        created_at=created_at,
        trade_date=trade_date,
        merchant_name=_text(row, "merchant_name"),
        metal_type=_enum(MetalType, row, "metal_type", record_id),
        purity=_purity(row, "purity", record_id, warnings, default=HUNDRED),
        settlement_direction=_enum(SettlementDirection, row, "settlement_direction", record_id),
        settlement_type=_enum(SettlementType, row, "settlement_type", record_id),
        notes=_text(row, "notes"),
        **amounts,
    )


def parse_ghaat_transaction(row: Row, warnings: Warnings = None) -> GhaatTransaction:
    """
    Parse a jewellery transaction row.

    units, gross_weight_per_unit and purity drive every stock figure; when
    absent they are read as 0 and flagged. A missing total_gross_weight is
    derived from units x gross_weight_per_unit.
    """
    record_id = _record_id(row)
    ghaat_type = _enum(GhaatType, row, "type", record_id, required=True)
    transaction_date = _date(row, "transaction_date", record_id)
    created_at = _created_at(row, record_id, transaction_date, warnings)

    units = _optional_int(row, "units", record_id)
    if units is None:
        _warn(warnings, record_id, "units", "units is missing, treated as 0")
        units = 0
    per_unit = _non_negative(
        _decimal(row, "gross_weight_per_unit", record_id, warnings, warn_if_missing=True),
        "gross_weight_per_unit",
        record_id,
    )
    purity = _purity(row, "purity", record_id, warnings, warn_if_missing=True)
    total_gross = _optional_decimal(row, "total_gross_weight", record_id)
    if total_gross is None:
        total_gross = per_unit * units

    return GhaatTransaction(
        id=record_id,
        type=ghaat_type,
        category=_text(row, "category"),
        units=units,
        gross_weight_per_unit=per_unit,
        purity=purity,
        created_at=created_at,
        transaction_date=transaction_date,
        total_gross_weight=total_gross,
        fine_gold=_checked_fine_gold(row, record_id, total_gross, purity, warnings),
        karigar_id=_optional_text(row, "karigar_id"),
        karigar_name=_text(row, "karigar_name"),
        merchant_id=_optional_text(row, "merchant_id"),
        merchant_name=_text(row, "merchant_name"),
        labor_type=_enum(LaborType, row, "labor_type", record_id),
        labor_amount=_decimal(row, "labor_amount", record_id, warnings),
        gold_given_weight=_decimal(row, "gold_given_weight", record_id, warnings),
        gold_given_purity=_purity(row, "gold_given_purity", record_id, warnings),
        cash_paid=_decimal(row, "cash_paid", record_id, warnings),
        amount_received=_decimal(row, "amount_received", record_id, warnings),
        status=_enum(SaleStatus, row, "status", record_id, aliases=_STATUS_ALIASES),
        group_id=_optional_text(row, "group_id"),
        group_size=_optional_int(row, "group_size", record_id),
        rate_per_10gm=_decimal(row, "rate_per_10gm", record_id, warnings),
        total_amount=_decimal(row, "total_amount", record_id, warnings),
        settlement_type=_enum(SettlementType, row, "settlement_type", record_id),
        gold_returned_weight=_decimal(row, "gold_returned_weight", record_id, warnings),
        gold_returned_purity=_purity(row, "gold_returned_purity", record_id, warnings),
        cash_received=_decimal(row, "cash_received", record_id, warnings),
        confirmed_date=_date(row, "confirmed_date", record_id),
        confirmed_units=_optional_int(row, "confirmed_units", record_id),
        confirmed_gross_weight=_optional_decimal(row, "confirmed_gross_weight", record_id),
        confirmed_fine_gold=_optional_decimal(row, "confirmed_fine_gold", record_id),
        dues_shortfall=_decimal(row, "dues_shortfall", record_id, warnings),
        source_transaction_id=_optional_text(row, "source_transaction_id"),
        notes=_text(row, "notes"),
    )


def parse_raw_gold_entry(row: Row, warnings: Warnings = None) -> RawGoldLedgerEntry:
    """Parse a raw gold ledger row."""
    record_id = _record_id(row)
    entry_type = _enum(LedgerEntryType, row, "type", record_id, required=True)
    source = _enum(LedgerSource, row, "source", record_id, required=True)

    transaction_date = _date(row, "transaction_date", record_id)
    created_at = _created_at(row, record_id, transaction_date, warnings)
    if transaction_date is None:
        _warn(warnings, record_id, "transaction_date", "transaction_date is missing, using created_at")
        transaction_date = created_at.date()

    gross_weight = _non_negative(
        _decimal(row, "gross_weight", record_id, warnings, warn_if_missing=True), "gross_weight", record_id
    )
    purity = _purity(row, "purity", record_id, warnings, warn_if_missing=True)

    return RawGoldLedgerEntry(
        id=record_id,
        type=entry_type,
        source=source,
        gross_weight=gross_weight,
        purity=purity,
        transaction_date=transaction_date,
        created_at=created_at,
        fine_gold=_checked_fine_gold(row, record_id, gross_weight, purity, warnings),
        reference_id=_optional_text(row, "reference_id"),
        counterparty_name=_text(row, "counterparty_name"),
        counterparty_id=_optional_text(row, "counterparty_id"),
        cash_amount=_decimal(row, "cash_amount", record_id, warnings),
        notes=_text(row, "notes"),
    )


PARSERS: Dict[RecordKind, Callable[..., Any]] = {
    RecordKind.EXPENSE: parse_financial_record,
    RecordKind.INCOME: parse_financial_record,
    RecordKind.MERCHANT: parse_merchant,
    RecordKind.TRADE: parse_trade,
    RecordKind.GHAAT_TRANSACTION: parse_ghaat_transaction,
    RecordKind.RAW_GOLD_ENTRY: parse_raw_gold_entry,
}


def parse_rows(rows: Sequence[Row], parser: Callable[..., Any]) -> ParseResult:
    """
    Parse a batch of rows, collecting failures instead of stopping.

    Args:
        rows: Stored rows
        parser: One of the parse_* functions

    Returns:
        ParseResult with the parsed records, the rows that failed and any
        data-quality warnings
    """
    result = ParseResult()
    for row in rows:
        try:
            result.records.append(parser(row, result.warnings))
        except ValidationFailure as e:
            logger.warning(f"Skipping row {row.get('id')}: {e.message}")
            result.errors.append(e)
    return result


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def to_row(record: Any) -> Dict[str, Any]:
    """Serialize a record to a storable row: Decimals as strings, dates in ISO-8601."""
    return {f.name: _serialize(getattr(record, f.name)) for f in fields(record)}
