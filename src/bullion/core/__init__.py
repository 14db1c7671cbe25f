"""
Core module - Foundation components for bullion.

Provides:
- Core models: FinancialRecord, Trade, Merchant, GhaatTransaction, RawGoldLedgerEntry
- LedgerConfig: Category lists and weight brackets from JSON with defaults
- Parsing: typed records and data-quality warnings at the store boundary
- Commands: atomic mutations carrying derived raw gold ledger effects
- DatabaseManager: SQLite database management
- RecordStore: record store with cascading deletes and audit logging
- AuditLogger: Audit log of every mutation
"""

from bullion.core.exceptions import (
    BullionError,
    DatabaseError,
    NotAuthenticated,
    ValidationFailure,
    ReferentialIntegrityViolation,
    InvalidRange,
    ConfigurationError,
    RecordNotFound,
    WorkflowStateError,
)
from bullion.core.models import (
    ZERO,
    FINE_GOLD_EPSILON,
    RecordKind,
    PaymentType,
    TradeType,
    MetalType,
    SettlementDirection,
    SettlementType,
    PartyType,
    GhaatType,
    LaborType,
    SaleStatus,
    LedgerEntryType,
    LedgerSource,
    DataQualityWarning,
    FinancialRecord,
    Merchant,
    Trade,
    GhaatTransaction,
    RawGoldLedgerEntry,
    WeightBracket,
    PendingSaleGroup,
    fine_gold_of,
)
from bullion.core.config import (
    LedgerConfig,
    DEFAULT_CONFIG,
    validate_weight_brackets,
    build_weight_brackets,
    build_manual_net_profit,
)
from bullion.core.parsing import (
    ParseResult,
    parse_financial_record,
    parse_merchant,
    parse_trade,
    parse_ghaat_transaction,
    parse_raw_gold_entry,
    parse_rows,
    to_row,
)
from bullion.core.commands import (
    LedgerEffect,
    RecordCommand,
    RecordGoldPayment,
    derive_ledger_effect,
    new_id,
)
from bullion.core.database import DatabaseManager
from bullion.core.audit import AuditLogger
from bullion.core.record_store import RecordStore, Snapshot

__all__ = [
    # Exceptions
    "BullionError",
    "DatabaseError",
    "NotAuthenticated",
    "ValidationFailure",
    "ReferentialIntegrityViolation",
    "InvalidRange",
    "ConfigurationError",
    "RecordNotFound",
    "WorkflowStateError",
    # Models
    "ZERO",
    "FINE_GOLD_EPSILON",
    "RecordKind",
    "PaymentType",
    "TradeType",
    "MetalType",
    "SettlementDirection",
    "SettlementType",
    "PartyType",
    "GhaatType",
    "LaborType",
    "SaleStatus",
    "LedgerEntryType",
    "LedgerSource",
    "DataQualityWarning",
    "FinancialRecord",
    "Merchant",
    "Trade",
    "GhaatTransaction",
    "RawGoldLedgerEntry",
    "WeightBracket",
    "PendingSaleGroup",
    "fine_gold_of",
    # Configuration
    "LedgerConfig",
    "DEFAULT_CONFIG",
    "validate_weight_brackets",
    "build_weight_brackets",
    "build_manual_net_profit",
    # Parsing
    "ParseResult",
    "parse_financial_record",
    "parse_merchant",
    "parse_trade",
    "parse_ghaat_transaction",
    "parse_raw_gold_entry",
    "parse_rows",
    "to_row",
    # Commands and storage
    "LedgerEffect",
    "RecordCommand",
    "RecordGoldPayment",
    "derive_ledger_effect",
    "new_id",
    "DatabaseManager",
    "AuditLogger",
    "RecordStore",
    "Snapshot",
]
