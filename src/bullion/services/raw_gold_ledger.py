"""
Raw (loose) fine-gold ledger.

Replays in/out movements chronologically to attach a running fine-gold
balance to each entry. A display window starts from the balance carried in
from every earlier entry, so a filtered view shows true running balances.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from bullion.core.exceptions import InvalidRange, RecordNotFound, ReferentialIntegrityViolation
from bullion.core.models import ZERO, LedgerEntryType, RawGoldLedgerEntry, RecordKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerRow:
    entry: RawGoldLedgerEntry
    running_balance: Decimal


@dataclass
class RawGoldView:
    """Window of the ledger, newest first, with balances computed oldest first."""
    start: Optional[date]
    end: Optional[date]
    opening_balance: Decimal
    rows: List[LedgerRow] = field(default_factory=list)

    @property
    def closing_balance(self) -> Decimal:
        return self.rows[0].running_balance if self.rows else self.opening_balance


@dataclass(frozen=True)
class RawGoldStats:
    """Totals over the whole history, independent of any window."""
    total_in: Decimal
    total_out: Decimal
    balance: Decimal
    count: int


def ledger_key(entry: RawGoldLedgerEntry) -> Tuple:
    return entry.transaction_date, entry.created_at, entry.id


class RawGoldLedger:
    """
    Running fine-gold balance over raw gold ledger entries.

    Usage:
        ledger = RawGoldLedger(store.list_raw_gold_ledger_entries())
        view = ledger.view(date(2024, 4, 1), date(2024, 4, 30))
        print(view.opening_balance, ledger.stats().balance)
    """

    def __init__(self, entries: Sequence[RawGoldLedgerEntry]):
        self.entries = sorted(entries, key=ledger_key)

    def view(self, start: Optional[date] = None, end: Optional[date] = None) -> RawGoldView:
        """
        Entries dated within [start, end] with running balances.

        Raises:
            InvalidRange: If end precedes start
        """
        if start is not None and end is not None and end < start:
            raise InvalidRange(start, end)

        opening = sum(
            (e.signed_fine_gold for e in self.entries if start is not None and e.transaction_date < start),
            ZERO,
        )
        in_window = [
            e for e in self.entries
            if (start is None or e.transaction_date >= start)
            and (end is None or e.transaction_date <= end)
        ]

        rows = []
        balance = opening
        for entry in in_window:
            balance += entry.signed_fine_gold
            rows.append(LedgerRow(entry=entry, running_balance=balance))
        rows.reverse()

        logger.debug(f"Raw gold view {start}..{end}: opening {opening}, {len(rows)} entries")
        return RawGoldView(start=start, end=end, opening_balance=opening, rows=rows)

    def stats(self) -> RawGoldStats:
        total_in = sum((e.fine_gold for e in self.entries if e.type == LedgerEntryType.IN), ZERO)
        total_out = sum((e.fine_gold for e in self.entries if e.type == LedgerEntryType.OUT), ZERO)
        return RawGoldStats(
            total_in=total_in,
            total_out=total_out,
            balance=total_in - total_out,
            count=len(self.entries),
        )

    def ensure_deletable(self, entry_id: str) -> RawGoldLedgerEntry:
        """
        Check that an entry may be deleted on its own.

        Raises:
            RecordNotFound: If no entry has the id
            ReferentialIntegrityViolation: If the entry was derived from a
                trade or jewellery transaction
        """
        for entry in self.entries:
            if entry.id == entry_id:
                if entry.is_derived:
                    raise ReferentialIntegrityViolation(
                        f"Raw gold entry {entry_id} was created by {entry.reference_id}; "
                        f"edit or delete the originating trade or jewellery transaction instead",
                        record_id=entry_id,
                        reference_id=entry.reference_id,
                    )
                return entry
        raise RecordNotFound(RecordKind.RAW_GOLD_ENTRY.value, entry_id)

    def entries_for_counterparty(self, counterparty_id: str) -> List[LedgerRow]:
        """A merchant's or karigar's movements, oldest first, with their own running total."""
        rows = []
        balance = ZERO
        for entry in self.entries:
            if entry.counterparty_id == counterparty_id:
                balance += entry.signed_fine_gold
                rows.append(LedgerRow(entry=entry, running_balance=balance))
        return rows
