"""
Running balances per merchant or karigar.

Replays a party's trades in chronological order against the opening
("older") dues and advances recorded on the party, producing the balance
after every trade rather than a single final figure.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from bullion.core.exceptions import InvalidRange
from bullion.core.models import ZERO, Merchant, SettlementDirection, Trade, TradeType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeWithBalance:
    """A trade together with the party balance right after it."""
    trade: Trade
    running_dues: Decimal
    running_advances: Decimal


@dataclass
class BalanceHistory:
    """Result of replaying one party's trades."""
    merchant_id: str
    opening_dues: Decimal
    opening_advances: Decimal
    entries: List[TradeWithBalance] = field(default_factory=list)

    @property
    def closing_dues(self) -> Decimal:
        return self.entries[-1].running_dues if self.entries else self.opening_dues

    @property
    def closing_advances(self) -> Decimal:
        return self.entries[-1].running_advances if self.entries else self.opening_advances

    def in_range(self, start: Optional[date] = None, end: Optional[date] = None) -> List[TradeWithBalance]:
        """
        Entries dated within [start, end], keeping their replayed balances.

        Raises:
            InvalidRange: If end precedes start
        """
        if start is not None and end is not None and end < start:
            raise InvalidRange(start, end)
        return [
            entry for entry in self.entries
            if (start is None or entry.trade.effective_date >= start)
            and (end is None or entry.trade.effective_date <= end)
        ]


@dataclass(frozen=True)
class MerchantBalanceSummary:
    merchant_id: str
    name: str
    dues: Decimal
    advances: Decimal
    trade_count: int


def replay_key(trade: Trade) -> Tuple:
    """Chronological order: trade date, then creation time, then id."""
    return trade.effective_date, trade.created_at, trade.id


def apply_trade(dues: Decimal, advances: Decimal, trade: Trade) -> Tuple[Decimal, Decimal]:
    """
    Balance after one trade.

    - buy: the unpaid part of the amount adds to dues
    - sell: the unreceived part of the amount adds to dues
    - settlement: receiving reduces dues, paying reduces advances
    - transfer: no effect
    """
    if trade.type == TradeType.BUY:
        return dues + (trade.total_amount - trade.amount_paid), advances
    if trade.type == TradeType.SELL:
        return dues + (trade.total_amount - trade.amount_received), advances
    if trade.type == TradeType.SETTLEMENT:
        if trade.settlement_direction == SettlementDirection.RECEIVING:
            return dues - trade.total_amount, advances
        return dues, advances - trade.total_amount
    return dues, advances


class PartyBalanceLedger:
    """
    Replays trades into running dues/advances.

    Balances are never clamped; a negative figure is a valid state.

    Usage:
        ledger = PartyBalanceLedger(store.list_trades())
        history = ledger.history_for(merchant)
        for entry in history.in_range(date(2024, 4, 1), date(2024, 4, 30)):
            print(entry.trade.id, entry.running_dues)
    """

    def __init__(self, trades: Sequence[Trade]):
        self.trades = list(trades)

    def trades_for(self, merchant_id: str) -> List[Trade]:
        return sorted((t for t in self.trades if t.merchant_id == merchant_id), key=replay_key)

    def replay(
        self,
        merchant_id: str,
        opening_dues: Decimal = ZERO,
        opening_advances: Decimal = ZERO,
    ) -> BalanceHistory:
        """Replay a party's trades from its opening balance."""
        history = BalanceHistory(
            merchant_id=merchant_id,
            opening_dues=opening_dues,
            opening_advances=opening_advances,
        )
        dues, advances = opening_dues, opening_advances
        for trade in self.trades_for(merchant_id):
            dues, advances = apply_trade(dues, advances, trade)
            history.entries.append(TradeWithBalance(trade=trade, running_dues=dues, running_advances=advances))

        logger.debug(
            f"Replayed {len(history.entries)} trades for {merchant_id}: "
            f"dues {history.closing_dues}, advances {history.closing_advances}"
        )
        return history

    def history_for(self, merchant: Merchant) -> BalanceHistory:
        return self.replay(merchant.id, merchant.total_due, merchant.total_owe)

    def summarize(self, merchants: Sequence[Merchant]) -> List[MerchantBalanceSummary]:
        """
        Current balance of every party, largest outstanding first.

        Ordered by |dues| + |advances| descending, ties by name.
        """
        summaries = []
        for merchant in merchants:
            history = self.history_for(merchant)
            summaries.append(MerchantBalanceSummary(
                merchant_id=merchant.id,
                name=merchant.name,
                dues=history.closing_dues,
                advances=history.closing_advances,
                trade_count=len(history.entries),
            ))
        summaries.sort(key=lambda s: (-(abs(s.dues) + abs(s.advances)), s.name))
        return summaries
