"""Bullion stock per metal, netted from trades."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Sequence

from bullion.core.models import ZERO, MetalType, SettlementDirection, SettlementType, Trade, TradeType

logger = logging.getLogger(__name__)

_SETTLEMENT_METALS = {
    SettlementType.GOLD: MetalType.GOLD,
    SettlementType.SILVER: MetalType.SILVER,
}


@dataclass
class MetalStock:
    """Net weight held per metal and how many trades of each type were seen."""
    weights: Dict[MetalType, Decimal] = field(default_factory=lambda: {m: ZERO for m in MetalType})
    trade_counts: Dict[TradeType, int] = field(default_factory=lambda: {t: 0 for t in TradeType})

    @property
    def gold(self) -> Decimal:
        return self.weights[MetalType.GOLD]

    @property
    def silver(self) -> Decimal:
        return self.weights[MetalType.SILVER]


class MetalStockEngine:
    """
    Buys add weight, sells remove it. Gold or silver settlements add weight
    when receiving and remove it when paying. Transfers carry no metal.
    """

    @staticmethod
    def calculate(trades: Sequence[Trade]) -> MetalStock:
        stock = MetalStock()
        for trade in trades:
            stock.trade_counts[trade.type] += 1

            if trade.type in (TradeType.BUY, TradeType.SELL):
                if trade.metal_type is None:
                    logger.warning(f"Trade {trade.id} has no metal type, skipped in stock")
                    continue
                sign = 1 if trade.type == TradeType.BUY else -1
                stock.weights[trade.metal_type] += sign * trade.weight

            elif trade.type == TradeType.SETTLEMENT and trade.settlement_type in _SETTLEMENT_METALS:
                metal = _SETTLEMENT_METALS[trade.settlement_type]
                sign = 1 if trade.settlement_direction == SettlementDirection.RECEIVING else -1
                stock.weights[metal] += sign * trade.weight

        return stock
