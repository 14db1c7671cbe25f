"""
Jewellery (Ghaat) inventory and gold profit.

Stock nets buys against sells per category and per weight bracket. Every
sell reduces stock from the moment the piece is handed over, pending or
confirmed; pieces a merchant hands back are separate buy transactions.
Profit counts only karigar purchases and realized sales.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from bullion.core.config import validate_weight_brackets
from bullion.core.models import (
    TEN,
    ZERO,
    GhaatTransaction,
    GhaatType,
    LaborType,
    SaleStatus,
    WeightBracket,
)
from bullion.core.periods import format_month, month_label, month_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BracketStock:
    label: str
    units: int
    gross_weight: Decimal
    fine_gold: Decimal


@dataclass
class CategoryStock:
    """Stock of one category; brackets with nothing in them are left out."""
    category: str
    brackets: List[BracketStock] = field(default_factory=list)
    total_units: int = 0
    total_gross_weight: Decimal = ZERO
    total_fine_gold: Decimal = ZERO


@dataclass(frozen=True)
class JewelleryPnL:
    """Fine-gold denominated profit and loss (grams, not currency)."""
    total_buy_fine_gold: Decimal
    total_sell_fine_gold: Decimal
    gold_labor_paid: Decimal
    cash_labor_paid: Decimal
    net_gold_profit: Decimal


@dataclass(frozen=True)
class MerchantJewelleryDues:
    merchant_id: str
    fine_gold_pending: Decimal
    cash_due: Decimal


@dataclass(frozen=True)
class MonthlyProfit:
    month: str
    label: str
    start_fine_gold: Decimal
    end_fine_gold: Decimal
    stock_delta_profit: Decimal
    buy_fine_gold: Decimal
    sell_fine_gold: Decimal
    labor_gold: Decimal
    transaction_profit: Decimal


def stock_sign(txn: GhaatTransaction) -> int:
    return 1 if txn.type == GhaatType.BUY else -1


def sale_value(txn: GhaatTransaction) -> Decimal:
    """Agreed value of a confirmed sale item."""
    if txn.total_amount > ZERO:
        return txn.total_amount
    return txn.realized_fine_gold * txn.rate_per_10gm / TEN


def settlement_received(txn: GhaatTransaction) -> Decimal:
    """Cash plus returned gold (at the sale rate) recorded on a sale item."""
    return txn.cash_received + txn.amount_received + txn.gold_returned_fine * txn.rate_per_10gm / TEN


class JewelleryInventoryEngine:
    """
    Stock, profit and merchant dues from jewellery transactions.

    Usage:
        engine = JewelleryInventoryEngine(store.list_ghaat_transactions(),
                                          config.categories.jewellery,
                                          config.weight_brackets)
        chains = engine.calculate_stock("Chains")
        pnl = engine.calculate_pnl()
    """

    def __init__(
        self,
        transactions: Sequence[GhaatTransaction],
        categories: Sequence[str],
        brackets: Sequence[WeightBracket],
    ):
        self.transactions = list(transactions)
        self.categories = list(categories)
        self.brackets = validate_weight_brackets(list(brackets))

    def bracket_for(self, weight_per_unit: Decimal) -> Optional[WeightBracket]:
        for bracket in self.brackets:
            if bracket.contains(weight_per_unit):
                return bracket
        return None

    def calculate_stock(self, category: str) -> CategoryStock:
        """Units, gross weight and fine gold in hand for one category."""
        sums: Dict[str, List] = {b.label: [0, ZERO, ZERO] for b in self.brackets}
        for txn in self.transactions:
            if txn.category != category:
                continue
            bracket = self.bracket_for(txn.gross_weight_per_unit)
            if bracket is None:
                logger.warning(f"{txn.id}: weight {txn.gross_weight_per_unit} outside all brackets")
                continue
            sign = stock_sign(txn)
            acc = sums[bracket.label]
            acc[0] += sign * txn.units
            acc[1] += sign * txn.total_gross_weight
            acc[2] += sign * txn.fine_gold

        stock = CategoryStock(category=category)
        for bracket in self.brackets:
            units, gross, fine = sums[bracket.label]
            stock.total_units += units
            stock.total_gross_weight += gross
            stock.total_fine_gold += fine
            if units == 0 and fine == ZERO:
                continue
            stock.brackets.append(BracketStock(
                label=bracket.label, units=units, gross_weight=gross, fine_gold=fine
            ))
        return stock

    def all_categories(self) -> List[str]:
        """Configured categories in order, then any others seen in data."""
        seen = [c for c in dict.fromkeys(t.category for t in self.transactions) if c not in self.categories]
        return self.categories + sorted(seen)

    def calculate_inventory(self) -> List[CategoryStock]:
        return [self.calculate_stock(category) for category in self.all_categories()]

    def calculate_category_summary(self) -> List[CategoryStock]:
        """Category totals without bracket detail."""
        return [
            CategoryStock(
                category=stock.category,
                total_units=stock.total_units,
                total_gross_weight=stock.total_gross_weight,
                total_fine_gold=stock.total_fine_gold,
            )
            for stock in self.calculate_inventory()
        ]

    def calculate_pnl(self) -> JewelleryPnL:
        """
        Gold profit over all transactions.

        Buys count only when bought from a karigar (pieces handed back by a
        merchant are not a cost). Sells count only when realized, at the
        confirmed (kept) fine gold.
        """
        buy = sell = gold_labor = cash_labor = ZERO
        for txn in self.transactions:
            if txn.is_karigar_purchase:
                buy += txn.fine_gold
                if txn.labor_type == LaborType.GOLD:
                    gold_labor += txn.labor_amount
                elif txn.labor_type == LaborType.CASH:
                    cash_labor += txn.labor_amount
            elif txn.is_realized_sale:
                sell += txn.realized_fine_gold

        return JewelleryPnL(
            total_buy_fine_gold=buy,
            total_sell_fine_gold=sell,
            gold_labor_paid=gold_labor,
            cash_labor_paid=cash_labor,
            net_gold_profit=sell - buy - gold_labor,
        )

    def calculate_merchant_jewellery_dues(self, merchant_id: str) -> MerchantJewelleryDues:
        """
        Jewellery position of one merchant.

        fine_gold_pending: fine gold handed over and not yet settled.
        cash_due: sum over confirmed sale groups of the unpaid value, each
        group clamped at 0.
        """
        pending = ZERO
        groups: Dict[str, List[GhaatTransaction]] = {}
        for txn in self.transactions:
            if txn.type != GhaatType.SELL or txn.merchant_id != merchant_id:
                continue
            if txn.status == SaleStatus.PENDING:
                pending += txn.fine_gold
            elif txn.status == SaleStatus.CONFIRMED:
                groups.setdefault(txn.group_id or txn.id, []).append(txn)

        cash_due = ZERO
        for items in groups.values():
            value = sum((sale_value(t) for t in items), ZERO)
            received = sum((settlement_received(t) for t in items), ZERO)
            cash_due += max(ZERO, value - received)

        return MerchantJewelleryDues(merchant_id=merchant_id, fine_gold_pending=pending, cash_due=cash_due)

    def calculate_monthly_profit(self) -> List[MonthlyProfit]:
        """
        Profit per calendar month with activity, two ways.

        stock_delta_profit: change in fine gold held over the month.
        transaction_profit: realized sells - karigar buys - gold labour.
        """
        by_month: Dict[tuple, List[GhaatTransaction]] = {}
        for txn in sorted(self.transactions, key=lambda t: (t.effective_date, t.created_at, t.id)):
            by_month.setdefault(month_of(txn.effective_date), []).append(txn)

        results = []
        running = ZERO
        for ym in sorted(by_month):
            start = running
            buy = sell = labor = ZERO
            for txn in by_month[ym]:
                running += stock_sign(txn) * txn.fine_gold
                if txn.is_karigar_purchase:
                    buy += txn.fine_gold
                    if txn.labor_type == LaborType.GOLD:
                        labor += txn.labor_amount
                elif txn.is_realized_sale:
                    sell += txn.realized_fine_gold
            results.append(MonthlyProfit(
                month=format_month(ym),
                label=month_label(ym),
                start_fine_gold=start,
                end_fine_gold=running,
                stock_delta_profit=running - start,
                buy_fine_gold=buy,
                sell_fine_gold=sell,
                labor_gold=labor,
                transaction_profit=sell - buy - labor,
            ))
        return results
