"""
Business profit in money terms over a month range.

Gross profit = sales - purchases + transfer charges + other income - expenses,
for the range as a whole and per month. Net profit is the same monetary
figure; the owner's manually entered net profit per month is reported next
to it when configured.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from bullion.core.models import ZERO, FinancialRecord, SettlementDirection, Trade, TradeType
from bullion.core.periods import (
    YearMonth,
    format_month,
    iter_months,
    month_label,
    month_of,
    parse_month,
)
from bullion.services.period_analytics import AnalyticsQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonthlyBusinessProfit:
    month: str   # YYYY-MM
    label: str   # Mar 2024
    sales: Decimal = ZERO
    purchases: Decimal = ZERO
    transfer_charges: Decimal = ZERO
    settlement_impact: Decimal = ZERO
    income: Decimal = ZERO
    expenses: Decimal = ZERO

    @property
    def gross_profit(self) -> Decimal:
        return self.sales - self.purchases + self.transfer_charges + self.income - self.expenses


@dataclass
class BusinessProfit:
    """
    Money profit of the business for a month range.

    Attributes:
        settlement_impact: Settlements received minus settlements paid;
            reported only, not part of gross profit
        manual_net_profit: Sum of the entered net profit of the months in
            range, None when no month in range has one
        monthly: One row per month of the range, empty months included
    """
    start_month: str
    end_month: str
    total_sales: Decimal = ZERO
    total_purchases: Decimal = ZERO
    total_transfer_charges: Decimal = ZERO
    settlement_impact: Decimal = ZERO
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    manual_net_profit: Optional[Decimal] = None
    trade_counts: Dict[TradeType, int] = field(default_factory=lambda: {t: 0 for t in TradeType})
    monthly: List[MonthlyBusinessProfit] = field(default_factory=list)

    @property
    def gross_profit(self) -> Decimal:
        return (
            self.total_sales - self.total_purchases + self.total_transfer_charges
            + self.total_income - self.total_expenses
        )

    @property
    def net_profit(self) -> Decimal:
        return self.gross_profit


class _MonthTotals:
    def __init__(self):
        self.sales = ZERO
        self.purchases = ZERO
        self.transfer_charges = ZERO
        self.settlement_impact = ZERO
        self.income = ZERO
        self.expenses = ZERO


class BusinessProfitEngine:
    """
    Gross profit from trades, income and expenses.

    Only the month range of the query is used; categories, search text and
    sort order apply to period analytics, not to profit.

    Usage:
        engine = BusinessProfitEngine(store.list_trades(),
                                      store.list_financial_records("expense"),
                                      store.list_financial_records("income"),
                                      config.manual_net_profit)
        result = engine.analyze(AnalyticsQuery("2024-04", "2024-06"))
    """

    def __init__(
        self,
        trades: Sequence[Trade],
        expenses: Sequence[FinancialRecord],
        income: Sequence[FinancialRecord],
        manual_net_profit: Optional[Mapping[str, Decimal]] = None,
    ):
        self.trades = list(trades)
        self.expenses = list(expenses)
        self.income = list(income)
        self.manual_net_profit = {parse_month(k): v for k, v in (manual_net_profit or {}).items()}

    def analyze(self, query: AnalyticsQuery) -> BusinessProfit:
        start, end = query.start_date, query.end_date
        months: Dict[YearMonth, _MonthTotals] = {ym: _MonthTotals() for ym in iter_months(query.start, query.end)}
        result = BusinessProfit(start_month=query.start_month, end_month=query.end_month)

        for trade in self.trades:
            on = trade.effective_date
            if not start <= on <= end:
                continue
            totals = months[month_of(on)]
            result.trade_counts[trade.type] += 1
            if trade.type == TradeType.SELL:
                totals.sales += trade.total_amount
            elif trade.type == TradeType.BUY:
                totals.purchases += trade.total_amount
            elif trade.type == TradeType.TRANSFER:
                totals.transfer_charges += trade.transfer_charges
            elif trade.settlement_direction == SettlementDirection.RECEIVING:
                totals.settlement_impact += trade.total_amount
            else:
                totals.settlement_impact -= trade.total_amount

        for record in self.expenses:
            if start <= record.date <= end:
                months[month_of(record.date)].expenses += record.amount
        for record in self.income:
            if start <= record.date <= end:
                months[month_of(record.date)].income += record.amount

        for ym, totals in months.items():
            result.monthly.append(MonthlyBusinessProfit(
                month=format_month(ym),
                label=month_label(ym),
                sales=totals.sales,
                purchases=totals.purchases,
                transfer_charges=totals.transfer_charges,
                settlement_impact=totals.settlement_impact,
                income=totals.income,
                expenses=totals.expenses,
            ))
            result.total_sales += totals.sales
            result.total_purchases += totals.purchases
            result.total_transfer_charges += totals.transfer_charges
            result.settlement_impact += totals.settlement_impact
            result.total_income += totals.income
            result.total_expenses += totals.expenses

        entered = [v for ym, v in self.manual_net_profit.items() if query.start <= ym <= query.end]
        if entered:
            result.manual_net_profit = sum(entered, ZERO)

        logger.debug(
            f"Business profit {query.start_month}..{query.end_month}: gross {result.gross_profit}, "
            f"{sum(result.trade_counts.values())} trades"
        )
        return result
