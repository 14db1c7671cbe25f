"""
Period analytics for expense and income records.

Filters records to a month range, category set and search text, then
produces totals, a per-category breakdown, the daily average, the change
against the preceding period of equal length and a monthly trend.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from bullion.core.exceptions import InvalidRange, ValidationFailure
from bullion.core.models import HUNDRED, ZERO, FinancialRecord
from bullion.core.periods import (
    YearMonth,
    days_inclusive,
    format_month,
    iter_months,
    month_end,
    month_label,
    month_of,
    month_start,
    months_in_range,
    parse_month,
    shift_month,
)

logger = logging.getLogger(__name__)


class SortKey(Enum):
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"
    AMOUNT_DESC = "amount_desc"
    AMOUNT_ASC = "amount_asc"
    CATEGORY = "category"


@dataclass(frozen=True)
class AnalyticsQuery:
    """
    Immutable filter for PeriodAnalyticsEngine.

    Attributes:
        start_month: First month, "YYYY-MM"
        end_month: Last month (inclusive), "YYYY-MM"
        categories: Categories to keep; empty keeps all
        search: Case-insensitive text matched against description and category
        sort: Ordering of the filtered items

    Raises:
        ValidationFailure: If a month or the sort key is malformed
        InvalidRange: If end_month precedes start_month
    """
    start_month: str
    end_month: str
    categories: Tuple[str, ...] = ()
    search: str = ""
    sort: SortKey = SortKey.DATE_DESC

    def __post_init__(self):
        start, end = parse_month(self.start_month), parse_month(self.end_month)
        if end < start:
            raise InvalidRange(self.start_month, self.end_month)
        object.__setattr__(self, "categories", tuple(self.categories))
        if not isinstance(self.sort, SortKey):
            try:
                object.__setattr__(self, "sort", SortKey(str(self.sort)))
            except ValueError:
                raise ValidationFailure(f"Unknown sort key: {self.sort}", field="sort")

    @property
    def start(self) -> YearMonth:
        return parse_month(self.start_month)

    @property
    def end(self) -> YearMonth:
        return parse_month(self.end_month)

    @property
    def month_count(self) -> int:
        return months_in_range(self.start, self.end)

    @property
    def start_date(self) -> date:
        return month_start(self.start)

    @property
    def end_date(self) -> date:
        return month_end(self.end)

    def previous_period(self) -> "AnalyticsQuery":
        """Same filters over the equally long period immediately before."""
        months = self.month_count
        return AnalyticsQuery(
            start_month=format_month(shift_month(self.start, -months)),
            end_month=format_month(shift_month(self.end, -months)),
            categories=self.categories,
            search=self.search,
            sort=self.sort,
        )


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    value: Decimal


@dataclass(frozen=True)
class MonthlyBucket:
    month: str   # YYYY-MM
    label: str   # Mar 2024
    amount: Decimal


@dataclass
class PeriodAnalytics:
    """Everything the period views display."""
    filtered_items: List[FinancialRecord] = field(default_factory=list)
    total_for_period: Decimal = ZERO
    average_per_day: Decimal = ZERO
    top_category: Optional[CategoryTotal] = None
    month_over_month_change: Optional[Decimal] = None
    category_breakdown: List[CategoryTotal] = field(default_factory=list)
    monthly_trend: List[MonthlyBucket] = field(default_factory=list)
    item_count: int = 0


_SORTS = {
    SortKey.DATE_DESC: (lambda r: r.date, True),
    SortKey.DATE_ASC: (lambda r: r.date, False),
    SortKey.AMOUNT_DESC: (lambda r: r.amount, True),
    SortKey.AMOUNT_ASC: (lambda r: r.amount, False),
    SortKey.CATEGORY: (lambda r: r.category.casefold(), False),
}


class PeriodAnalyticsEngine:
    """
    Pure analytics over a list of financial records.

    Usage:
        engine = PeriodAnalyticsEngine(store.list_financial_records("expense"))
        result = engine.analyze(AnalyticsQuery("2024-01", "2024-03"))
        print(result.total_for_period, result.top_category)
    """

    def __init__(self, records: Sequence[FinancialRecord]):
        self.records = list(records)

    def filter(self, query: AnalyticsQuery) -> List[FinancialRecord]:
        """Records in the query's months, categories and search text, in input order."""
        start, end = query.start_date, query.end_date
        selected = set(query.categories)
        needle = query.search.casefold()

        result = []
        for record in self.records:
            if not start <= record.date <= end:
                continue
            if selected and record.category not in selected:
                continue
            if needle and needle not in record.description.casefold() and needle not in record.category.casefold():
                continue
            result.append(record)
        return result

    def analyze(self, query: AnalyticsQuery) -> PeriodAnalytics:
        filtered = self.filter(query)
        key, reverse = _SORTS[query.sort]
        # stable for ties, also when reversed
        items = sorted(filtered, key=key, reverse=reverse)

        total = sum((r.amount for r in items), ZERO)
        days = max(1, days_inclusive(query.start_date, query.end_date))

        totals = _category_totals(items)
        breakdown = sorted(
            (CategoryTotal(name=name, value=value) for name, value in totals.items()),
            key=lambda c: (-c.value, c.name),
        )

        previous_total = sum((r.amount for r in self.filter(query.previous_period())), ZERO)
        change = None
        if previous_total != ZERO:
            change = (total - previous_total) / previous_total * HUNDRED

        logger.debug(
            f"Analytics {query.start_month}..{query.end_month}: {len(items)} items, "
            f"total {total}, previous {previous_total}"
        )

        return PeriodAnalytics(
            filtered_items=items,
            total_for_period=total,
            average_per_day=total / days,
            top_category=breakdown[0] if breakdown else None,
            month_over_month_change=change,
            category_breakdown=breakdown,
            monthly_trend=_monthly_trend(items, query.start, query.end),
            item_count=len(items),
        )


def _category_totals(records: Iterable[FinancialRecord]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {}
    for record in records:
        totals[record.category] = totals.get(record.category, ZERO) + record.amount
    return totals


def _monthly_trend(records: Iterable[FinancialRecord], start: YearMonth, end: YearMonth) -> List[MonthlyBucket]:
    sums: Dict[YearMonth, Decimal] = {}
    for record in records:
        ym = month_of(record.date)
        sums[ym] = sums.get(ym, ZERO) + record.amount
    return [
        MonthlyBucket(month=format_month(ym), label=month_label(ym), amount=sums.get(ym, ZERO))
        for ym in iter_months(start, end)
    ]


def analyze_period(
    records: Sequence[FinancialRecord],
    start_month: str,
    end_month: str,
    categories: Sequence[str] = (),
    search: str = "",
    sort: Union[SortKey, str] = SortKey.DATE_DESC,
) -> PeriodAnalytics:
    """Convenience wrapper building the query and running the engine."""
    query = AnalyticsQuery(start_month, end_month, tuple(categories), search, sort)
    return PeriodAnalyticsEngine(records).analyze(query)
