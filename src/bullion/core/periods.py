"""
Calendar month helpers for period analytics.

Months are handled as (year, month) pairs; "YYYY-MM" is the external form.
"""

import calendar
import re
from datetime import date
from typing import List, Tuple

from bullion.core.exceptions import ValidationFailure

YearMonth = Tuple[int, int]

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})$")


def parse_month(value: str) -> YearMonth:
    """
    Parse a "YYYY-MM" string.

    Raises:
        ValidationFailure: If the string is not a valid month
    """
    match = _MONTH_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationFailure(f"Invalid month '{value}', expected YYYY-MM", field="month")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationFailure(f"Invalid month number in '{value}'", field="month")
    return year, month


def format_month(ym: YearMonth) -> str:
    return f"{ym[0]:04d}-{ym[1]:02d}"


def month_label(ym: YearMonth) -> str:
    """Display label such as 'Mar 2024'."""
    return f"{calendar.month_abbr[ym[1]]} {ym[0]}"


def month_of(d: date) -> YearMonth:
    return d.year, d.month


def month_start(ym: YearMonth) -> date:
    return date(ym[0], ym[1], 1)


def month_end(ym: YearMonth) -> date:
    return date(ym[0], ym[1], calendar.monthrange(ym[0], ym[1])[1])


def shift_month(ym: YearMonth, months: int) -> YearMonth:
    """Move a month forward (positive) or backward (negative)."""
    index = ym[0] * 12 + (ym[1] - 1) + months
    return index // 12, index % 12 + 1


def months_in_range(start: YearMonth, end: YearMonth) -> int:
    """Inclusive count of calendar months from start to end."""
    return (end[0] - start[0]) * 12 + (end[1] - start[1]) + 1


def iter_months(start: YearMonth, end: YearMonth) -> List[YearMonth]:
    return [shift_month(start, i) for i in range(max(0, months_in_range(start, end)))]


def days_inclusive(start: date, end: date) -> int:
    return (end - start).days + 1
