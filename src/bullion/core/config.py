"""Ledger configuration for bullion.

Provides data-driven category lists and the jewellery weight-bracket
partition, loaded from JSON with fallback to defaults.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bullion.core.exceptions import ConfigurationError, ValidationFailure
from bullion.core.models import ZERO, WeightBracket
from bullion.core.periods import format_month, parse_month

logger = logging.getLogger(__name__)

# Default configuration (used when no config file is given)
DEFAULT_CONFIG = {
    "$schema": "bullion_config_v1",
    "version": "1.0",

    "categories": {
        "expense": [
            "Salary", "Rent", "Electricity", "Fuel", "Marketing", "Equipment",
            "Maintenance", "Travel", "Food", "Office Supplies", "Insurance", "Other",
        ],
        "income": [
            "Rent Income", "Interest on Loans", "F&O Trading", "IPO Gains",
            "Brokerage Income", "Dividend Income", "Capital Gains",
            "Consulting Fees", "Investment Returns", "Other Income",
        ],
        "jewellery": [
            "Bracelets", "Chains", "Jhoomke", "Rings", "Necklaces",
            "Pendants", "Bangles", "Earrings", "Mangalsutra", "Other",
        ],
    },

    "weight_brackets": [
        {"label": "Under 3 gm", "min": 0, "max": 3},
        {"label": "3 - 5 gm", "min": 3, "max": 5},
        {"label": "5 - 10 gm", "min": 5, "max": 10},
        {"label": "10 - 15 gm", "min": 10, "max": 15},
        {"label": "15 - 20 gm", "min": 15, "max": 20},
        {"label": "20+ gm", "min": 20, "max": None},
    ],

    # Net profit entered by the owner per month, "YYYY-MM": amount
    "manual_net_profit": {},

    # Display only, never read by the engines
    "category_colors": {
        "Salary": "#3b82f6",
        "Rent": "#10b981",
        "Bracelets": "#f59e0b",
        "Chains": "#3b82f6",
        "Other": "#6b7280",
    },
}


def _to_bound(value: Any, label: str, name: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(f"Weight bracket '{label}' has a non-numeric {name}: {value!r}")


def build_weight_brackets(raw: Sequence[Dict[str, Any]]) -> Tuple[WeightBracket, ...]:
    """Build WeightBracket objects from config dictionaries and validate them."""
    brackets = []
    for item in raw:
        label = str(item.get("label", ""))
        lower = _to_bound(item.get("min", 0), label, "min")
        brackets.append(WeightBracket(label=label, min=lower, max=_to_bound(item.get("max"), label, "max")))
    return validate_weight_brackets(brackets)


def validate_weight_brackets(brackets: Sequence[WeightBracket]) -> Tuple[WeightBracket, ...]:
    """
    Check that brackets are an ordered, gap-free partition of [0, inf).

    Args:
        brackets: Brackets in ascending order

    Returns:
        The brackets as a tuple

    Raises:
        ConfigurationError: If the partition is empty, unordered, overlapping,
            has gaps, or does not cover [0, inf)
    """
    if not brackets:
        raise ConfigurationError("At least one weight bracket is required")

    if brackets[0].min != ZERO:
        raise ConfigurationError(
            f"First weight bracket '{brackets[0].label}' must start at 0, starts at {brackets[0].min}"
        )

    for index, bracket in enumerate(brackets):
        is_last = index == len(brackets) - 1
        if bracket.max is None:
            if not is_last:
                raise ConfigurationError(f"Only the last weight bracket may be unbounded ('{bracket.label}')")
            continue
        if bracket.max <= bracket.min:
            raise ConfigurationError(f"Weight bracket '{bracket.label}' has max <= min")
        if is_last:
            raise ConfigurationError(f"Last weight bracket '{bracket.label}' must be unbounded")
        following = brackets[index + 1]
        if following.min != bracket.max:
            kind = "gap" if following.min > bracket.max else "overlap"
            raise ConfigurationError(
                f"Weight brackets '{bracket.label}' and '{following.label}' {kind} at {bracket.max}"
            )

    return tuple(brackets)


def build_manual_net_profit(raw: Dict[str, Any]) -> Dict[str, Decimal]:
    """Manual net profit per month, keyed by normalised "YYYY-MM"."""
    result = {}
    for month, amount in raw.items():
        try:
            key = format_month(parse_month(month))
        except ValidationFailure as e:
            raise ConfigurationError(f"Manual net profit: {e.message}") from e
        try:
            result[key] = Decimal(str(amount))
        except InvalidOperation:
            raise ConfigurationError(f"Manual net profit for {month} is not a number: {amount!r}")
    return result


@dataclass
class CategoryConfig:
    """Ordered category lists per record family."""
    expense: List[str] = field(default_factory=list)
    income: List[str] = field(default_factory=list)
    jewellery: List[str] = field(default_factory=list)


class LedgerConfig:
    """
    Static configuration consumed by the engines.

    Usage:
        config = LedgerConfig.load(Path("bullion.json"))
        engine = JewelleryInventoryEngine(transactions, config.categories.jewellery,
                                          config.weight_brackets)
    """

    def __init__(self, data: Dict[str, Any]):
        """Initialize from a configuration dictionary."""
        self._raw = data

        categories = data.get("categories", {})
        self.categories = CategoryConfig(
            expense=_unique(categories.get("expense", [])),
            income=_unique(categories.get("income", [])),
            jewellery=_unique(categories.get("jewellery", [])),
        )

        self.weight_brackets = build_weight_brackets(data.get("weight_brackets", []))
        self.manual_net_profit = build_manual_net_profit(data.get("manual_net_profit", {}))
        self.category_colors: Dict[str, str] = dict(data.get("category_colors", {}))

    @classmethod
    def default(cls) -> "LedgerConfig":
        return cls(copy.deepcopy(DEFAULT_CONFIG))

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "LedgerConfig":
        """
        Load configuration with fallback to defaults.

        Args:
            config_path: JSON file overriding parts of DEFAULT_CONFIG (optional)

        Returns:
            LedgerConfig instance

        Raises:
            ConfigurationError: If the named file cannot be read or parsed
        """
        data = copy.deepcopy(DEFAULT_CONFIG)

        if config_path is not None:
            try:
                with open(config_path, encoding="utf-8") as f:
                    override = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Failed to load config {config_path}: {e}") from e
            data = cls._deep_merge(data, override)
            logger.debug(f"Loaded configuration from {config_path}")

        return cls(data)

    @staticmethod
    def _deep_merge(base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries, override takes precedence."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = LedgerConfig._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def save(self, config_path: Path) -> None:
        """Write the current configuration as JSON."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self._raw, f, indent=2)
        logger.info(f"Saved configuration to {config_path}")


def _unique(values: Sequence[str]) -> List[str]:
    """Keep first occurrence order, drop duplicates."""
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
