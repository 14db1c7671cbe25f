"""
Unit tests for jewellery inventory.

Tests bracket stock, additivity across brackets, gold profit, merchant
jewellery dues and monthly profit.
"""

import pytest
from datetime import date
from decimal import Decimal

from bullion.core.config import build_weight_brackets
from bullion.core.exceptions import ConfigurationError
from bullion.core.models import LaborType, SaleStatus, WeightBracket
from bullion.services.jewellery_inventory import JewelleryInventoryEngine, sale_value


@pytest.fixture
def brackets():
    return build_weight_brackets([
        {"label": "light", "min": 0, "max": 2},
        {"label": "medium", "min": 2, "max": 10},
        {"label": "heavy", "min": 10, "max": None},
    ])


def engine_for(transactions, brackets, categories=("X",)):
    return JewelleryInventoryEngine(transactions, list(categories), brackets)


class TestStock:
    """Tests for per-category stock."""

    def test_buy_two_sell_one(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 2, "5", "90", category="X"),
            make_ghaat("s1", "sell", 1, "5", "90", category="X"),
        ], brackets)

        stock = engine.calculate_stock("X")

        assert [(b.label, b.units, b.fine_gold) for b in stock.brackets] == [("medium", 1, Decimal("4.5"))]
        assert stock.total_units == 1
        assert stock.total_fine_gold == Decimal("4.5")

    def test_pending_and_confirmed_sells_reduce_stock(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 3, "5", "90", category="X"),
            make_ghaat("s1", "sell", 1, "5", "90", category="X", status=SaleStatus.PENDING),
            make_ghaat("s2", "sell", 1, "5", "90", category="X", status=SaleStatus.CONFIRMED),
        ], brackets)

        assert engine.calculate_stock("X").total_units == 1

    def test_boundary_weight_in_higher_bracket(self, make_ghaat, brackets):
        engine = engine_for([make_ghaat("b1", "buy", 1, "10", "75", category="X")], brackets)

        assert [b.label for b in engine.calculate_stock("X").brackets] == ["heavy"]

    def test_stock_additive_across_brackets(self, make_ghaat, brackets):
        transactions = [
            make_ghaat("b1", "buy", 4, "1.5", "91.6", category="X"),
            make_ghaat("b2", "buy", 2, "2", "75", category="X"),
            make_ghaat("b3", "buy", 1, "9.999", "99.5", category="X"),
            make_ghaat("b4", "buy", 3, "10", "91.6", category="X"),
            make_ghaat("s1", "sell", 1, "1.5", "91.6", category="X"),
            make_ghaat("s2", "sell", 2, "10", "91.6", category="X", status=SaleStatus.PENDING),
            make_ghaat("o1", "buy", 5, "3", "90", category="Y"),
        ]
        stock = engine_for(transactions, brackets).calculate_stock("X")

        direct = sum(
            (t.fine_gold if t.type.value == "buy" else -t.fine_gold for t in transactions if t.category == "X"),
            Decimal("0"),
        )
        assert sum(b.fine_gold for b in stock.brackets) == direct
        assert stock.total_fine_gold == direct
        assert stock.total_units == 4 + 2 + 1 + 3 - 1 - 2

    def test_empty_bracket_omitted_but_counted(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 1, "1", "90", category="X"),
            make_ghaat("s1", "sell", 1, "1.5", "60", category="X"),
        ], brackets)

        stock = engine.calculate_stock("X")

        assert stock.brackets == []
        assert stock.total_gross_weight == Decimal("-0.5")

    def test_buy_back_restores_units(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 2, "5", "90", category="X"),
            make_ghaat("s1", "sell", 2, "5", "90", category="X", status=SaleStatus.CONFIRMED),
            make_ghaat("r1", "buy", 1, "5", "90", category="X", merchant_id="m-1",
                       source_transaction_id="s1"),
        ], brackets)

        assert engine.calculate_stock("X").total_units == 1

    def test_inventory_lists_configured_then_seen(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 1, "5", "90", category="Zari"),
            make_ghaat("b2", "buy", 1, "5", "90", category="Anklets"),
        ], brackets, categories=("Rings", "Chains"))

        assert engine.all_categories() == ["Rings", "Chains", "Anklets", "Zari"]
        assert [s.category for s in engine.calculate_category_summary()] == ["Rings", "Chains", "Anklets", "Zari"]
        assert all(s.brackets == [] for s in engine.calculate_category_summary())

    def test_invalid_brackets_rejected(self, make_ghaat):
        with pytest.raises(ConfigurationError):
            JewelleryInventoryEngine([], ["X"], [WeightBracket("a", Decimal("1"))])


class TestPnL:

    def test_profit_counts_karigar_buys_and_realized_sells(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 2, "5", "90", karigar_id="k-1",
                       labor_type=LaborType.GOLD, labor_amount=Decimal("0.5")),
            make_ghaat("b2", "buy", 1, "10", "75", karigar_id="k-1",
                       labor_type=LaborType.CASH, labor_amount=Decimal("800")),
            make_ghaat("r1", "buy", 1, "5", "90", merchant_id="m-1", source_transaction_id="s2"),
            make_ghaat("s1", "sell", 1, "5", "90", merchant_id="m-1", status=SaleStatus.PENDING),
            make_ghaat("s2", "sell", 2, "5", "90", merchant_id="m-1", status=SaleStatus.CONFIRMED,
                       confirmed_fine_gold=Decimal("4.5")),
            make_ghaat("s3", "sell", 1, "10", "75"),
        ], brackets)

        pnl = engine.calculate_pnl()

        assert pnl.total_buy_fine_gold == Decimal("16.5")
        assert pnl.total_sell_fine_gold == Decimal("12")
        assert pnl.gold_labor_paid == Decimal("0.5")
        assert pnl.cash_labor_paid == Decimal("800")
        assert pnl.net_gold_profit == Decimal("-5.0")

    def test_empty_pnl(self, brackets):
        pnl = engine_for([], brackets).calculate_pnl()
        assert pnl.net_gold_profit == Decimal("0")


class TestMerchantDues:

    def test_pending_gold_and_cash_shortfall(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("p1", "sell", 1, "5", "90", merchant_id="m-1", status=SaleStatus.PENDING),
            make_ghaat("a1", "sell", 1, "5", "90", merchant_id="m-1", status=SaleStatus.CONFIRMED,
                       group_id="A", total_amount=Decimal("30000"), cash_received=Decimal("40000")),
            make_ghaat("a2", "sell", 1, "3", "90", merchant_id="m-1", status=SaleStatus.CONFIRMED,
                       group_id="A", total_amount=Decimal("15000")),
            make_ghaat("b1", "sell", 2, "5", "90", merchant_id="m-1", status=SaleStatus.CONFIRMED,
                       group_id="B", rate_per_10gm=Decimal("60000"),
                       gold_returned_weight=Decimal("10"), gold_returned_purity=Decimal("100")),
            make_ghaat("o1", "sell", 1, "5", "90", merchant_id="m-2", status=SaleStatus.PENDING),
        ], brackets)

        dues = engine.calculate_merchant_jewellery_dues("m-1")

        assert dues.fine_gold_pending == Decimal("4.5")
        assert dues.cash_due == Decimal("5000")

    def test_no_activity(self, brackets):
        dues = engine_for([], brackets).calculate_merchant_jewellery_dues("m-1")
        assert (dues.fine_gold_pending, dues.cash_due) == (Decimal("0"), Decimal("0"))

    def test_sale_value_from_rate(self, make_ghaat):
        txn = make_ghaat("s1", "sell", 2, "5", "90", status=SaleStatus.CONFIRMED,
                         rate_per_10gm=Decimal("65000"))
        assert sale_value(txn) == Decimal("58500")


class TestMonthlyProfit:

    def test_months_with_activity(self, make_ghaat, brackets):
        engine = engine_for([
            make_ghaat("b1", "buy", 2, "5", "90", on=date(2024, 4, 2), karigar_id="k-1",
                       labor_type=LaborType.GOLD, labor_amount=Decimal("0.5")),
            make_ghaat("s1", "sell", 1, "5", "90", on=date(2024, 4, 20), status=SaleStatus.CONFIRMED),
            make_ghaat("s2", "sell", 1, "5", "90", on=date(2024, 6, 1), status=SaleStatus.PENDING),
        ], brackets)

        months = engine.calculate_monthly_profit()

        assert [m.month for m in months] == ["2024-04", "2024-06"]
        april, june = months
        assert (april.start_fine_gold, april.end_fine_gold) == (Decimal("0"), Decimal("4.5"))
        assert april.transaction_profit == Decimal("-5.0")
        assert (june.start_fine_gold, june.end_fine_gold) == (Decimal("4.5"), Decimal("0.0"))
        assert june.transaction_profit == Decimal("0")
        assert june.label == "Jun 2024"
