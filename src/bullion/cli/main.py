#!/usr/bin/env python3
"""
Bullion CLI - command line views over the bullion ledger.

Usage:
    bullion init-db
    bullion analytics --kind expense --start 2024-01 --end 2024-03
    bullion balance --merchant m-1 --from 2024-04-01 --to 2024-04-30
    bullion raw-gold --from 2024-04-01
    bullion stock --category Chains
    bullion pnl
    bullion pending
    bullion profit --start 2024-04 --end 2024-06
"""

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import pandas as pd

from bullion.core.config import LedgerConfig
from bullion.core.database import DatabaseManager
from bullion.core.exceptions import BullionError
from bullion.core.models import RecordKind
from bullion.core.record_store import RecordStore
from bullion.services.business_profit import BusinessProfitEngine
from bullion.services.jewellery_inventory import JewelleryInventoryEngine
from bullion.services.metal_stock import MetalStockEngine
from bullion.services.party_balance import PartyBalanceLedger
from bullion.services.pending_sales import PendingSaleWorkflow
from bullion.services.period_analytics import AnalyticsQuery, PeriodAnalyticsEngine, SortKey
from bullion.services.raw_gold_ledger import RawGoldLedger

logger = logging.getLogger(__name__)

DEFAULT_DB = "bullion.db"


def get_db_path() -> str:
    """Database path from $BULLION_DB, else ./bullion.db."""
    return os.environ.get("BULLION_DB", str(Path.cwd() / DEFAULT_DB))


def setup_logging(verbose: bool = False, debug: bool = False):
    """Configure logging."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def iso_date(value: str) -> date:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return pd.to_datetime(value, format="%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD")


def print_table(rows: List[dict], empty: str = "  (none)") -> None:
    if not rows:
        print(empty)
        return
    print(pd.DataFrame(rows).to_string(index=False))


def print_warnings(store: RecordStore) -> None:
    if store.warnings or store.errors:
        print(f"\nData quality: {len(store.warnings)} warnings, {len(store.errors)} unreadable rows")
        for w in store.warnings[:10]:
            print(f"  - {w.record_id} {w.field}: {w.message}")
        for e in store.errors[:10]:
            print(f"  ! {e.record_id or '?'}: {e.message}")


# ============================================================================
# Command handlers
# ============================================================================

def cmd_init_db(args, store: RecordStore, config: LedgerConfig) -> int:
    tables = DatabaseManager().get_tables()
    print(f"Database ready: {args.db}")
    print(f"Tables: {', '.join(sorted(tables))}")
    return 0


def cmd_analytics(args, store: RecordStore, config: LedgerConfig) -> int:
    query = AnalyticsQuery(
        start_month=args.start,
        end_month=args.end or args.start,
        categories=tuple(args.category or ()),
        search=args.search or "",
        sort=args.sort,
    )
    result = PeriodAnalyticsEngine(store.list_financial_records(args.kind)).analyze(query)

    print(f"\n{args.kind.title()} {query.start_month} to {query.end_month}")
    print(f"  Items:          {result.item_count}")
    print(f"  Total:          {result.total_for_period:,.2f}")
    print(f"  Average/day:    {result.average_per_day:,.2f}")
    if result.top_category:
        print(f"  Top category:   {result.top_category.name} ({result.top_category.value:,.2f})")
    if result.month_over_month_change is not None:
        print(f"  vs previous:    {result.month_over_month_change:+.1f}%")

    print("\nBy category:")
    print_table([{"category": c.name, "amount": c.value} for c in result.category_breakdown])
    print("\nBy month:")
    print_table([{"month": b.label, "amount": b.amount} for b in result.monthly_trend])
    print("\nItems:")
    print_table([
        {"date": r.date, "category": r.category, "description": r.description, "amount": r.amount}
        for r in result.filtered_items
    ])
    print_warnings(store)
    return 0


def cmd_balance(args, store: RecordStore, config: LedgerConfig) -> int:
    merchant = store.get_record(RecordKind.MERCHANT, args.merchant)
    history = PartyBalanceLedger(store.list_trades()).history_for(merchant)

    print(f"\n{merchant.name} ({merchant.party_type.value})")
    print(f"  Opening dues:     {history.opening_dues:,.2f}")
    print(f"  Opening advances: {history.opening_advances:,.2f}")
    print_table([
        {
            "date": e.trade.effective_date,
            "type": e.trade.type.value,
            "amount": e.trade.total_amount,
            "dues": e.running_dues,
            "advances": e.running_advances,
        }
        for e in history.in_range(args.date_from, args.date_to)
    ])
    print(f"  Current dues:     {history.closing_dues:,.2f}")
    print(f"  Current advances: {history.closing_advances:,.2f}")
    print_warnings(store)
    return 0


def cmd_raw_gold(args, store: RecordStore, config: LedgerConfig) -> int:
    ledger = RawGoldLedger(store.list_raw_gold_ledger_entries())
    view = ledger.view(args.date_from, args.date_to)
    stats = ledger.stats()

    print(f"\nRaw gold ledger  (opening {view.opening_balance:.3f} gm)")
    print_table([
        {
            "date": row.entry.transaction_date,
            "type": row.entry.type.value,
            "source": row.entry.source.value,
            "counterparty": row.entry.counterparty_name,
            "fine_gold": row.entry.fine_gold,
            "balance": row.running_balance,
        }
        for row in view.rows
    ])
    print(f"\nAll time: in {stats.total_in:.3f} gm, out {stats.total_out:.3f} gm, "
          f"balance {stats.balance:.3f} gm ({stats.count} entries)")
    print_warnings(store)
    return 0


def _inventory_engine(store: RecordStore, config: LedgerConfig) -> JewelleryInventoryEngine:
    return JewelleryInventoryEngine(
        store.list_ghaat_transactions(), config.categories.jewellery, config.weight_brackets
    )


def cmd_stock(args, store: RecordStore, config: LedgerConfig) -> int:
    engine = _inventory_engine(store, config)
    categories = [args.category] if args.category else engine.all_categories()

    for category in categories:
        stock = engine.calculate_stock(category)
        if not args.category and stock.total_units == 0 and not stock.brackets:
            continue
        print(f"\n{category}: {stock.total_units} units, {stock.total_fine_gold:.3f} gm fine")
        print_table([
            {"bracket": b.label, "units": b.units, "gross": b.gross_weight, "fine_gold": b.fine_gold}
            for b in stock.brackets
        ])

    metals = MetalStockEngine.calculate(store.list_trades())
    print(f"\nBullion: gold {metals.gold:.3f} gm, silver {metals.silver:.3f} gm")
    print_warnings(store)
    return 0


def cmd_pnl(args, store: RecordStore, config: LedgerConfig) -> int:
    engine = _inventory_engine(store, config)
    pnl = engine.calculate_pnl()

    print("\nJewellery gold P&L (fine gold, gm)")
    print(f"  Bought from karigars: {pnl.total_buy_fine_gold:.3f}")
    print(f"  Sold:                 {pnl.total_sell_fine_gold:.3f}")
    print(f"  Gold labour:          {pnl.gold_labor_paid:.3f}")
    print(f"  Net gold profit:      {pnl.net_gold_profit:.3f}")
    print(f"  Cash labour:          {pnl.cash_labor_paid:,.2f}")

    print("\nBy month:")
    print_table([
        {
            "month": m.label,
            "stock_delta": m.stock_delta_profit,
            "buy": m.buy_fine_gold,
            "sell": m.sell_fine_gold,
            "labour": m.labor_gold,
            "profit": m.transaction_profit,
        }
        for m in engine.calculate_monthly_profit()
    ])
    print_warnings(store)
    return 0


def cmd_pending(args, store: RecordStore, config: LedgerConfig) -> int:
    groups = PendingSaleWorkflow(store.list_ghaat_transactions()).pending_groups()
    print(f"\nPending sales: {len(groups)} groups")
    print_table([
        {
            "group": g.group_id,
            "merchant": g.merchant_name or g.merchant_id,
            "given": g.date_given,
            "items": len(g.items),
            "units": g.total_units,
            "fine_gold": g.total_fine_gold,
        }
        for g in groups
    ])
    print_warnings(store)
    return 0


def cmd_profit(args, store: RecordStore, config: LedgerConfig) -> int:
    query = AnalyticsQuery(start_month=args.start, end_month=args.end or args.start)
    result = BusinessProfitEngine(
        store.list_trades(),
        store.list_financial_records(RecordKind.EXPENSE),
        store.list_financial_records(RecordKind.INCOME),
        config.manual_net_profit,
    ).analyze(query)

    print(f"\nBusiness profit {query.start_month} to {query.end_month}")
    print(f"  Sales:            {result.total_sales:,.2f}")
    print(f"  Purchases:        {result.total_purchases:,.2f}")
    print(f"  Transfer charges: {result.total_transfer_charges:,.2f}")
    print(f"  Other income:     {result.total_income:,.2f}")
    print(f"  Expenses:         {result.total_expenses:,.2f}")
    print(f"  Gross profit:     {result.gross_profit:,.2f}")
    if result.manual_net_profit is not None:
        print(f"  Net profit (entered): {result.manual_net_profit:,.2f}")

    print("\nBy month:")
    print_table([
        {
            "month": m.label,
            "sales": m.sales,
            "purchases": m.purchases,
            "transfer": m.transfer_charges,
            "income": m.income,
            "expenses": m.expenses,
            "profit": m.gross_profit,
        }
        for m in result.monthly
    ])
    print_warnings(store)
    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "analytics": cmd_analytics,
    "balance": cmd_balance,
    "raw-gold": cmd_raw_gold,
    "stock": cmd_stock,
    "pnl": cmd_pnl,
    "pending": cmd_pending,
    "profit": cmd_profit,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bullion",
        description="Bullion - precious metals bookkeeping",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bullion analytics --kind expense --start 2024-01 --end 2024-03 --sort amount_desc
  bullion balance --merchant m-1
  bullion raw-gold --from 2024-04-01 --to 2024-04-30
  bullion stock --category Chains
        """
    )

    parser.add_argument("--db", default=None, help="SQLite file (default: $BULLION_DB or ./bullion.db)")
    parser.add_argument("--config", help="JSON configuration overriding the defaults")
    parser.add_argument("--user", help="User recorded in the audit log")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--debug", action="store_true", help="Debug output")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("init-db", help="Create the database schema")

    analytics_parser = subparsers.add_parser("analytics", help="Expense/income analytics for a month range")
    analytics_parser.add_argument("--kind", choices=["expense", "income"], default="expense")
    analytics_parser.add_argument("--start", required=True, help="First month (YYYY-MM)")
    analytics_parser.add_argument("--end", help="Last month (YYYY-MM, default: start)")
    analytics_parser.add_argument("--category", action="append", help="Category filter (repeatable)")
    analytics_parser.add_argument("--search", help="Text in description or category")
    analytics_parser.add_argument("--sort", choices=[k.value for k in SortKey], default=SortKey.DATE_DESC.value)

    balance_parser = subparsers.add_parser("balance", help="Running balance of a merchant or karigar")
    balance_parser.add_argument("--merchant", "-m", required=True, help="Merchant or karigar id")
    balance_parser.add_argument("--from", dest="date_from", type=iso_date, help="Show from date")
    balance_parser.add_argument("--to", dest="date_to", type=iso_date, help="Show to date")

    raw_parser = subparsers.add_parser("raw-gold", help="Raw gold ledger with running balance")
    raw_parser.add_argument("--from", dest="date_from", type=iso_date, help="Window start")
    raw_parser.add_argument("--to", dest="date_to", type=iso_date, help="Window end")

    stock_parser = subparsers.add_parser("stock", help="Jewellery stock by weight bracket")
    stock_parser.add_argument("--category", "-c", help="Single category")

    subparsers.add_parser("pnl", help="Jewellery gold profit and loss")
    subparsers.add_parser("pending", help="Pending jewellery sale groups")

    profit_parser = subparsers.add_parser("profit", help="Business gross profit for a month range")
    profit_parser.add_argument("--start", required=True, help="First month (YYYY-MM)")
    profit_parser.add_argument("--end", help="Last month (YYYY-MM, default: start)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.debug)
    args.db = args.db or get_db_path()

    try:
        config = LedgerConfig.load(Path(args.config) if args.config else None)
        conn = DatabaseManager().init(args.db)
        store = RecordStore(conn, user=args.user)
        return COMMANDS[args.command](args, store, config)
    except BullionError as e:
        print(f"Error: {e.message}")
        logger.debug(f"{type(e).__name__} ({e.code})", exc_info=True)
        return 1
    finally:
        DatabaseManager().close()


if __name__ == "__main__":
    sys.exit(main())
