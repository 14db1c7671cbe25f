"""Services module for bullion ledger and analytics.

Provides engines for:
- Period Analytics: totals, category breakdown and trends for expenses/income
- Party Balance: running dues/advances per merchant or karigar
- Raw Gold Ledger: running fine-gold balance with windowed views
- Jewellery Inventory: stock per category and weight bracket, gold P&L
- Pending Sales: give -> confirm workflow for jewellery sales
- Metal Stock: bullion weight held per metal
- Business Profit: gross profit from trades, income and expenses
"""

from .period_analytics import (
    AnalyticsQuery,
    SortKey,
    PeriodAnalyticsEngine,
    PeriodAnalytics,
    CategoryTotal,
    MonthlyBucket,
    analyze_period,
)
from .party_balance import PartyBalanceLedger, BalanceHistory, TradeWithBalance, MerchantBalanceSummary
from .raw_gold_ledger import RawGoldLedger, RawGoldView, RawGoldStats, LedgerRow
from .jewellery_inventory import (
    JewelleryInventoryEngine,
    BracketStock,
    CategoryStock,
    JewelleryPnL,
    MerchantJewelleryDues,
    MonthlyProfit,
)
from .pending_sales import (
    PendingSaleWorkflow,
    SaleState,
    SaleDraft,
    DraftItem,
    SaleSettlement,
    SaleConfirmation,
)
from .metal_stock import MetalStockEngine, MetalStock
from .business_profit import BusinessProfitEngine, BusinessProfit, MonthlyBusinessProfit

__all__ = [
    # Period analytics
    "AnalyticsQuery",
    "SortKey",
    "PeriodAnalyticsEngine",
    "PeriodAnalytics",
    "CategoryTotal",
    "MonthlyBucket",
    "analyze_period",
    # Balances
    "PartyBalanceLedger",
    "BalanceHistory",
    "TradeWithBalance",
    "MerchantBalanceSummary",
    "RawGoldLedger",
    "RawGoldView",
    "RawGoldStats",
    "LedgerRow",
    # Jewellery
    "JewelleryInventoryEngine",
    "BracketStock",
    "CategoryStock",
    "JewelleryPnL",
    "MerchantJewelleryDues",
    "MonthlyProfit",
    "PendingSaleWorkflow",
    "SaleState",
    "SaleDraft",
    "DraftItem",
    "SaleSettlement",
    "SaleConfirmation",
    # Metal stock
    "MetalStockEngine",
    "MetalStock",
    # Business profit
    "BusinessProfitEngine",
    "BusinessProfit",
    "MonthlyBusinessProfit",
]
