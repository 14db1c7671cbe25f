"""Bullion command line interface.

- main: ledger views (analytics, balances, raw gold, stock, P&L, pending sales)
"""

from .main import main

__all__ = ["main"]
