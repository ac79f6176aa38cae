"""Selectors for the mill kernel (read side)."""

from mill_kernel.selectors.ledger_selector import (
    BalanceCheck,
    LedgerSelector,
    StatementLine,
    TrialBalanceRow,
)
from mill_kernel.selectors.stock_selector import StockLevel, StockSelector, StockSummaryRow

__all__ = [
    "BalanceCheck",
    "LedgerSelector",
    "StatementLine",
    "StockLevel",
    "StockSelector",
    "StockSummaryRow",
    "TrialBalanceRow",
]
