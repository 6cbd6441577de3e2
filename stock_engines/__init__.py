"""
Module: stock_engines
Responsibility:
    Pure calculation engines for the stock ledger: the Net Stock Calculator,
    the reconciliation checker and the removal summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain (and sibling engine modules).
    MUST NOT import stock_services or stock_modules.

Invariants enforced:
    - Purity: engines never read the clock; ``today`` is passed in.
    - Decimal-only arithmetic; floats are converted through ``str``.
    - Determinism: identical inputs always produce identical outputs.
"""

from stock_engines.net_stock import (
    LedgerEntryRow,
    LedgerRemovalRow,
    calculate_net_stock,
    net_stock_for_key,
)
from stock_engines.reconciliation import (
    BalanceSnapshot,
    CheckSeverity,
    CheckStatus,
    ReconciliationFinding,
    ReconciliationReport,
    StockReconciliationChecker,
)
from stock_engines.removal_summary import RemovalSummary, SummaryBucket, summarize_removals
from stock_engines.tracer import traced_engine

__all__ = [
    "BalanceSnapshot",
    "CheckSeverity",
    "CheckStatus",
    "LedgerEntryRow",
    "LedgerRemovalRow",
    "ReconciliationFinding",
    "ReconciliationReport",
    "RemovalSummary",
    "StockReconciliationChecker",
    "SummaryBucket",
    "calculate_net_stock",
    "net_stock_for_key",
    "summarize_removals",
    "traced_engine",
]
