"""
stock_services -- Package init and public API.

Responsibility:
    The StockLedger facade and the reconciliation service.  This is the
    only layer that owns transactions (``session_scope``) and reads the
    runtime configuration.

Architecture position:
    Services -- top of the stack.

    Dependency direction (checked by tests/architecture):
        stock_services/ -> stock_modules/, stock_config/, stock_engines/,
                           stock_kernel/                     (allowed)
        stock_kernel/   -> stock_services/, stock_modules/,
                           stock_config/                     (FORBIDDEN)
        stock_engines/  -> stock_services/, stock_kernel.db  (FORBIDDEN)
"""

from stock_services.ledger import StockLedger
from stock_services.reconciliation_service import ReconciliationService

__all__ = ["ReconciliationService", "StockLedger"]
