"""Services for the stock kernel (write side)."""

from stock_kernel.services.auditor_service import AuditorService, AuditTrace
from stock_kernel.services.removal_coordinator import RemovalCoordinator, RemovalPolicy
from stock_kernel.services.removal_reversal_service import RemovalReversalService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_balance_service import (
    KEY_LOCKS,
    KeyLockRegistry,
    StockBalanceService,
)
from stock_kernel.services.stock_entry_service import StockEntryService

__all__ = [
    "AuditTrace",
    "AuditorService",
    "KEY_LOCKS",
    "KeyLockRegistry",
    "RemovalCoordinator",
    "RemovalPolicy",
    "RemovalReversalService",
    "SequenceService",
    "StockBalanceService",
    "StockEntryService",
]
