"""Pure domain layer: value objects, DTOs, status machine, validation, clock."""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    RemovalFilter,
    RemovalLogInfo,
    RemovalRequest,
    RemovalResult,
    StockEntryDraft,
    StockEntryFilter,
    StockEntryInfo,
    Submitter,
)
from stock_kernel.domain.values import (
    Category,
    DataIntegrityWarning,
    EntryStatus,
    NetStockView,
    RemovalKind,
    RemovalStatus,
    normalize_key,
)

__all__ = [
    "Category",
    "Clock",
    "DataIntegrityWarning",
    "DeterministicClock",
    "EntryStatus",
    "NetStockView",
    "RemovalFilter",
    "RemovalKind",
    "RemovalLogInfo",
    "RemovalRequest",
    "RemovalResult",
    "RemovalStatus",
    "StockEntryDraft",
    "StockEntryFilter",
    "StockEntryInfo",
    "Submitter",
    "SystemClock",
    "normalize_key",
]
