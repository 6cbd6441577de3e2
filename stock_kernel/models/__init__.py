"""SQLAlchemy ORM models for the stock ledger."""

from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.models.finished_product import FinishedProduct
from stock_kernel.models.removal_log import RemovalLogEntry
from stock_kernel.models.stock_balance import StockBalance
from stock_kernel.models.stock_entry import StockEntry

__all__ = [
    "AuditAction",
    "AuditEvent",
    "FinishedProduct",
    "RemovalLogEntry",
    "StockBalance",
    "StockEntry",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every mapped class so Base.metadata is complete."""
    from stock_kernel.services import sequence_service  # noqa: F401  (SequenceCounter)
