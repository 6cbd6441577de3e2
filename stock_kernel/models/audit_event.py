"""
Module: stock_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM + DB trigger).
    - hash = H(entity_type | entity_id | action | actor | payload_hash |
      prev_hash).  Validated by AuditorService.validate_chain().
    - seq is monotonically increasing, allocated by SequenceService.

Minimum coverage (each action type generates at least one AuditEvent):
    - STOCK_ENTRY_CREATED, STOCK_ENTRY_STATUS_CHANGED, STOCK_ENTRY_VOIDED
    - FINISHED_PRODUCT_RECORDED
    - REMOVAL_COMMITTED, REMOVAL_REJECTED, REMOVAL_REVERSED
    - INTEGRITY_WARNING
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Stock entry lifecycle
    STOCK_ENTRY_CREATED = "stock_entry_created"
    STOCK_ENTRY_STATUS_CHANGED = "stock_entry_status_changed"
    STOCK_ENTRY_VOIDED = "stock_entry_voided"
    FINISHED_PRODUCT_RECORDED = "finished_product_recorded"

    # Removal lifecycle
    REMOVAL_COMMITTED = "removal_committed"
    REMOVAL_REJECTED = "removal_rejected"
    REMOVAL_REVERSED = "removal_reversed"

    # Findings
    INTEGRITY_WARNING = "integrity_warning"
    RECONCILIATION_RUN = "reconciliation_run"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.
        - payload carries ``before`` / ``after`` snapshots where a state
          changed, and the request plus error code for rejections.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # "StockEntry", "RemovalLogEntry", "StockKey", ...
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # UUID of a row, or "category/key" for key-level events
    entity_id: Mapped[str] = mapped_column(String(300), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor: Mapped[str] = mapped_column(String(120), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"
