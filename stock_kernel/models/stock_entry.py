"""
Module: stock_kernel.models.stock_entry
Responsibility: ORM persistence for workers' original stock submissions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity, key, category, display_name and submitter fields are
      write-once (ORM listener + PostgreSQL trigger).
    - status is the only mutable business field; its transitions are
      governed by domain/status_machine.py.
    - Rows are never deleted; a void sets the tombstone fields instead.

Audit relevance:
    StockEntry rows are the evidence behind every balance.  Status changes
    and voids each produce an AuditEvent with before/after.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class StockEntry(TrackedBase):
    """
    One worker submission of leather, material or a finished product.

    Guarantees:
        - key is the normalized identifier; display_name is the name as
          submitted and is what reports show.
        - Contributes to total_original only while status == approved and
          voided_at is None.
    """

    __tablename__ = "stock_entries"

    __table_args__ = (
        Index("idx_stock_entry_category_key", "category", "key"),
        Index("idx_stock_entry_category_status", "category", "status"),
        Index("idx_stock_entry_submitted", "submitted_at"),
        CheckConstraint(
            "category IN ('leather', 'material', 'finished_product')",
            name="chk_stock_entry_category",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="chk_stock_entry_status",
        ),
    )

    category: Mapped[str] = mapped_column(String(30), nullable=False)

    key: Mapped[str] = mapped_column(String(255), nullable=False)

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Write-once
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit: Mapped[str | None] = mapped_column(String(30), nullable=True)

    company: Mapped[str | None] = mapped_column(String(120), nullable=True)

    submitter_id: Mapped[str] = mapped_column(String(120), nullable=False)

    submitter_name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
    )

    # Tombstone
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    voided_by: Mapped[str | None] = mapped_column(String(120), nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockEntry {self.category}/{self.key} "
            f"{self.quantity} {self.status}>"
        )

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None

    @property
    def contributes(self) -> bool:
        return self.status == "approved" and self.voided_at is None
