"""
Module: stock_kernel.models.removal_log
Responsibility: ORM persistence for the append-only removal log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (ORM listener + PostgreSQL trigger).
    - A reversal row carries the negated quantity of the removal it
      cancels; reverses_id is unique, so a removal is reversed at most once.
    - net_available_before / total_*_before record the fresh balance the
      commit was validated against, not what the caller saw.

Audit relevance:
    Together with stock_entries this table is the whole ledger; every
    balance is recomputable from the two.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class RemovalLogEntry(TrackedBase):
    """
    One removal event (or one compensating reversal) against a stock key.

    Only rows with status == completed count toward total_removed.
    """

    __tablename__ = "removal_logs"

    __table_args__ = (
        Index("idx_removal_category_key", "category", "key"),
        Index("idx_removal_date", "removal_date"),
        CheckConstraint(
            "category IN ('leather', 'material', 'finished_product')",
            name="chk_removal_category",
        ),
        CheckConstraint(
            "status IN ('completed', 'failed')",
            name="chk_removal_status",
        ),
        CheckConstraint(
            "entry_kind IN ('removal', 'reversal')",
            name="chk_removal_kind",
        ),
    )

    category: Mapped[str] = mapped_column(String(30), nullable=False)

    key: Mapped[str] = mapped_column(String(255), nullable=False)

    entry_kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="removal",
    )

    # Negative for reversals
    remove_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    # What the admin saw; advisory only
    available_at_request_time: Mapped[Decimal | None] = mapped_column(nullable=True)

    purpose: Mapped[str] = mapped_column(Text, nullable=False)

    confirmed_by: Mapped[str] = mapped_column(String(120), nullable=False)

    removal_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="completed",
    )

    destination: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    total_cost_removed: Mapped[Decimal | None] = mapped_column(nullable=True)

    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Balance context at commit time
    net_available_before: Mapped[Decimal | None] = mapped_column(nullable=True)

    net_available_after: Mapped[Decimal | None] = mapped_column(nullable=True)

    total_original_before: Mapped[Decimal | None] = mapped_column(nullable=True)

    total_removed_before: Mapped[Decimal | None] = mapped_column(nullable=True)

    reverses_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("removal_logs.id"),
        nullable=True,
        unique=True,
    )

    def __repr__(self) -> str:
        return (
            f"<RemovalLogEntry {self.entry_kind} {self.category}/{self.key} "
            f"{self.remove_quantity}>"
        )

    @property
    def is_reversal(self) -> bool:
        return self.entry_kind == "reversal"
