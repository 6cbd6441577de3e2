"""
Module: stock_kernel.models.finished_product
Responsibility: Finished goods handed over by the production pipeline.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - product_id is unique and is the stock key of the synthetic entry.
    - fulfilled_quantity is frozen once recorded.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class FinishedProduct(TrackedBase):
    __tablename__ = "finished_products"

    product_id: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    production_job_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    fulfilled_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    stock_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_entries.id"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<FinishedProduct {self.product_id} {self.fulfilled_quantity}>"
