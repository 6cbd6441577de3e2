"""
Module: stock_kernel.models.stock_balance
Responsibility: Materialized running totals per (category, key).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (category, key) (unique constraint).
    - version is bumped by the ORM on every UPDATE; a stale version raises
      StaleDataError, which the removal coordinator turns into a retry.

The row is the lock target that serializes writers of one key.  It is a
cache: the full-scan calculator is authoritative, and the reconciliation
service reports any drift between the two.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class StockBalance(Base):
    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint("category", "key", name="uq_stock_balance_category_key"),
    )

    category: Mapped[str] = mapped_column(String(30), nullable=False)

    key: Mapped[str] = mapped_column(String(255), nullable=False)

    total_original: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_removed: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<StockBalance {self.category}/{self.key} "
            f"{self.total_original}-{self.total_removed} v{self.version}>"
        )

    @property
    def net_available(self) -> Decimal:
        return max(Decimal("0"), self.total_original - self.total_removed)
