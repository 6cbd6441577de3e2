"""
RemovalSelector -- listing and lookup of removal log rows.

Filters follow the removal history screen: category, key, inclusive
removal-date range, and case-insensitive substring matches on key or
product name, purpose and confirmer.
"""

from uuid import UUID

from sqlalchemy import or_, select

from stock_kernel.domain.dtos import RemovalFilter, RemovalLogInfo
from stock_kernel.exceptions import RemovalNotFoundError
from stock_kernel.models.removal_log import RemovalLogEntry
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.stock_entry_selector import _icontains


class RemovalSelector(BaseSelector[RemovalLogEntry]):

    def get(self, removal_id: UUID) -> RemovalLogInfo:
        removal = self.session.get(RemovalLogEntry, removal_id)
        if removal is None:
            raise RemovalNotFoundError(str(removal_id))
        return RemovalLogInfo.from_model(removal)

    def reversal_of(self, removal_id: UUID) -> RemovalLogInfo | None:
        row = self.session.execute(
            select(RemovalLogEntry).where(RemovalLogEntry.reverses_id == removal_id)
        ).scalar_one_or_none()
        return RemovalLogInfo.from_model(row) if row is not None else None

    def list_removals(self, filter: RemovalFilter | None = None) -> list[RemovalLogInfo]:
        """Newest removal_date first, then newest created."""
        f = filter or RemovalFilter()
        stmt = select(RemovalLogEntry)
        if f.category is not None:
            stmt = stmt.where(RemovalLogEntry.category == f.category.value)
        if f.key is not None:
            stmt = stmt.where(RemovalLogEntry.key == f.key)
        if f.status is not None:
            stmt = stmt.where(RemovalLogEntry.status == f.status.value)
        if not f.include_reversals:
            stmt = stmt.where(RemovalLogEntry.entry_kind == "removal")
        if f.search:
            stmt = stmt.where(or_(
                _icontains(RemovalLogEntry.key, f.search),
                _icontains(RemovalLogEntry.product_name, f.search),
            ))
        if f.purpose:
            stmt = stmt.where(_icontains(RemovalLogEntry.purpose, f.purpose))
        if f.confirmed_by:
            stmt = stmt.where(_icontains(RemovalLogEntry.confirmed_by, f.confirmed_by))
        if f.date_from is not None:
            stmt = stmt.where(RemovalLogEntry.removal_date >= f.date_from)
        if f.date_to is not None:
            stmt = stmt.where(RemovalLogEntry.removal_date <= f.date_to)
        stmt = stmt.order_by(
            RemovalLogEntry.removal_date.desc(),
            RemovalLogEntry.created_at.desc(),
            RemovalLogEntry.id,
        )
        if f.offset:
            stmt = stmt.offset(f.offset)
        if f.limit is not None:
            stmt = stmt.limit(f.limit)
        return [RemovalLogInfo.from_model(r) for r in self.session.execute(stmt).scalars()]
