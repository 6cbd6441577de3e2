"""
StockEntrySelector -- listing and lookup of stock entries.

Text filters match case-insensitive substrings; the date range is inclusive
and applies to submitted_at (whole days, UTC).
"""

from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, or_, select

from stock_kernel.domain.dtos import StockEntryFilter, StockEntryInfo
from stock_kernel.exceptions import StockEntryNotFoundError
from stock_kernel.models.stock_entry import StockEntry
from stock_kernel.selectors.base import BaseSelector


def day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_after(value: date) -> datetime:
    return day_start(value + timedelta(days=1))


def _icontains(column, term: str):
    return func.lower(column).contains(term.strip().lower(), autoescape=True)


class StockEntrySelector(BaseSelector[StockEntry]):

    def get(self, entry_id: UUID) -> StockEntryInfo:
        entry = self.session.get(StockEntry, entry_id)
        if entry is None:
            raise StockEntryNotFoundError(str(entry_id))
        return StockEntryInfo.from_model(entry)

    def list_entries(self, filter: StockEntryFilter | None = None) -> list[StockEntryInfo]:
        """Newest first."""
        f = filter or StockEntryFilter()
        stmt = select(StockEntry)
        if f.category is not None:
            stmt = stmt.where(StockEntry.category == f.category.value)
        if f.status is not None:
            stmt = stmt.where(StockEntry.status == f.status.value)
        if not f.include_voided:
            stmt = stmt.where(StockEntry.voided_at.is_(None))
        if f.search:
            stmt = stmt.where(or_(
                _icontains(StockEntry.display_name, f.search),
                _icontains(StockEntry.key, f.search),
            ))
        if f.company:
            stmt = stmt.where(_icontains(StockEntry.company, f.company))
        if f.submitter:
            stmt = stmt.where(or_(
                _icontains(StockEntry.submitter_name, f.submitter),
                _icontains(StockEntry.submitter_id, f.submitter),
            ))
        if f.date_from is not None:
            stmt = stmt.where(StockEntry.submitted_at >= day_start(f.date_from))
        if f.date_to is not None:
            stmt = stmt.where(StockEntry.submitted_at < day_after(f.date_to))
        stmt = stmt.order_by(StockEntry.submitted_at.desc(), StockEntry.id)
        if f.offset:
            stmt = stmt.offset(f.offset)
        if f.limit is not None:
            stmt = stmt.limit(f.limit)
        return [StockEntryInfo.from_model(e) for e in self.session.execute(stmt).scalars()]
