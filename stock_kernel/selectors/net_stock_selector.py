"""
NetStockSelector -- full-scan balance reads.

Loads stock entries and removal rows of a category (optionally one key) and
hands them to the pure Net Stock Calculator.  This is the authoritative
balance; the materialized stock_balances rows are only a lock target and a
cache that reconciliation checks against this.
"""

from sqlalchemy import select

from stock_engines.net_stock import (
    LedgerEntryRow,
    LedgerRemovalRow,
    calculate_net_stock,
    net_stock_for_key,
)
from stock_kernel.domain.values import Category, NetStockView
from stock_kernel.models.removal_log import RemovalLogEntry
from stock_kernel.models.stock_entry import StockEntry
from stock_kernel.selectors.base import BaseSelector


class NetStockSelector(BaseSelector[StockEntry]):

    def _entry_rows(self, category: Category, key: str | None) -> list[LedgerEntryRow]:
        stmt = select(
            StockEntry.category,
            StockEntry.key,
            StockEntry.quantity,
            StockEntry.status,
            StockEntry.display_name,
            StockEntry.voided_at,
        ).where(StockEntry.category == category.value)
        if key is not None:
            stmt = stmt.where(StockEntry.key == key)
        stmt = stmt.order_by(StockEntry.submitted_at, StockEntry.id)
        return [
            LedgerEntryRow(
                category=row.category,
                key=row.key,
                quantity=row.quantity,
                status=row.status,
                display_name=row.display_name,
                voided=row.voided_at is not None,
            )
            for row in self.session.execute(stmt)
        ]

    def _removal_rows(self, category: Category, key: str | None) -> list[LedgerRemovalRow]:
        stmt = select(
            RemovalLogEntry.category,
            RemovalLogEntry.key,
            RemovalLogEntry.remove_quantity,
            RemovalLogEntry.status,
            RemovalLogEntry.entry_kind,
        ).where(RemovalLogEntry.category == category.value)
        if key is not None:
            stmt = stmt.where(RemovalLogEntry.key == key)
        return [
            LedgerRemovalRow(
                category=row.category,
                key=row.key,
                remove_quantity=row.remove_quantity,
                status=row.status,
                entry_kind=row.entry_kind,
            )
            for row in self.session.execute(stmt)
        ]

    def views_for_category(self, category: Category) -> dict[str, NetStockView]:
        """Every key of the category, ordered by key."""
        return calculate_net_stock(
            category=category,
            entries=self._entry_rows(category, None),
            removals=self._removal_rows(category, None),
        )

    def view_for_key(self, category: Category, key: str) -> NetStockView:
        """Fresh view of one key (all zeros when the key is unknown)."""
        return net_stock_for_key(
            category=category,
            key=key,
            entries=self._entry_rows(category, key),
            removals=self._removal_rows(category, key),
        )
