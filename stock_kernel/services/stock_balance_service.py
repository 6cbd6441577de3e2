"""
StockBalanceService -- the per-key lock target and materialized totals.

Responsibility:
    Locks (creating on first use) the ``stock_balances`` row of a
    (category, key) and applies deltas to its running totals.  Every writer
    that moves a balance (removal, reversal, status change, void) goes
    through ``lock()`` before reading the fresh full-scan view.

Architecture position:
    Kernel > Services -- imperative shell.  Called by RemovalCoordinator,
    RemovalReversalService and StockEntryService.

Invariants enforced:
    - ``SELECT ... FOR UPDATE`` serializes writers of one key on PostgreSQL;
      on SQLite the whole transaction already holds the write lock
      (BEGIN IMMEDIATE).
    - The ORM version column turns any lost update into StaleDataError.
    - A newly created row is seeded from the full scan, never from zero.

Failure modes:
    - IntegrityError on a concurrent first-use insert (handled with a
      savepoint and a re-read, as the sequence counter does).
    - StaleDataError on flush if the row changed underneath us.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_engines.reconciliation import BalanceSnapshot
from stock_kernel.domain.values import ZERO, Category, NetStockView
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_balance import StockBalance
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_balance")


class KeyLockRegistry:
    """
    In-process mutex per (category, key).

    Only the removal coordinator takes these, and always before its first
    database statement, so a thread never waits on a key mutex while
    holding a database lock.  A key's mutex is dropped once no thread holds
    or waits on it, so the registry only tracks keys in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], list] = {}

    @contextmanager
    def lock_for(self, category: Category, key: str) -> Iterator[None]:
        ident = (category.value, key)
        with self._guard:
            slot = self._locks.get(ident)
            if slot is None:
                slot = self._locks[ident] = [threading.Lock(), 0]
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[ident]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


KEY_LOCKS = KeyLockRegistry()


class StockBalanceService(BaseService[StockBalance]):

    def _select_locked(self, category: Category, key: str) -> StockBalance | None:
        return self.session.execute(
            select(StockBalance)
            .where(StockBalance.category == category.value, StockBalance.key == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock(self, category: Category, key: str) -> StockBalance:
        """
        Lock and return the balance row, creating it if this key is new.

        Postconditions:
            - The row is locked until the surrounding transaction ends.
        """
        balance = self._select_locked(category, key)
        if balance is not None:
            return balance

        view = NetStockSelector(self.session).view_for_key(category, key)
        savepoint = self.session.begin_nested()
        try:
            balance = StockBalance(
                category=category.value,
                key=key,
                total_original=view.total_original,
                total_removed=view.total_removed,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "stock_balance_created",
                extra={"category": category.value, "stock_key": key},
            )
        except IntegrityError:
            logger.debug(
                "stock_balance_create_race",
                extra={"category": category.value, "stock_key": key},
            )
            savepoint.rollback()
            balance = self._select_locked(category, key)
            if balance is None:
                raise
        return balance

    def sync_to(self, balance: StockBalance, view: NetStockView) -> bool:
        """
        Reset the cached totals to the authoritative full scan.

        Returns True if the cache had drifted.
        """
        if (
            balance.total_original == view.total_original
            and balance.total_removed == view.total_removed
        ):
            return False
        logger.warning(
            "balance_drift_corrected",
            extra={
                "category": balance.category,
                "stock_key": balance.key,
                "cached_total_original": balance.total_original,
                "cached_total_removed": balance.total_removed,
                "scan_total_original": view.total_original,
                "scan_total_removed": view.total_removed,
            },
        )
        balance.total_original = view.total_original
        balance.total_removed = view.total_removed
        return True

    def apply(
        self,
        balance: StockBalance,
        original_delta: Decimal = ZERO,
        removed_delta: Decimal = ZERO,
    ) -> StockBalance:
        """Move the running totals and flush (bumps the version column)."""
        balance.total_original = balance.total_original + original_delta
        balance.total_removed = balance.total_removed + removed_delta
        self.session.flush()
        return balance

    def snapshots(self, category: Category | None = None) -> list[BalanceSnapshot]:
        stmt = select(StockBalance).order_by(StockBalance.category, StockBalance.key)
        if category is not None:
            stmt = stmt.where(StockBalance.category == category.value)
        return [
            BalanceSnapshot(
                category=Category(row.category),
                key=row.key,
                total_original=row.total_original,
                total_removed=row.total_removed,
            )
            for row in self.session.execute(stmt).scalars()
        ]
