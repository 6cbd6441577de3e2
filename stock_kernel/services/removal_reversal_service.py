"""
RemovalReversalService -- compensating entries for erroneous removals.

Responsibility:
    Cancels a committed removal by appending a reversal row that carries
    the negated quantity.  The original row is never touched.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the StockLedger facade.

Invariants enforced:
    - A removal is reversed at most once (unique reverses_id, checked under
      the balance lock and again by the database).
    - Reversals cannot themselves be reversed.
    - The balance rises by exactly the reversed quantity.

Failure modes:
    - RemovalNotFoundError, RemovalNotReversibleError,
      RemovalAlreadyReversedError, RemovalValidationError (reason).
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import RemovalLogInfo
from stock_kernel.domain.values import ZERO, Category, RemovalKind, RemovalStatus
from stock_kernel.exceptions import (
    RemovalAlreadyReversedError,
    RemovalNotFoundError,
    RemovalNotReversibleError,
    RemovalValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.removal_log import RemovalLogEntry
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_balance_service import StockBalanceService

logger = get_logger("services.removal_reversal")

MIN_REASON_LENGTH = 3


def _balance(view) -> dict:
    return {
        "total_original": view.total_original,
        "total_removed": view.total_removed,
        "net_available": view.net_available,
    }


class RemovalReversalService(BaseService[RemovalLogEntry]):

    def __init__(
        self,
        session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._balances = StockBalanceService(session)
        self._selector = NetStockSelector(session)

    def _existing_reversal(self, removal_id: UUID) -> RemovalLogEntry | None:
        return self.session.execute(
            select(RemovalLogEntry).where(RemovalLogEntry.reverses_id == removal_id)
        ).scalar_one_or_none()

    def reverse(self, removal_id: UUID, reason: str, actor: str) -> RemovalLogInfo:
        """
        Append the compensating row for ``removal_id``.

        Raises:
            RemovalValidationError: reason shorter than three characters.
            RemovalNotFoundError: no such removal.
            RemovalNotReversibleError: target is a reversal or not completed.
            RemovalAlreadyReversedError: a reversal already exists.
        """
        reason = " ".join(str(reason or "").split())
        if len(reason) < MIN_REASON_LENGTH:
            raise RemovalValidationError(
                "reason", f"must be at least {MIN_REASON_LENGTH} characters"
            )

        original = self.session.execute(
            select(RemovalLogEntry)
            .where(RemovalLogEntry.id == removal_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if original is None:
            raise RemovalNotFoundError(str(removal_id))

        with LogContext.bind(
            removal_id=str(original.id), category=original.category, stock_key=original.key
        ):
            if original.is_reversal:
                raise RemovalNotReversibleError(str(original.id), "row is itself a reversal")
            if original.status != RemovalStatus.COMPLETED.value:
                raise RemovalNotReversibleError(
                    str(original.id), f"status is {original.status}"
                )

            category = Category(original.category)
            balance = self._balances.lock(category, original.key)

            existing = self._existing_reversal(original.id)
            if existing is not None:
                raise RemovalAlreadyReversedError(str(original.id), str(existing.id))

            before = self._selector.view_for_key(category, original.key)
            self._balances.sync_to(balance, before)

            reversal = RemovalLogEntry(
                category=original.category,
                key=original.key,
                entry_kind=RemovalKind.REVERSAL.value,
                remove_quantity=-original.remove_quantity,
                purpose=f"Reversal: {reason}",
                confirmed_by=actor,
                removal_date=self._clock.now().date(),
                status=RemovalStatus.COMPLETED.value,
                notes=reason,
                product_name=original.product_name,
                unit_cost=original.unit_cost,
                total_cost_removed=(
                    -original.total_cost_removed
                    if original.total_cost_removed is not None
                    else None
                ),
                net_available_before=before.net_available,
                net_available_after=max(
                    ZERO,
                    before.total_original - before.total_removed + original.remove_quantity,
                ),
                total_original_before=before.total_original,
                total_removed_before=before.total_removed,
                reverses_id=original.id,
                created_by=actor,
            )

            savepoint = self.session.begin_nested()
            try:
                self.session.add(reversal)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                raise RemovalAlreadyReversedError(str(original.id)) from None

            self._balances.apply(balance, removed_delta=-original.remove_quantity)
            after = self._selector.view_for_key(category, original.key)

            self._auditor.record_removal_reversed(
                reversal_id=reversal.id,
                original_removal_id=original.id,
                category=original.category,
                key=original.key,
                reason=reason,
                before=_balance(before),
                after=_balance(after),
                actor=actor,
            )
            logger.info(
                "removal_reversed",
                extra={
                    "reversal_id": str(reversal.id),
                    "quantity": original.remove_quantity,
                    "net_available_before": before.net_available,
                    "net_available_after": after.net_available,
                },
            )
            return RemovalLogInfo.from_model(reversal)
