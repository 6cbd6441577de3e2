"""
StockEntryService -- creation, approval status changes and voids.

Responsibility:
    Writes worker submissions into the stock entry store, moves them through
    the approval state machine, and tombstones them.  Every change that
    alters an entry's contribution moves the key's materialized balance in
    the same transaction and is audited with before/after.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the StockLedger facade
    and by the finished-product adapter.

Invariants enforced:
    - quantity is write-once; only status and tombstone fields change.
    - Transitions follow domain/status_machine.py; same-state is a no-op
      that writes nothing and audits nothing.
    - Finished-product entries are always approved; their status is fixed.
    - A voided entry accepts no further change.

Failure modes:
    - StockEntryNotFoundError, StockEntryVoidedError,
      InvalidStatusTransitionError, StockEntryValidationError.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import StockEntryDraft, StockEntryInfo, Submitter
from stock_kernel.domain.status_machine import can_transition, contribution_delta, is_noop
from stock_kernel.domain.validation import require_text
from stock_kernel.domain.values import (
    Category,
    DataIntegrityWarning,
    EntryStatus,
    integrity_warnings_for,
)
from stock_kernel.exceptions import (
    InvalidStatusTransitionError,
    StockEntryNotFoundError,
    StockEntryVoidedError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.stock_entry import StockEntry
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_balance_service import StockBalanceService

logger = get_logger("services.stock_entry")


def _snapshot(entry: StockEntry) -> dict:
    return {
        "category": entry.category,
        "key": entry.key,
        "display_name": entry.display_name,
        "quantity": entry.quantity,
        "unit": entry.unit,
        "company": entry.company,
        "submitter_id": entry.submitter_id,
        "status": entry.status,
    }


class StockEntryService(BaseService[StockEntry]):
    """
    Non-goals:
        - Does NOT commit; the facade owns the transaction.
        - Does NOT validate raw worker input; category adapters produce a
          StockEntryDraft that is already valid.
    """

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

    def _load_locked(self, entry_id: UUID) -> StockEntry:
        entry = self.session.execute(
            select(StockEntry)
            .where(StockEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise StockEntryNotFoundError(str(entry_id))
        return entry

    def _report_warnings(self, category: Category, key: str, actor: str) -> list[DataIntegrityWarning]:
        view = NetStockSelector(self.session).view_for_key(category, key)
        warnings = integrity_warnings_for(view)
        for warning in warnings:
            logger.warning("integrity_warning", extra=warning.log_extra())
            self._auditor.record_integrity_warning(warning, actor)
        return warnings

    def create(self, draft: StockEntryDraft, submitter: Submitter, actor: str | None = None) -> StockEntry:
        """
        Insert a new entry.  Approved drafts (finished products) move the
        balance immediately.
        """
        actor = actor or submitter.id
        # Lock (and seed) the balance before the new row can be autoflushed
        # into the seeding scan.
        balance = None
        if draft.status == EntryStatus.APPROVED:
            balance = self._balances.lock(draft.category, draft.key)

        entry = StockEntry(
            category=draft.category.value,
            key=draft.key,
            display_name=draft.display_name,
            quantity=draft.quantity,
            unit=draft.unit,
            company=draft.company,
            submitter_id=submitter.id,
            submitter_name=submitter.name or None,
            submitted_at=draft.submitted_at or self._clock.now(),
            note=draft.note,
            status=draft.status.value,
            created_by=actor,
        )
        self.session.add(entry)
        self.session.flush()
        if balance is not None:
            self._balances.apply(balance, original_delta=draft.quantity)

        self._auditor.record_stock_entry_created(entry.id, _snapshot(entry), actor)
        logger.info(
            "stock_entry_created",
            extra={
                "entry_id": str(entry.id),
                "category": entry.category,
                "stock_key": entry.key,
                "quantity": entry.quantity,
                "status": entry.status,
            },
        )
        return entry

    def set_status(
        self,
        entry_id: UUID,
        new_status: EntryStatus | str,
        actor: str,
    ) -> tuple[StockEntryInfo, list[DataIntegrityWarning]]:
        """
        Move an entry through the approval state machine.

        Returns the updated entry and any integrity warnings the change
        produced (an un-approval can leave a key overdrawn).
        """
        entry = self._load_locked(entry_id)
        current = EntryStatus(entry.status)
        try:
            target = EntryStatus(getattr(new_status, "value", new_status))
        except ValueError:
            raise InvalidStatusTransitionError(
                str(entry.id), current.value, str(new_status), reason="unknown status"
            ) from None

        with LogContext.bind(entry_id=str(entry.id), category=entry.category, stock_key=entry.key):
            if entry.is_voided:
                raise StockEntryVoidedError(str(entry.id))

            if is_noop(current, target):
                logger.debug(
                    "stock_entry_status_unchanged", extra={"status": current.value}
                )
                return StockEntryInfo.from_model(entry), []

            if entry.category == Category.FINISHED_PRODUCT.value:
                raise InvalidStatusTransitionError(
                    str(entry.id), current.value, target.value,
                    reason="finished product entries are always approved",
                )

            if not can_transition(current, target):
                raise InvalidStatusTransitionError(
                    str(entry.id), current.value, target.value,
                    reason=f"{current.value} entries must go back to pending first",
                )

            category = Category(entry.category)
            delta = contribution_delta(current, target)
            balance = self._balances.lock(category, entry.key) if delta else None

            entry.status = target.value
            entry.updated_by = actor
            self.session.flush()
            if balance is not None:
                self._balances.apply(balance, original_delta=entry.quantity * delta)

            self._auditor.record_status_change(
                entry.id, entry.category, entry.key, current.value, target.value, actor
            )
            logger.info(
                "stock_entry_status_changed",
                extra={"from_status": current.value, "to_status": target.value},
            )

            warnings: list[DataIntegrityWarning] = []
            if delta < 0:
                warnings = self._report_warnings(category, entry.key, actor)
            return StockEntryInfo.from_model(entry), warnings

    def void(
        self,
        entry_id: UUID,
        reason: str,
        actor: str,
    ) -> tuple[StockEntryInfo, list[DataIntegrityWarning]]:
        """
        Tombstone an entry.  An approved entry stops contributing.
        """
        reason = require_text(reason, "void_reason", min_length=3)
        entry = self._load_locked(entry_id)

        with LogContext.bind(entry_id=str(entry.id), category=entry.category, stock_key=entry.key):
            if entry.is_voided:
                raise StockEntryVoidedError(str(entry.id))

            category = Category(entry.category)
            contributed = entry.contributes
            balance = self._balances.lock(category, entry.key) if contributed else None

            entry.voided_at = self._clock.now()
            entry.voided_by = actor
            entry.void_reason = reason
            entry.updated_by = actor
            self.session.flush()
            if balance is not None:
                self._balances.apply(balance, original_delta=-entry.quantity)

            self._auditor.record_stock_entry_voided(
                entry.id, entry.category, entry.key, reason, entry.status, actor
            )
            logger.info("stock_entry_voided", extra={"reason": reason})

            warnings: list[DataIntegrityWarning] = []
            if contributed:
                warnings = self._report_warnings(category, entry.key, actor)
            return StockEntryInfo.from_model(entry), warnings
