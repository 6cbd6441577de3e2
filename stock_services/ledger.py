"""
stock_services.ledger -- StockLedger, the in-process interface of the ledger.

Responsibility:
    Owns the transaction of every call.  Each public method opens a
    ``session_scope()``, wires the kernel services for that session, runs
    the operation and commits (or rolls back and re-raises).  Callers never
    see a session or an ORM row; results are frozen DTOs.

Architecture position:
    Services -- top of the stack.  Imports kernel, engines, modules and
    config; nothing imports this module except scripts and tests.

Invariants enforced:
    - All-or-nothing: a call's stock, removal, balance and audit writes
      commit together.
    - Rejected removals commit only their audit record (the coordinator
      rolled the attempt back to a savepoint).
    - A removal that exhausts its conflict retries is audited in a fresh
      transaction, then RetriesExhaustedError is raised.
    - Reads never lock.

Usage:
    ledger = StockLedger.from_config()
    entry = ledger.create_stock_entry(
        "leather", "Cow Hide", "100", Submitter("w-7", "Rahim"),
        unit="sq ft", company="Dhaka Tannery",
    )
    ledger.set_status(entry.id, "approved", actor="admin@shop")
    result = ledger.request_removal(
        "leather", "cow hide", "30", purpose="Wallet batch", confirmed_by="Karim",
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from stock_config import LedgerConfig, get_active_config
from stock_engines.reconciliation import ReconciliationReport
from stock_engines.removal_summary import RemovalSummary, summarize_removals
from stock_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    AuditRecord,
    RemovalFilter,
    RemovalLogInfo,
    RemovalRequest,
    RemovalResult,
    StockEntryFilter,
    StockEntryInfo,
    Submitter,
)
from stock_kernel.domain.values import (
    Category,
    EntryStatus,
    NetStockView,
    integrity_warnings_for,
    stock_key_for,
)
from stock_kernel.exceptions import RetriesExhaustedError, StockEntryValidationError
from stock_kernel.logging_config import LogContext, configure_logging, get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.selectors.removal_selector import RemovalSelector
from stock_kernel.selectors.stock_entry_selector import StockEntrySelector
from stock_kernel.services.auditor_service import AuditorService, AuditTrace
from stock_kernel.services.removal_coordinator import RemovalCoordinator, RemovalPolicy
from stock_kernel.services.removal_reversal_service import RemovalReversalService
from stock_kernel.services.stock_balance_service import KEY_LOCKS, KeyLockRegistry
from stock_kernel.services.stock_entry_service import StockEntryService
from stock_modules import LeatherSubmission, MaterialSubmission, adapter_for
from stock_modules.finished_product import FinishedProductRecord, FinishedProductService
from stock_services.reconciliation_service import ReconciliationService

logger = get_logger("services.ledger")


@dataclass
class _LedgerServices:
    """Kernel services wired for one session.  Built once per call."""

    session: Session
    auditor: AuditorService
    entries: StockEntryService
    coordinator: RemovalCoordinator
    reversals: RemovalReversalService
    finished_products: FinishedProductService
    reconciliation: ReconciliationService


def _submitter(value: Submitter | str) -> Submitter:
    return value if isinstance(value, Submitter) else Submitter(id=str(value))


class StockLedger:
    """
    Facade over the stock kernel.

    Contract:
        Every method is one transaction.  Removal rejections come back in
        RemovalResult; every other failure is raised as a typed
        StockKernelError after the transaction has been rolled back.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        key_locks: KeyLockRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._config = config or LedgerConfig()
        self._clock = clock or SystemClock()
        self._key_locks = key_locks or KEY_LOCKS
        self._sleep = sleep
        self._policy: RemovalPolicy = self._config.removal.to_policy()
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig | None = None,
        create_schema: bool = True,
        clock: Clock | None = None,
    ) -> StockLedger:
        """Initialize logging, the engine and (optionally) the schema from config."""
        config = config or get_active_config()
        configure_logging(level=config.logging.level)
        db = config.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            sqlite_busy_timeout=db.sqlite_busy_timeout,
        )
        if create_schema:
            create_tables(install_triggers=db.install_triggers)
        return cls(session_factory=get_session_factory(), config=config, clock=clock)

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _scope(self, actor: str | None = None) -> Iterator[Session]:
        with LogContext.bind(correlation_id=str(uuid4()), actor=actor):
            with session_scope(self._session_factory) as session:
                yield session

    def _services(self, session: Session) -> _LedgerServices:
        auditor = AuditorService(session, self._clock)
        return _LedgerServices(
            session=session,
            auditor=auditor,
            entries=StockEntryService(session, auditor, self._clock),
            coordinator=RemovalCoordinator(
                session,
                auditor,
                policy=self._policy,
                clock=self._clock,
                key_locks=self._key_locks,
                sleep=self._sleep,
            ),
            reversals=RemovalReversalService(session, auditor, self._clock),
            finished_products=FinishedProductService(
                session,
                auditor,
                self._clock,
                adapter=adapter_for(Category.FINISHED_PRODUCT, self._config.stock_entry),
            ),
            reconciliation=ReconciliationService(session, auditor),
        )

    # ------------------------------------------------------------------
    # Stock entries
    # ------------------------------------------------------------------

    def create_stock_entry(
        self,
        category: Category | str,
        name: Any,
        quantity: Any,
        submitter: Submitter | str,
        unit: Any = None,
        company: Any = None,
        note: Any = None,
        submitted_at: datetime | None = None,
    ) -> StockEntryInfo:
        """
        Record a worker's leather or material submission as pending.

        Raises:
            InvalidCategoryError: Unknown category.
            StockEntryValidationError: Bad name, quantity, unit or company,
                or a finished product (those come from the production
                pipeline through record_finished_product).
        """
        cat = Category.parse(category)
        if cat == Category.LEATHER:
            submission = LeatherSubmission(
                leather_type=name,
                quantity=quantity,
                unit=unit,
                company=company,
                note=note,
                submitted_at=submitted_at,
            )
        elif cat == Category.MATERIAL:
            submission = MaterialSubmission(
                material=name,
                quantity=quantity,
                unit=unit,
                company=company,
                note=note,
                submitted_at=submitted_at,
            )
        else:
            raise StockEntryValidationError(
                "category", "finished products are recorded from the production pipeline"
            )
        draft = adapter_for(cat, self._config.stock_entry).to_draft(submission)
        who = _submitter(submitter)

        with self._scope(actor=who.id) as session:
            entry = self._services(session).entries.create(draft, who)
            return StockEntryInfo.from_model(entry)

    def set_status(
        self,
        entry_id: UUID,
        new_status: EntryStatus | str,
        actor: str,
    ) -> StockEntryInfo:
        with self._scope(actor=actor) as session:
            info, _ = self._services(session).entries.set_status(entry_id, new_status, actor)
            return info

    def void_stock_entry(self, entry_id: UUID, reason: str, actor: str) -> StockEntryInfo:
        with self._scope(actor=actor) as session:
            info, _ = self._services(session).entries.void(entry_id, reason, actor)
            return info

    def record_finished_product(
        self,
        product_id: Any,
        product_name: Any,
        fulfilled_quantity: Any,
        finished_at: datetime | None = None,
        production_job_id: Any = None,
        unit: Any = "pcs",
        unit_cost: Any = None,
        submitter: Submitter | str = "production",
        actor: str | None = None,
    ) -> StockEntryInfo:
        """
        Record a finished production job as an always-approved entry.

        Raises:
            StockEntryValidationError: Bad product id, name or quantity.
            DuplicateFinishedProductError: Product id already recorded.
        """
        record = FinishedProductRecord(
            product_id=product_id,
            product_name=product_name,
            fulfilled_quantity=fulfilled_quantity,
            finished_at=finished_at,
            production_job_id=production_job_id,
            unit=unit,
            unit_cost=unit_cost,
        )
        who = _submitter(submitter)
        with self._scope(actor=actor or who.id) as session:
            return self._services(session).finished_products.record(record, who, actor=actor)

    def get_stock_entry(self, entry_id: UUID) -> StockEntryInfo:
        with self._scope() as session:
            return StockEntrySelector(session).get(entry_id)

    def list_stock_entries(self, filter: StockEntryFilter | None = None) -> list[StockEntryInfo]:
        with self._scope() as session:
            return StockEntrySelector(session).list_entries(filter)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_net_stock(
        self,
        category: Category | str,
        key: Any = None,
    ) -> dict[str, NetStockView] | NetStockView:
        """
        Without ``key``: every key of the category.  With ``key``: that key's
        view (all zeros if unknown).  Integrity findings are logged.
        """
        cat = Category.parse(category)
        with self._scope() as session:
            selector = NetStockSelector(session)
            if key is None:
                views = selector.views_for_category(cat)
                checked = list(views.values())
                result: dict[str, NetStockView] | NetStockView = views
            else:
                view = selector.view_for_key(cat, stock_key_for(cat, key))
                checked = [view]
                result = view
        for view in checked:
            for warning in integrity_warnings_for(view):
                logger.warning("integrity_warning", extra=warning.log_extra())
        return result

    # ------------------------------------------------------------------
    # Removals
    # ------------------------------------------------------------------

    def request_removal(
        self,
        category: Any,
        key: Any,
        remove_quantity: Any,
        purpose: Any,
        confirmed_by: Any,
        removal_date: date | None = None,
        available_at_request_time: Any = None,
        destination: str | None = None,
        notes: str | None = None,
        unit_cost: Any = None,
        product_name: str | None = None,
        actor: str | None = None,
    ) -> RemovalResult:
        request = RemovalRequest(
            category=category,
            key=key,
            remove_quantity=remove_quantity,
            purpose=purpose,
            confirmed_by=confirmed_by,
            removal_date=removal_date,
            available_at_request_time=available_at_request_time,
            destination=destination,
            notes=notes,
            unit_cost=unit_cost,
            product_name=product_name,
        )
        return self.submit_removal(request, actor=actor)

    def submit_removal(self, request: RemovalRequest, actor: str | None = None) -> RemovalResult:
        """
        Run a removal request in its own transaction.

        Raises:
            RetriesExhaustedError: After auditing the give-up.
        """
        try:
            with self._scope(actor=actor) as session:
                return self._services(session).coordinator.request_removal(request, actor)
        except RetriesExhaustedError as exc:
            with self._scope(actor=actor) as session:
                auditor = AuditorService(session, self._clock)
                auditor.record_removal_rejected(
                    category=exc.category,
                    key=exc.key,
                    request={
                        "remove_quantity": str(request.remove_quantity),
                        "purpose": str(request.purpose),
                        "confirmed_by": str(request.confirmed_by),
                    },
                    error_code=exc.code,
                    reason=str(exc),
                    actor=actor or str(request.confirmed_by),
                )
            raise

    def reverse_removal(self, removal_id: UUID, reason: str, actor: str) -> RemovalLogInfo:
        with self._scope(actor=actor) as session:
            return self._services(session).reversals.reverse(removal_id, reason, actor)

    def get_removal(self, removal_id: UUID) -> RemovalLogInfo:
        with self._scope() as session:
            return RemovalSelector(session).get(removal_id)

    def list_removals(self, filter: RemovalFilter | None = None) -> list[RemovalLogInfo]:
        with self._scope() as session:
            return RemovalSelector(session).list_removals(filter)

    def removal_summary(
        self,
        filter: RemovalFilter | None = None,
        today: date | None = None,
    ) -> RemovalSummary:
        """Totals over the filtered removals; reversed removals drop out."""
        base = filter or RemovalFilter()
        if not base.include_reversals or base.limit is not None or base.offset:
            # Summaries need every row, reversals included, to net them out
            base = RemovalFilter(
                category=base.category,
                key=base.key,
                search=base.search,
                purpose=base.purpose,
                confirmed_by=base.confirmed_by,
                date_from=base.date_from,
                date_to=base.date_to,
                status=base.status,
            )
        rows = self.list_removals(base)
        return summarize_removals(rows, today=today or self._clock.now().date())

    # ------------------------------------------------------------------
    # Audit and reconciliation
    # ------------------------------------------------------------------

    def audit_trail(
        self,
        entity_type: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        action: AuditAction | str | None = None,
    ) -> list[AuditRecord]:
        with self._scope() as session:
            return AuditorService(session, self._clock).export(
                entity_type=entity_type, since=since, until=until, action=action
            )

    def audit_trace(self, entity_type: str, entity_id: UUID | str) -> AuditTrace:
        with self._scope() as session:
            return AuditorService(session, self._clock).get_trace(entity_type, entity_id)

    def verify_audit_chain(self) -> bool:
        """
        Raises:
            AuditChainBrokenError: At the first tampered or relinked event.
        """
        with self._scope() as session:
            return AuditorService(session, self._clock).validate_chain()

    def reconcile(
        self,
        category: Category | str | None = None,
        actor: str = "system",
    ) -> ReconciliationReport:
        cat = Category.parse(category) if category is not None else None
        with self._scope(actor=actor) as session:
            return self._services(session).reconciliation.run(cat, actor=actor)
