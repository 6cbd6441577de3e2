"""
Finished product service (``stock_modules.finished_product.service``).

Responsibility
--------------
Records a finished production job into the ledger: one FinishedProduct
row plus the synthetic, always-approved StockEntry that carries its
fulfilled quantity.  Both are written in the caller's transaction.

Invariants
----------
- A product id is recorded at most once (checked, then enforced by the
  unique constraint).
- The synthetic entry's quantity equals the fulfilled quantity and is
  frozen like every other stock entry.

Failure Modes
-------------
- ``StockEntryValidationError`` from the adapter.
- ``DuplicateFinishedProductError`` when the product id already exists.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import StockEntryInfo, Submitter
from stock_kernel.domain.validation import optional_text
from stock_kernel.domain.values import parse_quantity, quantity_precision_problem
from stock_kernel.exceptions import DuplicateFinishedProductError, StockEntryValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.finished_product import FinishedProduct
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.stock_entry_service import StockEntryService
from stock_modules.finished_product.adapter import FinishedProductAdapter
from stock_modules.finished_product.models import FinishedProductRecord

logger = get_logger("modules.finished_product.service")


class FinishedProductService:
    """
    Usage::

        service = FinishedProductService(session, auditor, clock)
        info = service.record(record, submitter=Submitter("production"))
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        adapter: FinishedProductAdapter | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._adapter = adapter or FinishedProductAdapter()
        self._entries = StockEntryService(session, auditor, self._clock)

    def exists(self, product_id: str) -> bool:
        return self._session.execute(
            select(FinishedProduct.id).where(FinishedProduct.product_id == product_id)
        ).first() is not None

    def record(
        self,
        record: FinishedProductRecord,
        submitter: Submitter,
        actor: str | None = None,
    ) -> StockEntryInfo:
        draft = self._adapter.to_draft(record)
        actor = actor or submitter.id

        unit_cost = None
        if record.unit_cost not in (None, ""):
            unit_cost = parse_quantity(record.unit_cost)
            if unit_cost is None or unit_cost < 0:
                raise StockEntryValidationError("unit_cost", "must be a non-negative number")
            problem = quantity_precision_problem(unit_cost)
            if problem:
                raise StockEntryValidationError("unit_cost", problem)

        with LogContext.bind(category=draft.category.value, stock_key=draft.key):
            if self.exists(draft.key):
                raise DuplicateFinishedProductError(draft.key)

            savepoint = self._session.begin_nested()
            try:
                entry = self._entries.create(draft, submitter, actor=actor)
                product = FinishedProduct(
                    product_id=draft.key,
                    product_name=draft.display_name,
                    production_job_id=optional_text(record.production_job_id),
                    fulfilled_quantity=draft.quantity,
                    finished_at=entry.submitted_at,
                    unit_cost=unit_cost,
                    stock_entry_id=entry.id,
                    created_by=actor,
                )
                self._session.add(product)
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                raise DuplicateFinishedProductError(draft.key) from None

            self._auditor.record_finished_product(
                product_id=draft.key,
                entry_id=entry.id,
                fulfilled_quantity=draft.quantity,
                actor=actor,
            )
            logger.info(
                "finished_product_recorded",
                extra={
                    "entry_id": str(entry.id),
                    "fulfilled_quantity": draft.quantity,
                    "production_job_id": product.production_job_id,
                },
            )
            return StockEntryInfo.from_model(entry)
