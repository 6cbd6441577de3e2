"""
stock_services.reconciliation_service -- Balance cache vs. full scan.

Responsibility:
    Reads every materialized stock_balances row and the full-scan Net Stock
    Calculator output for the requested categories, and hands both to the
    pure StockReconciliationChecker.  The resulting report is audited.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes StockReconciliationChecker (pure engine) with NetStockSelector
    and StockBalanceService (kernel I/O).

Invariants enforced:
    - Read-only with respect to the ledger: reconciliation never repairs a
      balance.  The next writer of a drifted key re-syncs it under lock.

Audit relevance:
    - Every run appends a RECONCILIATION_RUN audit event with the report
      summary (status, keys checked, error/warning counts, finding codes).

Usage:
    report = ReconciliationService(session, auditor).run(actor="ops")
    if report.status is CheckStatus.FAILED:
        ...
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from stock_engines.reconciliation import (
    BalanceSnapshot,
    ReconciliationReport,
    StockReconciliationChecker,
)
from stock_kernel.domain.values import Category, NetStockView
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.stock_balance_service import StockBalanceService

logger = get_logger("services.reconciliation")


class ReconciliationService:
    """
    Contract:
        ``run()`` returns a ReconciliationReport whose findings list every
        drifted, missing or orphaned balance and every integrity warning.

    Non-goals:
        - Does NOT commit; the StockLedger facade owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        checker: StockReconciliationChecker | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._checker = checker or StockReconciliationChecker()
        self._selector = NetStockSelector(session)
        self._balances = StockBalanceService(session)

    def _gather(
        self, categories: tuple[Category, ...]
    ) -> tuple[dict[tuple[Category, str], NetStockView], dict[tuple[Category, str], BalanceSnapshot]]:
        views: dict[tuple[Category, str], NetStockView] = {}
        balances: dict[tuple[Category, str], BalanceSnapshot] = {}
        for category in categories:
            for key, view in self._selector.views_for_category(category).items():
                views[(category, key)] = view
            for snapshot in self._balances.snapshots(category):
                balances[(category, snapshot.key)] = snapshot
        return views, balances

    def run(self, category: Category | None = None, actor: str = "system") -> ReconciliationReport:
        categories = (category,) if category is not None else tuple(Category)

        logger.info(
            "reconciliation_started",
            extra={"categories": [c.value for c in categories]},
        )
        views, balances = self._gather(categories)
        report = self._checker.run_all_checks(
            views=views, balances=balances, categories=categories
        )

        for finding in report.findings:
            logger.warning("reconciliation_finding", extra=finding.log_extra())

        self._auditor.record_reconciliation(
            category.value if category is not None else None,
            report.summary(),
            actor,
        )
        logger.info("reconciliation_completed", extra=report.summary())
        return report
