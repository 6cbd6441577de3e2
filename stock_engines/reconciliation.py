"""
StockReconciliationChecker -- pure engine comparing balances with a full scan.

Detects drift between the materialized ``stock_balances`` rows and the
authoritative full-scan Net Stock Calculator output, plus integrity findings
that the calculator alone can only clamp away.

Architecture: stock_engines -- pure calculation, zero I/O.  All inputs are
frozen dataclasses populated by the service layer.

Checks:
    BALANCE_DRIFT    materialized total_original/total_removed differ from
                     the full scan (ERROR)
    MISSING_BALANCE  the scan knows a key the balance table does not (ERROR)
    ORPHAN_BALANCE   a non-zero balance row whose key the scan never saw (ERROR)
    UNKNOWN_KEY      removals recorded against a key with no approved entry
                     (WARNING)
    OVERDRAWN_KEY    removals exceed approved originals (WARNING)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from stock_engines.tracer import traced_engine
from stock_kernel.domain.values import (
    ZERO,
    Category,
    DataIntegrityWarning,
    NetStockView,
    integrity_warnings_for,
)


class CheckSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class CheckStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"       # At least one ERROR finding
    WARNING = "warning"     # Warnings only, no errors


@dataclass(frozen=True)
class BalanceSnapshot:
    """A stock_balances row, as read by the service layer."""

    category: Category
    key: str
    total_original: Decimal
    total_removed: Decimal


@dataclass(frozen=True)
class ReconciliationFinding:
    code: str
    severity: CheckSeverity
    category: Category
    key: str
    message: str
    details: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "category": self.category.value,
            "key": self.key,
            "message": self.message,
            "details": dict(self.details or {}),
        }

    def log_extra(self) -> dict[str, Any]:
        return {
            "finding_code": self.code,
            "severity": self.severity.value,
            "category": self.category.value,
            "stock_key": self.key,
            "detail": self.message,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Aggregated findings; ``status`` comes from the worst severity."""

    status: CheckStatus
    findings: tuple[ReconciliationFinding, ...] = ()
    keys_checked: int = 0
    categories: tuple[Category, ...] = ()

    @property
    def is_clean(self) -> bool:
        return len(self.findings) == 0

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == CheckSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == CheckSeverity.WARNING)

    def codes(self) -> set[str]:
        return {f.code for f in self.findings}

    @classmethod
    def from_findings(
        cls,
        findings: tuple[ReconciliationFinding, ...],
        keys_checked: int,
        categories: tuple[Category, ...],
    ) -> ReconciliationReport:
        if any(f.severity == CheckSeverity.ERROR for f in findings):
            status = CheckStatus.FAILED
        elif findings:
            status = CheckStatus.WARNING
        else:
            status = CheckStatus.PASSED
        return cls(
            status=status,
            findings=findings,
            keys_checked=keys_checked,
            categories=categories,
        )

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "keys_checked": self.keys_checked,
            "errors": self.error_count,
            "warnings": self.warning_count,
            "codes": sorted(self.codes()),
        }


def _warning_finding(warning: DataIntegrityWarning) -> ReconciliationFinding:
    return ReconciliationFinding(
        code=warning.code,
        severity=CheckSeverity.WARNING,
        category=warning.category,
        key=warning.key,
        message=warning.message,
    )


class StockReconciliationChecker:
    """
    Usage:
        checker = StockReconciliationChecker()
        report = checker.run_all_checks(views=views, balances=balances)
    """

    @traced_engine("stock_reconciliation", "1.0")
    def check_balance_drift(
        self,
        views: Mapping[tuple[Category, str], NetStockView],
        balances: Mapping[tuple[Category, str], BalanceSnapshot],
    ) -> tuple[ReconciliationFinding, ...]:
        findings: list[ReconciliationFinding] = []

        for ident, view in views.items():
            balance = balances.get(ident)
            if balance is None:
                findings.append(ReconciliationFinding(
                    code="MISSING_BALANCE",
                    severity=CheckSeverity.ERROR,
                    category=view.category,
                    key=view.key,
                    message="no materialized balance row for a key with activity",
                    details={
                        "scan_total_original": str(view.total_original),
                        "scan_total_removed": str(view.total_removed),
                    },
                ))
                continue
            if (
                balance.total_original != view.total_original
                or balance.total_removed != view.total_removed
            ):
                findings.append(ReconciliationFinding(
                    code=DataIntegrityWarning.BALANCE_DRIFT,
                    severity=CheckSeverity.ERROR,
                    category=view.category,
                    key=view.key,
                    message="materialized balance disagrees with full scan",
                    details={
                        "scan_total_original": str(view.total_original),
                        "scan_total_removed": str(view.total_removed),
                        "balance_total_original": str(balance.total_original),
                        "balance_total_removed": str(balance.total_removed),
                    },
                ))

        for ident, balance in balances.items():
            if ident in views:
                continue
            if balance.total_original == ZERO and balance.total_removed == ZERO:
                continue
            findings.append(ReconciliationFinding(
                code="ORPHAN_BALANCE",
                severity=CheckSeverity.ERROR,
                category=balance.category,
                key=balance.key,
                message="materialized balance for a key with no contributing rows",
                details={
                    "balance_total_original": str(balance.total_original),
                    "balance_total_removed": str(balance.total_removed),
                },
            ))

        return tuple(findings)

    @traced_engine("stock_reconciliation", "1.0")
    def check_integrity(
        self,
        views: Iterable[NetStockView],
    ) -> tuple[ReconciliationFinding, ...]:
        findings: list[ReconciliationFinding] = []
        for view in views:
            findings.extend(_warning_finding(w) for w in integrity_warnings_for(view))
        return tuple(findings)

    def run_all_checks(
        self,
        views: Mapping[tuple[Category, str], NetStockView],
        balances: Mapping[tuple[Category, str], BalanceSnapshot],
        categories: tuple[Category, ...] = tuple(Category),
    ) -> ReconciliationReport:
        findings: list[ReconciliationFinding] = []
        findings.extend(self.check_balance_drift(views=views, balances=balances))
        findings.extend(self.check_integrity(views=views.values()))
        return ReconciliationReport.from_findings(
            findings=tuple(findings),
            keys_checked=len(set(views) | set(balances)),
            categories=categories,
        )
