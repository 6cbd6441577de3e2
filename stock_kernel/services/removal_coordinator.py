"""
RemovalCoordinator -- validates and commits removals with no overdraft.

Responsibility:
    The only writer of removal rows.  Each request is validated at the
    boundary, then re-validated against a freshly recomputed balance while
    the key is locked, then appended together with the balance bump inside
    one savepoint.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the StockLedger facade.

Invariants enforced:
    - No overdraft: remove_quantity <= net_available of a fresh full-scan
      read taken after the key lock.  The caller's on-screen figure is
      recorded (available_at_request_time) but never trusted.
    - All-or-nothing: a rejected request leaves the stock entry and removal
      stores unchanged (savepoint rollback).  Its audit record is written
      after the rollback, in the caller's transaction.
    - Postcondition: the recomputed net_available dropped by exactly the
      removed quantity.
    - Per-key serialization: in-process key mutex, then SELECT ... FOR
      UPDATE on the balance row, then the optimistic version check.

Failure modes (returned inside RemovalResult, never raised):
    - RemovalValidationError  -- bad quantity / purpose / confirmer / key.
    - InsufficientStockError  -- request exceeds the fresh balance.
Raised:
    - RetriesExhaustedError   -- conflicts kept recurring past max_retries.

Audit relevance:
    Every attempt, committed or rejected, produces exactly one AuditEvent
    (REMOVAL_COMMITTED or REMOVAL_REJECTED).  Integrity findings on the key
    add INTEGRITY_WARNING events.
"""

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    RemovalLogInfo,
    RemovalRequest,
    RemovalResult,
    ValidatedRemoval,
)
from stock_kernel.domain.validation import (
    DEFAULT_MIN_CONFIRMER_LENGTH,
    DEFAULT_MIN_PURPOSE_LENGTH,
    validate_removal_request,
)
from stock_kernel.domain.values import (
    DataIntegrityWarning,
    NetStockView,
    RemovalKind,
    RemovalStatus,
    integrity_warnings_for,
)
from stock_kernel.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    RemovalError,
    RemovalValidationError,
    RetriesExhaustedError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.removal_log import RemovalLogEntry
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.stock_balance_service import (
    KEY_LOCKS,
    KeyLockRegistry,
    StockBalanceService,
)

logger = get_logger("services.removal_coordinator")


@dataclass(frozen=True)
class RemovalPolicy:
    """Tunables for removal validation and conflict retries."""

    min_purpose_length: int = DEFAULT_MIN_PURPOSE_LENGTH
    min_confirmer_length: int = DEFAULT_MIN_CONFIRMER_LENGTH
    max_retries: int = 5
    retry_backoff_seconds: float = 0.05


def _balance_dict(view: NetStockView) -> dict[str, Any]:
    return {
        "total_original": view.total_original,
        "total_removed": view.total_removed,
        "net_available": view.net_available,
    }


def _request_dict(request: RemovalRequest) -> dict[str, Any]:
    return {k: (str(v) if v is not None else None) for k, v in asdict(request).items()}


class _Rejected(Exception):
    """Internal: carries a terminal rejection out of the locked section."""

    def __init__(
        self,
        error: RemovalError,
        view: NetStockView,
        warnings: list[DataIntegrityWarning],
    ):
        self.error = error
        self.view = view
        self.warnings = warnings


_LOCK_CONFLICT_MARKERS = (
    "locked",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "could not obtain lock",
)


def _is_lock_conflict(exc: OperationalError) -> bool:
    message = str(exc.orig or exc).lower()
    return any(marker in message for marker in _LOCK_CONFLICT_MARKERS)


class RemovalCoordinator:
    """
    Usage:
        coordinator = RemovalCoordinator(session, auditor, policy, clock)
        result = coordinator.request_removal(request, actor="admin@shop")
        if not result.succeeded:
            ...

    Non-goals:
        - Does NOT commit; the facade owns the outer transaction.  The
          coordinator should be the first writer in that transaction.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        policy: RemovalPolicy | None = None,
        clock: Clock | None = None,
        key_locks: KeyLockRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session = session
        self._auditor = auditor
        self._policy = policy or RemovalPolicy()
        self._clock = clock or SystemClock()
        self._key_locks = key_locks or KEY_LOCKS
        self._sleep = sleep
        self._balances = StockBalanceService(session)
        self._selector = NetStockSelector(session)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request_removal(self, request: RemovalRequest, actor: str | None = None) -> RemovalResult:
        """
        Validate, lock, re-read, check and append.

        Raises:
            RetriesExhaustedError: only when conflicts exhaust the retry bound.
        """
        try:
            removal = validate_removal_request(
                request,
                min_purpose_length=self._policy.min_purpose_length,
                min_confirmer_length=self._policy.min_confirmer_length,
            )
        except RemovalValidationError as exc:
            return self._reject_invalid(request, exc, actor)

        actor = actor or removal.confirmed_by
        with LogContext.bind(category=removal.category.value, stock_key=removal.key, actor=actor):
            with self._key_locks.lock_for(removal.category, removal.key):
                return self._run_with_retries(request, removal, actor)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reject_invalid(
        self,
        request: RemovalRequest,
        error: RemovalValidationError,
        actor: str | None,
    ) -> RemovalResult:
        category = str(getattr(request.category, "value", request.category) or "")
        key = str(request.key or "")
        logger.info(
            "removal_rejected",
            extra={"error_code": error.code, "field": error.field, "reason": error.reason},
        )
        self._auditor.record_removal_rejected(
            category=category,
            key=key,
            request=_request_dict(request),
            error_code=error.code,
            reason=str(error),
            actor=actor or str(request.confirmed_by or "") or "unknown",
        )
        return RemovalResult(error=error, attempts=0)

    def _run_with_retries(
        self,
        request: RemovalRequest,
        removal: ValidatedRemoval,
        actor: str,
    ) -> RemovalResult:
        attempts = 0
        max_attempts = self._policy.max_retries + 1
        while True:
            attempts += 1
            try:
                info, before, after, warnings = self._attempt(removal, actor)
            except _Rejected as rejected:
                return self._reject_insufficient(request, removal, rejected, actor, attempts)
            except ConcurrentModificationError as exc:
                if attempts >= max_attempts:
                    logger.error(
                        "removal_retries_exhausted",
                        extra={"attempts": attempts, "detail": exc.detail},
                    )
                    raise RetriesExhaustedError(
                        removal.category.value, removal.key, attempts
                    ) from exc
                logger.warning(
                    "removal_retry", extra={"attempt": attempts, "detail": exc.detail}
                )
                self._sleep(self._policy.retry_backoff_seconds * attempts)
                continue

            self._auditor.record_removal_committed(
                removal_id=info.id,
                category=removal.category.value,
                key=removal.key,
                request=_request_dict(request),
                before=_balance_dict(before),
                after=_balance_dict(after),
                actor=actor,
            )
            for warning in warnings:
                self._auditor.record_integrity_warning(warning, actor)
            logger.info(
                "removal_committed",
                extra={
                    "removal_id": str(info.id),
                    "remove_quantity": removal.remove_quantity,
                    "net_available_before": before.net_available,
                    "net_available_after": after.net_available,
                    "attempts": attempts,
                },
            )
            return RemovalResult(
                removal=info,
                view_after=after,
                warnings=tuple(warnings),
                attempts=attempts,
            )

    def _rollback_attempt(self, savepoint) -> None:
        if savepoint is not None and savepoint.is_active:
            savepoint.rollback()
        else:
            self._session.rollback()
        self._session.expire_all()

    def _attempt(
        self,
        removal: ValidatedRemoval,
        actor: str,
    ) -> tuple[RemovalLogInfo, NetStockView, NetStockView, list[DataIntegrityWarning]]:
        savepoint = None
        try:
            savepoint = self._session.begin_nested()

            balance = self._balances.lock(removal.category, removal.key)
            before = self._selector.view_for_key(removal.category, removal.key)
            self._balances.sync_to(balance, before)

            warnings = integrity_warnings_for(before)
            if not before.is_known and not before.is_degenerate:
                warnings.append(DataIntegrityWarning(
                    code=DataIntegrityWarning.UNKNOWN_KEY,
                    category=removal.category,
                    key=removal.key,
                    message="removal requested for a key with no approved stock entry",
                ))
            for warning in warnings:
                logger.warning("integrity_warning", extra=warning.log_extra())

            if removal.remove_quantity > before.net_available:
                raise _Rejected(
                    InsufficientStockError(
                        removal.category.value,
                        removal.key,
                        removal.remove_quantity,
                        before.net_available,
                    ),
                    before,
                    warnings,
                )

            row = self._build_row(removal, before, actor)
            self._session.add(row)
            self._balances.apply(balance, removed_delta=removal.remove_quantity)

            after = self._selector.view_for_key(removal.category, removal.key)
            expected = before.net_available - removal.remove_quantity
            if after.net_available != expected:
                logger.critical(
                    "removal_postcondition_failed",
                    extra={"expected": expected, "actual": after.net_available},
                )
                raise ConcurrentModificationError(
                    removal.category.value,
                    removal.key,
                    f"net after commit {after.net_available}, expected {expected}",
                )

            savepoint.commit()
            return RemovalLogInfo.from_model(row), before, after, warnings

        except _Rejected:
            self._rollback_attempt(savepoint)
            raise
        except ConcurrentModificationError:
            self._rollback_attempt(savepoint)
            raise
        except StaleDataError as exc:
            self._rollback_attempt(savepoint)
            raise ConcurrentModificationError(
                removal.category.value, removal.key, "balance version changed"
            ) from exc
        except OperationalError as exc:
            self._rollback_attempt(savepoint)
            if not _is_lock_conflict(exc):
                raise
            raise ConcurrentModificationError(
                removal.category.value, removal.key, f"lock conflict: {exc.orig}"
            ) from exc

    def _build_row(
        self,
        removal: ValidatedRemoval,
        before: NetStockView,
        actor: str,
    ) -> RemovalLogEntry:
        total_cost = None
        if removal.unit_cost is not None:
            total_cost = removal.unit_cost * removal.remove_quantity
        available_seen = removal.available_at_request_time
        if available_seen is None:
            available_seen = before.net_available
        return RemovalLogEntry(
            category=removal.category.value,
            key=removal.key,
            entry_kind=RemovalKind.REMOVAL.value,
            remove_quantity=removal.remove_quantity,
            available_at_request_time=available_seen,
            purpose=removal.purpose,
            confirmed_by=removal.confirmed_by,
            removal_date=removal.removal_date or self._clock.now().date(),
            status=RemovalStatus.COMPLETED.value,
            destination=removal.destination,
            notes=removal.notes,
            unit_cost=removal.unit_cost,
            total_cost_removed=total_cost,
            product_name=removal.product_name or before.display_name,
            net_available_before=before.net_available,
            net_available_after=before.net_available - removal.remove_quantity,
            total_original_before=before.total_original,
            total_removed_before=before.total_removed,
            created_by=actor,
        )

    def _reject_insufficient(
        self,
        request: RemovalRequest,
        removal: ValidatedRemoval,
        rejected: "_Rejected",
        actor: str,
        attempts: int,
    ) -> RemovalResult:
        error = rejected.error
        warnings = list(rejected.warnings)
        logger.info(
            "removal_rejected",
            extra={
                "error_code": error.code,
                "requested": removal.remove_quantity,
                "available": rejected.view.net_available,
            },
        )
        self._auditor.record_removal_rejected(
            category=removal.category.value,
            key=removal.key,
            request=_request_dict(request),
            error_code=error.code,
            reason=str(error),
            actor=actor,
            balance=_balance_dict(rejected.view),
        )
        for warning in warnings:
            self._auditor.record_integrity_warning(warning, actor)
        return RemovalResult(
            error=error,
            view_after=rejected.view,
            warnings=tuple(warnings),
            attempts=attempts,
        )
