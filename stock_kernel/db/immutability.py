"""
ORM-level immutability enforcement (layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

A worker's original stock submission is the evidence the whole balance is
built on.  Once written, its quantity and identity never change; removals are
append-only; audit events are sacred.  Corrections happen by new rows
(a status change, a tombstone, a compensating reversal), never by editing.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through SQLAlchemy sessions
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL and bulk statements

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | Rule
-----------------|----------------------------------------------------------
StockEntry       | Only status, tombstone fields and updated_* may change.
                 | A voided entry accepts no change at all.  Never deleted.
RemovalLogEntry  | Append-only: never updated, never deleted.
FinishedProduct  | fulfilled_quantity is frozen.  Never deleted.
AuditEvent       | Append-only: never updated, never deleted.
StockBalance     | Mutable (materialized cache); never deleted.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called by StockLedger

Tests that need to tamper with rows on purpose:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import (
    HardDeleteForbiddenError,
    ImmutabilityViolationError,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields a StockEntry may change after insert.
STOCK_ENTRY_MUTABLE_FIELDS = frozenset({
    "status",
    "voided_at",
    "voided_by",
    "void_reason",
    "updated_at",
    "updated_by",
})

# Audit metadata that may change even on frozen rows.
_METADATA_FIELDS = frozenset({"updated_at", "updated_by"})

FINISHED_PRODUCT_FROZEN_FIELDS = frozenset({"fulfilled_quantity", "product_id"})


def _blocked(entity_type: str, entity_id, operation: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.history.has_changes()
    ]


# =============================================================================
# StockEntry
# =============================================================================


def _check_stock_entry_immutability(mapper, connection, target):
    """Block edits of write-once fields and any edit of a voided entry."""
    voided_history = get_history(target, "voided_at")
    if voided_history.deleted:
        was_voided = voided_history.deleted[0] is not None
    elif not voided_history.added:
        was_voided = target.voided_at is not None
    else:
        was_voided = False

    for field in _changed_fields(target):
        if was_voided and field not in _METADATA_FIELDS:
            _blocked("StockEntry", target.id, "UPDATE", field)
            raise ImmutabilityViolationError(
                entity_type="StockEntry",
                entity_id=str(target.id),
                reason=f"entry is voided; cannot modify '{field}'",
            )
        if field not in STOCK_ENTRY_MUTABLE_FIELDS:
            _blocked("StockEntry", target.id, "UPDATE", field)
            raise ImmutabilityViolationError(
                entity_type="StockEntry",
                entity_id=str(target.id),
                reason=f"'{field}' is write-once",
            )


def _check_stock_entry_delete(mapper, connection, target):
    _blocked("StockEntry", target.id, "DELETE")
    raise HardDeleteForbiddenError("StockEntry", str(target.id))


# =============================================================================
# RemovalLogEntry
# =============================================================================


def _check_removal_log_immutability(mapper, connection, target):
    """Removal log rows are append-only."""
    changed = [f for f in _changed_fields(target) if f not in _METADATA_FIELDS]
    if not changed:
        return
    _blocked("RemovalLogEntry", target.id, "UPDATE", changed[0])
    raise ImmutabilityViolationError(
        entity_type="RemovalLogEntry",
        entity_id=str(target.id),
        reason="removal log entries are append-only",
    )


def _check_removal_log_delete(mapper, connection, target):
    _blocked("RemovalLogEntry", target.id, "DELETE")
    raise HardDeleteForbiddenError("RemovalLogEntry", str(target.id))


# =============================================================================
# FinishedProduct
# =============================================================================


def _check_finished_product_immutability(mapper, connection, target):
    for field in _changed_fields(target):
        if field in FINISHED_PRODUCT_FROZEN_FIELDS:
            _blocked("FinishedProduct", target.id, "UPDATE", field)
            raise ImmutabilityViolationError(
                entity_type="FinishedProduct",
                entity_id=str(target.id),
                reason=f"'{field}' is frozen once the product is recorded",
            )


def _check_finished_product_delete(mapper, connection, target):
    _blocked("FinishedProduct", target.id, "DELETE")
    raise HardDeleteForbiddenError("FinishedProduct", str(target.id))


# =============================================================================
# AuditEvent
# =============================================================================


def _check_audit_event_immutability(mapper, connection, target):
    _blocked("AuditEvent", target.id, "UPDATE")
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    _blocked("AuditEvent", target.id, "DELETE")
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events cannot be deleted",
    )


# =============================================================================
# StockBalance
# =============================================================================


def _check_stock_balance_delete(mapper, connection, target):
    _blocked("StockBalance", target.id, "DELETE")
    raise HardDeleteForbiddenError("StockBalance", str(target.id))


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from stock_kernel.models.audit_event import AuditEvent
    from stock_kernel.models.finished_product import FinishedProduct
    from stock_kernel.models.removal_log import RemovalLogEntry
    from stock_kernel.models.stock_balance import StockBalance
    from stock_kernel.models.stock_entry import StockEntry

    return (
        (StockEntry, "before_update", _check_stock_entry_immutability),
        (StockEntry, "before_delete", _check_stock_entry_delete),
        (RemovalLogEntry, "before_update", _check_removal_log_immutability),
        (RemovalLogEntry, "before_delete", _check_removal_log_delete),
        (FinishedProduct, "before_update", _check_finished_product_immutability),
        (FinishedProduct, "before_delete", _check_finished_product_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (StockBalance, "before_delete", _check_stock_balance_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after models are importable and before any write.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that tamper with rows on purpose.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)


def immutability_listeners_active() -> bool:
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listener_table()
    )
