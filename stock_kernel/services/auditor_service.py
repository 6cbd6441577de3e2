"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every status change,
    every void, and every committed or rejected removal attempt.  Provides
    chain validation for tamper detection and export/trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by StockEntryService,
    RemovalCoordinator, RemovalReversalService and the reconciliation
    service.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Chain integrity: every event's hash covers its predecessor's hash.
    - Append-only: audit events are never modified or deleted (ORM listener
      and, on PostgreSQL, a trigger).

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match the stored hash,
      or prev_hash does not match the predecessor's hash.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock, as_utc
from stock_kernel.domain.dtos import AuditRecord
from stock_kernel.domain.values import DataIntegrityWarning
from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


def stock_key_entity_id(category: str, key: str) -> str:
    """Entity id used for key-level audit events."""
    return f"{category}/{key}"


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in chronological order."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditRecord, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)


def _to_record(event: AuditEvent) -> AuditRecord:
    return AuditRecord(
        seq=event.seq,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        action=event.action,
        actor=event.actor,
        occurred_at=as_utc(event.occurred_at),
        payload=dict(event.payload or {}),
        hash=event.hash,
    )


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT interpret or act on audit events.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID | str,
        action: AuditAction,
        actor: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        The sequence counter row is locked first, so prev_hash is read while
        no other writer can append.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            actor=actor,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            actor=actor,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    # Stock entries

    def record_stock_entry_created(
        self,
        entry_id: UUID,
        snapshot: dict[str, Any],
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="StockEntry",
            entity_id=entry_id,
            action=AuditAction.STOCK_ENTRY_CREATED,
            actor=actor,
            payload={"after": snapshot},
        )

    def record_status_change(
        self,
        entry_id: UUID,
        category: str,
        key: str,
        before: str,
        after: str,
        actor: str,
    ) -> AuditEvent:
        """Record an approval status change with before/after."""
        return self._create_audit_event(
            entity_type="StockEntry",
            entity_id=entry_id,
            action=AuditAction.STOCK_ENTRY_STATUS_CHANGED,
            actor=actor,
            payload={
                "category": category,
                "key": key,
                "before": {"status": before},
                "after": {"status": after},
            },
        )

    def record_stock_entry_voided(
        self,
        entry_id: UUID,
        category: str,
        key: str,
        reason: str,
        status: str,
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="StockEntry",
            entity_id=entry_id,
            action=AuditAction.STOCK_ENTRY_VOIDED,
            actor=actor,
            payload={
                "category": category,
                "key": key,
                "reason": reason,
                "before": {"status": status, "voided": False},
                "after": {"status": status, "voided": True},
            },
        )

    def record_finished_product(
        self,
        product_id: str,
        entry_id: UUID,
        fulfilled_quantity: Any,
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="FinishedProduct",
            entity_id=product_id,
            action=AuditAction.FINISHED_PRODUCT_RECORDED,
            actor=actor,
            payload={
                "stock_entry_id": entry_id,
                "fulfilled_quantity": fulfilled_quantity,
            },
        )

    # Removals

    def record_removal_committed(
        self,
        removal_id: UUID,
        category: str,
        key: str,
        request: dict[str, Any],
        before: dict[str, Any],
        after: dict[str, Any],
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="RemovalLogEntry",
            entity_id=removal_id,
            action=AuditAction.REMOVAL_COMMITTED,
            actor=actor,
            payload={
                "category": category,
                "key": key,
                "request": request,
                "before": before,
                "after": after,
            },
        )

    def record_removal_rejected(
        self,
        category: str,
        key: str,
        request: dict[str, Any],
        error_code: str,
        reason: str,
        actor: str,
        balance: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Record a rejected removal attempt.

        Keyed by "category/key" because no removal row exists.
        """
        return self._create_audit_event(
            entity_type="StockKey",
            entity_id=stock_key_entity_id(category, key),
            action=AuditAction.REMOVAL_REJECTED,
            actor=actor,
            payload={
                "category": category,
                "key": key,
                "request": request,
                "error_code": error_code,
                "reason": reason,
                "before": balance,
                "after": balance,
            },
        )

    def record_removal_reversed(
        self,
        reversal_id: UUID,
        original_removal_id: UUID,
        category: str,
        key: str,
        reason: str,
        before: dict[str, Any],
        after: dict[str, Any],
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="RemovalLogEntry",
            entity_id=reversal_id,
            action=AuditAction.REMOVAL_REVERSED,
            actor=actor,
            payload={
                "original_removal_id": original_removal_id,
                "category": category,
                "key": key,
                "reason": reason,
                "before": before,
                "after": after,
            },
        )

    # Findings

    def record_integrity_warning(
        self,
        warning: DataIntegrityWarning,
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="StockKey",
            entity_id=stock_key_entity_id(warning.category.value, warning.key),
            action=AuditAction.INTEGRITY_WARNING,
            actor=actor,
            payload=warning.to_dict(),
        )

    def record_reconciliation(
        self,
        category: str | None,
        summary: dict[str, Any],
        actor: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Reconciliation",
            entity_id=category or "all",
            action=AuditAction.RECONCILIATION_RUN,
            actor=actor,
            payload=summary,
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: At the first event whose hash or linkage
                does not match.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical(
                "audit_chain_broken", extra={"seq": events[0].seq, "reason": "genesis"}
            )
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            payload_hash = hash_payload(event.payload or {})
            if payload_hash != event.payload_hash:
                logger.critical(
                    "audit_chain_broken", extra={"seq": event.seq, "reason": "payload"}
                )
                raise AuditChainBrokenError(str(event.id), payload_hash, event.payload_hash)

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                action=event.action,
                actor=event.actor,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken", extra={"seq": event.seq, "reason": "hash"}
                )
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical(
                        "audit_chain_broken", extra={"seq": event.seq, "reason": "linkage"}
                    )
                    raise AuditChainBrokenError(
                        str(event.id), expected_prev, event.prev_hash or "None"
                    )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    # Trace and export

    def get_trace(self, entity_type: str, entity_id: UUID | str) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entries=tuple(_to_record(event) for event in events),
        )

    def export(
        self,
        entity_type: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        action: AuditAction | str | None = None,
    ) -> list[AuditRecord]:
        """Export audit events in sequence order, optionally filtered."""
        stmt = select(AuditEvent).order_by(AuditEvent.seq)
        if entity_type is not None:
            stmt = stmt.where(AuditEvent.entity_type == entity_type)
        if action is not None:
            value = action.value if isinstance(action, AuditAction) else action
            stmt = stmt.where(AuditEvent.action == value)
        if since is not None:
            stmt = stmt.where(AuditEvent.occurred_at >= since)
        if until is not None:
            stmt = stmt.where(AuditEvent.occurred_at <= until)
        events = self._session.execute(stmt).scalars().all()
        return [_to_record(event) for event in events]
