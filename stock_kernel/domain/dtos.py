"""
Data transfer objects for the stock ledger.

Responsibility:
    Frozen request/response types that cross the service boundary.  Services
    and selectors return these instead of ORM instances so that callers never
    hold a live, mutable row.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model`` constructors accept
    ORM rows but do not import the models module at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from stock_kernel.domain.clock import as_utc
from stock_kernel.domain.values import (
    Category,
    DataIntegrityWarning,
    EntryStatus,
    NetStockView,
    RemovalKind,
    RemovalStatus,
)

if TYPE_CHECKING:
    from stock_kernel.exceptions import RemovalError
    from stock_kernel.models.removal_log import RemovalLogEntry
    from stock_kernel.models.stock_entry import StockEntry


@dataclass(frozen=True)
class Submitter:
    """Who submitted (or acted on) a stock entry."""

    id: str
    name: str = ""


@dataclass(frozen=True)
class StockEntryDraft:
    """
    Canonical (category, key, quantity, status) produced by a category adapter.

    Quantity is already validated positive; key is already normalized.
    """

    category: Category
    key: str
    display_name: str
    quantity: Decimal
    unit: str | None = None
    company: str | None = None
    note: str | None = None
    status: EntryStatus = EntryStatus.PENDING
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class StockEntryInfo:
    id: UUID
    category: Category
    key: str
    display_name: str
    quantity: Decimal
    unit: str | None
    company: str | None
    submitter_id: str
    submitter_name: str | None
    submitted_at: datetime
    note: str | None
    status: EntryStatus
    voided_at: datetime | None = None
    voided_by: str | None = None
    void_reason: str | None = None

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None

    @property
    def contributes(self) -> bool:
        return self.status == EntryStatus.APPROVED and not self.is_voided

    @classmethod
    def from_model(cls, model: StockEntry) -> StockEntryInfo:
        return cls(
            id=model.id,
            category=Category(model.category),
            key=model.key,
            display_name=model.display_name,
            quantity=model.quantity,
            unit=model.unit,
            company=model.company,
            submitter_id=model.submitter_id,
            submitter_name=model.submitter_name,
            submitted_at=as_utc(model.submitted_at),
            note=model.note,
            status=EntryStatus(model.status),
            voided_at=as_utc(model.voided_at),
            voided_by=model.voided_by,
            void_reason=model.void_reason,
        )


@dataclass(frozen=True)
class RemovalRequest:
    """
    An admin's request to remove stock from one key.

    ``available_at_request_time`` is what the admin saw on screen.  It is
    recorded for the audit trail and never used for the decision.
    """

    category: Any
    key: Any
    remove_quantity: Any
    purpose: Any
    confirmed_by: Any
    removal_date: date | None = None
    available_at_request_time: Any = None
    destination: str | None = None
    notes: str | None = None
    unit_cost: Any = None
    product_name: str | None = None


@dataclass(frozen=True)
class ValidatedRemoval:
    """RemovalRequest after boundary validation."""

    category: Category
    key: str
    remove_quantity: Decimal
    purpose: str
    confirmed_by: str
    removal_date: date | None
    available_at_request_time: Decimal | None
    destination: str | None
    notes: str | None
    unit_cost: Decimal | None
    product_name: str | None


@dataclass(frozen=True)
class RemovalLogInfo:
    id: UUID
    category: Category
    key: str
    entry_kind: RemovalKind
    remove_quantity: Decimal
    available_at_request_time: Decimal | None
    purpose: str
    confirmed_by: str
    removal_date: date
    created_at: datetime | None
    status: RemovalStatus
    destination: str | None = None
    notes: str | None = None
    unit_cost: Decimal | None = None
    total_cost_removed: Decimal | None = None
    product_name: str | None = None
    net_available_before: Decimal | None = None
    net_available_after: Decimal | None = None
    total_original_before: Decimal | None = None
    total_removed_before: Decimal | None = None
    reverses_id: UUID | None = None

    @property
    def is_reversal(self) -> bool:
        return self.entry_kind == RemovalKind.REVERSAL

    @classmethod
    def from_model(cls, model: RemovalLogEntry) -> RemovalLogInfo:
        return cls(
            id=model.id,
            category=Category(model.category),
            key=model.key,
            entry_kind=RemovalKind(model.entry_kind),
            remove_quantity=model.remove_quantity,
            available_at_request_time=model.available_at_request_time,
            purpose=model.purpose,
            confirmed_by=model.confirmed_by,
            removal_date=model.removal_date,
            created_at=as_utc(model.created_at),
            status=RemovalStatus(model.status),
            destination=model.destination,
            notes=model.notes,
            unit_cost=model.unit_cost,
            total_cost_removed=model.total_cost_removed,
            product_name=model.product_name,
            net_available_before=model.net_available_before,
            net_available_after=model.net_available_after,
            total_original_before=model.total_original_before,
            total_removed_before=model.total_removed_before,
            reverses_id=model.reverses_id,
        )


@dataclass(frozen=True)
class RemovalResult:
    """
    Outcome of a removal request.

    Exactly one of ``removal`` / ``error`` is set.  ``view_after`` is the
    freshly recomputed balance after a committed removal, or the balance the
    request was rejected against.
    """

    removal: RemovalLogInfo | None = None
    error: RemovalError | None = None
    view_after: NetStockView | None = None
    warnings: tuple[DataIntegrityWarning, ...] = ()
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.removal is not None

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    def unwrap(self) -> RemovalLogInfo:
        """Return the committed removal or raise the rejection."""
        if self.error is not None:
            raise self.error
        assert self.removal is not None
        return self.removal


@dataclass(frozen=True)
class StockEntryFilter:
    """Listing filter for stock entries; text matches are case-insensitive."""

    category: Category | None = None
    status: EntryStatus | None = None
    search: str | None = None
    company: str | None = None
    submitter: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    include_voided: bool = False
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class RemovalFilter:
    """Listing filter for removal log rows; text matches are case-insensitive."""

    category: Category | None = None
    key: str | None = None
    search: str | None = None
    purpose: str | None = None
    confirmed_by: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    status: RemovalStatus | None = None
    include_reversals: bool = True
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class AuditRecord:
    """One exported audit event."""

    seq: int
    entity_type: str
    entity_id: str
    action: str
    actor: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    hash: str = ""
