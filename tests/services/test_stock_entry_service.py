"""
StockEntryService: creation, approval status changes, voids, and how each
moves the key's balance.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import RemovalRequest
from stock_kernel.domain.values import Category, DataIntegrityWarning, EntryStatus
from stock_kernel.exceptions import (
    InvalidStatusTransitionError,
    StockEntryNotFoundError,
    StockEntryValidationError,
    StockEntryVoidedError,
)
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.selectors.net_stock_selector import NetStockSelector
from stock_kernel.services.stock_balance_service import StockBalanceService


def net(session, key="cow hide", category=Category.LEATHER):
    return NetStockSelector(session).view_for_key(category, key)


class TestCreate:

    def test_new_entry_is_pending_and_contributes_nothing(self, session, add_stock):
        info = add_stock("leather", "Cow Hide", "100", status="pending")

        assert info.status == EntryStatus.PENDING
        assert info.key == "cow hide"
        assert info.display_name == "Cow Hide"
        assert info.submitter_id == "worker-7"
        assert info.submitter_name == "Rahim"
        assert not info.contributes
        assert net(session).net_available == Decimal("0")

    def test_creation_is_audited(self, add_stock, auditor_service):
        info = add_stock(status="pending")

        trace = auditor_service.get_trace("StockEntry", info.id)
        assert trace.actions == (AuditAction.STOCK_ENTRY_CREATED.value,)
        assert trace.entries[0].payload["after"]["quantity"] == "100"
        assert trace.entries[0].actor == "worker-7"


class TestStatusChanges:

    def test_approval_adds_to_net(self, session, add_stock, stock_entry_service):
        info = add_stock(status="pending")

        updated, warnings = stock_entry_service.set_status(info.id, "approved", "admin@shop")

        assert updated.status == EntryStatus.APPROVED
        assert warnings == []
        assert net(session).net_available == Decimal("100")

    def test_unapproval_removes_from_net(self, session, add_stock, stock_entry_service):
        info = add_stock()

        stock_entry_service.set_status(info.id, EntryStatus.PENDING, "admin@shop")

        assert net(session).net_available == Decimal("0")

    def test_reapproval_is_a_noop(self, add_stock, stock_entry_service, auditor_service):
        info = add_stock()
        events_before = len(auditor_service.export())

        updated, _ = stock_entry_service.set_status(info.id, "approved", "admin@shop")

        assert updated.status == EntryStatus.APPROVED
        assert len(auditor_service.export()) == events_before

    def test_approved_to_rejected_must_go_through_pending(self, add_stock, stock_entry_service):
        info = add_stock()

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            stock_entry_service.set_status(info.id, "rejected", "admin@shop")

        assert exc_info.value.from_status == "approved"
        assert exc_info.value.to_status == "rejected"

    def test_unknown_status_is_refused(self, add_stock, stock_entry_service):
        info = add_stock(status="pending")

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            stock_entry_service.set_status(info.id, "archived", "admin@shop")

        assert exc_info.value.to_status == "archived"
        assert exc_info.value.reason == "unknown status"

    def test_rejected_then_pending_then_approved(self, session, add_stock, stock_entry_service):
        info = add_stock(status="rejected")
        stock_entry_service.set_status(info.id, "pending", "admin@shop")
        stock_entry_service.set_status(info.id, "approved", "admin@shop")

        assert net(session).net_available == Decimal("100")

    def test_status_change_is_audited_with_before_and_after(self, add_stock, auditor_service):
        info = add_stock()

        trace = auditor_service.get_trace("StockEntry", info.id)

        assert trace.actions == (
            AuditAction.STOCK_ENTRY_CREATED.value,
            AuditAction.STOCK_ENTRY_STATUS_CHANGED.value,
        )
        change = trace.entries[1]
        assert change.payload["before"] == {"status": "pending"}
        assert change.payload["after"] == {"status": "approved"}
        assert change.actor == "admin@shop"

    def test_unknown_entry(self, stock_entry_service):
        with pytest.raises(StockEntryNotFoundError):
            stock_entry_service.set_status(uuid4(), "approved", "admin@shop")

    def test_unapproval_after_removal_warns_unknown_key(
        self, session, add_stock, stock_entry_service, coordinator, auditor_service,
    ):
        info = add_stock()
        coordinator.request_removal(RemovalRequest(
            category="leather", key="cow hide", remove_quantity="30",
            purpose="sale", confirmed_by="Admin",
        )).unwrap()

        _, warnings = stock_entry_service.set_status(info.id, "pending", "admin@shop")

        assert [w.code for w in warnings] == [DataIntegrityWarning.UNKNOWN_KEY]
        view = net(session)
        assert view.net_available == Decimal("0")
        assert view.total_removed == Decimal("30")
        assert auditor_service.export(action=AuditAction.INTEGRITY_WARNING)

    def test_partial_unapproval_warns_overdrawn(
        self, session, add_stock, stock_entry_service, coordinator,
    ):
        first = add_stock(quantity="50")
        add_stock(quantity="20")
        coordinator.request_removal(RemovalRequest(
            category="leather", key="cow hide", remove_quantity="60",
            purpose="sale", confirmed_by="Admin",
        )).unwrap()

        _, warnings = stock_entry_service.set_status(first.id, "pending", "admin@shop")

        assert [w.code for w in warnings] == [DataIntegrityWarning.OVERDRAWN_KEY]
        assert net(session).is_overdrawn


class TestVoid:

    def test_void_stops_contribution(self, session, add_stock, stock_entry_service):
        info = add_stock()

        voided, _ = stock_entry_service.void(info.id, "Duplicate submission", "admin@shop")

        assert voided.is_voided
        assert voided.void_reason == "Duplicate submission"
        assert voided.voided_by == "admin@shop"
        assert net(session).net_available == Decimal("0")
        (snapshot,) = StockBalanceService(session).snapshots(Category.LEATHER)
        assert snapshot.total_original == Decimal("0")

    def test_voided_entry_accepts_no_change(self, add_stock, stock_entry_service):
        info = add_stock(status="pending")
        stock_entry_service.void(info.id, "Typo in quantity", "admin@shop")

        with pytest.raises(StockEntryVoidedError):
            stock_entry_service.set_status(info.id, "approved", "admin@shop")
        with pytest.raises(StockEntryVoidedError):
            stock_entry_service.void(info.id, "Again please", "admin@shop")

    def test_void_requires_reason(self, add_stock, stock_entry_service):
        info = add_stock()

        with pytest.raises(StockEntryValidationError) as exc_info:
            stock_entry_service.void(info.id, " x ", "admin@shop")

        assert exc_info.value.field == "void_reason"

    def test_void_is_audited(self, add_stock, stock_entry_service, auditor_service):
        info = add_stock()
        stock_entry_service.void(info.id, "Wrong category", "admin@shop")

        trace = auditor_service.get_trace("StockEntry", info.id)

        assert trace.actions[-1] == AuditAction.STOCK_ENTRY_VOIDED.value
        assert trace.entries[-1].payload["reason"] == "Wrong category"
