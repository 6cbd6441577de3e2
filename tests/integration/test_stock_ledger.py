"""
StockLedger facade, end to end over committed transactions.

These tests never take the rolled-back ``session`` fixture: every ledger
call opens and commits its own transaction.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm.exc import StaleDataError

from stock_engines.reconciliation import CheckStatus
from stock_kernel.domain.dtos import RemovalFilter, StockEntryFilter, Submitter
from stock_kernel.domain.values import Category, EntryStatus, NetStockView
from stock_kernel.exceptions import (
    DuplicateFinishedProductError,
    InvalidCategoryError,
    RemovalNotFoundError,
    RetriesExhaustedError,
    StockEntryNotFoundError,
    StockEntryValidationError,
)
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.services.stock_balance_service import StockBalanceService

ADMIN = "admin@shop"
RAHIM = Submitter(id="worker-7", name="Rahim")
NADIA = Submitter(id="worker-9", name="Nadia")


def approved_leather(ledger, name="Cow Hide", quantity="100", company="Dhaka Tannery", **fields):
    entry = ledger.create_stock_entry(
        "leather", name, quantity, RAHIM, unit="sq ft", company=company, **fields
    )
    return ledger.set_status(entry.id, "approved", actor=ADMIN)


def remove(ledger, quantity, key="Cow Hide", category="leather", **fields):
    fields.setdefault("purpose", "sale")
    fields.setdefault("confirmed_by", "Admin")
    return ledger.request_removal(category, key, quantity, actor=ADMIN, **fields)


class TestStockEntries:

    def test_submission_waits_for_approval(self, ledger):
        entry = ledger.create_stock_entry(
            "leather", "Cow Hide", "100", RAHIM, unit="sq ft", company="Dhaka Tannery"
        )

        assert entry.status == EntryStatus.PENDING
        assert ledger.get_net_stock("leather", "Cow Hide").net_available == Decimal("0")

        ledger.set_status(entry.id, "approved", actor=ADMIN)

        assert ledger.get_net_stock("leather", "Cow Hide").net_available == Decimal("100")

    def test_get_stock_entry(self, ledger):
        entry = approved_leather(ledger)

        loaded = ledger.get_stock_entry(entry.id)

        assert (loaded.id, loaded.quantity, loaded.status) == (entry.id, entry.quantity, entry.status)
        with pytest.raises(StockEntryNotFoundError):
            ledger.get_stock_entry(uuid4())

    def test_invalid_submission_writes_nothing(self, ledger):
        with pytest.raises(StockEntryValidationError):
            ledger.create_stock_entry("leather", "Cow Hide", "-4", RAHIM, unit="sq ft", company="X")

        assert ledger.list_stock_entries() == []
        assert ledger.audit_trail() == []

    def test_finished_products_are_not_worker_submissions(self, ledger):
        with pytest.raises(StockEntryValidationError) as exc_info:
            ledger.create_stock_entry("finished_product", "FP-1", "3", RAHIM, unit="pcs")

        assert exc_info.value.field == "category"

    def test_unknown_category(self, ledger):
        with pytest.raises(InvalidCategoryError):
            ledger.create_stock_entry("plastic", "Sheet", "3", RAHIM, unit="pcs")

    def test_void(self, ledger):
        entry = approved_leather(ledger)

        voided = ledger.void_stock_entry(entry.id, "Counted twice", actor=ADMIN)

        assert voided.is_voided
        assert ledger.get_net_stock("leather", "cow hide").net_available == Decimal("0")

    def test_listing_filters(self, ledger, deterministic_clock):
        approved_leather(ledger, "Cow Hide", company="Dhaka Tannery")
        deterministic_clock.advance(86400)
        ledger.create_stock_entry("leather", "Goat Skin", "30", NADIA, unit="sq ft",
                                  company="Chittagong Leathers")
        deterministic_clock.advance(86400)
        ledger.create_stock_entry("material", "Brass Buckle", "40", NADIA, unit="pcs")
        voided = ledger.create_stock_entry("material", "Old Thread", "2", RAHIM, unit="rolls")
        ledger.void_stock_entry(voided.id, "Wrong entry", actor=ADMIN)

        everything = ledger.list_stock_entries()
        assert [e.display_name for e in everything] == [
            "Brass Buckle", "Goat Skin", "Cow Hide",
        ]
        assert len(ledger.list_stock_entries(StockEntryFilter(include_voided=True))) == 4
        assert [e.display_name for e in ledger.list_stock_entries(
            StockEntryFilter(category=Category.LEATHER, status=EntryStatus.PENDING)
        )] == ["Goat Skin"]
        assert [e.display_name for e in ledger.list_stock_entries(
            StockEntryFilter(search="HIDE")
        )] == ["Cow Hide"]
        assert [e.display_name for e in ledger.list_stock_entries(
            StockEntryFilter(company="chittagong")
        )] == ["Goat Skin"]
        assert {e.display_name for e in ledger.list_stock_entries(
            StockEntryFilter(submitter="nadia")
        )} == {"Goat Skin", "Brass Buckle"}
        assert [e.display_name for e in ledger.list_stock_entries(
            StockEntryFilter(date_from=date(2024, 1, 2), date_to=date(2024, 1, 2))
        )] == ["Goat Skin"]
        assert [e.display_name for e in ledger.list_stock_entries(
            StockEntryFilter(limit=1, offset=1)
        )] == ["Goat Skin"]


class TestNetStock:

    def test_category_view(self, ledger):
        approved_leather(ledger, "Cow Hide", "100")
        approved_leather(ledger, "Goat Skin", "20")
        remove(ledger, "5", key="goat skin")

        views = ledger.get_net_stock("leather")

        assert list(views) == ["cow hide", "goat skin"]
        assert views["goat skin"].net_available == Decimal("15")
        assert views["goat skin"].percentage_consumed == Decimal("25.00")

    def test_unknown_key_is_all_zero(self, ledger):
        view = ledger.get_net_stock("material", "Nothing")

        assert isinstance(view, NetStockView)
        assert view.total_original == Decimal("0")
        assert view.net_available == Decimal("0")

    def test_key_is_normalized(self, ledger):
        approved_leather(ledger)

        assert ledger.get_net_stock("leather", "  COW   hide").net_available == Decimal("100")


class TestRemovals:

    def test_reference_scenarios(self, ledger):
        approved_leather(ledger, quantity="100")
        assert ledger.get_net_stock("leather", "Cow Hide").net_available == Decimal("100")

        first = remove(ledger, "30")
        assert first.succeeded
        view = ledger.get_net_stock("leather", "Cow Hide")
        assert view.net_available == Decimal("70")
        assert view.percentage_consumed == Decimal("30.00")

        refused = remove(ledger, "80")
        assert refused.error_code == "INSUFFICIENT_STOCK"
        assert ledger.get_net_stock("leather", "Cow Hide").net_available == Decimal("70")

        for bad in ({"remove_quantity": "0"}, {"remove_quantity": "-3"}, {"purpose": ""}):
            fields = {"remove_quantity": "10", "purpose": "sale"}
            fields.update(bad)
            quantity = fields.pop("remove_quantity")
            result = remove(ledger, quantity, **fields)
            assert result.error_code == "VALIDATION_ERROR"

        assert len(ledger.list_removals()) == 1

    def test_quantities_beyond_storage_precision_are_refused(self, ledger):
        with pytest.raises(StockEntryValidationError) as exc_info:
            ledger.create_stock_entry("leather", "Goat", "1e30", RAHIM, unit="sq ft", company="X")
        assert exc_info.value.field == "quantity"

        approved_leather(ledger, "Goat", "1000")
        result = remove(ledger, "0.0000000001", key="Goat")

        assert result.error_code == "VALIDATION_ERROR"
        assert ledger.list_removals() == []
        assert ledger.get_net_stock("leather", "Goat").net_available == Decimal("1000")

    def test_rejections_are_audited_and_committed(self, ledger):
        approved_leather(ledger, quantity="10")

        remove(ledger, "11")

        (event,) = ledger.audit_trail(action=AuditAction.REMOVAL_REJECTED)
        assert event.entity_id == "leather/cow hide"
        assert ledger.verify_audit_chain()

    def test_get_and_reverse(self, ledger):
        approved_leather(ledger)
        removal = remove(ledger, "30").unwrap()

        assert ledger.get_removal(removal.id).remove_quantity == removal.remove_quantity
        reversal = ledger.reverse_removal(removal.id, "Wrong hide picked", actor=ADMIN)

        assert reversal.reverses_id == removal.id
        assert ledger.get_net_stock("leather", "cow hide").net_available == Decimal("100")
        with pytest.raises(RemovalNotFoundError):
            ledger.get_removal(uuid4())

    def test_listing_filters(self, ledger):
        approved_leather(ledger, "Cow Hide", "100")
        ledger.record_finished_product("FP-0042", "Bifold Wallet", "25")
        remove(ledger, "10", purpose="Wallet batch", confirmed_by="Karim",
               removal_date=date(2024, 1, 5))
        remove(ledger, "20", purpose="Belt batch", confirmed_by="Nadia",
               removal_date=date(2024, 1, 10))
        remove(ledger, "5", key="FP-0042", category="finished_product",
               purpose="Shipped to retailer", confirmed_by="Karim",
               removal_date=date(2024, 1, 7))

        newest_first = ledger.list_removals()
        assert [r.removal_date.day for r in newest_first] == [10, 7, 5]

        assert [r.purpose for r in ledger.list_removals(
            RemovalFilter(category=Category.LEATHER, confirmed_by="karim")
        )] == ["Wallet batch"]
        assert [r.key for r in ledger.list_removals(RemovalFilter(search="wallet"))] == ["FP-0042"]
        assert [r.purpose for r in ledger.list_removals(
            RemovalFilter(purpose="BATCH", date_from=date(2024, 1, 6))
        )] == ["Belt batch"]
        assert [r.removal_date.day for r in ledger.list_removals(
            RemovalFilter(key="cow hide", limit=1)
        )] == [10]

    def test_summary_nets_out_reversals(self, ledger):
        approved_leather(ledger, "Cow Hide", "100")
        kept = remove(ledger, "10", purpose="Wallet batch").unwrap()
        undone = remove(ledger, "20", purpose="Belt batch").unwrap()
        ledger.reverse_removal(undone.id, "Batch cancelled", actor=ADMIN)

        summary = ledger.removal_summary(RemovalFilter(include_reversals=False, limit=1))

        assert summary.total_removals == 1
        assert summary.total_quantity_removed == kept.remove_quantity
        assert summary.removals_this_month == 1
        assert set(summary.by_purpose) == {"Wallet batch"}

    def test_retries_exhausted_is_audited_then_raised(self, ledger, monkeypatch):
        approved_leather(ledger)

        def always_stale(self, category, key):
            raise StaleDataError("balance row version changed")

        monkeypatch.setattr(StockBalanceService, "lock", always_stale)

        with pytest.raises(RetriesExhaustedError):
            remove(ledger, "30")

        monkeypatch.undo()
        (event,) = ledger.audit_trail(action=AuditAction.REMOVAL_REJECTED)
        assert event.payload["error_code"] == "RETRIES_EXHAUSTED"
        assert ledger.list_removals() == []


class TestFinishedProducts:

    def test_record_and_remove(self, ledger):
        info = ledger.record_finished_product(
            "FP-0042", "Bifold Wallet", "25",
            finished_at=datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc),
            production_job_id="JOB-7",
        )

        assert info.status == EntryStatus.APPROVED
        assert ledger.get_net_stock("finished_product", "FP-0042").net_available == Decimal("25")
        assert remove(ledger, "25", key="FP-0042", category="finished_product").succeeded

    def test_duplicate_is_refused(self, ledger):
        ledger.record_finished_product("FP-0042", "Bifold Wallet", "25")

        with pytest.raises(DuplicateFinishedProductError):
            ledger.record_finished_product("FP-0042", "Bifold Wallet", "25")

        assert ledger.get_net_stock("finished_product", "FP-0042").total_original == Decimal("25")


class TestAuditAndReconciliation:

    def test_trace_of_an_entry(self, ledger):
        entry = approved_leather(ledger)

        trace = ledger.audit_trace("StockEntry", entry.id)

        assert trace.actions == ("stock_entry_created", "stock_entry_status_changed")

    def test_reconcile_after_activity(self, ledger):
        approved_leather(ledger)
        remove(ledger, "30")
        remove(ledger, "300")

        report = ledger.reconcile(actor="ops@shop")

        assert report.status == CheckStatus.PASSED
        assert ledger.audit_trail(entity_type="Reconciliation")[0].actor == "ops@shop"
        assert ledger.verify_audit_chain()
