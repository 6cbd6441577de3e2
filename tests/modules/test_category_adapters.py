"""
Category adapters: each maps its submission type onto the canonical draft.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from stock_config.schema import StockEntryConfig
from stock_kernel.domain.values import Category, EntryStatus
from stock_kernel.exceptions import InvalidCategoryError, StockEntryValidationError
from stock_modules import (
    FinishedProductAdapter,
    FinishedProductRecord,
    LeatherAdapter,
    LeatherSubmission,
    MaterialAdapter,
    MaterialSubmission,
    adapter_for,
)


class TestLeatherAdapter:

    def test_submission_becomes_pending_draft(self):
        submitted = datetime(2024, 2, 3, 9, 30, tzinfo=timezone.utc)
        draft = LeatherAdapter().to_draft(LeatherSubmission(
            leather_type="  Cow   Hide ", quantity="120.5", unit="sq ft",
            company="Dhaka Tannery", note="  grade A ", submitted_at=submitted,
        ))

        assert draft.category == Category.LEATHER
        assert draft.key == "cow hide"
        assert draft.display_name == "Cow Hide"
        assert draft.quantity == Decimal("120.5")
        assert draft.status == EntryStatus.PENDING
        assert draft.note == "grade A"
        assert draft.submitted_at == submitted

    def test_company_is_required(self):
        with pytest.raises(StockEntryValidationError) as exc_info:
            LeatherAdapter().to_draft(LeatherSubmission(
                leather_type="Cow Hide", quantity="10", unit="sq ft", company=" ",
            ))
        assert exc_info.value.field == "company"

    @pytest.mark.parametrize("quantity", ["0", "-1", "abc", None])
    def test_quantity_must_be_positive_number(self, quantity):
        with pytest.raises(StockEntryValidationError) as exc_info:
            LeatherAdapter().to_draft(LeatherSubmission(
                leather_type="Cow Hide", quantity=quantity, unit="sq ft", company="Dhaka Tannery",
            ))
        assert exc_info.value.field == "quantity"

    def test_unit_must_be_allowed(self):
        with pytest.raises(StockEntryValidationError) as exc_info:
            LeatherAdapter().to_draft(LeatherSubmission(
                leather_type="Cow Hide", quantity="10", unit="barrels", company="Dhaka Tannery",
            ))
        assert exc_info.value.field == "unit"

    def test_unit_check_is_case_insensitive(self):
        draft = LeatherAdapter().to_draft(LeatherSubmission(
            leather_type="Cow Hide", quantity="10", unit="SQ FT", company="Dhaka Tannery",
        ))
        assert draft.unit == "SQ FT"

    def test_name_length_is_limited(self):
        adapter = LeatherAdapter(StockEntryConfig(max_name_length=5))
        with pytest.raises(StockEntryValidationError) as exc_info:
            adapter.to_draft(LeatherSubmission(
                leather_type="Buffalo", quantity="1", unit="sq ft", company="X Co",
            ))
        assert exc_info.value.field == "leather_type"


class TestMaterialAdapter:

    def test_company_is_optional(self):
        draft = MaterialAdapter().to_draft(MaterialSubmission(
            material="Brass Buckle", quantity="40", unit="pcs",
        ))

        assert draft.category == Category.MATERIAL
        assert draft.key == "brass buckle"
        assert draft.company is None

    def test_company_can_be_required_by_config(self):
        adapter = MaterialAdapter(StockEntryConfig(require_company=True))
        with pytest.raises(StockEntryValidationError) as exc_info:
            adapter.to_draft(MaterialSubmission(material="Thread", quantity="3", unit="rolls"))
        assert exc_info.value.field == "company"

    def test_name_is_required(self):
        with pytest.raises(StockEntryValidationError) as exc_info:
            MaterialAdapter().to_draft(MaterialSubmission(material="", quantity="3", unit="rolls"))
        assert exc_info.value.field == "material"


class TestFinishedProductAdapter:

    def test_record_becomes_approved_draft_keyed_by_product_id(self):
        draft = FinishedProductAdapter().to_draft(FinishedProductRecord(
            product_id=" FP-0042 ", product_name="Bifold Wallet", fulfilled_quantity="25",
        ))

        assert draft.category == Category.FINISHED_PRODUCT
        assert draft.key == "FP-0042"
        assert draft.display_name == "Bifold Wallet"
        assert draft.status == EntryStatus.APPROVED
        assert draft.unit == "pcs"

    def test_fulfilled_quantity_must_be_positive(self):
        with pytest.raises(StockEntryValidationError) as exc_info:
            FinishedProductAdapter().to_draft(FinishedProductRecord(
                product_id="FP-1", product_name="Belt", fulfilled_quantity="0",
            ))
        assert exc_info.value.field == "fulfilled_quantity"

    def test_product_id_is_required(self):
        with pytest.raises(StockEntryValidationError) as exc_info:
            FinishedProductAdapter().to_draft(FinishedProductRecord(
                product_id="  ", product_name="Belt", fulfilled_quantity="1",
            ))
        assert exc_info.value.field == "product_id"


class TestAdapterFor:

    @pytest.mark.parametrize("category,adapter_type", [
        ("leather", LeatherAdapter),
        (Category.MATERIAL, MaterialAdapter),
        ("Finished_Product", FinishedProductAdapter),
    ])
    def test_lookup(self, category, adapter_type):
        assert isinstance(adapter_for(category), adapter_type)

    def test_unknown_category(self):
        with pytest.raises(InvalidCategoryError):
            adapter_for("plastic")

    def test_rules_are_passed_through(self):
        rules = StockEntryConfig(require_company=True)
        assert adapter_for("material", rules).rules is rules
