"""
Finished product adapter.

Key is the finished-product record id (case kept, whitespace collapsed).
The draft is always approved: the production pipeline has already signed
the quantity off, so there is no worker approval step.
"""

from stock_kernel.domain.dtos import StockEntryDraft
from stock_kernel.domain.validation import require_text
from stock_kernel.domain.values import Category, EntryStatus, normalize_product_id
from stock_modules._base import CategoryAdapter
from stock_modules.finished_product.models import FinishedProductRecord


class FinishedProductAdapter(CategoryAdapter[FinishedProductRecord]):
    category = Category.FINISHED_PRODUCT

    def key_for(self, name) -> str:
        return normalize_product_id(name)

    def to_draft(self, submission: FinishedProductRecord) -> StockEntryDraft:
        product_id = self.key_for(require_text(submission.product_id, "product_id"))
        name = self._name(submission.product_name, "product_name")
        return self._draft(
            name=name,
            quantity=submission.fulfilled_quantity,
            unit=require_text(submission.unit or "pcs", "unit"),
            company=None,
            note=submission.note,
            submitted_at=submission.finished_at,
            status=EntryStatus.APPROVED,
            key=product_id,
            quantity_field="fulfilled_quantity",
        )
