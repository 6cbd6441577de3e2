"""
Material adapter.

Key is the normalized material name.  Company is optional unless the
configuration requires it for every submission.
"""

from stock_kernel.domain.dtos import StockEntryDraft
from stock_kernel.domain.values import Category
from stock_modules._base import CategoryAdapter
from stock_modules.material.models import MaterialSubmission


class MaterialAdapter(CategoryAdapter[MaterialSubmission]):
    category = Category.MATERIAL

    def to_draft(self, submission: MaterialSubmission) -> StockEntryDraft:
        name = self._name(submission.material, "material")
        return self._draft(
            name=name,
            quantity=submission.quantity,
            unit=self._unit(submission.unit),
            company=self._company(submission.company, required=False),
            note=submission.note,
            submitted_at=submission.submitted_at,
        )
