"""
Leather adapter.

Key is the normalized leather type ("Cow  Hide " and "cow hide" share a
balance).  Every leather submission must name the supplying company.
"""

from stock_kernel.domain.dtos import StockEntryDraft
from stock_kernel.domain.values import Category
from stock_modules._base import CategoryAdapter
from stock_modules.leather.models import LeatherSubmission


class LeatherAdapter(CategoryAdapter[LeatherSubmission]):
    category = Category.LEATHER

    def to_draft(self, submission: LeatherSubmission) -> StockEntryDraft:
        name = self._name(submission.leather_type, "leather_type")
        return self._draft(
            name=name,
            quantity=submission.quantity,
            unit=self._unit(submission.unit),
            company=self._company(submission.company, required=True),
            note=submission.note,
            submitted_at=submission.submitted_at,
        )
