"""
Shared machinery for category adapters.

An adapter turns a category's own submission type into the canonical
StockEntryDraft the kernel stores.  Adapters validate; the kernel trusts
the draft.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Generic, TypeVar

from stock_config.schema import StockEntryConfig
from stock_kernel.domain.dtos import StockEntryDraft
from stock_kernel.domain.validation import optional_text, require_positive_quantity, require_text
from stock_kernel.domain.values import Category, EntryStatus, normalize_key
from stock_kernel.exceptions import StockEntryValidationError
from stock_kernel.logging_config import get_logger

logger = get_logger("modules.adapter")

SubmissionT = TypeVar("SubmissionT")


class CategoryAdapter(ABC, Generic[SubmissionT]):
    """
    Maps one category's submissions onto (category, key, quantity, status).

    Subclasses set ``category`` and implement ``to_draft``.
    """

    category: Category

    def __init__(self, rules: StockEntryConfig | None = None):
        self.rules = rules or StockEntryConfig()

    @abstractmethod
    def to_draft(self, submission: SubmissionT) -> StockEntryDraft:
        """
        Raises:
            StockEntryValidationError: On the first invalid field.
        """

    def key_for(self, name: Any) -> str:
        return normalize_key(name)

    # Shared field checks

    def _name(self, value: Any, field: str) -> str:
        name = require_text(value, field)
        if len(name) > self.rules.max_name_length:
            raise StockEntryValidationError(
                field, f"must be at most {self.rules.max_name_length} characters"
            )
        return name

    def _unit(self, value: Any) -> str:
        unit = require_text(value, "unit")
        if self.rules.allowed_units and unit.lower() not in self.rules.allowed_units:
            raise StockEntryValidationError(
                "unit", f"must be one of: {', '.join(self.rules.allowed_units)}"
            )
        return unit

    def _company(self, value: Any, required: bool) -> str | None:
        if required or self.rules.require_company:
            return require_text(value, "company")
        return optional_text(value)

    def _draft(
        self,
        name: str,
        quantity: Any,
        unit: str | None,
        company: str | None,
        note: Any,
        submitted_at: datetime | None,
        status: EntryStatus = EntryStatus.PENDING,
        key: str | None = None,
        quantity_field: str = "quantity",
    ) -> StockEntryDraft:
        draft = StockEntryDraft(
            category=self.category,
            key=key if key is not None else self.key_for(name),
            display_name=name,
            quantity=require_positive_quantity(quantity, quantity_field),
            unit=unit,
            company=company,
            note=optional_text(note),
            status=status,
            submitted_at=submitted_at,
        )
        logger.debug(
            "stock_entry_draft_built",
            extra={
                "category": draft.category.value,
                "stock_key": draft.key,
                "quantity": draft.quantity,
            },
        )
        return draft
