"""
Module: stock_engines.removal_summary
Responsibility:
    Summary statistics over a list of removal log rows: totals, unique keys,
    removals this month, and breakdowns by purpose, confirmer and category.

Architecture position:
    Engines -- pure, zero I/O.  ``today`` is passed in by the caller.

Reversal rows are not counted as removals; each one cancels its original,
so both drop out of the counts and quantities.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import RemovalLogInfo
from stock_kernel.domain.values import ZERO, RemovalStatus


@dataclass(frozen=True)
class SummaryBucket:
    count: int = 0
    total_quantity: Decimal = ZERO

    def add(self, quantity: Decimal) -> SummaryBucket:
        return SummaryBucket(self.count + 1, self.total_quantity + quantity)


@dataclass(frozen=True)
class RemovalSummary:
    total_removals: int
    total_quantity_removed: Decimal
    unique_keys: int
    removals_this_month: int
    by_purpose: dict[str, SummaryBucket] = field(default_factory=dict)
    by_confirmer: dict[str, SummaryBucket] = field(default_factory=dict)
    by_category: dict[str, SummaryBucket] = field(default_factory=dict)

    def to_dict(self) -> dict:
        def buckets(data: dict[str, SummaryBucket]) -> dict:
            return {
                name: {"count": b.count, "total_quantity": str(b.total_quantity)}
                for name, b in sorted(data.items())
            }

        return {
            "total_removals": self.total_removals,
            "total_quantity_removed": str(self.total_quantity_removed),
            "unique_keys": self.unique_keys,
            "removals_this_month": self.removals_this_month,
            "by_purpose": buckets(self.by_purpose),
            "by_confirmer": buckets(self.by_confirmer),
            "by_category": buckets(self.by_category),
        }


def _add(groups: dict[str, SummaryBucket], name: str, quantity: Decimal) -> None:
    groups[name] = groups.get(name, SummaryBucket()).add(quantity)


@traced_engine("removal_summary", "1.0")
def summarize_removals(
    removals: Iterable[RemovalLogInfo],
    today: date,
) -> RemovalSummary:
    """Aggregate completed, unreversed removals."""
    rows = [r for r in removals if r.status == RemovalStatus.COMPLETED]
    reversed_ids = {r.reverses_id for r in rows if r.is_reversal}
    effective = [
        r for r in rows if not r.is_reversal and r.id not in reversed_ids
    ]

    by_purpose: dict[str, SummaryBucket] = {}
    by_confirmer: dict[str, SummaryBucket] = {}
    by_category: dict[str, SummaryBucket] = {}
    total = ZERO
    this_month = 0
    keys: set[tuple[str, str]] = set()

    for removal in effective:
        quantity = removal.remove_quantity
        total += quantity
        keys.add((removal.category.value, removal.key))
        if (removal.removal_date.year, removal.removal_date.month) == (
            today.year,
            today.month,
        ):
            this_month += 1
        _add(by_purpose, removal.purpose, quantity)
        _add(by_confirmer, removal.confirmed_by, quantity)
        _add(by_category, removal.category.value, quantity)

    return RemovalSummary(
        total_removals=len(effective),
        total_quantity_removed=total,
        unique_keys=len(keys),
        removals_this_month=this_month,
        by_purpose=by_purpose,
        by_confirmer=by_confirmer,
        by_category=by_category,
    )
