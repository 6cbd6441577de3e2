"""
Module: stock_engines.net_stock
Responsibility:
    The Net Stock Calculator.  Folds approved stock entries and completed
    removals of one category into a NetStockView per key.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Inputs are plain rows,
    not ORM instances, so the same function serves the coordinator's fresh
    per-key read, the listing endpoints and the reconciliation check.

Invariants enforced:
    - total_original sums only approved, non-voided entries.
    - total_removed sums only completed removal rows; reversal rows carry a
      negative quantity and reduce it.
    - net_available == max(0, total_original - total_removed).
    - Identical inputs give identical outputs, independent of row order.

Failure modes:
    None.  A row with a missing key, an unparseable quantity or an unknown
    status contributes zero instead of raising.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from stock_engines.tracer import traced_engine
from stock_kernel.domain.values import (
    ZERO,
    Category,
    NetStockView,
    parse_quantity,
    percentage_consumed,
)

_APPROVED = "approved"
_COMPLETED = "completed"
_REVERSAL = "reversal"


@dataclass(frozen=True)
class LedgerEntryRow:
    """A stock entry as the calculator sees it.  Fields may be malformed."""

    category: Any
    key: Any
    quantity: Any
    status: Any
    display_name: str | None = None
    voided: bool = False


@dataclass(frozen=True)
class LedgerRemovalRow:
    """A removal log row as the calculator sees it.  Fields may be malformed."""

    category: Any
    key: Any
    remove_quantity: Any
    status: Any
    entry_kind: Any = "removal"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value") and isinstance(value.value, str):
        return value.value
    return str(value)


def _row_key(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _entry_contribution(row: LedgerEntryRow) -> Decimal | None:
    if row.voided or _text(row.status).lower() != _APPROVED:
        return None
    quantity = parse_quantity(row.quantity)
    if quantity is None or quantity <= ZERO:
        return None
    return quantity


def _removal_contribution(row: LedgerRemovalRow) -> Decimal | None:
    if _text(row.status).lower() != _COMPLETED:
        return None
    quantity = parse_quantity(row.remove_quantity)
    if quantity is None or quantity == ZERO:
        return None
    is_reversal = _text(row.entry_kind).lower() == _REVERSAL
    # Only compensating rows may be negative
    if (quantity < ZERO) != is_reversal:
        return None
    return quantity


@traced_engine("net_stock", "1.0", fingerprint_fields=("category",))
def calculate_net_stock(
    *,
    category: Category | str,
    entries: Iterable[LedgerEntryRow],
    removals: Iterable[LedgerRemovalRow],
) -> dict[str, NetStockView]:
    """
    Compute the NetStockView of every key in one category.

    Keys come from the union of approved-entry keys and completed-removal
    keys; a key that only has removals yields a degenerate view (original 0,
    percentage 100).  The result is ordered by key.
    """
    cat = Category.parse(category)

    originals: dict[str, Decimal] = {}
    entry_counts: dict[str, int] = {}
    names: dict[str, str] = {}
    for row in entries:
        if _text(row.category) != cat.value:
            continue
        key = _row_key(row.key)
        if not key:
            continue
        quantity = _entry_contribution(row)
        if quantity is None:
            continue
        originals[key] = originals.get(key, ZERO) + quantity
        entry_counts[key] = entry_counts.get(key, 0) + 1
        if key not in names and row.display_name:
            names[key] = row.display_name

    removed: dict[str, Decimal] = {}
    removal_counts: dict[str, int] = {}
    for row in removals:
        if _text(row.category) != cat.value:
            continue
        key = _row_key(row.key)
        if not key:
            continue
        quantity = _removal_contribution(row)
        if quantity is None:
            continue
        removed[key] = removed.get(key, ZERO) + quantity
        removal_counts[key] = removal_counts.get(key, 0) + 1

    views: dict[str, NetStockView] = {}
    for key in sorted(set(originals) | set(removed)):
        total_original = originals.get(key, ZERO)
        total_removed = removed.get(key, ZERO)
        views[key] = NetStockView(
            category=cat,
            key=key,
            display_name=names.get(key, key),
            total_original=total_original,
            total_removed=total_removed,
            net_available=max(ZERO, total_original - total_removed),
            percentage_consumed=percentage_consumed(total_original, total_removed),
            approved_entries=entry_counts.get(key, 0),
            removal_count=removal_counts.get(key, 0),
        )
    return views


def net_stock_for_key(
    category: Category | str,
    key: str,
    entries: Iterable[LedgerEntryRow],
    removals: Iterable[LedgerRemovalRow],
) -> NetStockView:
    """View of a single key; an all-zero view when the key is unknown."""
    cat = Category.parse(category)
    wanted = _row_key(key)
    views = calculate_net_stock(
        category=cat,
        entries=[row for row in entries if _row_key(row.key) == wanted],
        removals=[row for row in removals if _row_key(row.key) == wanted],
    )
    return views.get(wanted) or NetStockView.empty(cat, wanted)
