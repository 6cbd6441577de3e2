"""
Values -- Immutable domain value objects for the stock ledger.

Responsibility:
    Category and status enumerations, stock key normalization, lenient
    quantity parsing, the NetStockView result type and DataIntegrityWarning.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by engines, services, selectors and category adapters.

Invariants enforced:
    - A stock key is trimmed, has internal whitespace collapsed and is
      case-folded, so "Cow  Hide " and "cow hide" are the same key.
    - Quantities are Decimal; floats are converted through ``str`` so that
      0.1 stays 0.1.
    - Accepted quantities have at most 9 decimal places and stay below 1e15.
    - net_available is never negative.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from stock_kernel.exceptions import InvalidCategoryError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_PLACES = Decimal("0.01")

# Matches the Numeric(38, 9) quantity column.
QUANTITY_SCALE = 9
QUANTITY_STEP = Decimal(1).scaleb(-QUANTITY_SCALE)
MAX_QUANTITY = Decimal(10) ** 15


class Category(str, Enum):
    """The three independent inventories."""

    LEATHER = "leather"
    MATERIAL = "material"
    FINISHED_PRODUCT = "finished_product"

    @classmethod
    def parse(cls, value: Any) -> Category:
        """
        Coerce a string (or Category) into a Category.

        Raises:
            InvalidCategoryError: If value names no known category.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidCategoryError(str(value)) from None


class EntryStatus(str, Enum):
    """Approval status of a worker's stock submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RemovalStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class RemovalKind(str, Enum):
    """A removal consumes stock; a reversal compensates an earlier removal."""

    REMOVAL = "removal"
    REVERSAL = "reversal"


def normalize_key(raw: Any) -> str:
    """
    Canonical stock key for a leather or material name.

    Returns "" for None or whitespace-only input; callers decide whether an
    empty key is an error.
    """
    if raw is None:
        return ""
    return " ".join(str(raw).split()).casefold()


def normalize_product_id(raw: Any) -> str:
    """Finished-product keys keep their case; only whitespace is collapsed."""
    if raw is None:
        return ""
    return " ".join(str(raw).split())


def stock_key_for(category: Category, raw: Any) -> str:
    if category == Category.FINISHED_PRODUCT:
        return normalize_product_id(raw)
    return normalize_key(raw)


def parse_quantity(value: Any) -> Decimal | None:
    """
    Leniently parse a stored quantity.

    Returns None for anything that is not a finite number (None, NaN,
    infinity, booleans, non-numeric strings).  Used by the calculator, which
    treats unparseable rows as contributing zero.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        result = Decimal(str(value))
    elif isinstance(value, int):
        result = Decimal(value)
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def percentage_consumed(total_original: Decimal, total_removed: Decimal) -> Decimal:
    """
    Share of the approved original that has been removed, in percent.

    100 when something was removed but nothing was ever approved; 0 when
    both are zero.  Rounded half-up to two decimal places.
    """
    if total_original <= ZERO:
        if total_removed > ZERO:
            return HUNDRED.quantize(PERCENT_PLACES)
        return ZERO.quantize(PERCENT_PLACES)
    pct = total_removed / total_original * HUNDRED
    return pct.quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def format_quantity(value: Decimal) -> str:
    """Render a quantity without trailing zeros (``100.000000000`` -> ``100``)."""
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def quantity_precision_problem(value: Decimal) -> str | None:
    """
    Return why a quantity cannot be stored exactly, or None if it can.

    Stored quantities carry at most QUANTITY_SCALE fractional digits, and
    the integer part is bounded so that sums over a key stay exact under
    the default 28-digit decimal context.
    """
    if abs(value) >= MAX_QUANTITY:
        return f"must be less than {format_quantity(MAX_QUANTITY)}"
    if value != value.quantize(QUANTITY_STEP):
        return f"must have at most {QUANTITY_SCALE} decimal places"
    return None


@dataclass(frozen=True)
class NetStockView:
    """
    Derived balance for one (category, key).

    Guarantees:
        - net_available == max(0, total_original - total_removed)
        - is_overdrawn is True iff total_removed > total_original
        - is_degenerate is True iff there are removals but no approved original
    """

    category: Category
    key: str
    display_name: str
    total_original: Decimal
    total_removed: Decimal
    net_available: Decimal
    percentage_consumed: Decimal
    approved_entries: int = 0
    removal_count: int = 0

    @property
    def is_overdrawn(self) -> bool:
        return self.total_removed > self.total_original

    @property
    def is_degenerate(self) -> bool:
        return self.total_original <= ZERO and self.total_removed > ZERO

    @property
    def is_known(self) -> bool:
        return self.approved_entries > 0

    @classmethod
    def empty(cls, category: Category, key: str, display_name: str = "") -> NetStockView:
        return cls(
            category=category,
            key=key,
            display_name=display_name or key,
            total_original=ZERO,
            total_removed=ZERO,
            net_available=ZERO,
            percentage_consumed=ZERO.quantize(PERCENT_PLACES),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "key": self.key,
            "display_name": self.display_name,
            "total_original": str(self.total_original),
            "total_removed": str(self.total_removed),
            "net_available": str(self.net_available),
            "percentage_consumed": str(self.percentage_consumed),
            "approved_entries": self.approved_entries,
            "removal_count": self.removal_count,
        }


@dataclass(frozen=True)
class DataIntegrityWarning:
    """
    Non-fatal integrity finding attached to results and logged.

    Codes:
        UNKNOWN_KEY   -- removals or a removal request reference a key with
                         no approved stock entry.
        OVERDRAWN_KEY -- recorded removals exceed approved originals (after
                         an un-approval or a void).
        BALANCE_DRIFT -- materialized balance disagrees with a full scan.
    """

    UNKNOWN_KEY = "UNKNOWN_KEY"
    OVERDRAWN_KEY = "OVERDRAWN_KEY"
    BALANCE_DRIFT = "BALANCE_DRIFT"

    code: str
    category: Category
    key: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "category": self.category.value,
            "key": self.key,
            "message": self.message,
        }

    def log_extra(self) -> dict[str, str]:
        """Fields for a log record (``message`` is reserved by logging)."""
        return {
            "warning_code": self.code,
            "category": self.category.value,
            "stock_key": self.key,
            "detail": self.message,
        }


def integrity_warnings_for(view: NetStockView) -> list[DataIntegrityWarning]:
    """Derive UNKNOWN_KEY / OVERDRAWN_KEY findings for one balance view."""
    warnings: list[DataIntegrityWarning] = []
    if view.is_degenerate:
        warnings.append(DataIntegrityWarning(
            code=DataIntegrityWarning.UNKNOWN_KEY,
            category=view.category,
            key=view.key,
            message=(
                f"{view.removal_count} removal(s) totalling {view.total_removed} "
                f"reference a key with no approved stock entry"
            ),
        ))
    elif view.is_overdrawn:
        warnings.append(DataIntegrityWarning(
            code=DataIntegrityWarning.OVERDRAWN_KEY,
            category=view.category,
            key=view.key,
            message=(
                f"removed {view.total_removed} exceeds approved original "
                f"{view.total_original}"
            ),
        ))
    return warnings
