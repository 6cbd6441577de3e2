"""
Boundary validation for removal requests and stock submissions.

Everything here runs before any store access.  A request that fails is
rejected with a typed error and never reaches the coordinator's lock.
"""

from decimal import Decimal
from typing import Any

from stock_kernel.domain.dtos import RemovalRequest, ValidatedRemoval
from stock_kernel.domain.values import (
    ZERO,
    Category,
    normalize_key,
    normalize_product_id,
    parse_quantity,
    quantity_precision_problem,
)
from stock_kernel.exceptions import (
    InvalidCategoryError,
    RemovalValidationError,
    StockEntryValidationError,
)

DEFAULT_MIN_PURPOSE_LENGTH = 3
DEFAULT_MIN_CONFIRMER_LENGTH = 2


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def _optional_text(value: Any) -> str | None:
    cleaned = _clean_text(value)
    return cleaned or None


def _optional_amount(field: str, value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    parsed = parse_quantity(value)
    if parsed is None or parsed < ZERO:
        raise RemovalValidationError(field, "must be a non-negative number")
    problem = quantity_precision_problem(parsed)
    if problem:
        raise RemovalValidationError(field, problem)
    return parsed


def validate_removal_request(
    request: RemovalRequest,
    *,
    min_purpose_length: int = DEFAULT_MIN_PURPOSE_LENGTH,
    min_confirmer_length: int = DEFAULT_MIN_CONFIRMER_LENGTH,
) -> ValidatedRemoval:
    """
    Validate and normalize a removal request.

    Raises:
        RemovalValidationError: On the first failing field (category, key,
            remove_quantity, purpose, confirmed_by, unit_cost,
            available_at_request_time).
    """
    try:
        category = Category.parse(request.category)
    except InvalidCategoryError as exc:
        raise RemovalValidationError("category", str(exc)) from None

    if category == Category.FINISHED_PRODUCT:
        key = normalize_product_id(request.key)
    else:
        key = normalize_key(request.key)
    if not key:
        raise RemovalValidationError("key", "stock key is required")

    quantity = parse_quantity(request.remove_quantity)
    if quantity is None:
        raise RemovalValidationError("remove_quantity", "must be a number")
    if quantity <= ZERO:
        raise RemovalValidationError("remove_quantity", "must be greater than zero")
    problem = quantity_precision_problem(quantity)
    if problem:
        raise RemovalValidationError("remove_quantity", problem)

    purpose = _clean_text(request.purpose)
    if not purpose:
        raise RemovalValidationError("purpose", "purpose is required")
    if len(purpose) < min_purpose_length:
        raise RemovalValidationError(
            "purpose", f"must be at least {min_purpose_length} characters"
        )

    confirmed_by = _clean_text(request.confirmed_by)
    if not confirmed_by:
        raise RemovalValidationError("confirmed_by", "confirmer is required")
    if len(confirmed_by) < min_confirmer_length:
        raise RemovalValidationError(
            "confirmed_by", f"must be at least {min_confirmer_length} characters"
        )

    return ValidatedRemoval(
        category=category,
        key=key,
        remove_quantity=quantity,
        purpose=purpose,
        confirmed_by=confirmed_by,
        removal_date=request.removal_date,
        available_at_request_time=_optional_amount(
            "available_at_request_time", request.available_at_request_time
        ),
        destination=_optional_text(request.destination),
        notes=_optional_text(request.notes),
        unit_cost=_optional_amount("unit_cost", request.unit_cost),
        product_name=_optional_text(request.product_name),
    )


def require_positive_quantity(value: Any, field: str = "quantity") -> Decimal:
    """
    Parse a submitted quantity.

    Raises:
        StockEntryValidationError: If not a finite number greater than zero, or
            if it cannot be stored exactly.
    """
    quantity = parse_quantity(value)
    if quantity is None:
        raise StockEntryValidationError(field, "must be a number")
    if quantity <= ZERO:
        raise StockEntryValidationError(field, "must be greater than zero")
    problem = quantity_precision_problem(quantity)
    if problem:
        raise StockEntryValidationError(field, problem)
    return quantity


def require_text(value: Any, field: str, min_length: int = 1) -> str:
    """
    Raises:
        StockEntryValidationError: If the trimmed value is shorter than min_length.
    """
    cleaned = _clean_text(value)
    if not cleaned:
        raise StockEntryValidationError(field, "is required")
    if len(cleaned) < min_length:
        raise StockEntryValidationError(
            field, f"must be at least {min_length} characters"
        )
    return cleaned


def optional_text(value: Any) -> str | None:
    return _optional_text(value)
