"""
Typed exception hierarchy for the stock kernel.

Every error has its own class (catch by type, never by message), a
machine-readable ``code`` class attribute, and structured attributes instead
of a formatted string only.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- CategoryError
    |   +-- InvalidCategoryError
    |
    +-- StockEntryError
    |   +-- StockEntryValidationError
    |   +-- StockEntryNotFoundError
    |   +-- InvalidStatusTransitionError
    |   +-- StockEntryVoidedError
    |   +-- DuplicateFinishedProductError
    |
    +-- RemovalError
    |   +-- RemovalValidationError
    |   +-- InsufficientStockError
    |   +-- RemovalNotFoundError
    |   +-- RemovalAlreadyReversedError
    |   +-- RemovalNotReversibleError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |   +-- RetriesExhaustedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |   +-- HardDeleteForbiddenError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-------------------------------------------
Category     | INVALID_CATEGORY             | Not leather / material / finished_product
-------------|------------------------------|-------------------------------------------
StockEntry   | STOCK_ENTRY_VALIDATION_ERROR | Bad submission (name, quantity, unit...)
             | STOCK_ENTRY_NOT_FOUND        | Entry id does not exist
             | INVALID_STATUS_TRANSITION    | Transition outside the closed table
             | STOCK_ENTRY_VOIDED           | Entry has a tombstone
             | DUPLICATE_FINISHED_PRODUCT   | Product already recorded
-------------|------------------------------|-------------------------------------------
Removal      | VALIDATION_ERROR             | Missing purpose/confirmer, qty <= 0
             | INSUFFICIENT_STOCK           | Quantity exceeds fresh net available
             | REMOVAL_NOT_FOUND            | Removal id does not exist
             | REMOVAL_ALREADY_REVERSED     | Compensating entry already exists
             | REMOVAL_NOT_REVERSIBLE       | Target is itself a reversal / not completed
-------------|------------------------------|-------------------------------------------
Concurrency  | CONCURRENT_MODIFICATION      | Balance row changed underneath us
             | RETRIES_EXHAUSTED            | Conflict retries hit the bound
-------------|------------------------------|-------------------------------------------
Immutability | IMMUTABILITY_VIOLATION       | Write-once field or ledger row modified
             | HARD_DELETE_FORBIDDEN        | Physical delete of a ledger row
-------------|------------------------------|-------------------------------------------
Audit        | AUDIT_CHAIN_BROKEN           | Hash chain validation failed
-------------|------------------------------|-------------------------------------------
Config       | CONFIGURATION_ERROR          | Invalid YAML configuration value

===============================================================================
HANDLING PATTERNS
===============================================================================

    result = ledger.request_removal(...)
    if not result.succeeded:
        if isinstance(result.error, InsufficientStockError):
            show(result.error.requested, result.error.available)

ConcurrentModificationError never reaches callers of the ledger: the removal
coordinator retries it with a fresh balance read and raises
RetriesExhaustedError only when the bound is hit.
"""

from decimal import Decimal


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Category


class CategoryError(StockKernelError):
    """Base exception for category errors."""

    code: str = "CATEGORY_ERROR"


class InvalidCategoryError(CategoryError):
    """Category is not one of the three inventories."""

    code: str = "INVALID_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(
            f"Category must be one of: leather, material, finished_product. "
            f"Got: {category!r}"
        )


# Stock entries


class StockEntryError(StockKernelError):
    """Base exception for stock entry errors."""

    code: str = "STOCK_ENTRY_ERROR"


class StockEntryValidationError(StockEntryError):
    """A worker submission failed validation."""

    code: str = "STOCK_ENTRY_VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class StockEntryNotFoundError(StockEntryError):
    """Stock entry with given id was not found."""

    code: str = "STOCK_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Stock entry not found: {entry_id}")


class InvalidStatusTransitionError(StockEntryError):
    """Requested status change is not in the transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entry_id: str, from_status: str, to_status: str, reason: str = ""):
        self.entry_id = entry_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = (
            f"Cannot change stock entry {entry_id} from "
            f"'{from_status}' to '{to_status}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StockEntryVoidedError(StockEntryError):
    """Stock entry carries a tombstone and accepts no further changes."""

    code: str = "STOCK_ENTRY_VOIDED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Stock entry {entry_id} has been voided")


class DuplicateFinishedProductError(StockEntryError):
    """Finished product was already recorded into the ledger."""

    code: str = "DUPLICATE_FINISHED_PRODUCT"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Finished product already recorded: {product_id}")


# Removals


class RemovalError(StockKernelError):
    """Base exception for removal errors."""

    code: str = "REMOVAL_ERROR"


class RemovalValidationError(RemovalError):
    """Removal request is malformed; rejected before any store access."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InsufficientStockError(RemovalError):
    """Removal quantity exceeds the freshly recomputed net available stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, category: str, key: str, requested: Decimal, available: Decimal):
        self.category = category
        self.key = key
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient net stock available for {category}/{key}. "
            f"Requested: {requested}, Available: {available}"
        )


class RemovalNotFoundError(RemovalError):
    """Removal log entry with given id was not found."""

    code: str = "REMOVAL_NOT_FOUND"

    def __init__(self, removal_id: str):
        self.removal_id = removal_id
        super().__init__(f"Removal not found: {removal_id}")


class RemovalAlreadyReversedError(RemovalError):
    """A compensating entry already exists for this removal."""

    code: str = "REMOVAL_ALREADY_REVERSED"

    def __init__(self, removal_id: str, reversal_id: str | None = None):
        self.removal_id = removal_id
        self.reversal_id = reversal_id
        super().__init__(f"Removal {removal_id} has already been reversed")


class RemovalNotReversibleError(RemovalError):
    """Target row cannot be reversed (it is a reversal, or not completed)."""

    code: str = "REMOVAL_NOT_REVERSIBLE"

    def __init__(self, removal_id: str, reason: str):
        self.removal_id = removal_id
        self.reason = reason
        super().__init__(f"Removal {removal_id} cannot be reversed: {reason}")


# Concurrency


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """The per-key balance changed between read and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, category: str, key: str, detail: str = ""):
        self.category = category
        self.key = key
        self.detail = detail
        super().__init__(
            f"Concurrent modification of {category}/{key}"
            + (f": {detail}" if detail else "")
        )


class RetriesExhaustedError(ConcurrencyError):
    """Conflict retries were exhausted without a successful commit."""

    code: str = "RETRIES_EXHAUSTED"

    def __init__(self, category: str, key: str, attempts: int):
        self.category = category
        self.key = key
        self.attempts = attempts
        super().__init__(
            f"Gave up on {category}/{key} after {attempts} conflicting attempts"
        )


# Immutability


class ImmutabilityError(StockKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification of a write-once field or an append-only row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


class HardDeleteForbiddenError(ImmutabilityError):
    """Physical deletion of a ledger row; use a tombstone instead."""

    code: str = "HARD_DELETE_FORBIDDEN"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} cannot be deleted; void it instead"
        )


# Audit


class AuditError(StockKernelError):
    """Base exception for audit errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Configuration


class ConfigurationError(StockKernelError):
    """Configuration file contains an invalid value."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration at '{path}': {reason}")
