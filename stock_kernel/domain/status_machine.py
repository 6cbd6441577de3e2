"""
Approval status state machine for stock entries.

Closed transition table:

    pending  -> approved | rejected
    approved -> pending
    rejected -> pending

A transition to the current status is a no-op (idempotent re-approval).
approved <-> rejected must go through pending so every change of mind is
visible in the audit trail as two steps.
"""

from stock_kernel.domain.values import EntryStatus

ALLOWED_TRANSITIONS: dict[EntryStatus, frozenset[EntryStatus]] = {
    EntryStatus.PENDING: frozenset({EntryStatus.APPROVED, EntryStatus.REJECTED}),
    EntryStatus.APPROVED: frozenset({EntryStatus.PENDING}),
    EntryStatus.REJECTED: frozenset({EntryStatus.PENDING}),
}


def is_noop(current: EntryStatus, target: EntryStatus) -> bool:
    return current == target


def can_transition(current: EntryStatus, target: EntryStatus) -> bool:
    """True if ``target`` is reachable from ``current`` in one step (or equal)."""
    if is_noop(current, target):
        return True
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def contribution_delta(current: EntryStatus, target: EntryStatus) -> int:
    """
    Sign of the change in an entry's contribution to total_original.

    +1 when the entry becomes approved, -1 when it stops being approved,
    0 otherwise.
    """
    if current == target:
        return 0
    if target == EntryStatus.APPROVED:
        return 1
    if current == EntryStatus.APPROVED:
        return -1
    return 0
