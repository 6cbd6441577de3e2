"""
Approval status state machine: the closed transition table.
"""

import pytest

from stock_kernel.domain.status_machine import (
    ALLOWED_TRANSITIONS,
    can_transition,
    contribution_delta,
    is_noop,
)
from stock_kernel.domain.values import EntryStatus

P, A, R = EntryStatus.PENDING, EntryStatus.APPROVED, EntryStatus.REJECTED


class TestTransitionTable:

    @pytest.mark.parametrize("current,target", [(P, A), (P, R), (A, P), (R, P)])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [(A, R), (R, A)])
    def test_approved_and_rejected_go_through_pending(self, current, target):
        assert not can_transition(current, target)

    @pytest.mark.parametrize("status", [P, A, R])
    def test_same_status_is_a_noop(self, status):
        assert is_noop(status, status)
        assert can_transition(status, status)

    def test_every_status_has_a_row(self):
        assert set(ALLOWED_TRANSITIONS) == set(EntryStatus)


class TestContributionDelta:

    def test_approving_adds(self):
        assert contribution_delta(P, A) == 1

    def test_unapproving_subtracts(self):
        assert contribution_delta(A, P) == -1

    @pytest.mark.parametrize("current,target", [(P, R), (R, P), (A, A), (P, P)])
    def test_other_moves_do_not_change_contribution(self, current, target):
        assert contribution_delta(current, target) == 0
