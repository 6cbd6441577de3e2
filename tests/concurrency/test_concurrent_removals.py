"""
Concurrent removals against one key never overdraw it.

Each worker thread calls the ledger, which opens its own committed
transaction.  A barrier releases the workers together.
"""

import threading
from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import Submitter
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.services.stock_balance_service import KeyLockRegistry
from stock_services.ledger import StockLedger

pytestmark = pytest.mark.concurrency

ADMIN = "admin@shop"


def stock_up(ledger, quantity):
    entry = ledger.create_stock_entry(
        "leather", "Cow Hide", quantity, Submitter("worker-7", "Rahim"),
        unit="sq ft", company="Dhaka Tannery",
    )
    ledger.set_status(entry.id, "approved", actor=ADMIN)


def run_together(ledgers, quantity):
    """Fire one removal per ledger at the same moment; return results and errors."""
    barrier = threading.Barrier(len(ledgers))
    results = []
    errors = []
    guard = threading.Lock()

    def worker(index, ledger):
        try:
            barrier.wait(timeout=30)
            result = ledger.request_removal(
                "leather", "cow hide", quantity,
                purpose=f"Batch {index}", confirmed_by="Karim", actor=f"worker-{index}",
            )
            with guard:
                results.append(result)
        except Exception as exc:  # collected and re-raised by the test
            with guard:
                errors.append(exc)

    threads = [
        threading.Thread(target=worker, args=(i, ledger), daemon=True)
        for i, ledger in enumerate(ledgers)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=120)
    assert not any(thread.is_alive() for thread in threads), "worker thread hung"
    return results, errors


def sibling_ledger(ledger, committed_session_factory, deterministic_clock):
    """A second ledger over the same database with its own thread locks."""
    return StockLedger(
        session_factory=committed_session_factory,
        config=ledger.config,
        clock=deterministic_clock,
        key_locks=KeyLockRegistry(),
        sleep=lambda seconds: None,
    )


class TestConcurrentRemovals:

    def test_two_removals_racing_for_one_balance(self, ledger):
        stock_up(ledger, "70")

        results, errors = run_together([ledger, ledger], "40")

        assert errors == []
        assert sorted(r.succeeded for r in results) == [False, True]
        (refused,) = [r for r in results if not r.succeeded]
        assert refused.error_code == "INSUFFICIENT_STOCK"
        assert ledger.get_net_stock("leather", "cow hide").net_available == Decimal("30")

    def test_database_alone_serializes_separate_processes(
        self, ledger, committed_session_factory, deterministic_clock,
    ):
        stock_up(ledger, "70")
        other = sibling_ledger(ledger, committed_session_factory, deterministic_clock)

        results, errors = run_together([ledger, other], "40")

        assert errors == []
        assert sum(r.succeeded for r in results) == 1
        assert ledger.get_net_stock("leather", "cow hide").net_available == Decimal("30")
        assert len(ledger.list_removals()) == 1

    def test_many_small_removals_drain_exactly_to_zero(
        self, ledger, committed_session_factory, deterministic_clock,
    ):
        stock_up(ledger, "70")
        ledgers = [ledger] * 6 + [
            sibling_ledger(ledger, committed_session_factory, deterministic_clock)
            for _ in range(4)
        ]

        results, errors = run_together(ledgers, "10")

        assert errors == []
        assert sum(r.succeeded for r in results) == 7
        assert {r.error_code for r in results if not r.succeeded} == {"INSUFFICIENT_STOCK"}
        view = ledger.get_net_stock("leather", "cow hide")
        assert view.net_available == Decimal("0")
        assert view.total_removed == Decimal("70")

    def test_audit_chain_survives_concurrent_writers(
        self, ledger, committed_session_factory, deterministic_clock,
    ):
        stock_up(ledger, "70")
        ledgers = [
            sibling_ledger(ledger, committed_session_factory, deterministic_clock)
            for _ in range(5)
        ]

        results, errors = run_together(ledgers, "20")

        assert errors == []
        assert ledger.verify_audit_chain()
        committed = ledger.audit_trail(action=AuditAction.REMOVAL_COMMITTED)
        rejected = ledger.audit_trail(action=AuditAction.REMOVAL_REJECTED)
        assert len(committed) == 3
        assert len(rejected) == 2
        assert ledger.reconcile().is_clean
