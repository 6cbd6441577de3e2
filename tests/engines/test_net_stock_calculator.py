"""
Net Stock Calculator tests.

The calculator is pure: rows in, NetStockView per key out.  These tests
cover the folding rules (approved only, completed removals only, reversals
subtract), clamping, the degenerate unknown-key view and the tolerance for
malformed rows.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from stock_engines.net_stock import (
    LedgerEntryRow,
    LedgerRemovalRow,
    calculate_net_stock,
    net_stock_for_key,
)
from stock_kernel.domain.values import Category, percentage_consumed
from stock_kernel.exceptions import InvalidCategoryError


def entry(key="cow hide", quantity="100", status="approved", category="leather", voided=False, name=None):
    return LedgerEntryRow(
        category=category,
        key=key,
        quantity=quantity,
        status=status,
        display_name=name or key.title(),
        voided=voided,
    )


def removal(key="cow hide", quantity="30", status="completed", category="leather", kind="removal"):
    return LedgerRemovalRow(
        category=category,
        key=key,
        remove_quantity=quantity,
        status=status,
        entry_kind=kind,
    )


def fold(category, entries, removals):
    return calculate_net_stock(category=category, entries=entries, removals=removals)


class TestFolding:

    def test_single_entry_no_removals(self):
        views = fold("leather", [entry()], [])

        view = views["cow hide"]
        assert view.total_original == Decimal("100")
        assert view.total_removed == Decimal("0")
        assert view.net_available == Decimal("100")
        assert view.percentage_consumed == Decimal("0.00")
        assert view.approved_entries == 1
        assert view.display_name == "Cow Hide"

    def test_entries_and_removals_are_summed_per_key(self):
        views = fold(
            Category.LEATHER,
            [entry(quantity="100"), entry(quantity="50"), entry(key="goat skin", quantity="20")],
            [removal(quantity="30"), removal(quantity="20"), removal(key="goat skin", quantity="5")],
        )

        assert views["cow hide"].total_original == Decimal("150")
        assert views["cow hide"].total_removed == Decimal("50")
        assert views["cow hide"].net_available == Decimal("100")
        assert views["cow hide"].removal_count == 2
        assert views["goat skin"].net_available == Decimal("15")

    def test_pending_rejected_and_voided_entries_do_not_count(self):
        views = fold(
            "leather",
            [
                entry(quantity="100"),
                entry(quantity="40", status="pending"),
                entry(quantity="25", status="rejected"),
                entry(quantity="60", voided=True),
            ],
            [],
        )

        assert views["cow hide"].total_original == Decimal("100")
        assert views["cow hide"].approved_entries == 1

    def test_failed_removals_do_not_count(self):
        views = fold(
            "leather",
            [entry(quantity="100")],
            [removal(quantity="30"), removal(quantity="50", status="failed")],
        )

        assert views["cow hide"].total_removed == Decimal("30")

    def test_reversal_rows_reduce_total_removed(self):
        views = fold(
            "leather",
            [entry(quantity="100")],
            [removal(quantity="30"), removal(quantity="-30", kind="reversal")],
        )

        assert views["cow hide"].total_removed == Decimal("0")
        assert views["cow hide"].net_available == Decimal("100")

    def test_other_categories_are_ignored(self):
        views = fold(
            "material",
            [entry(key="brass buckle", quantity="40", category="material"), entry()],
            [removal()],
        )

        assert list(views) == ["brass buckle"]

    def test_result_is_ordered_by_key(self):
        views = fold(
            "leather",
            [entry(key="suede"), entry(key="cow hide"), entry(key="goat skin")],
            [],
        )

        assert list(views) == ["cow hide", "goat skin", "suede"]

    def test_unknown_category_raises(self):
        with pytest.raises(InvalidCategoryError):
            fold("plastic", [], [])

    def test_inputs_are_keyword_only(self):
        with pytest.raises(TypeError):
            calculate_net_stock("leather", [], [])

    def test_trace_fingerprint_depends_on_category(self, captured_logs):
        fold("leather", [], [])
        fold(Category.LEATHER, [], [])
        fold("material", [], [])

        fingerprints = [
            r["input_fingerprint"] for r in captured_logs()
            if r["message"] == "STOCK_ENGINE_TRACE" and r["engine_name"] == "net_stock"
        ]
        assert len(fingerprints) == 3
        assert fingerprints[0] == fingerprints[1]
        assert fingerprints[0] != fingerprints[2]


class TestClampingAndDegenerateKeys:

    def test_net_available_is_clamped_at_zero(self):
        views = fold(
            "leather", [entry(quantity="50")], [removal(quantity="80")]
        )

        view = views["cow hide"]
        assert view.net_available == Decimal("0")
        assert view.is_overdrawn
        assert view.percentage_consumed == Decimal("160.00")

    def test_removals_without_entries_give_degenerate_view(self):
        views = fold("leather", [], [removal(key="ghost hide", quantity="10")])

        view = views["ghost hide"]
        assert view.total_original == Decimal("0")
        assert view.total_removed == Decimal("10")
        assert view.net_available == Decimal("0")
        assert view.percentage_consumed == Decimal("100.00")
        assert view.is_degenerate
        assert not view.is_known

    def test_percentage_rounds_half_up(self):
        # 1/3 of 100 -> 33.333... -> 33.33; 2/3 -> 66.666... -> 66.67
        assert percentage_consumed(Decimal("3"), Decimal("1")) == Decimal("33.33")
        assert percentage_consumed(Decimal("3"), Decimal("2")) == Decimal("66.67")
        assert percentage_consumed(Decimal("8"), Decimal("1")) == Decimal("12.50")

    def test_percentage_of_nothing_is_zero(self):
        assert percentage_consumed(Decimal("0"), Decimal("0")) == Decimal("0.00")


class TestMalformedRows:

    @pytest.mark.parametrize("bad", [None, "", "abc", "NaN", "Infinity", float("nan"), True])
    def test_unparseable_entry_quantity_contributes_zero(self, bad):
        views = fold(
            "leather", [entry(quantity="100"), entry(quantity=bad)], []
        )

        assert views["cow hide"].total_original == Decimal("100")

    @pytest.mark.parametrize("bad", [None, "n/a", float("inf")])
    def test_unparseable_removal_quantity_contributes_zero(self, bad):
        views = fold(
            "leather", [entry(quantity="100")], [removal(quantity=bad)]
        )

        assert views["cow hide"].total_removed == Decimal("0")

    def test_rows_with_missing_key_are_skipped(self):
        rows = [LedgerEntryRow(category="leather", key=None, quantity="10", status="approved")]

        assert fold("leather", rows, []) == {}

    def test_negative_non_reversal_removal_is_ignored(self):
        views = fold(
            "leather", [entry(quantity="100")], [removal(quantity="-20")]
        )

        assert views["cow hide"].total_removed == Decimal("0")

    def test_float_quantities_keep_their_decimal_value(self):
        views = fold("leather", [entry(quantity=0.1), entry(quantity=0.2)], [])

        assert views["cow hide"].total_original == Decimal("0.3")


class TestSingleKey:

    def test_unknown_key_gives_all_zero_view(self):
        view = net_stock_for_key("leather", "nothing here", [entry()], [removal()])

        assert view.key == "nothing here"
        assert view.total_original == Decimal("0")
        assert view.total_removed == Decimal("0")
        assert view.net_available == Decimal("0")
        assert not view.is_known

    def test_matches_the_category_fold(self):
        entries = [entry(), entry(key="suede", quantity="12")]
        removals = [removal(), removal(key="suede", quantity="2")]

        assert net_stock_for_key("leather", "suede", entries, removals) == (
            fold("leather", entries, removals)["suede"]
        )


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

quantities = st.decimals(
    min_value=Decimal("0.001"), max_value=Decimal("100000"), places=3,
    allow_nan=False, allow_infinity=False,
)
keys = st.sampled_from(["cow hide", "goat skin", "suede"])
statuses = st.sampled_from(["approved", "pending", "rejected"])


@st.composite
def ledgers(draw):
    entries = draw(st.lists(
        st.builds(entry, key=keys, quantity=quantities, status=statuses, voided=st.booleans()),
        max_size=12,
    ))
    removals = draw(st.lists(
        st.builds(removal, key=keys, quantity=quantities),
        max_size=12,
    ))
    return entries, removals


class TestProperties:

    @settings(max_examples=200, deadline=None)
    @given(ledgers())
    def test_net_is_never_negative_and_matches_definition(self, ledger):
        entries, removals = ledger
        for view in fold("leather", entries, removals).values():
            assert view.net_available >= 0
            assert view.net_available == max(Decimal("0"), view.total_original - view.total_removed)
            assert view.is_overdrawn == (view.total_removed > view.total_original)

    @settings(max_examples=100, deadline=None)
    @given(ledgers(), st.randoms())
    def test_row_order_does_not_matter(self, ledger, rnd):
        entries, removals = ledger
        shuffled_entries = list(entries)
        shuffled_removals = list(removals)
        rnd.shuffle(shuffled_entries)
        rnd.shuffle(shuffled_removals)

        first = fold("leather", entries, removals)
        second = fold("leather", shuffled_entries, shuffled_removals)

        assert {k: (v.total_original, v.total_removed) for k, v in first.items()} == {
            k: (v.total_original, v.total_removed) for k, v in second.items()
        }

    @settings(max_examples=100, deadline=None)
    @given(ledgers())
    def test_totals_equal_sums_of_contributing_rows(self, ledger):
        entries, removals = ledger
        views = fold("leather", entries, removals)
        for key, view in views.items():
            expected_original = sum(
                (e.quantity for e in entries
                 if e.key == key and e.status == "approved" and not e.voided),
                Decimal("0"),
            )
            expected_removed = sum(
                (r.remove_quantity for r in removals if r.key == key), Decimal("0")
            )
            assert view.total_original == expected_original
            assert view.total_removed == expected_removed
