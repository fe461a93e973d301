"""
Hypothesis-based fuzzing of head-count reconciliation.

Invariants checked:
- final = initial + in - out, per category, for any line sequence
- CATEGORY_CHANGE line pairs never change the total head count
- Categories carried from the prior sheet are never dropped
- Through the services, sheet balances equal the sum of non-voided lines
"""

from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from contralor_kernel.domain.balances import compute_category_balances, total_heads
from contralor_kernel.domain.dtos import LineSpec
from contralor_kernel.domain.event_types import Direction, EventType

CATEGORY_POOL = [uuid4() for _ in range(5)]

categories = st.sampled_from(CATEGORY_POOL)
heads = st.integers(min_value=1, max_value=10_000)
lines = st.builds(LineSpec, categories, st.sampled_from([Direction.IN, Direction.OUT]), heads)
initials = st.dictionaries(categories, st.integers(min_value=0, max_value=100_000), max_size=5)


class TestReconciliation:
    @given(initial=initials, movements=st.lists(lines, max_size=60))
    def test_final_is_initial_plus_in_minus_out(self, initial, movements):
        balances = compute_category_balances(initial, movements)

        for category_id, balance in balances.items():
            expected_in = sum(
                l.qty_heads for l in movements if l.category_id == category_id and l.direction == Direction.IN
            )
            expected_out = sum(
                l.qty_heads for l in movements if l.category_id == category_id and l.direction == Direction.OUT
            )
            assert balance.initial_heads == initial.get(category_id, 0)
            assert balance.total_in_heads == expected_in
            assert balance.total_out_heads == expected_out
            assert balance.final_heads == balance.initial_heads + expected_in - expected_out

    @given(initial=initials, movements=st.lists(lines, max_size=60))
    def test_carried_categories_are_kept(self, initial, movements):
        balances = compute_category_balances(initial, movements)

        assert set(initial) <= set(balances)

    @given(
        initial=initials,
        changes=st.lists(st.tuples(categories, categories, heads), max_size=30),
    )
    def test_category_changes_preserve_total(self, initial, changes):
        movements = []
        for source, target, qty in changes:
            movements.append(LineSpec(source, Direction.OUT, qty))
            movements.append(LineSpec(target, Direction.IN, qty))

        balances = compute_category_balances(initial, movements)

        assert total_heads(balances) == sum(initial.values())

    @given(movements=st.lists(lines, max_size=30))
    def test_order_does_not_matter(self, movements):
        forward = compute_category_balances({}, movements)
        backward = compute_category_balances({}, list(reversed(movements)))

        assert forward == backward


class TestServiceReconciliation:
    @settings(
        max_examples=15,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
    )
    @given(
        events=st.lists(
            st.tuples(st.sampled_from([EventType.BIRTH, EventType.DEATH]), st.integers(1, 50), st.booleans()),
            min_size=1,
            max_size=8,
        )
    )
    def test_balances_match_active_lines(
        self, events, orchestrator, open_sheet, approve_event, ledger_selector, test_actor_id
    ):
        for event_type, qty, void in events:
            result = approve_event(event_type, qty_heads=qty)
            assert result.is_approved
            if void:
                orchestrator.void_entry(result.entry_id, "fuzz", test_actor_id)

        active = [line for entry in ledger_selector.list_entries(open_sheet.id) for line in entry.lines]
        balances = orchestrator.compute_balances(open_sheet.id)

        for category_id, balance in balances.items():
            heads_in = sum(l.qty_heads for l in active if l.category_id == category_id and l.direction == "IN")
            heads_out = sum(l.qty_heads for l in active if l.category_id == category_id and l.direction == "OUT")
            assert balance.total_in_heads == heads_in
            assert balance.total_out_heads == heads_out
