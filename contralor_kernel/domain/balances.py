"""Balances -- Pure head-count reconciliation per category."""

from collections.abc import Iterable, Mapping
from uuid import UUID

from contralor_kernel.domain.dtos import CategoryBalanceInfo, LineSpec
from contralor_kernel.domain.event_types import Direction


def compute_category_balances(
    initial: Mapping[UUID, int],
    lines: Iterable[LineSpec],
) -> dict[UUID, CategoryBalanceInfo]:
    """
    Reconcile a sheet: final = initial + total in - total out, per category.

    Every category carried in ``initial`` is kept, even without activity,
    so a category that empties out is never dropped from the register.
    ``lines`` must already exclude voided entries.
    """
    totals_in: dict[UUID, int] = {}
    totals_out: dict[UUID, int] = {}
    for line in lines:
        bucket = totals_in if Direction(line.direction) == Direction.IN else totals_out
        bucket[line.category_id] = bucket.get(line.category_id, 0) + line.qty_heads

    category_ids = set(initial) | set(totals_in) | set(totals_out)
    return {
        category_id: CategoryBalanceInfo(
            category_id=category_id,
            initial_heads=initial.get(category_id, 0),
            total_in_heads=totals_in.get(category_id, 0),
            total_out_heads=totals_out.get(category_id, 0),
        )
        for category_id in sorted(category_ids, key=str)
    }


def opening_balances(prior: Iterable[CategoryBalanceInfo]) -> dict[UUID, int]:
    """Initial heads for a new sheet from the prior sheet's closing balances."""
    return {b.category_id: b.final_heads for b in prior}


def total_heads(balances: Mapping[UUID, CategoryBalanceInfo]) -> int:
    return sum(b.final_heads for b in balances.values())
