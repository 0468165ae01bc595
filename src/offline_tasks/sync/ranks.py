# src/offline_tasks/sync/ranks.py

"""
Rank allocation for user-ordered sequences.

Ranks are ints with a granularity of 1 (the remote sort_order column is a
bigint). New items get a rank STEP away from the current edge; a move takes the
floored midpoint of its new neighbours. When no integer lies strictly between
the neighbours the move collides and the whole sequence has to be rebalanced to
STEP, 2*STEP, 3*STEP, ...
"""

from __future__ import annotations

from collections.abc import Sequence

STEP = 1000


def rank_for_insert_at_top(existing_min_rank: int | None) -> int:
    """Rank for a new first item. An empty sequence starts at 0."""
    if existing_min_rank is None:
        return 0
    return int(existing_min_rank) - STEP


def rank_for_insert_at_bottom(existing_max_rank: int | None) -> int:
    """Rank for a new last item. An empty sequence starts at STEP."""
    if existing_max_rank is None:
        return STEP
    return int(existing_max_rank) + STEP


def rank_for_move(prev_rank: int | None, next_rank: int | None) -> int | None:
    """
    Rank for an item placed between prev_rank and next_rank.

    Missing neighbours:
    - no previous item: 0, or next - 2*STEP when next is already <= 0
    - no next item: prev + 2*STEP

    Returns None on collision (rebalance required).
    """
    if prev_rank is None and next_rank is None:
        return 0

    if prev_rank is None:
        assert next_rank is not None
        prev_rank = 0 if next_rank > 0 else next_rank - 2 * STEP
    if next_rank is None:
        next_rank = prev_rank + 2 * STEP

    mid = (prev_rank + next_rank) // 2
    if mid <= prev_rank or mid >= next_rank:
        return None
    return mid


def needs_rebalance(ranks: Sequence[int]) -> bool:
    """True when the sequence is not strictly increasing in display order."""
    return any(b <= a for a, b in zip(ranks, ranks[1:]))


def rebalanced_ranks(count: int) -> list[int]:
    return [STEP * (i + 1) for i in range(max(0, count))]
