"""Lane integrity checks and bulk rank reassignment."""

from __future__ import annotations

import dataclasses
from typing import Any, Sequence, TypeVar

from corkboard.errors import RankError
from corkboard.rank.keys import BASE, encode_fixed, is_valid_rank

T = TypeVar("T")


def has_integrity_violation(items: Sequence[Any]) -> bool:
    """Return True if ranks read in the given order are not strictly increasing.

    Covers duplicate ranks, out-of-order ranks and malformed ranks (which
    cannot take part in further inserts). *items* are anything with a
    ``rank`` attribute, usually :class:`corkboard.lanes.OrderedItem`.
    """
    previous: str | None = None
    for item in items:
        rank = item.rank
        if not is_valid_rank(rank):
            return True
        if previous is not None and rank <= previous:
            return True
        previous = rank
    return False


def rank_width(count: int) -> int:
    """Digits needed to give *count* keys distinct, evenly spaced values."""
    width = 1
    while BASE ** width < count + 1:
        width += 1
    return width


def rebalance(count: int) -> list[str]:
    """Return *count* strictly increasing, evenly spaced ranks.

    The key space is cut into ``count + 1`` equal slices, so the gap before
    the first key and after the last matches the gap between neighbors. All
    keys share the width from :func:`rank_width`, so a single insert between
    any two of them needs at most one more digit.
    """
    if count < 0:
        raise RankError(f"count must be >= 0, got {count}")
    if count == 0:
        return []

    width = rank_width(count)
    space = BASE ** width
    return [encode_fixed(i * space // (count + 1), width) for i in range(1, count + 1)]


def rebalance_items(items: Sequence[T]) -> list[T]:
    """Reassign ranks to *items* in their given order.

    Only ``rank`` changes; lane and relative order are preserved.
    """
    ranks = rebalance(len(items))
    return [dataclasses.replace(item, rank=rank) for item, rank in zip(items, ranks)]
