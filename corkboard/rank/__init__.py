"""Rank key generation and lane rebalancing.

Main entry points: :func:`between_rank` for single inserts and
:func:`rebalance` for reassigning a whole lane.
"""

from __future__ import annotations

from corkboard.rank.keys import (
    ALPHABET,
    between_rank,
    end_of_lane_rank,
    initial_rank,
    is_valid_rank,
    validate_rank,
)
from corkboard.rank.rebalance import (
    has_integrity_violation,
    rebalance,
    rebalance_items,
)

__all__ = [
    "ALPHABET",
    "between_rank",
    "end_of_lane_rank",
    "has_integrity_violation",
    "initial_rank",
    "is_valid_rank",
    "rebalance",
    "rebalance_items",
    "validate_rank",
]
