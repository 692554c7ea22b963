"""Rank keys: opaque strings whose plain string order is the display order.

A rank is read as the fractional digits of a number in ``[0, 1)`` written in
base 62 with the alphabet ``0-9A-Za-z``. Because the alphabet is in ASCII
order, comparing two ranks as strings compares the fractions they denote.
Inserting between two neighbors never touches any other key: the new key is
the digit-wise midpoint, one digit longer at most when the neighbors are
adjacent at their current length.

A well-formed rank is non-empty, uses only alphabet digits and does not end
with ``0``. The trailing-zero rule keeps every gap open: no string sorts
strictly between ``"k"`` and ``"k0"``.

Everything here is pure and deterministic.
"""

from __future__ import annotations

from typing import Iterable

from corkboard.errors import RankError

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)
ZERO = ALPHABET[0]

_DIGIT_VALUES = {ch: i for i, ch in enumerate(ALPHABET)}


def initial_rank() -> str:
    """Return the rank used for the first item of an empty lane.

    The alphabet midpoint leaves equal room above and below.
    """
    return ALPHABET[BASE // 2]


def is_valid_rank(rank: object) -> bool:
    """Return True if *rank* is a well-formed rank key."""
    if not isinstance(rank, str) or not rank:
        return False
    if rank[-1] == ZERO:
        return False
    return all(ch in _DIGIT_VALUES for ch in rank)


def validate_rank(rank: object) -> None:
    """Raise :class:`RankError` if *rank* is not a well-formed rank key."""
    if is_valid_rank(rank):
        return
    if not isinstance(rank, str):
        raise RankError(f"Rank must be a string, got {type(rank).__name__}")
    if not rank:
        raise RankError("Rank must not be empty")
    bad = sorted({ch for ch in rank if ch not in _DIGIT_VALUES})
    if bad:
        raise RankError(f"Rank {rank!r} contains characters outside the alphabet: {bad}")
    raise RankError(f"Rank {rank!r} must not end with {ZERO!r}")


def between_rank(prev_rank: str | None = None, next_rank: str | None = None) -> str:
    """Return a rank strictly after *prev_rank* and strictly before *next_rank*.

    Either bound may be omitted: with no *prev_rank* the result sorts before
    *next_rank*; with no *next_rank* it sorts after *prev_rank*; with neither
    it is :func:`initial_rank`. Precision is extended by a digit whenever the
    bounds leave no room at their current length, so this never fails for
    valid input.

    Raises
    ------
    RankError
        If a bound is malformed or ``prev_rank >= next_rank``.
    """
    if prev_rank is not None:
        validate_rank(prev_rank)
    if next_rank is not None:
        validate_rank(next_rank)

    if prev_rank is None and next_rank is None:
        return initial_rank()
    if prev_rank is not None and next_rank is not None and prev_rank >= next_rank:
        raise RankError(
            f"Invalid rank bounds: prev {prev_rank!r} >= next {next_rank!r}"
        )
    return _midpoint(prev_rank or "", next_rank)


def end_of_lane_rank(ranks: Iterable[str]) -> str:
    """Return the rank for an item appended after every rank in *ranks*."""
    existing = list(ranks)
    if not existing:
        return initial_rank()
    return between_rank(max(existing), None)


def encode_fixed(value: int, width: int) -> str:
    """Encode ``value / BASE**width`` as a rank, dropping trailing zeros.

    *value* must be in ``[1, BASE**width)``.
    """
    if not 0 < value < BASE ** width:
        raise RankError(f"Value {value} does not fit in {width} digit(s)")
    digits = []
    for _ in range(width):
        value, digit = divmod(value, BASE)
        digits.append(ALPHABET[digit])
    return "".join(reversed(digits)).rstrip(ZERO)


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _digit(rank: str, pos: int) -> str:
    """Digit of *rank* at *pos*, reading missing positions as zero."""
    return rank[pos] if pos < len(rank) else ZERO


def _midpoint(low: str, high: str | None) -> str:
    """Midpoint of two fractions given as digit strings.

    *low* is ``""`` for the bottom of the key space and *high* is None for
    the top. Requires ``low < high``.
    """
    if high is not None:
        # Carry the shared prefix over unchanged, padding low with zeros.
        n = 0
        while n < len(high) and _digit(low, n) == high[n]:
            n += 1
        if n > 0:
            return high[:n] + _midpoint(low[n:], high[n:])

    lo = _DIGIT_VALUES[low[0]] if low else 0
    hi = _DIGIT_VALUES[high[0]] if high is not None else BASE
    if hi - lo > 1:
        return ALPHABET[(lo + hi) // 2]

    # Adjacent leading digits.
    if high is not None and len(high) > 1:
        return high[0]
    return ALPHABET[lo] + _midpoint(low[1:], None)
