"""Exception hierarchy shared across corkboard modules.

Contract violations (``RankError``, ``LaneError``, ``ReorderError``) signal a
caller bug and are never caught inside the library. ``PersistenceError`` is
the only recoverable failure: the reorder coordinator catches it and rolls
back its optimistic mutation.
"""

from __future__ import annotations


class CorkboardError(Exception):
    """Base class for all corkboard errors."""


class ConfigError(CorkboardError):
    """Raised when config is invalid or missing."""


class RankError(CorkboardError):
    """Raised on malformed rank keys or out-of-order rank bounds."""


class LaneError(CorkboardError):
    """Raised when a lane target cannot be resolved."""


class ReorderError(CorkboardError):
    """Raised on invalid gesture transitions or unknown drop targets."""


class PersistenceError(CorkboardError):
    """Raised by a persistence backend when a write is rejected."""
