"""Reorder coordination: gestures → ranks → optimistic state → backend.

Main entry point: :class:`ReorderCoordinator`. Persistence goes through a
:class:`PersistenceBackend`; :class:`SQLiteBackend` is the built-in one.
"""

from corkboard.reorder.backend import PersistenceBackend, SQLiteBackend
from corkboard.reorder.coordinator import (
    CommitResult,
    Gesture,
    Phase,
    Position,
    ReorderCoordinator,
)

__all__ = [
    "CommitResult",
    "Gesture",
    "PersistenceBackend",
    "Phase",
    "Position",
    "ReorderCoordinator",
    "SQLiteBackend",
]
