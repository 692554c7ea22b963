"""Persistence boundary for the reorder coordinator.

The coordinator only needs four writes. Each one either completes or raises
:class:`PersistenceError`; any other exception is treated as a bug.
:class:`SQLiteBackend` implements the contract on top of
:class:`corkboard.store.db.CardDB`.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Sequence

from corkboard.errors import PersistenceError
from corkboard.lanes import LaneKey, OrderedItem
from corkboard.store.db import CardDB, CardNotFound

log = logging.getLogger(__name__)


class PersistenceBackend(ABC):
    """Async write contract consumed by the coordinator."""

    @abstractmethod
    async def update_item_rank(self, item_id: str, rank: str, lane: LaneKey) -> None:
        """Persist a moved item's rank together with its lane fields."""

    @abstractmethod
    async def bulk_update_ranks(self, updates: Sequence[tuple[str, str]]) -> None:
        """Persist ``(item_id, rank)`` pairs from a rebalance, all or nothing."""

    @abstractmethod
    async def create_item(self, item: OrderedItem) -> None:
        """Persist a newly created item."""

    @abstractmethod
    async def delete_item(self, item_id: str) -> None:
        """Remove an item."""


class SQLiteBackend(PersistenceBackend):
    """Run :class:`CardDB` writes off the event loop.

    Writes reach the database one at a time in the order they were issued,
    so overlapping commits land the same way they were applied locally.
    ``sqlite3.Error`` and missing rows are reported as
    :class:`PersistenceError` so the coordinator can roll back.

    Parameters
    ----------
    db:
        Card database to write to.
    """

    def __init__(self, db: CardDB) -> None:
        self._db = db
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    async def update_item_rank(self, item_id: str, rank: str, lane: LaneKey) -> None:
        await self._run(self._db.update_card_rank, item_id, rank, lane)

    async def bulk_update_ranks(self, updates: Sequence[tuple[str, str]]) -> None:
        await self._run(self._db.bulk_update_ranks, list(updates))

    async def create_item(self, item: OrderedItem) -> None:
        await self._run(self._db.add_card, item.id, item.lane, item.rank)

    async def delete_item(self, item_id: str) -> None:
        await self._run(self._db.delete_card, item_id)

    def _write_lock(self) -> asyncio.Lock:
        # One lock per event loop; the CLI runs a fresh loop per command step.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _run(self, func, *args) -> None:
        async with self._write_lock():
            try:
                await asyncio.to_thread(func, *args)
            except (sqlite3.Error, CardNotFound) as exc:
                log.debug("Card write %s failed: %s", func.__name__, exc)
                raise PersistenceError(f"{func.__name__} failed: {exc}") from exc
