"""Shared fixtures: an in-memory persistence backend with failure and hold modes."""

from __future__ import annotations

import asyncio
from typing import Sequence

import pytest

from corkboard.errors import PersistenceError
from corkboard.lanes import LaneKey, OrderedItem
from corkboard.reorder.backend import PersistenceBackend


class PendingWrite:
    """A held backend call waiting for the test to settle it."""

    def __init__(self, call: tuple) -> None:
        self.call = call
        self.fail = False
        self.event = asyncio.Event()

    def release(self, fail: bool = False) -> None:
        self.fail = fail
        self.event.set()


class FakeBackend(PersistenceBackend):
    """Records every write.

    ``fail_on`` names methods that raise :class:`PersistenceError`. With
    ``hold`` set, each call parks in ``pending`` until released.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.hold = False
        self.pending: list[PendingWrite] = []

    async def update_item_rank(self, item_id: str, rank: str, lane: LaneKey) -> None:
        await self._record(("update_item_rank", item_id, rank, lane))

    async def bulk_update_ranks(self, updates: Sequence[tuple[str, str]]) -> None:
        await self._record(("bulk_update_ranks", list(updates)))

    async def create_item(self, item: OrderedItem) -> None:
        await self._record(("create_item", item))

    async def delete_item(self, item_id: str) -> None:
        await self._record(("delete_item", item_id))

    async def _record(self, call: tuple) -> None:
        self.calls.append(call)
        if self.hold:
            pending = PendingWrite(call)
            self.pending.append(pending)
            await pending.event.wait()
            if pending.fail:
                raise PersistenceError(f"{call[0]} rejected")
        elif call[0] in self.fail_on:
            raise PersistenceError(f"{call[0]} rejected")


async def wait_for_calls(backend: FakeBackend, count: int) -> None:
    """Yield to the loop until *backend* has seen *count* calls."""
    for _ in range(100):
        if len(backend.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} backend call(s), saw {len(backend.calls)}")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
