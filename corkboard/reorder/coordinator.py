"""Drag-and-drop reordering with optimistic local state.

A gesture moves through::

    idle → dragging → hovering → dropped → committing → idle
                                                 ↘ rollback → idle

On drop the coordinator computes the new rank from the *current* local
state, applies every resulting change locally, and only then awaits the
persistence backend. If a write fails, each touched item is put back the way
it was, unless a later drop has overwritten it in the meantime.

Once a drop has been applied locally the coordinator accepts the next drag,
so several commits can be in flight at once and may finish in any order.
The exception is a lane whose ranks are being rebalanced: later drops into
that lane wait until the rebalance has been written or rolled back, then
place themselves against the settled ranks.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from corkboard.errors import PersistenceError, ReorderError
from corkboard.lanes import (
    ChapterDirectory,
    LaneKey,
    LaneTarget,
    OrderedItem,
    display_order,
    group_lanes,
    lane_items,
)
from corkboard.rank.keys import between_rank, end_of_lane_rank
from corkboard.rank.rebalance import has_integrity_violation, rebalance_items
from corkboard.reorder.backend import PersistenceBackend

log = logging.getLogger(__name__)

DEFAULT_MAX_RANK_LENGTH = 12

Write = Callable[[], Awaitable[None]]


class Phase(str, Enum):
    """Gesture states."""

    IDLE = "idle"
    DRAGGING = "dragging"
    HOVERING = "hovering"
    DROPPED = "dropped"
    COMMITTING = "committing"
    ROLLBACK = "rollback"


class Position(str, Enum):
    """Side of the neighbor item a drop lands on."""

    BEFORE = "before"
    AFTER = "after"


@dataclass
class Gesture:
    """One drag, from pickup to settled commit."""

    item_id: str
    phase: Phase = Phase.DRAGGING
    target: LaneTarget | None = None
    neighbor_id: str | None = None
    position: Position = Position.AFTER
    history: list[Phase] = field(default_factory=lambda: [Phase.DRAGGING])

    def advance(self, phase: Phase) -> None:
        self.phase = phase
        self.history.append(phase)


@dataclass
class CommitResult:
    """Outcome of a drop, creation, deletion or lane repair.

    ``changed`` is False for a no-op. ``committed`` is False only when the
    backend rejected the write and the local change was rolled back; the
    backend's message is then in ``error``.
    """

    item_id: str | None
    changed: bool
    committed: bool
    item: OrderedItem | None = None
    rebalanced: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class _Placement:
    rank: str
    rebalanced: list[OrderedItem]


class ReorderCoordinator:
    """Owns local item state and drives drops through the backend.

    Parameters
    ----------
    backend:
        Persistence boundary receiving every write.
    chapters:
        Chapter → part lookup used to derive chapter lane keys.
    items:
        Initial local state.
    max_rank_length:
        A computed rank longer than this triggers a rebalance of the
        target lane before the item is placed.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        chapters: ChapterDirectory | None = None,
        items: Iterable[OrderedItem] = (),
        max_rank_length: int = DEFAULT_MAX_RANK_LENGTH,
    ) -> None:
        self._backend = backend
        self._chapters = chapters if chapters is not None else ChapterDirectory()
        self._items: dict[str, OrderedItem] = {}
        self._max_rank_length = max_rank_length
        self._gesture: Gesture | None = None
        # lane identity -> set once that lane's in-flight rebalance settles
        self._rebalancing: dict[tuple, asyncio.Event] = {}
        self.load(items)

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        backend: PersistenceBackend,
        chapters: ChapterDirectory | None = None,
        items: Iterable[OrderedItem] = (),
    ) -> ReorderCoordinator:
        return cls(
            backend,
            chapters=chapters,
            items=items,
            max_rank_length=config["ranks"]["max_length"],
        )

    # ------------------------------------------------------------------
    # Local state
    # ------------------------------------------------------------------

    def load(self, items: Iterable[OrderedItem]) -> None:
        """Replace local state wholesale, e.g. after a fresh fetch."""
        self._items = {item.id: item for item in items}

    @property
    def items(self) -> list[OrderedItem]:
        return display_order(self._items.values())

    @property
    def chapters(self) -> ChapterDirectory:
        return self._chapters

    def get(self, item_id: str) -> OrderedItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise ReorderError(f"Unknown item '{item_id}'") from None

    def lane(self, lane: LaneKey | LaneTarget) -> list[OrderedItem]:
        """Members of a lane in display order."""
        if isinstance(lane, LaneTarget):
            lane = self._chapters.resolve(lane)
        return lane_items(self._items.values(), lane)

    def lanes(self) -> dict[tuple, list[OrderedItem]]:
        """Every non-empty lane, keyed by lane identity."""
        return group_lanes(self._items.values())

    # ------------------------------------------------------------------
    # Gesture state machine
    # ------------------------------------------------------------------

    @property
    def gesture(self) -> Gesture | None:
        """The gesture still accepting input, if any."""
        return self._gesture

    @property
    def phase(self) -> Phase:
        return self._gesture.phase if self._gesture else Phase.IDLE

    def begin_drag(self, item_id: str) -> Gesture:
        """Pick up *item_id*. Only one gesture can be in the air at a time."""
        if self._gesture is not None:
            raise ReorderError(
                f"Already dragging '{self._gesture.item_id}'"
            )
        self.get(item_id)
        self._gesture = Gesture(item_id=item_id)
        return self._gesture

    def hover(
        self,
        target: LaneTarget,
        neighbor_id: str | None = None,
        position: Position | str = Position.AFTER,
    ) -> None:
        """Record where the dragged item would land if dropped now."""
        gesture = self._require_gesture()
        self._chapters.resolve(target)
        gesture.target = target
        gesture.neighbor_id = neighbor_id
        gesture.position = _parse_position(position)
        if gesture.phase is not Phase.HOVERING:
            gesture.advance(Phase.HOVERING)

    def cancel(self) -> None:
        """Abandon the current gesture without touching any item."""
        if self._gesture is None:
            return
        log.debug("Drag of %s cancelled", self._gesture.item_id)
        self._gesture.advance(Phase.IDLE)
        self._gesture = None

    async def drop(
        self,
        target: LaneTarget | None = None,
        neighbor_id: str | None = None,
        position: Position | str | None = None,
    ) -> CommitResult:
        """Drop the dragged item.

        Without *target* the last :meth:`hover` position is used. With no
        neighbor the item goes to the end of the lane.

        Raises
        ------
        ReorderError
            No active gesture, no target, or *neighbor_id* not in the lane.
        LaneError
            The target lane cannot be resolved.
        """
        gesture = self._require_gesture()
        if target is None:
            if gesture.target is None:
                raise ReorderError("Drop needs a target lane")
            target = gesture.target
            neighbor_id = gesture.neighbor_id
            position = gesture.position
        side = _parse_position(position or Position.AFTER)

        gesture.advance(Phase.DROPPED)
        self._gesture = None
        try:
            await self._rebalance_settled(self._chapters.resolve(target))
            moved, placement = self._plan_move(gesture.item_id, target, neighbor_id, side)
        except Exception:
            gesture.advance(Phase.IDLE)
            raise

        if moved is None:
            log.debug("Drop of %s leaves it in place", gesture.item_id)
            gesture.advance(Phase.IDLE)
            return CommitResult(
                item_id=gesture.item_id, changed=False, committed=True,
                item=self._items.get(gesture.item_id),
            )

        mutations: dict[str, OrderedItem | None] = {
            item.id: item for item in placement.rebalanced
        }
        mutations[moved.id] = moved
        writes = self._rebalance_writes(placement.rebalanced)
        writes.append(
            lambda: self._backend.update_item_rank(moved.id, moved.rank, moved.lane)
        )
        rebalanced_lane = moved.lane if placement.rebalanced else None
        error = await self._commit(mutations, writes, gesture, rebalanced_lane)
        return CommitResult(
            item_id=moved.id,
            changed=True,
            committed=error is None,
            item=self._items.get(moved.id),
            rebalanced=[item.id for item in placement.rebalanced],
            error=error,
        )

    async def move(
        self,
        item_id: str,
        target: LaneTarget,
        neighbor_id: str | None = None,
        position: Position | str = Position.AFTER,
    ) -> CommitResult:
        """Pick up, drop and commit in one call."""
        self.begin_drag(item_id)
        try:
            self.hover(target, neighbor_id, position)
        except Exception:
            self.cancel()
            raise
        return await self.drop()

    # ------------------------------------------------------------------
    # Creation, deletion, repair
    # ------------------------------------------------------------------

    async def create_item(self, item_id: str, target: LaneTarget) -> CommitResult:
        """Add a new item at the end of *target*'s lane."""
        lane = self._chapters.resolve(target)
        await self._rebalance_settled(lane)
        if item_id in self._items:
            raise ReorderError(f"Item '{item_id}' already exists")
        siblings = lane_items(self._items.values(), lane)
        placement = self._place(siblings, len(siblings), lane)
        item = OrderedItem(id=item_id, lane=lane, rank=placement.rank)

        mutations: dict[str, OrderedItem | None] = {
            other.id: other for other in placement.rebalanced
        }
        mutations[item.id] = item
        writes = self._rebalance_writes(placement.rebalanced)
        writes.append(lambda: self._backend.create_item(item))
        error = await self._commit(
            mutations, writes, rebalanced_lane=lane if placement.rebalanced else None,
        )
        return CommitResult(
            item_id=item_id,
            changed=True,
            committed=error is None,
            item=self._items.get(item_id),
            rebalanced=[other.id for other in placement.rebalanced],
            error=error,
        )

    async def delete_item(self, item_id: str) -> CommitResult:
        """Remove an item. Its former neighbors keep their ranks."""
        self.get(item_id)
        error = await self._commit(
            {item_id: None},
            [lambda: self._backend.delete_item(item_id)],
        )
        return CommitResult(
            item_id=item_id,
            changed=True,
            committed=error is None,
            item=self._items.get(item_id),
            error=error,
        )

    async def repair_lane(self, lane: LaneKey) -> CommitResult:
        """Rebalance *lane* if its ranks are broken; otherwise do nothing."""
        await self._rebalance_settled(lane)
        members = lane_items(self._items.values(), lane)
        if not has_integrity_violation(members):
            return CommitResult(item_id=None, changed=False, committed=True)

        log.info("Repairing %d item(s) in lane %s", len(members), lane.describe())
        repaired = rebalance_items(members)
        error = await self._commit(
            {item.id: item for item in repaired},
            self._rebalance_writes(repaired),
            rebalanced_lane=lane,
        )
        return CommitResult(
            item_id=None,
            changed=True,
            committed=error is None,
            rebalanced=[item.id for item in repaired],
            error=error,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan_move(
        self,
        item_id: str,
        target: LaneTarget,
        neighbor_id: str | None,
        position: Position,
    ) -> tuple[OrderedItem | None, _Placement]:
        """Work out the moved item and any rebalanced siblings.

        Returns ``(None, ...)`` when the drop would not change anything.
        """
        item = self.get(item_id)
        lane = self._chapters.resolve(target)
        nothing = _Placement(rank=item.rank, rebalanced=[])
        if neighbor_id == item.id:
            return None, nothing

        siblings = lane_items(self._items.values(), lane, exclude=item.id)
        if neighbor_id is None:
            index = len(siblings)
        else:
            ids = [sibling.id for sibling in siblings]
            if neighbor_id not in ids:
                raise ReorderError(
                    f"Neighbor '{neighbor_id}' is not in lane {lane.describe()}"
                )
            index = ids.index(neighbor_id) + (1 if position is Position.AFTER else 0)

        if item.lane == lane and self._neighbors(item) == _neighbor_ids(siblings, index):
            return None, nothing

        placement = self._place(siblings, index, lane)
        return dataclasses.replace(item, lane=lane, rank=placement.rank), placement

    def _place(self, siblings: list[OrderedItem], index: int, lane: LaneKey) -> _Placement:
        """Rank for a new member at *index* among *siblings*.

        Broken lanes are rebalanced first. A rank past the length limit
        causes one rebalance and a retry.
        """
        rebalanced: list[OrderedItem] = []
        if has_integrity_violation(siblings):
            log.info(
                "Lane %s has out-of-order ranks; rebalancing %d item(s)",
                lane.describe(), len(siblings),
            )
            siblings = rebalanced = rebalance_items(siblings)

        rank = _rank_at(siblings, index)
        if len(rank) > self._max_rank_length and not rebalanced:
            log.info(
                "Rank %r exceeds %d chars; rebalancing lane %s",
                rank, self._max_rank_length, lane.describe(),
            )
            siblings = rebalanced = rebalance_items(siblings)
            rank = _rank_at(siblings, index)
        if len(rank) > self._max_rank_length:
            log.warning(
                "Rank %r still exceeds %d chars after rebalancing lane %s",
                rank, self._max_rank_length, lane.describe(),
            )
        return _Placement(rank=rank, rebalanced=rebalanced)

    def _neighbors(self, item: OrderedItem) -> tuple[str | None, str | None]:
        members = lane_items(self._items.values(), item.lane)
        ids = [member.id for member in members]
        index = ids.index(item.id)
        return _neighbor_ids(
            [m for m in members if m.id != item.id], index,
        )

    def _rebalance_writes(self, rebalanced: list[OrderedItem]) -> list[Write]:
        if not rebalanced:
            return []
        updates = [(item.id, item.rank) for item in rebalanced]
        return [lambda: self._backend.bulk_update_ranks(updates)]

    # ------------------------------------------------------------------
    # Optimistic apply / rollback
    # ------------------------------------------------------------------

    async def _rebalance_settled(self, lane: LaneKey) -> None:
        """Wait until no rebalance of *lane* is awaiting persistence."""
        while lane.identity in self._rebalancing:
            log.debug("Waiting for rebalance of lane %s to settle", lane.describe())
            await self._rebalancing[lane.identity].wait()

    async def _commit(
        self,
        mutations: dict[str, OrderedItem | None],
        writes: list[Write],
        gesture: Gesture | None = None,
        rebalanced_lane: LaneKey | None = None,
    ) -> str | None:
        """Apply *mutations* locally, then run *writes* in order.

        A None mutation deletes the item. When *rebalanced_lane* is given,
        later placements into that lane are held back until the writes
        settle. Returns None on success or the backend's error message after
        rolling back.
        """
        snapshot = {item_id: self._items.get(item_id) for item_id in mutations}
        for item_id, new in mutations.items():
            if new is None:
                self._items.pop(item_id, None)
            else:
                self._items[item_id] = new
        settled: asyncio.Event | None = None
        if rebalanced_lane is not None:
            settled = asyncio.Event()
            self._rebalancing[rebalanced_lane.identity] = settled
        if gesture is not None:
            gesture.advance(Phase.COMMITTING)

        try:
            for write in writes:
                await write()
        except PersistenceError as exc:
            self._rollback(snapshot, mutations, gesture)
            log.warning("Write rejected, rolled back %d item(s): %s", len(mutations), exc)
            return str(exc)
        except Exception:
            self._rollback(snapshot, mutations, gesture)
            raise
        finally:
            if settled is not None:
                if self._rebalancing.get(rebalanced_lane.identity) is settled:
                    del self._rebalancing[rebalanced_lane.identity]
                settled.set()

        if gesture is not None:
            gesture.advance(Phase.IDLE)
        return None

    def _rollback(
        self,
        snapshot: dict[str, OrderedItem | None],
        mutations: dict[str, OrderedItem | None],
        gesture: Gesture | None,
    ) -> None:
        if gesture is not None:
            gesture.advance(Phase.ROLLBACK)
        for item_id, previous in snapshot.items():
            # Leave items a later drop has already replaced.
            if self._items.get(item_id) is not mutations[item_id]:
                continue
            if previous is None:
                self._items.pop(item_id, None)
            else:
                self._items[item_id] = previous
        if gesture is not None:
            gesture.advance(Phase.IDLE)

    def _require_gesture(self) -> Gesture:
        if self._gesture is None:
            raise ReorderError("No drag in progress")
        return self._gesture


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def _parse_position(position: Position | str) -> Position:
    try:
        return Position(position)
    except ValueError:
        raise ReorderError(
            f"Invalid position {position!r}. Must be 'before' or 'after'"
        ) from None


def _neighbor_ids(siblings: list[OrderedItem], index: int) -> tuple[str | None, str | None]:
    """Ids of the items that would sit either side of slot *index*."""
    prev_id = siblings[index - 1].id if index > 0 else None
    next_id = siblings[index].id if index < len(siblings) else None
    return prev_id, next_id


def _rank_at(siblings: list[OrderedItem], index: int) -> str:
    if index == len(siblings):
        return end_of_lane_rank(sibling.rank for sibling in siblings)
    prev_rank = siblings[index - 1].rank if index > 0 else None
    next_rank = siblings[index].rank if index < len(siblings) else None
    return between_rank(prev_rank, next_rank)
