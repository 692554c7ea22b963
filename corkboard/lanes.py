"""Lane identity and scope resolution.

Cards sit in one of three nested scopes on a board: the whole book, a part,
or a chapter. A chapter lane also records the part that owns the chapter.
That part is derived data: :class:`ChapterDirectory` stamps the chapter's
current part onto every chapter lane it resolves, so an item can never claim
"chapter X" together with a part other than X's own.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

from corkboard.errors import LaneError

DEFAULT_BOARD = "main-board"


class Scope(str, Enum):
    """Lane scopes, widest first."""

    BOOK = "book"
    PART = "part"
    CHAPTER = "chapter"


@dataclass(frozen=True)
class LaneKey:
    """Where an item lives: board, scope and the scope's owning ids.

    Identity ignores ``part_id`` for chapter lanes, where it is derived.
    """

    board_id: str
    scope: Scope
    part_id: str | None = None
    chapter_id: str | None = None

    @property
    def identity(self) -> tuple[str, str, str | None]:
        """Tuple naming the lane; items with equal identity share one order."""
        if self.scope is Scope.BOOK:
            return (self.board_id, self.scope.value, None)
        if self.scope is Scope.PART:
            return (self.board_id, self.scope.value, self.part_id)
        return (self.board_id, self.scope.value, self.chapter_id)

    def same_lane(self, other: LaneKey) -> bool:
        return self.identity == other.identity

    def describe(self) -> str:
        """Short human label, e.g. ``main-board/chapter:ch-1 (part:p-2)``."""
        label = f"{self.board_id}/{self.scope.value}"
        if self.scope is Scope.PART:
            label += f":{self.part_id}"
        elif self.scope is Scope.CHAPTER:
            label += f":{self.chapter_id} (part:{self.part_id or '-'})"
        return label

    @classmethod
    def from_fields(
        cls,
        board_id: str | None,
        scope: str | None,
        part_id: str | None = None,
        chapter_id: str | None = None,
    ) -> LaneKey:
        """Build a key from stored columns.

        Rows without a scope predate scoped lanes and belong to their chapter.
        """
        return cls(
            board_id=board_id or DEFAULT_BOARD,
            scope=Scope(scope or Scope.CHAPTER.value),
            part_id=part_id,
            chapter_id=chapter_id,
        )


@dataclass(frozen=True)
class LaneTarget:
    """A lane as named by a drop: scope plus the id that scope needs."""

    scope: Scope
    part_id: str | None = None
    chapter_id: str | None = None
    board_id: str = DEFAULT_BOARD

    @classmethod
    def book(cls, board_id: str = DEFAULT_BOARD) -> LaneTarget:
        return cls(Scope.BOOK, board_id=board_id)

    @classmethod
    def part(cls, part_id: str, board_id: str = DEFAULT_BOARD) -> LaneTarget:
        return cls(Scope.PART, part_id=part_id, board_id=board_id)

    @classmethod
    def chapter(cls, chapter_id: str, board_id: str = DEFAULT_BOARD) -> LaneTarget:
        return cls(Scope.CHAPTER, chapter_id=chapter_id, board_id=board_id)


@dataclass(frozen=True)
class OrderedItem:
    """An item in a lane. Immutable; moves produce a replacement."""

    id: str
    lane: LaneKey
    rank: str


class ChapterDirectory:
    """Chapter → owning part lookup used to derive chapter lane keys.

    Parameters
    ----------
    chapters:
        Mapping of chapter id to part id (None for chapters outside any part).
    """

    def __init__(self, chapters: Mapping[str, str | None] | None = None) -> None:
        self._parts: dict[str, str | None] = dict(chapters or {})

    def __contains__(self, chapter_id: object) -> bool:
        return chapter_id in self._parts

    def part_of(self, chapter_id: str) -> str | None:
        """Return the part owning *chapter_id*.

        Raises
        ------
        LaneError
            If the chapter is unknown.
        """
        try:
            return self._parts[chapter_id]
        except KeyError:
            raise LaneError(f"Unknown chapter '{chapter_id}'") from None

    def set_part(self, chapter_id: str, part_id: str | None) -> None:
        """Record that *chapter_id* now belongs to *part_id*."""
        self._parts[chapter_id] = part_id

    def resolve(self, target: LaneTarget) -> LaneKey:
        """Turn a drop target into a full lane key.

        Book lanes carry no ids, part lanes carry their part, chapter lanes
        carry their chapter plus the chapter's current part.
        """
        scope = Scope(target.scope)
        if scope is Scope.BOOK:
            return LaneKey(board_id=target.board_id, scope=scope)
        if scope is Scope.PART:
            if not target.part_id:
                raise LaneError("Part lane requires a part id")
            return LaneKey(board_id=target.board_id, scope=scope, part_id=target.part_id)
        if not target.chapter_id:
            raise LaneError("Chapter lane requires a chapter id")
        return LaneKey(
            board_id=target.board_id,
            scope=scope,
            part_id=self.part_of(target.chapter_id),
            chapter_id=target.chapter_id,
        )


def display_order(items: Iterable[OrderedItem]) -> list[OrderedItem]:
    """Sort by rank, breaking ties by id so duplicates still order stably."""
    return sorted(items, key=lambda item: (item.rank, item.id))


def lane_items(
    items: Iterable[OrderedItem],
    lane: LaneKey,
    exclude: str | None = None,
) -> list[OrderedItem]:
    """Return the members of *lane* in display order, minus *exclude*."""
    return display_order(
        item for item in items
        if item.lane.same_lane(lane) and item.id != exclude
    )


def group_lanes(items: Iterable[OrderedItem]) -> dict[tuple, list[OrderedItem]]:
    """Group items by lane identity, each group in display order."""
    groups: dict[tuple, list[OrderedItem]] = {}
    for item in items:
        groups.setdefault(item.lane.identity, []).append(item)
    ordered = sorted(groups, key=lambda identity: tuple(v or "" for v in identity))
    return {key: display_order(groups[key]) for key in ordered}
