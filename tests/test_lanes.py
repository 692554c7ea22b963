"""Tests for corkboard.lanes."""

from __future__ import annotations

import pytest

from corkboard.errors import LaneError
from corkboard.lanes import (
    DEFAULT_BOARD,
    ChapterDirectory,
    LaneKey,
    LaneTarget,
    OrderedItem,
    Scope,
    display_order,
    group_lanes,
    lane_items,
)


@pytest.fixture
def chapters() -> ChapterDirectory:
    return ChapterDirectory({"ch-1": "part-1", "ch-2": "part-2", "ch-loose": None})


class TestResolve:
    def test_book_lane(self, chapters: ChapterDirectory) -> None:
        lane = chapters.resolve(LaneTarget.book())
        assert lane == LaneKey(DEFAULT_BOARD, Scope.BOOK)

    def test_part_lane(self, chapters: ChapterDirectory) -> None:
        lane = chapters.resolve(LaneTarget.part("part-7", board_id="b2"))
        assert lane == LaneKey("b2", Scope.PART, part_id="part-7")

    def test_chapter_lane_derives_part(self, chapters: ChapterDirectory) -> None:
        lane = chapters.resolve(LaneTarget.chapter("ch-2"))
        assert lane.chapter_id == "ch-2"
        assert lane.part_id == "part-2"

    def test_chapter_without_part(self, chapters: ChapterDirectory) -> None:
        lane = chapters.resolve(LaneTarget.chapter("ch-loose"))
        assert lane.part_id is None

    def test_ignores_part_passed_with_chapter(self, chapters: ChapterDirectory) -> None:
        target = LaneTarget(Scope.CHAPTER, part_id="stale", chapter_id="ch-1")
        assert chapters.resolve(target).part_id == "part-1"

    def test_reassigned_chapter(self, chapters: ChapterDirectory) -> None:
        chapters.set_part("ch-1", "part-9")
        assert chapters.resolve(LaneTarget.chapter("ch-1")).part_id == "part-9"

    def test_unknown_chapter_raises(self, chapters: ChapterDirectory) -> None:
        with pytest.raises(LaneError, match="Unknown chapter 'ch-x'"):
            chapters.resolve(LaneTarget.chapter("ch-x"))

    def test_part_lane_requires_id(self, chapters: ChapterDirectory) -> None:
        with pytest.raises(LaneError, match="requires a part id"):
            chapters.resolve(LaneTarget(Scope.PART))

    def test_chapter_lane_requires_id(self, chapters: ChapterDirectory) -> None:
        with pytest.raises(LaneError, match="requires a chapter id"):
            chapters.resolve(LaneTarget(Scope.CHAPTER))

    def test_string_scope_accepted(self, chapters: ChapterDirectory) -> None:
        lane = chapters.resolve(LaneTarget("part", part_id="p"))  # type: ignore[arg-type]
        assert lane.scope is Scope.PART


class TestLaneKey:
    def test_chapter_identity_ignores_part(self) -> None:
        a = LaneKey("b", Scope.CHAPTER, part_id="p1", chapter_id="c")
        b = LaneKey("b", Scope.CHAPTER, part_id="p2", chapter_id="c")
        assert a.same_lane(b)
        assert a != b

    def test_boards_are_separate(self) -> None:
        assert not LaneKey("b1", Scope.BOOK).same_lane(LaneKey("b2", Scope.BOOK))

    def test_parts_are_separate(self) -> None:
        a = LaneKey("b", Scope.PART, part_id="p1")
        b = LaneKey("b", Scope.PART, part_id="p2")
        assert not a.same_lane(b)

    def test_from_fields_defaults(self) -> None:
        lane = LaneKey.from_fields(None, None, "p", "c")
        assert lane == LaneKey(DEFAULT_BOARD, Scope.CHAPTER, part_id="p", chapter_id="c")

    def test_describe(self) -> None:
        assert LaneKey("b", Scope.BOOK).describe() == "b/book"
        assert LaneKey("b", Scope.PART, part_id="p").describe() == "b/part:p"
        assert (
            LaneKey("b", Scope.CHAPTER, chapter_id="c").describe()
            == "b/chapter:c (part:-)"
        )


class TestLaneItems:
    def test_filters_and_sorts(self) -> None:
        book = LaneKey("b", Scope.BOOK)
        part = LaneKey("b", Scope.PART, part_id="p")
        items = [
            OrderedItem("x", book, "k"),
            OrderedItem("y", part, "A"),
            OrderedItem("z", book, "F"),
        ]
        assert [i.id for i in lane_items(items, book)] == ["z", "x"]

    def test_exclude(self) -> None:
        book = LaneKey("b", Scope.BOOK)
        items = [OrderedItem("x", book, "k"), OrderedItem("z", book, "F")]
        assert [i.id for i in lane_items(items, book, exclude="z")] == ["x"]

    def test_duplicate_ranks_tie_break_on_id(self) -> None:
        book = LaneKey("b", Scope.BOOK)
        items = [OrderedItem("b2", book, "V"), OrderedItem("a1", book, "V")]
        assert [i.id for i in display_order(items)] == ["a1", "b2"]

    def test_chapter_lane_includes_stale_part(self) -> None:
        fresh = LaneKey("b", Scope.CHAPTER, part_id="p2", chapter_id="c")
        stale = LaneKey("b", Scope.CHAPTER, part_id="p1", chapter_id="c")
        items = [OrderedItem("x", stale, "V"), OrderedItem("y", fresh, "k")]
        assert [i.id for i in lane_items(items, fresh)] == ["x", "y"]

    def test_group_lanes(self) -> None:
        book = LaneKey("b", Scope.BOOK)
        part = LaneKey("b", Scope.PART, part_id="p")
        items = [
            OrderedItem("x", book, "k"),
            OrderedItem("y", part, "A"),
            OrderedItem("z", book, "F"),
        ]
        groups = group_lanes(items)
        assert list(groups) == [book.identity, part.identity]
        assert [i.id for i in groups[book.identity]] == ["z", "x"]
