"""Read-only integrity checks across every lane.

Main entry point: ``lint()`` groups items by lane and returns a
``LintResult`` with pass/fail and a list of violations. Nothing is mutated;
``corkboard repair`` fixes broken rank order, and stale parts are fixed by
moving the affected card.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from corkboard.lanes import ChapterDirectory, OrderedItem, Scope, group_lanes
from corkboard.rank.keys import is_valid_rank


class Violation:
    """A single lane integrity violation."""

    __slots__ = ("lane", "item_id", "message")

    def __init__(self, lane: str, item_id: str | None, message: str) -> None:
        self.lane = lane
        self.item_id = item_id
        self.message = message

    def __repr__(self) -> str:
        loc = self.lane
        if self.item_id:
            loc += f"/{self.item_id}"
        return f"Violation({loc}: {self.message})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Violation):
            return NotImplemented
        return (
            self.lane == other.lane
            and self.item_id == other.item_id
            and self.message == other.message
        )


@dataclass
class LintResult:
    """Result of linting all lanes."""

    passed: bool
    violations: list[Violation] = field(default_factory=list)
    lanes_checked: int = 0

    def __repr__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"LintResult({status}, {len(self.violations)} violations)"


def lint(
    items: Iterable[OrderedItem],
    chapters: ChapterDirectory | None = None,
) -> LintResult:
    """Check rank order in every lane and derived parts on chapter lanes.

    Parameters
    ----------
    items:
        Every item to check, in any order.
    chapters:
        Chapter → part lookup. When omitted, chapter checks are skipped.
    """
    violations: list[Violation] = []
    lanes = group_lanes(items)

    for members in lanes.values():
        label = members[0].lane.describe()
        violations.extend(_check_ranks(label, members))
        if chapters is not None:
            violations.extend(_check_chapter_parts(members, chapters))

    return LintResult(
        passed=not violations,
        violations=violations,
        lanes_checked=len(lanes),
    )


def _check_ranks(label: str, members: list[OrderedItem]) -> list[Violation]:
    violations = []
    previous: OrderedItem | None = None
    for item in members:
        if not is_valid_rank(item.rank):
            violations.append(Violation(label, item.id, f"malformed rank {item.rank!r}"))
        elif previous is not None and item.rank <= previous.rank:
            violations.append(Violation(
                label, item.id,
                f"rank {item.rank!r} does not sort after '{previous.id}' ({previous.rank!r})",
            ))
        previous = item
    return violations


def _check_chapter_parts(
    members: list[OrderedItem],
    chapters: ChapterDirectory,
) -> list[Violation]:
    violations = []
    for item in members:
        lane = item.lane
        if lane.scope is not Scope.CHAPTER:
            continue
        label = lane.describe()
        if lane.chapter_id not in chapters:
            violations.append(Violation(label, item.id, f"unknown chapter '{lane.chapter_id}'"))
            continue
        expected = chapters.part_of(lane.chapter_id)
        if lane.part_id != expected:
            violations.append(Violation(
                label, item.id,
                f"records part {lane.part_id!r} but chapter belongs to {expected!r}",
            ))
    return violations
