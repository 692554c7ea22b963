"""SQLite storage for corkboard cards.

Manages two tables in ``.corkboard/corkboard.db``:

- ``cards``: one row per card with its lane columns and ``lane_rank``
- ``chapters``: chapter → owning part, the source for derived lane parts

Every write opens its own connection. Multi-row writes run inside
``BEGIN IMMEDIATE`` so a failure leaves no partial update behind.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from corkboard.lanes import ChapterDirectory, LaneKey, OrderedItem


class CardNotFound(LookupError):
    """Raised when a write targets a card id that does not exist."""


class CardDB:
    """SQLite state manager for cards and chapters.

    Opens or creates the database file and initialises its tables.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_tables()

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _init_tables(self) -> None:
        conn = self._connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS cards (
                    id          TEXT PRIMARY KEY,
                    board_id    TEXT,
                    scope       TEXT,
                    part_id     TEXT,
                    chapter_id  TEXT,
                    lane_rank   TEXT NOT NULL,
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS chapters (
                    id          TEXT PRIMARY KEY,
                    part_id     TEXT
                );
            """)
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def add_card(self, card_id: str, lane: LaneKey, rank: str) -> None:
        """Insert a new card. Raises ``sqlite3.IntegrityError`` on duplicate id."""
        now = _now_iso()
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO cards
                   (id, board_id, scope, part_id, chapter_id, lane_rank,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (card_id, lane.board_id, lane.scope.value, lane.part_id,
                 lane.chapter_id, rank, now, now),
            )
            conn.commit()
        finally:
            conn.close()

    def get_card(self, card_id: str) -> dict[str, Any] | None:
        """Return a card row as a dict, or None."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM cards WHERE id = ?", (card_id,)
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def get_items(self) -> list[OrderedItem]:
        """Return every card as an :class:`OrderedItem`."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT id, board_id, scope, part_id, chapter_id, lane_rank FROM cards"
            ).fetchall()
        finally:
            conn.close()
        return [
            OrderedItem(
                id=r["id"],
                lane=LaneKey.from_fields(
                    r["board_id"], r["scope"], r["part_id"], r["chapter_id"],
                ),
                rank=r["lane_rank"],
            )
            for r in rows
        ]

    def update_card_rank(self, card_id: str, rank: str, lane: LaneKey) -> None:
        """Set a card's rank and lane columns in one statement."""
        conn = self._connect()
        try:
            cur = conn.execute(
                """UPDATE cards
                   SET lane_rank = ?, board_id = ?, scope = ?, part_id = ?,
                       chapter_id = ?, updated_at = ?
                   WHERE id = ?""",
                (rank, lane.board_id, lane.scope.value, lane.part_id,
                 lane.chapter_id, _now_iso(), card_id),
            )
            if cur.rowcount == 0:
                raise CardNotFound(f"Unknown card '{card_id}'")
            conn.commit()
        finally:
            conn.close()

    def bulk_update_ranks(self, updates: Sequence[tuple[str, str]]) -> int:
        """Atomically apply ``(card_id, rank)`` pairs. Returns rows updated.

        Either every card is updated or none is: an unknown id rolls the
        whole batch back.
        """
        if not updates:
            return 0
        now = _now_iso()
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            for card_id, rank in updates:
                cur = conn.execute(
                    "UPDATE cards SET lane_rank = ?, updated_at = ? WHERE id = ?",
                    (rank, now, card_id),
                )
                if cur.rowcount == 0:
                    raise CardNotFound(f"Unknown card '{card_id}'")
            conn.commit()
            return len(updates)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def delete_card(self, card_id: str) -> None:
        """Delete a card. Ranks of its former neighbors are left alone."""
        conn = self._connect()
        try:
            cur = conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
            if cur.rowcount == 0:
                raise CardNotFound(f"Unknown card '{card_id}'")
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    def upsert_chapter(self, chapter_id: str, part_id: str | None = None) -> None:
        """Create a chapter or reassign it to *part_id*."""
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO chapters (id, part_id) VALUES (?, ?)
                   ON CONFLICT(id) DO UPDATE SET part_id = excluded.part_id""",
                (chapter_id, part_id),
            )
            conn.commit()
        finally:
            conn.close()

    def has_chapter(self, chapter_id: str) -> bool:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT 1 FROM chapters WHERE id = ? LIMIT 1", (chapter_id,)
            ).fetchone()
            return row is not None
        finally:
            conn.close()

    def chapter_directory(self) -> ChapterDirectory:
        """Snapshot of the chapters table as a :class:`ChapterDirectory`."""
        conn = self._connect()
        try:
            rows = conn.execute("SELECT id, part_id FROM chapters").fetchall()
            return ChapterDirectory({r["id"]: r["part_id"] for r in rows})
        finally:
            conn.close()


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()
