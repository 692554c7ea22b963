"""CLI entry point for corkboard."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import click

from corkboard.errors import CorkboardError
from corkboard.lanes import LaneTarget, Scope
from corkboard.reorder.coordinator import CommitResult


# Default config template
CONFIG_TEMPLATE = """\
database: .corkboard/corkboard.db
board: main-board

ranks:
  max_length: 12  # longer computed ranks trigger a lane rebalance
"""

SCOPES = [scope.value for scope in Scope]

project_root_option = click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Project root directory (default: cwd).",
)


def _lane_options(func):
    """Attach --scope/--part/--chapter/--board options naming a lane."""
    func = click.option("--board", default=None, help="Board id (default: config 'board').")(func)
    func = click.option("--chapter", "chapter_id", default=None, help="Chapter id for chapter lanes.")(func)
    func = click.option("--part", "part_id", default=None, help="Part id for part lanes.")(func)
    func = click.option(
        "--scope",
        type=click.Choice(SCOPES),
        required=True,
        help="Lane scope.",
    )(func)
    return func


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log rebalances and rollbacks.")
def cli(verbose: bool) -> None:
    """Corkboard: ordered lanes of story cards."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )


@cli.command()
@project_root_option
def init(project_root: str) -> None:
    """Initialize .corkboard/ with a config and an empty card database."""
    from corkboard.config import load_config, resolve_db_path
    from corkboard.store.db import CardDB

    root = Path(project_root)
    corkboard_dir = root / ".corkboard"

    if corkboard_dir.exists():
        click.echo(f".corkboard/ already exists at {corkboard_dir}")
        raise SystemExit(1)

    corkboard_dir.mkdir(parents=True)
    config_path = corkboard_dir / "config.yaml"
    config_path.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created {config_path}")

    # Load config through the standard path to validate it
    config = load_config(root)
    db_path = resolve_db_path(config, root)
    CardDB(db_path)
    click.echo(f"Created {db_path}")


# ------------------------------------------------------------------
# Chapters
# ------------------------------------------------------------------

@cli.group()
def chapter() -> None:
    """Manage the chapter → part mapping used by chapter lanes."""


@chapter.command("add")
@project_root_option
@click.argument("chapter_id")
@click.option("--part", "part_id", default=None, help="Owning part (default: none).")
def chapter_add(project_root: str, chapter_id: str, part_id: str | None) -> None:
    """Register a chapter."""
    with _session(project_root) as (_config, db, _coordinator):
        if db.has_chapter(chapter_id):
            raise click.ClickException(f"Chapter '{chapter_id}' already exists")
        db.upsert_chapter(chapter_id, part_id)
    click.echo(f"Added chapter {chapter_id} (part: {part_id or '-'})")


@chapter.command("assign")
@project_root_option
@click.argument("chapter_id")
@click.option("--part", "part_id", default=None, help="New owning part (omit for none).")
def chapter_assign(project_root: str, chapter_id: str, part_id: str | None) -> None:
    """Move a chapter to another part.

    Cards already in the chapter keep their recorded part until moved;
    ``corkboard check`` reports them.
    """
    with _session(project_root) as (_config, db, _coordinator):
        if not db.has_chapter(chapter_id):
            raise click.ClickException(f"Unknown chapter '{chapter_id}'")
        db.upsert_chapter(chapter_id, part_id)
    click.echo(f"Chapter {chapter_id} now in part {part_id or '-'}")


# ------------------------------------------------------------------
# Cards
# ------------------------------------------------------------------

@cli.group()
def card() -> None:
    """Create, move and delete cards."""


@card.command("add")
@project_root_option
@click.argument("card_id")
@_lane_options
def card_add(
    project_root: str,
    card_id: str,
    scope: str,
    part_id: str | None,
    chapter_id: str | None,
    board: str | None,
) -> None:
    """Append a new card to the end of a lane."""
    with _session(project_root) as (config, _db, coordinator):
        target = _target(config, scope, part_id, chapter_id, board)
        result = asyncio.run(coordinator.create_item(card_id, target))
    _report(result, "create", "Created")


@card.command("move")
@project_root_option
@click.argument("card_id")
@_lane_options
@click.option("--before", "before_id", default=None, help="Place before this card.")
@click.option("--after", "after_id", default=None, help="Place after this card.")
def card_move(
    project_root: str,
    card_id: str,
    scope: str,
    part_id: str | None,
    chapter_id: str | None,
    board: str | None,
    before_id: str | None,
    after_id: str | None,
) -> None:
    """Move a card within or across lanes (default: end of lane)."""
    if before_id and after_id:
        raise click.UsageError("Use at most one of --before/--after")
    neighbor_id = before_id or after_id
    position = "before" if before_id else "after"

    with _session(project_root) as (config, _db, coordinator):
        target = _target(config, scope, part_id, chapter_id, board)
        result = asyncio.run(coordinator.move(card_id, target, neighbor_id, position))
    if not result.changed:
        click.echo(f"{card_id} is already there")
        return
    _report(result, "move", "Moved")


@card.command("delete")
@project_root_option
@click.argument("card_id")
def card_delete(project_root: str, card_id: str) -> None:
    """Delete a card."""
    with _session(project_root) as (_config, _db, coordinator):
        result = asyncio.run(coordinator.delete_item(card_id))
    if not result.committed:
        raise click.ClickException(f"Delete failed: {result.error}")
    click.echo(f"Deleted {card_id}")


# ------------------------------------------------------------------
# Lanes
# ------------------------------------------------------------------

@cli.command()
@project_root_option
def lanes(project_root: str) -> None:
    """List every lane in display order."""
    with _session(project_root) as (_config, _db, coordinator):
        groups = coordinator.lanes()

    if not groups:
        click.echo("No cards.")
        return
    for members in groups.values():
        click.echo(members[0].lane.describe())
        for item in members:
            click.echo(f"  {item.rank:<12} {item.id}")


@cli.command()
@project_root_option
def check(project_root: str) -> None:
    """Check rank order and derived parts in every lane."""
    from corkboard.linter import lint

    with _session(project_root) as (_config, db, coordinator):
        result = lint(coordinator.items, db.chapter_directory())

    if result.passed:
        click.echo(f"Check: PASS ({result.lanes_checked} lanes)")
        return
    click.echo(f"Check: FAIL ({len(result.violations)} violations)")
    for v in result.violations:
        loc = v.lane
        if v.item_id:
            loc += f"/{v.item_id}"
        click.echo(f"  [{loc}] {v.message}")
    raise SystemExit(1)


@cli.command()
@project_root_option
def repair(project_root: str) -> None:
    """Rebalance every lane whose ranks are out of order."""
    with _session(project_root) as (_config, _db, coordinator):
        groups = coordinator.lanes()
        repaired = 0
        for members in groups.values():
            lane = members[0].lane
            result = asyncio.run(coordinator.repair_lane(lane))
            if not result.committed:
                raise click.ClickException(
                    f"Repair of {lane.describe()} failed: {result.error}"
                )
            if result.changed:
                repaired += 1
                click.echo(f"Rebalanced {lane.describe()} ({len(result.rebalanced)} cards)")

    click.echo(f"Repaired {repaired} of {len(groups)} lane(s)")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

@contextmanager
def _session(project_root: str) -> Iterator[tuple]:
    """Yield ``(config, db, coordinator)`` with local state loaded from disk.

    Core errors surface as :class:`click.ClickException`.
    """
    from corkboard.config import load_config, resolve_db_path
    from corkboard.reorder import ReorderCoordinator, SQLiteBackend
    from corkboard.store.db import CardDB

    root = Path(project_root)
    try:
        config = load_config(root)
        db = CardDB(resolve_db_path(config, root))
        coordinator = ReorderCoordinator.from_config(
            config,
            SQLiteBackend(db),
            chapters=db.chapter_directory(),
            items=db.get_items(),
        )
        yield config, db, coordinator
    except CorkboardError as exc:
        raise click.ClickException(str(exc)) from exc


def _target(
    config: dict,
    scope: str,
    part_id: str | None,
    chapter_id: str | None,
    board: str | None,
) -> LaneTarget:
    return LaneTarget(
        scope=Scope(scope),
        part_id=part_id,
        chapter_id=chapter_id,
        board_id=board or config["board"],
    )


def _report(result: CommitResult, action: str, verb: str) -> None:
    if not result.committed:
        raise click.ClickException(f"Failed to {action} card: {result.error}")
    item = result.item
    click.echo(f"{verb} {item.id} in {item.lane.describe()} at rank {item.rank}")
    if result.rebalanced:
        click.echo(f"  Rebalanced {len(result.rebalanced)} neighbor(s)")
