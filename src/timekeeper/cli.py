"""Command line interface for Timekeeper."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__, operations
from .errors import VersioningError
from .position import PositionState

console = Console()

LANE_COLORS = ["green", "magenta", "cyan", "yellow", "blue", "red"]

# ValueError is raised for an unreadable .timekeeper/config.json.
HANDLED_ERRORS = (VersioningError, ValueError)


def _fail(action: str, error: Exception) -> None:
    console.print(f"❌ {action} failed: {error}", style="red")
    sys.exit(1)


def _short(commit_id: Optional[str], length: int = 8) -> str:
    return commit_id[:length] if commit_id else "-"


@click.group(invoke_without_command=True)
@click.option(
    "--path",
    "-p",
    type=click.Path(file_okay=False),
    default=".",
    help="Project folder (default: current directory)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="timekeeper")
@click.pass_context
def cli(ctx, path: str, verbose: bool):
    """Branching snapshot history for a project folder.

    \b
    GETTING STARTED:
      timekeeper init                 # Start tracking this folder
      timekeeper save -m "Draft 1"    # Snapshot everything visible
      timekeeper log                  # History of the current timeline

    \b
    GOING BACK:
      timekeeper navigate <id>        # Rewind; later work forks automatically
      timekeeper timeline list        # All timelines
      timekeeper graph                # History across every timeline

    History is stored in .git/ and can also be inspected with git.
    """
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.WARNING, format="%(levelname)s:%(name)s:%(message)s"
    )
    if verbose:
        logging.getLogger("timekeeper").setLevel(logging.DEBUG)

    ctx.obj["project_dir"] = Path(path).resolve()
    ctx.obj["verbose"] = verbose

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def init(ctx):
    """Start versioning the project folder."""
    project_dir = ctx.obj["project_dir"]
    try:
        operations.init(project_dir)
    except HANDLED_ERRORS as e:
        _fail("Init", e)
    console.print(f"✅ Versioning enabled for {project_dir}", style="green")


@cli.command()
@click.option("--message", "-m", default="Snapshot", help="Snapshot message")
@click.option(
    "--fork-label",
    default=None,
    help="Label for the new timeline if this save forks from a rewound position",
)
@click.pass_context
def save(ctx, message: str, fork_label: Optional[str]):
    """Snapshot the folder's current contents."""
    project_dir = ctx.obj["project_dir"]
    try:
        with operations.open_project(project_dir) as engine:
            was_rewound = engine.position().state is not PositionState.AT_TIP
            commit_id = engine.commit(message, fork_label)
            timeline = engine.navigator.active_timeline()
            label = engine.registry.label(timeline)
    except HANDLED_ERRORS as e:
        _fail("Save", e)

    console.print(f"✅ Saved {_short(commit_id)} on {label}", style="green")
    if was_rewound:
        console.print(f"🌱 Started new timeline '{label}' ({timeline})", style="cyan")


@cli.command()
@click.pass_context
def log(ctx):
    """Show the history leading to the current position."""
    try:
        entries = operations.list_commits(ctx.obj["project_dir"])
    except HANDLED_ERRORS as e:
        _fail("Log", e)

    if not entries:
        console.print("No snapshots yet", style="yellow")
        return

    table = Table(title="Snapshots")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("When", style="dim")
    table.add_column("Message")
    table.add_column("Changes", style="dim")
    for entry in entries:
        table.add_row(
            _short(entry.id),
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.message,
            entry.summary,
        )
    console.print(table)


@cli.command()
@click.argument("commit_id")
@click.argument("relative_path")
@click.pass_context
def show(ctx, commit_id: str, relative_path: str):
    """Print a file as it was at COMMIT_ID."""
    try:
        data = operations.read_file_at(ctx.obj["project_dir"], commit_id, relative_path)
    except HANDLED_ERRORS as e:
        _fail("Show", e)
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


@cli.command()
@click.argument("commit_id")
@click.pass_context
def restore(ctx, commit_id: str):
    """Bring back COMMIT_ID's content as a new snapshot."""
    try:
        new_id = operations.restore(ctx.obj["project_dir"], commit_id)
    except HANDLED_ERRORS as e:
        _fail("Restore", e)
    console.print(f"✅ Restored {commit_id} as {_short(new_id)}", style="green")


@cli.command()
@click.argument("commit_id")
@click.pass_context
def checkout(ctx, commit_id: str):
    """Overwrite the folder with COMMIT_ID's content without moving."""
    try:
        operations.checkout(ctx.obj["project_dir"], commit_id)
    except HANDLED_ERRORS as e:
        _fail("Checkout", e)
    console.print(f"📂 Working files now match {commit_id}")


@cli.command()
@click.argument("commit_id")
@click.pass_context
def navigate(ctx, commit_id: str):
    """Move to COMMIT_ID; saving afterwards forks a new timeline."""
    try:
        with operations.open_project(ctx.obj["project_dir"]) as engine:
            position = engine.navigate(commit_id)
    except HANDLED_ERRORS as e:
        _fail("Navigate", e)

    console.print(f"⏪ Now at {_short(position.head)}")
    if position.is_rewound:
        console.print(
            f"Later snapshots are kept; saving now starts a new timeline "
            f"(saved tip {_short(position.prev_tip)})",
            style="dim",
        )


@cli.command()
@click.pass_context
def status(ctx):
    """Show the current position and whether there is unsaved work."""
    try:
        with operations.open_project(ctx.obj["project_dir"]) as engine:
            position = engine.position()
            timeline = engine.navigator.active_timeline(position)
            label = engine.registry.label(timeline)
            dirty = engine.has_changes()
            stashed = engine.has_stash()
    except HANDLED_ERRORS as e:
        _fail("Status", e)

    console.print(f"🧭 Timeline: {label} ({timeline})")
    console.print(f"📍 Position: {_short(position.head)} [{position.state.value}]")
    if position.is_rewound:
        console.print(f"⏪ Rewound from {_short(position.prev_tip)}", style="yellow")
    console.print(
        "✏️  Unsaved changes" if dirty else "✅ Everything saved",
        style="yellow" if dirty else "green",
    )
    if stashed:
        console.print("📦 Stash slot is occupied", style="dim")


@cli.command()
@click.pass_context
def graph(ctx):
    """Show history across every timeline."""
    try:
        nodes = operations.graph(ctx.obj["project_dir"])
    except HANDLED_ERRORS as e:
        _fail("Graph", e)

    if not nodes:
        console.print("No snapshots yet", style="yellow")
        return

    table = Table(title="Timelines")
    table.add_column("", no_wrap=True)
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Timeline")
    table.add_column("Message")
    for node in nodes:
        color = LANE_COLORS[node.lane % len(LANE_COLORS)]
        marker = "◉" if node.is_head else "●"
        table.add_row(
            f"[{color}]{'  ' * node.lane}{marker}[/{color}]",
            _short(node.commit_id),
            node.timeline_label or node.timeline,
            node.message,
        )
    console.print(table)


@cli.group()
def stash():
    """Set unsaved work aside and bring it back."""


@stash.command("push")
@click.pass_context
def stash_push(ctx):
    """Put the folder's current contents in the stash slot."""
    try:
        operations.stash(ctx.obj["project_dir"])
    except HANDLED_ERRORS as e:
        _fail("Stash", e)
    console.print("📦 Stashed working files", style="green")


@stash.command("pop")
@click.pass_context
def stash_pop(ctx):
    """Restore the stashed contents into the folder."""
    try:
        restored = operations.pop_stash(ctx.obj["project_dir"])
    except HANDLED_ERRORS as e:
        _fail("Stash pop", e)
    if restored:
        console.print("📦 Restored stashed files", style="green")
    else:
        console.print("Stash slot is empty", style="yellow")


@cli.group()
def timeline():
    """Manage timelines (branches of the history)."""


@timeline.command("create")
@click.argument("from_commit")
@click.argument("name")
@click.pass_context
def timeline_create(ctx, from_commit: str, name: str):
    """Create timeline NAME starting at FROM_COMMIT."""
    try:
        slug = operations.create_timeline(ctx.obj["project_dir"], from_commit, name)
    except HANDLED_ERRORS as e:
        _fail("Create timeline", e)
    console.print(f"🌱 Created timeline '{name}' ({slug})", style="green")


@timeline.command("list")
@click.pass_context
def timeline_list(ctx):
    """List all timelines."""
    try:
        entries = operations.list_timelines(ctx.obj["project_dir"])
    except HANDLED_ERRORS as e:
        _fail("List timelines", e)

    table = Table(title="Timelines")
    table.add_column("", no_wrap=True)
    table.add_column("Slug", style="cyan")
    table.add_column("Label")
    table.add_column("Head", style="dim")
    table.add_column("Snapshots", justify="right")
    for entry in entries:
        table.add_row(
            "▶" if entry.is_active else "",
            entry.slug,
            entry.label,
            _short(entry.head),
            str(entry.commit_count),
        )
    console.print(table)


@timeline.command("switch")
@click.argument("name")
@click.pass_context
def timeline_switch(ctx, name: str):
    """Switch to timeline NAME (slug or label), discarding unsaved work."""
    try:
        operations.switch_timeline(ctx.obj["project_dir"], name)
    except HANDLED_ERRORS as e:
        _fail("Switch timeline", e)
    console.print(f"🧭 Switched to {name}", style="green")


@timeline.command("delete")
@click.argument("name")
@click.pass_context
def timeline_delete(ctx, name: str):
    """Delete timeline NAME. Main and the active timeline cannot be deleted."""
    try:
        operations.delete_timeline(ctx.obj["project_dir"], name)
    except HANDLED_ERRORS as e:
        _fail("Delete timeline", e)
    console.print(f"🗑️  Deleted timeline {name}", style="green")


@timeline.command("rename")
@click.argument("name")
@click.argument("label")
@click.pass_context
def timeline_rename(ctx, name: str, label: str):
    """Give timeline NAME a new display LABEL."""
    try:
        operations.rename_timeline(ctx.obj["project_dir"], name, label)
    except HANDLED_ERRORS as e:
        _fail("Rename timeline", e)
    console.print(f"✏️  {name} is now '{label}'", style="green")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
