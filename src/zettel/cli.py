"""zettel CLI — index a folder of Cornell-style notes and work with them.

Commands:
    zettel sync                  one incremental sync pass
    zettel watch                 sync now, then every --interval seconds
    zettel status                node/edge/tag counts, dangling links, orphans
    zettel run TEXT...           run a slash command (``zettel run /note create My idea``)
    zettel backlinks ID          notes linking to ID
"""

from __future__ import annotations

import json
import logging

import click

from zettel.assistant import CompletionClient
from zettel.commands import CommandRunner
from zettel.config import Settings, load_settings
from zettel.db import GraphDB
from zettel.errors import ZettelError
from zettel.graph import backlinks, build_graph
from zettel.store import GraphStore
from zettel.sync.engine import Synchronizer
from zettel.sync.scheduler import PeriodicSync
from zettel.vault import NoteVault

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj


def _open_store(settings: Settings) -> GraphStore:
    try:
        return GraphStore(settings.db_path)
    except ZettelError as exc:
        raise click.ClickException(str(exc)) from exc


def _require_root(settings: Settings) -> None:
    # must run before GraphStore creates <root>/.zettel
    if not settings.root.is_dir():
        raise click.ClickException(f"sync root is not a directory: {settings.root}")


def _synchronizer(settings: Settings, store: GraphStore) -> Synchronizer:
    return Synchronizer(store, workers=settings.workers, queue_size=settings.queue_size)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.option("--dir", "config_dir", default=None, help="Directory holding zettel.toml (default: search upward)")
@click.option("-v", "--verbose", is_flag=True, help="Log every file outcome")
@click.pass_context
def cli(ctx: click.Context, config_dir: str | None, verbose: bool) -> None:
    """zettel — incremental note graph index."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(message)s",
    )
    try:
        ctx.obj = load_settings(config_dir)
    except ZettelError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# zettel sync / watch
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the pass report as JSON")
@click.option("--rebuild", is_flag=True, help="Drop the index and sync from scratch")
@click.pass_context
def sync(ctx: click.Context, as_json: bool, rebuild: bool) -> None:
    settings = _settings(ctx)
    _require_root(settings)
    with _open_store(settings) as store:
        if rebuild:
            store.reset()
        try:
            report = _synchronizer(settings, store).sync(settings.root)
        except ZettelError as exc:
            raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return
    click.echo(report.summary())
    for path, error in sorted(report.rejected.items()):
        click.echo(f"  rejected {path}: {error}", err=True)
    for path, reason in sorted(report.failed.items()):
        click.echo(f"  failed {path}: {reason}", err=True)


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between passes")
@click.pass_context
def watch(ctx: click.Context, interval: float | None) -> None:
    """Sync on a fixed interval until interrupted."""
    settings = _settings(ctx)
    _require_root(settings)
    with _open_store(settings) as store:
        try:
            scheduler = PeriodicSync(_synchronizer(settings, store), settings.root, interval or settings.interval)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Watching {settings.root} every {scheduler.interval:g}s (Ctrl-C to stop)")
        try:
            scheduler.run_forever()
        except KeyboardInterrupt:
            click.echo("Stopped.")


# ---------------------------------------------------------------------------
# zettel status / backlinks
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    settings = _settings(ctx)
    _require_root(settings)
    with _open_store(settings) as store, GraphDB(store) as db:
        click.echo(f"Root     : {settings.root}")
        click.echo(f"Index    : {settings.db_path}")
        click.echo(f"Nodes    : {store.count_nodes()}")
        click.echo(f"Edges    : {len(store.edges())}")
        dangling = db.dangling_edges()
        click.echo(f"Dangling : {dangling.height}")
        click.echo(f"Orphans  : {db.orphans().height}")
        for row in db.tag_counts().to_dicts():
            click.echo(f"  #{row['tag']}: {row['note_count']}")


@cli.command("backlinks")
@click.argument("note_id")
@click.pass_context
def backlinks_cmd(ctx: click.Context, note_id: str) -> None:
    """List the notes that link to NOTE_ID."""
    settings = _settings(ctx)
    _require_root(settings)
    with _open_store(settings) as store:
        graph = build_graph(store)
    sources = backlinks(graph, note_id)
    if not sources:
        click.echo(f"No backlinks to {note_id}")
        return
    for source in sources:
        click.echo(f"{source}\t{graph.nodes[source]['title']}")


# ---------------------------------------------------------------------------
# zettel run
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("text", nargs=-1, required=True)
@click.pass_context
def run(ctx: click.Context, text: tuple[str, ...]) -> None:
    """Run one slash command, e.g. ``zettel run /cue add my-note Why?``."""
    settings = _settings(ctx)
    _require_root(settings)
    with (
        _open_store(settings) as store,
        CompletionClient(settings.ollama_url, settings.ollama_model) as assistant,
    ):
        runner = CommandRunner(NoteVault(settings.root, store=store), store, assistant)
        click.echo(runner.run_text(" ".join(text)))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
