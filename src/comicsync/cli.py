"""Click CLI: status, sync, cache-all, mirror-all, search, favorites, migrate."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import click

from comicsync.db import get_engine, init_db
from comicsync.logging import setup_logging
from comicsync.migration import SqliteLegacySource
from comicsync.mirror import AssetMirror
from comicsync.models import Done, Progress, Reset, SyncProgress
from comicsync.prefs import Prefs
from comicsync.remote import XkcdClient
from comicsync.settings import Settings
from comicsync.store import ComicStore
from comicsync.sync import ComicSync
from comicsync.worker import run_loop, worker_options


def _ensure_sqlite_dir(database_url: str) -> None:
    prefix = "sqlite:///"
    if database_url.startswith(prefix):
        Path(database_url[len(prefix) :]).parent.mkdir(parents=True, exist_ok=True)


def build_sync(settings: Settings, log_name: str = "comicsync") -> ComicSync:
    """Wire store, prefs, client and mirror into a ComicSync."""
    log = setup_logging(settings.log_dir, log_name)
    _ensure_sqlite_dir(settings.database_url)
    engine = get_engine(settings.database_url)
    init_db(engine)

    store = ComicStore(engine)
    client = XkcdClient(settings, log)
    mirror = AssetMirror(store, client, settings.offline_dir, log, max_workers=settings.max_workers)
    return ComicSync(store, Prefs(engine), client, mirror, settings, log)


def _render_progress(progress: Iterator[SyncProgress], label: str) -> Done:
    """Print progress lines and return the final Done."""
    done = Done()
    for step in progress:
        match step:
            case Progress(current=current, total=total):
                click.echo(f"\r{label}: {current}/{total}", nl=False)
            case Reset():
                click.echo("")
            case Done():
                done = step
    click.echo("")
    return done


@click.group()
@click.option("--database-url", default=None, help="Override COMICSYNC_DATABASE_URL.")
@click.pass_context
def cli(ctx: click.Context, database_url: str | None) -> None:
    """comicsync: offline xkcd cache."""
    ctx.ensure_object(dict)
    settings = Settings()
    if database_url:
        settings.database_url = database_url
    ctx.obj["settings"] = settings


def _sync(ctx: click.Context) -> ComicSync:
    if "sync" not in ctx.obj:
        ctx.obj["sync"] = build_sync(ctx.obj["settings"])
        ctx.call_on_close(ctx.obj["sync"].client.close)
    return ctx.obj["sync"]


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show cache size, favorites and the newest known comic."""
    sync = _sync(ctx)
    newest = sync.newest
    cached = sync.store.count()
    favorites = len(sync.favorites.value)
    unread = sync.oldest_unread()

    click.echo("\n=== Comics ===")
    click.echo(f"  Newest known: {newest or 'never synced'}")
    click.echo(f"  Cached:       {cached}/{newest}")
    click.echo(f"  Favorites:    {favorites}")
    click.echo(f"  Oldest unread: {unread.number if unread else 'none'}")
    click.echo(f"  Migration:    {'done' if sync.prefs.migration_done else 'pending'}")
    click.echo()


@cli.command("sync")
@worker_options()
@click.pass_context
def sync_cmd(ctx: click.Context, loop: bool, interval: int) -> None:
    """Look for new comics (and mirror them in offline mode)."""
    sync = _sync(ctx)

    def cycle() -> int | None:
        newest = sync.refresh()
        if sync.new_comic_found.poll():
            click.echo(f"New comic found: #{newest}")
        return newest

    run_loop(cycle, loop=loop, interval=interval, log=sync.log, name="sync")


@cli.command("cache-all")
@click.pass_context
def cache_all_cmd(ctx: click.Context) -> None:
    """Download every missing comic and transcript."""
    sync = _sync(ctx)
    if sync.refresh() is None and sync.newest == 0:
        click.echo("Could not reach xkcd and no comics are known yet.")
        raise SystemExit(1)
    done = _render_progress(sync.cache_all(), "Caching")
    click.echo(f"Done, {len(done.failed)} failed." if done.failed else "Done.")


@cli.command("mirror-all")
@click.pass_context
def mirror_all_cmd(ctx: click.Context) -> None:
    """Save every comic image for offline reading."""
    sync = _sync(ctx)
    done = _render_progress(sync.save_offline_images(), "Mirroring")
    click.echo(f"Done, {len(done.failed)} failed." if done.failed else "Done.")


@cli.command()
@click.argument("query")
@click.pass_context
def search(ctx: click.Context, query: str) -> None:
    """Search cached comics by number, title, alt text or transcript."""
    results = _sync(ctx).search(query)
    for container in results:
        title = container.comic.title if container.comic else ""
        click.echo(f"{container.number:>5}  {title}  {container.search_preview}")
    if not results:
        click.echo("No matches.")


@cli.group()
def favorites() -> None:
    """Import or export the favorites list."""


@favorites.command("export")
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_context
def favorites_export(ctx: click.Context, path: str) -> None:
    sync = _sync(ctx)
    if not sync.export_favorites(path):
        click.echo(f"Could not write {path}")
        raise SystemExit(1)
    click.echo(f"Exported {len(sync.favorites.value)} favorites to {path}")


@favorites.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def favorites_import(ctx: click.Context, path: str) -> None:
    result = _sync(ctx).import_favorites(path)
    if result is None:
        click.echo(f"Could not read {path}")
        raise SystemExit(1)
    click.echo(f"Imported {result.imported}, skipped {result.skipped} unknown, {result.failed} bad lines")


@cli.command()
@click.option("--legacy-db", default=None, help="Legacy SQLite database (default: COMICSYNC_LEGACY_DB_PATH).")
@click.option("--force", is_flag=True, help="Run even if the migration already completed.")
@click.pass_context
def migrate(ctx: click.Context, legacy_db: str | None, force: bool) -> None:
    """Copy comics from the legacy database once."""
    settings: Settings = ctx.obj["settings"]
    path = legacy_db or settings.legacy_db_path
    if not path:
        click.echo("No legacy database given.")
        raise SystemExit(1)
    if force:
        settings.force_migration = True

    migrated = _sync(ctx).migrate_legacy_database(SqliteLegacySource(path))
    if migrated is None:
        click.echo("Migration failed, see log.")
        raise SystemExit(1)
    click.echo(f"Migrated {migrated} comics.")
