import logging
import os

import click
from rich.console import Console
from rich.table import Table

from savepoint import configure_logging
from savepoint.backup.archiver import Archiver
from savepoint.backup.browser import Browser
from savepoint.backup.catalog import Catalog, NotFoundError
from savepoint.backup.compression import CompressionError
from savepoint.backup.paths import SourceFile
from savepoint.backup.retention import RetentionManager
from savepoint.backup.sources import SourceError
from savepoint.backup.storage import StorageError
from savepoint.config import BackupSettings, ConfigError, config

EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_NOT_FOUND = 3


def _fail(message, code=EXIT_FAILURE):
    click.echo(message, err=True)
    raise SystemExit(code)


def _source(path):
    try:
        return SourceFile.parse(path)
    except ValueError as e:
        _fail(f"Invalid path: {e}", EXIT_CONFIG)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--config-name", default=lambda: os.environ.get("SAVEPOINT_ENV", "production"),
              type=click.Choice(sorted(config.keys())), help="Configuration profile.")
@click.option("--root", "backup_root", default=None, help="Backup root (overrides SAVEPOINT_BACKUP_ROOT).")
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr.")
@click.pass_context
def main(ctx, config_name, backup_root, verbose):
    """Savepoint: timestamped copies of a file on every save."""
    overrides = {}
    if backup_root:
        overrides["backup_root"] = os.path.abspath(os.path.expanduser(backup_root))

    try:
        settings = BackupSettings.from_config(config[config_name], **overrides)
    except ConfigError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG)

    handlers = configure_logging(settings.log_dir, debug=config[config_name].DEBUG)
    if not verbose:
        handlers[0].setLevel(logging.WARNING)

    ctx.obj = settings


@main.command()
@click.argument("path")
@click.pass_obj
def backup(settings, path):
    """Store a new version of PATH.

    Example: savepoint backup ~/notes.txt
    """
    source = _source(path)
    try:
        result = Archiver(settings).archive(source)
    except (SourceError, StorageError, ValueError) as e:
        _fail(f"Backup failed: {e}")

    if not result.archived:
        click.echo(f"Skipped {source.display_name}: {result.reason}")
        return

    click.echo(f"Saved {result.entry.label} -> {result.entry.storage_path}")
    if result.retention and result.retention.removed_count:
        click.echo(f"Removed {result.retention.removed_count} old version(s)")


@main.command("list")
@click.argument("path")
@click.pass_obj
def list_versions(settings, path):
    """List stored versions of PATH, oldest first."""
    source = _source(path)
    try:
        entries = Catalog(settings).list_entries(source)
    except StorageError as e:
        _fail(f"Listing failed: {e}")
    except ValueError as e:
        _fail(str(e), EXIT_CONFIG)

    if not entries:
        _fail(f"No backups found for {source.display_name}", EXIT_NOT_FOUND)

    table = Table(title=f"Backups of {source.display_name}")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Version", style="bold cyan")
    table.add_column("Timestamp", style="dim")
    table.add_column("Compression", style="dim")

    for index, entry in enumerate(entries, 1):
        table.add_row(str(index), entry.label, entry.timestamp, entry.compression_ext or "-")

    Console(width=120).print(table)


@main.command()
@click.argument("path", required=False)
@click.option("--keep", type=click.IntRange(min=0), default=None, help="Versions to keep (default: configured keep count).")
@click.option("--all", "sweep_all", is_flag=True, help="Apply retention to every file in the backup tree.")
@click.pass_obj
def cleanup(settings, path, keep, sweep_all):
    """Delete all but the most recent versions of PATH."""
    manager = RetentionManager(settings)

    if sweep_all:
        summary = manager.enforce_all(keep)
        click.echo(f"Removed {summary['deleted']} version(s) across {summary['groups_processed']} file(s)")
        for error in summary['errors']:
            click.echo(f"  failed: {error}", err=True)
        if summary['errors']:
            raise SystemExit(EXIT_FAILURE)
        return

    if not path:
        _fail("Specify PATH or --all.", EXIT_CONFIG)

    source = _source(path)
    try:
        result = manager.retain(source, keep)
    except StorageError as e:
        _fail(f"Cleanup failed: {e}")
    except ValueError as e:
        _fail(str(e), EXIT_CONFIG)

    click.echo(f"Removed {result.removed_count} version(s)")
    for entry, reason in result.failed:
        click.echo(f"  failed: {entry.filename}: {reason}", err=True)
    if result.failed:
        raise SystemExit(EXIT_FAILURE)


def prompt_selector(candidates):
    """Numbered prompt over the candidates; the newest is the default."""
    for index, (label, _) in enumerate(candidates, 1):
        click.echo(f"  {index:>3}  {label}", err=True)
    choice = click.prompt(
        "Version",
        type=click.IntRange(1, len(candidates)),
        default=len(candidates),
        err=True,
    )
    return candidates[choice - 1][1]


@main.command("open")
@click.argument("path")
@click.option("--version", "timestamp", default=None, help="Version timestamp (YYYY-MM-DD-HH-MM-SS).")
@click.pass_obj
def open_version(settings, path, timestamp):
    """Write a stored version of PATH to stdout."""
    source = _source(path)
    try:
        view = Browser(settings).open_version(source, timestamp=timestamp, selector=prompt_selector)
    except NotFoundError as e:
        _fail(str(e), EXIT_NOT_FOUND)
    except (StorageError, CompressionError) as e:
        _fail(f"Open failed: {e}")
    except ValueError as e:
        _fail(str(e), EXIT_CONFIG)

    if view.header:
        click.echo(view.header, err=True)
    stdout = click.get_binary_stream("stdout")
    stdout.write(view.content)
    stdout.flush()


@main.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind.")
@click.option("--port", default=5000, type=int, help="Port to listen on.")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP service with the background worker pool."""
    from savepoint import create_app

    config_name = ctx.parent.params["config_name"]
    try:
        app = create_app(
            config_name,
            BACKUP_ROOT=ctx.obj.backup_root,
            SCHEDULER_ENABLED=True,
        )
    except ConfigError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG)

    app.run(host=host, port=port)


if __name__ == "__main__":
    main()
