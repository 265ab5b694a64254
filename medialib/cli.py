"""
Command-line interface for medialib.

A thin shell over the library engine, built with Click.

Commands:
    medialib add-local <dir>            Register a local music directory
    medialib add-webdav <url>           Register a WebDAV location
    medialib test-webdav <url>          Probe a WebDAV location
    medialib import-files <files...>    Import individually selected files
    medialib folders                    List registered folders
    medialib sync [folder-id]           Sync one folder or all of them
    medialib reconnect <folder-id>      Reconnect a disconnected folder
    medialib remove <folder-id>         Unregister a folder and its tracks
    medialib clear-cache <folder-id>    Delete downloaded WebDAV files
    medialib search <query>             Search the library
    medialib locate <fingerprint>       Find the playable file of a track
    medialib match <file>               Match "Title - Artist" lines
    medialib export <file>              Export the library to JSON
    medialib import <file>              Replace the library from JSON

Configuration:
    config.yaml in the current directory (or --config). WebDAV passwords
    can be given through MEDIALIB_WEBDAV_PASSWORD, also read from a .env file.

Exit codes:
    1 configuration or usage error, 2 database error, 3 source error,
    4 other library error, 130 interrupted.
"""

import functools
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from medialib import __version__
from medialib.core import (
    ConfigError,
    DatabaseError,
    MediaLibError,
    SourceError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from medialib.core.progress import SyncProgressBar
from medialib.library.context import LibraryContext
from medialib.library.folders import FolderRegistry
from medialib.library.models import ConnectionState, SourceKind, WebDAVCredentials
from medialib.library.playlists import PlaylistManager
from medialib.library.resolver import TrackResolver
from medialib.library.sync import SyncEngine, SyncReport
from medialib.library.transfer import export_library, import_library
from medialib.sources.base import AccessState
from medialib.utils.helpers import format_file_size, format_timestamp


load_dotenv()
logger = get_logger(__name__)


PASSWORD_ENV = "MEDIALIB_WEBDAV_PASSWORD"


def handle_error(func):
    """Map library errors to messages and exit codes."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConfigError as e:
            click.echo(click.style(f"Configuration error: {e.message}", fg='red'), err=True)
            sys.exit(1)
        except DatabaseError as e:
            logger.error(f"Database error: {e.message}", exc_info=True)
            click.echo(click.style(f"Database error: {e.message}", fg='red'), err=True)
            sys.exit(2)
        except SourceError as e:
            logger.error(f"Source error: {e.message}")
            click.echo(click.style(f"Source error: {e.message}", fg='red'), err=True)
            sys.exit(3)
        except MediaLibError as e:
            logger.error(f"Error: {e.message}")
            click.echo(click.style(f"Error: {e.message}", fg='red'), err=True)
            sys.exit(4)
        except KeyboardInterrupt:
            click.echo(click.style("\nInterrupted by user", fg='yellow'), err=True)
            sys.exit(130)
    return wrapper


def _prompt_permission(path: Path) -> bool:
    return click.confirm(f"Allow medialib to read {path}?", default=True)


def _open(ctx: click.Context) -> LibraryContext:
    """Library context of this invocation, created on first use."""
    obj = ctx.ensure_object(dict)
    if "library" not in obj:
        config = load_config(obj.get("config_path"))
        level = "DEBUG" if obj.get("verbose") else config.logging.level
        setup_logging(config.logging.directory, level)
        library = LibraryContext.from_config(config, prompt=_prompt_permission)
        obj["library"] = library
        ctx.call_on_close(library.close)
    return obj["library"]


def _print_report(report: SyncReport) -> None:
    for result in report.folders:
        if result.access != AccessState.GRANTED:
            status = click.style(result.access.value.replace('_', ' '), fg='yellow')
        elif result.error:
            status = click.style(result.error, fg='red')
        elif result.cancelled:
            status = click.style("stopped", fg='yellow')
        elif result.unreadable:
            status = click.style(f"{result.unreadable} unreadable directories, nothing removed", fg='yellow')
        else:
            status = click.style("ok", fg='green')
        click.echo(
            f"  {result.folder_id}: {status}  scanned {result.scanned}, new/updated "
            f"{result.processed - result.failed}, unchanged {result.skipped}, "
            f"failed {result.failed}, removed {result.pruned}, moved {result.rehomed}"
        )
    if report.failed:
        click.echo(f"{report.failed} files could not be read, see sync_failures_*.log in the log directory")


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug output')
@click.option('--config', 'config_path', type=click.Path(path_type=Path), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config_path):
    """medialib - music library sync and track resolution."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(shutdown_logging)

    if version:
        click.echo(f"medialib {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# =============================================================================
# Folders
# =============================================================================

@cli.command("add-local")
@click.argument('directory', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--name', help='Display name')
@click.option('--sync/--no-sync', 'run_sync', default=True, help='Sync right after registering')
@click.pass_context
@handle_error
def add_local(ctx, directory, name, run_sync):
    """Register a local music directory."""
    library = _open(ctx)
    folders = FolderRegistry(library)
    folder = folders.add_local(directory, name)
    click.echo(f"Added {folder.name} ({folder.id})")

    if run_sync:
        with SyncProgressBar(folder.name) as bar:
            report = SyncEngine(library, folders).sync_folder(folder.id, on_progress=bar)
        _print_report(report)


def _webdav_options(func):
    func = click.option('--root', default='/', help='Music path below the server URL')(func)
    func = click.option('--user', default=None, help='Basic-auth user name')(func)
    func = click.option(
        '--password', envvar=PASSWORD_ENV, default=None,
        help=f'Basic-auth password (default: ${PASSWORD_ENV})'
    )(func)
    return func


@cli.command("test-webdav")
@click.argument('url')
@_webdav_options
@click.pass_context
@handle_error
def test_webdav(ctx, url, root, user, password):
    """Probe a WebDAV location without registering it."""
    library = _open(ctx)
    result = FolderRegistry(library).test_webdav(WebDAVCredentials(url, root, user, password))
    click.echo(click.style(result.message, fg='green' if result.success else 'red'))
    if not result.success:
        sys.exit(3)


@cli.command("add-webdav")
@click.argument('url')
@_webdav_options
@click.option('--name', help='Display name')
@click.option('--force', is_flag=True, help='Register even if the server cannot be reached')
@click.pass_context
@handle_error
def add_webdav(ctx, url, root, user, password, name, force):
    """Register a WebDAV location (tested first)."""
    library = _open(ctx)
    folders = FolderRegistry(library)
    credentials = WebDAVCredentials(url, root, user, password)

    result = folders.test_webdav(credentials)
    if not result.success:
        click.echo(click.style(result.message, fg='red'), err=True)
        if not force:
            sys.exit(3)

    folder = folders.add_webdav(credentials, name)
    click.echo(f"Added {folder.name} ({folder.id})")


@cli.command("import-files")
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--name', help='Display name of the import')
@click.pass_context
@handle_error
def import_files(ctx, files, name):
    """Import individually selected audio files."""
    library = _open(ctx)
    engine = SyncEngine(library, FolderRegistry(library))
    with SyncProgressBar("Importing") as bar:
        folder, report = engine.import_files(files, name, on_progress=bar)
    if folder is None:
        click.echo("No audio files among the selection")
        return
    click.echo(f"Imported into {folder.name} ({folder.id})")
    _print_report(report)


@cli.command()
@click.pass_context
@handle_error
def folders(ctx):
    """List registered folders."""
    library = _open(ctx)
    entries = FolderRegistry(library).list_folders()
    if not entries:
        click.echo("No folders registered")
        return

    for folder in entries:
        connected = folder.connection_state == ConnectionState.CONNECTED
        state = click.style("connected" if connected else "disconnected", fg='green' if connected else 'yellow')
        location = folder.local_path or (folder.webdav.base_url + folder.webdav.root_path if folder.webdav else "?")
        click.echo(f"{folder.id}  {folder.name}  [{folder.kind.value}, {state}]")
        click.echo(
            f"    {location}  tracks {folder.track_count}/{folder.total_files_count}  "
            f"last sync {format_timestamp(folder.last_sync)}"
        )


@cli.command()
@click.argument('folder_id', required=False)
@click.option('--yes', '-y', 'non_interactive', is_flag=True, help='Never prompt for permission')
@click.pass_context
@handle_error
def sync(ctx, folder_id, non_interactive):
    """Sync one folder, or every folder when none is given."""
    library = _open(ctx)
    engine = SyncEngine(library, FolderRegistry(library))

    with SyncProgressBar() as bar:
        try:
            if folder_id:
                report = engine.sync_folder(folder_id, interactive=not non_interactive, on_progress=bar)
            else:
                report = engine.sync_all(interactive=not non_interactive, on_progress=bar)
        except KeyboardInterrupt:
            engine.stop()
            raise

    _print_report(report)


@cli.command()
@click.argument('folder_id')
@click.option('--path', type=click.Path(exists=True, file_okay=False, path_type=Path),
              help='New location of a local folder')
@click.pass_context
@handle_error
def reconnect(ctx, folder_id, path):
    """Reconnect a disconnected folder."""
    library = _open(ctx)
    folder = FolderRegistry(library).reconnect(folder_id, path)
    click.echo(click.style(f"Reconnected {folder.name}", fg='green'))


@cli.command()
@click.argument('folder_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@handle_error
def remove(ctx, folder_id, yes):
    """Unregister a folder and delete its tracks from the library."""
    library = _open(ctx)
    folders = FolderRegistry(library)
    folder = folders.get(folder_id)
    if not yes:
        click.confirm(f"Remove {folder.name} and its {folder.track_count} tracks?", abort=True)
    removed = folders.remove(folder_id)
    click.echo(f"Removed {folder.name} ({removed} tracks)")


@cli.command("clear-cache")
@click.argument('folder_id')
@click.pass_context
@handle_error
def clear_cache(ctx, folder_id):
    """Delete the downloaded files of a WebDAV folder."""
    library = _open(ctx)
    folders = FolderRegistry(library)
    folder = folders.get(folder_id)
    if folder.kind != SourceKind.WEBDAV:
        click.echo(f"{folder.name} is not a WebDAV folder")
        return
    folders.clear_cache(folder_id)
    click.echo(f"Cleared download cache of {folder.name}")


# =============================================================================
# Tracks
# =============================================================================

@cli.command()
@click.argument('query')
@click.pass_context
@handle_error
def search(ctx, query):
    """Search track names, artists and albums."""
    library = _open(ctx)
    tracks = library.cache.search(query, library.normalizer)
    for track in tracks:
        click.echo(f"{track.fingerprint}  {track.name} - {track.artist}  [{track.album}]")
    click.echo(f"{len(tracks)} tracks")


@cli.command()
@click.argument('fingerprint')
@click.pass_context
@handle_error
def locate(ctx, fingerprint):
    """Find the playable file of a cached track."""
    library = _open(ctx)
    track = library.cache.get_by_fingerprint(fingerprint)
    if track is None:
        click.echo(click.style(f"No track {fingerprint}", fg='red'), err=True)
        sys.exit(4)

    result = TrackResolver(library, FolderRegistry(library)).resolve(track)
    if result.found:
        click.echo(f"{result.track.file_path}  ({format_file_size(track.size)})")
        PlaylistManager(library).record_play(track)
    else:
        click.echo(click.style(f"{result.status.value}: {result.message}", fg='yellow'), err=True)
        sys.exit(3)


@cli.command()
@click.argument('text_file', type=click.File('r', encoding='utf-8'))
@click.option('--fuzzy', is_flag=True, help='Also accept prefix and substring title matches')
@click.option('--playlist', 'playlist_name', help='Save the matches as a new playlist')
@click.pass_context
@handle_error
def match(ctx, text_file, fuzzy, playlist_name):
    """Match "Title - Artist" lines against the library."""
    library = _open(ctx)
    text = text_file.read()
    playlists = PlaylistManager(library)

    if playlist_name:
        playlist, result = playlists.create_from_text(playlist_name, text, fuzzy=fuzzy)
        click.echo(f"Created playlist {playlist.name} ({playlist.id})")
    else:
        result = playlists.match_text(text, fuzzy)

    for track in result.matched:
        click.echo(click.style("  + ", fg='green') + f"{track.name} - {track.artist}")
    for line in result.unmatched:
        click.echo(click.style("  ? ", fg='yellow') + line)
    click.echo(f"{len(result.matched)} matched, {len(result.unmatched)} unmatched")


# =============================================================================
# Export / Import
# =============================================================================

@cli.command("export")
@click.argument('path', type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
@handle_error
def export_command(ctx, path):
    """Export the library to a JSON file."""
    library = _open(ctx)
    counts = export_library(library, path)
    click.echo(f"Exported {counts['tracks']} tracks, {counts['folders']} folders, "
               f"{counts['playlists']} playlists to {path}")
    if any(f.webdav and f.webdav.password for f in library.database.get_folders()):
        click.echo(click.style("The export contains WebDAV passwords", fg='yellow'))


@cli.command("import")
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@handle_error
def import_command(ctx, path, yes):
    """Replace the library with an exported JSON file."""
    if not yes:
        click.confirm("This replaces the whole library. Continue?", abort=True)
    library = _open(ctx)
    counts = import_library(library, path)
    click.echo(f"Imported {counts['tracks']} tracks and {counts['folders']} folders")
    disconnected = [f for f in library.database.get_folders() if f.disconnected]
    for folder in disconnected:
        click.echo(f"  {folder.name} ({folder.id}) needs: medialib reconnect {folder.id} --path <dir>")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
