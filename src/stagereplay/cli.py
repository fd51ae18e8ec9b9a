"""
CLI entry point for Stagereplay.

This module provides the Typer-based command-line interface for Stagereplay.

Commands:
    export      Export a recorded session to a replay bundle
    inspect     Describe a replay bundle
    play        Play a replay bundle in the terminal

Architecture Note:
    The CLI is intentionally thin: it parses arguments, sets up logging and
    delegates to the exporter, the report generators and the player. The
    same operations are available programmatically without the CLI.
"""

import json
import logging
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from stagereplay import __version__
from stagereplay.bundle import load_bundle
from stagereplay.errors import BundleLoadError, StageReplayError
from stagereplay.exporter import ExportResult, ReplayExporter
from stagereplay.player import SaveSlotStore, TerminalPlayer, machine
from stagereplay.report import generate_console_report, generate_json_report
from stagereplay.schema import ExportConfig, ViewerConfig, load_config
from stagereplay.store import open_store

# Initialize Typer app with metadata
app = typer.Typer(
    name="stagereplay",
    help="Export tabletop sessions to self-contained replay bundles.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


def _configure_logging(verbose: bool) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]stagereplay[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Stagereplay - replay bundles for online tabletop sessions.

    Merge a session's chat and stage history into one timeline, capture its
    media, and play it back offline with secret scenes, save slots and
    autoplay.
    """
    pass


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


def _report_error(e: Exception, json_output: bool, debug: bool, error_type: str | None = None) -> None:
    if json_output:
        message = e.message if isinstance(e, StageReplayError) else str(e)
        _output_json_error(error_type or type(e).__name__, message, debug)
        return
    console.print(f"[red]Error:[/red] {escape(str(e))}")
    if debug:
        console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")


def _resolve_config(
    config_path: Path | None,
    viewer: str | None,
    gm: bool,
) -> ExportConfig:
    """Load the config file (or defaults) and apply viewer flags."""
    config = load_config(config_path) if config_path else ExportConfig()
    if viewer is None and not gm:
        return config
    overridden = ViewerConfig(
        participant_id=viewer if viewer is not None else config.viewer.participant_id,
        is_gm=gm or config.viewer.is_gm,
    )
    return config.model_copy(update={"viewer": overridden})


@app.command()
def export(
    session_dir: Annotated[
        Path,
        typer.Argument(
            help="Session dump directory (room.json, messages.json, ...).",
            exists=True,
            file_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--out",
            "-o",
            help="Bundle path. Defaults to <session dir name>.zip in the current directory.",
            resolve_path=True,
        ),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Export configuration YAML.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    viewer: Annotated[
        Optional[str],
        typer.Option("--viewer", help="Participant id the bundle is exported for."),
    ] = None,
    gm: Annotated[
        bool,
        typer.Option("--gm", help="Export as GM: include every secret message."),
    ] = False,
    cache_db: Annotated[
        Optional[Path],
        typer.Option(
            "--cache-db",
            help="Local store holding the live session's transition cache.",
            resolve_path=True,
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose output for debugging."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug mode with full error tracebacks."),
    ] = False,
) -> None:
    """
    Export a recorded session to a replay bundle.

    Merges the message log with the stage transition log, drops secret
    messages the viewer may not see, downloads every referenced asset and
    writes a single zip archive playable offline.

    Example:
        $ stagereplay export ./session --viewer p2 --out replay.zip
    """
    _configure_logging(verbose)
    out_path = output or Path.cwd() / f"{session_dir.name}.zip"

    try:
        config = _resolve_config(config_path, viewer, gm)
    except (OSError, ValidationError, yaml.YAMLError) as e:
        _report_error(e, json_output, debug, "config_load_error")
        raise typer.Exit(code=1)

    cache_store = open_store(cache_db) if cache_db else None
    try:
        with ReplayExporter.from_directory(session_dir, config, cache_store=cache_store) as exporter:
            if verbose and not json_output:
                console.print(f"[dim]Exporting {session_dir} -> {out_path}[/dim]")
            result = exporter.export(out_path)
    except StageReplayError as e:
        _report_error(e, json_output, debug)
        raise typer.Exit(code=1)
    finally:
        if cache_store is not None:
            cache_store.close()

    if json_output:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        _display_export_result(result, verbose)


def _display_export_result(result: ExportResult, verbose: bool) -> None:
    """Display export results in a formatted way."""
    status_icon = "[green]✓[/green]" if result.complete else "[yellow]![/yellow]"
    console.print(f"{status_icon} Exported [bold]{escape(result.room_name)}[/bold] to {result.path}")
    console.print()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="dim")
    table.add_column("Value")
    table.add_row("Events", str(result.event_count))
    table.add_row("Messages", str(result.message_count))
    table.add_row("Excluded secrets", str(result.dropped_messages))
    table.add_row("Stage history", result.transition_source.value)
    table.add_row("Bookmarks", str(result.bookmark_count))
    table.add_row("Assets", f"[green]{result.fetched_assets}[/green]")
    table.add_row(
        "Failed assets",
        f"[yellow]{len(result.failed_assets)}[/yellow]" if result.failed_assets else "0",
    )
    console.print(table)

    if result.failed_assets:
        console.print()
        shown = list(result.failed_assets.items()) if verbose else list(result.failed_assets.items())[:5]
        for url, error in shown:
            console.print(f"  [yellow]•[/yellow] {escape(url)} [dim]({escape(error)})[/dim]")
        if len(shown) < len(result.failed_assets):
            console.print(f"  [dim]... and {len(result.failed_assets) - len(shown)} more[/dim]")
    console.print()
    console.print(f"[dim]Duration: {result.duration_ms:.1f}ms[/dim]")


@app.command()
def inspect(
    bundle_path: Annotated[
        Path,
        typer.Argument(help="Bundle archive, extracted directory or replay.json.", resolve_path=True),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the report in JSON format."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Also list steps playback passes over."),
    ] = False,
) -> None:
    """
    Describe a replay bundle.

    Shows the step timeline, visible and secret counts, bookmarks and any
    media the bundle still fetches from the network.

    Example:
        $ stagereplay inspect replay.zip --json
    """
    _configure_logging(verbose)
    try:
        bundle = load_bundle(bundle_path)
    except BundleLoadError as e:
        _report_error(e, json_output, False)
        raise typer.Exit(code=1)

    if json_output:
        print(generate_json_report(bundle))
    else:
        generate_console_report(bundle, console=console, verbose=verbose)


@app.command()
def play(
    bundle_path: Annotated[
        Path,
        typer.Argument(help="Bundle archive, extracted directory or replay.json.", resolve_path=True),
    ],
    saves: Annotated[
        Optional[Path],
        typer.Option(
            "--saves",
            help="SQLite file for save slots. Without it, saves last for this session only.",
            resolve_path=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose output for debugging."),
    ] = False,
) -> None:
    """
    Play a replay bundle in the terminal.

    Example:
        $ stagereplay play replay.zip --saves saves.db
    """
    _configure_logging(verbose)
    try:
        bundle = load_bundle(bundle_path)
    except BundleLoadError as e:
        ctx, effects = machine.open_failed(e.message)
        TerminalPlayer(ctx, console=console).perform(effects)
        raise typer.Exit(code=1)

    with open_store(saves) as store:
        slots = SaveSlotStore.for_bundle(store, bundle.data, bundle.player.save_slots)
        ctx, effects = machine.open_player(bundle.data, bundle.player.autoplay_interval_ms)
        player = TerminalPlayer(ctx, slots, console=console)
        player.perform(effects)
        player.run()


if __name__ == "__main__":
    app()
