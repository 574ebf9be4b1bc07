"""CLI commands for trackloom.

This module implements the user-facing commands:
- load: scan a folder, load it and render the resulting entries.
- match: classification and sidecar matching only, without enrichment.
- config set/get: read and write config.toml settings.
- version: print the installed version.

Design:
- Typer app and Console are instantiated at module level for reuse across
  commands.
- Annotated is used for CLI argument/option definitions.
- Loader options resolve CLI > environment > config.toml > default through
  ``LoaderOptions.from_settings``; an option left unset on the command line is
  passed as None.
- Exit codes are defined as an Enum.
"""

import asyncio
import json
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional

import tomli
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)
from rich.traceback import install as install_traceback

from trackloom.cli.renderer import (
    build_match_report,
    render_entries,
    render_match_report,
    render_stats,
    result_to_dict,
)
from trackloom.core.classifier import categorize_files
from trackloom.core.errors import LoadFatalError
from trackloom.core.loader import FileLoadingManager
from trackloom.core.matching import MatchIndex
from trackloom.fs.sources import scan_folder
from trackloom.metadata.analysis_parser import DeepAnalysisParser
from trackloom.metadata.custom_store import JsonCustomMetadataStore
from trackloom.metadata.duration import default_duration_probe
from trackloom.metadata.utils import FilenameMetadataExtractor
from trackloom.models.core import LoadResult
from trackloom.models.events import (
    LoadListener,
    LoadStartEvent,
    ProgressEvent,
    ProgressiveUpdateEvent,
)
from trackloom.models.options import LoaderOptions
from trackloom.utils.config import get_setting, resolve_setting, set_setting
from trackloom.utils.debug import DEBUG_ON, setup_logger
from trackloom.utils.json import DateTimeEncoder

install_traceback(show_locals=True)

app = typer.Typer(
    name="trackloom",
    help="Load audio folders and match their caption and analysis sidecars.",
    add_completion=False,
)
config_app = typer.Typer(help="Read and write settings in config.toml.")
app.add_typer(config_app, name="config")
console = Console()


class ExitCode(int, Enum):
    """Exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1


FOLDER = Annotated[
    Path,
    typer.Argument(
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
        resolve_path=True,
        help="Folder holding the audio files and their sidecars",
    ),
]

PROGRESSIVE = Annotated[
    Optional[bool],
    typer.Option(
        "--progressive/--standard",
        help="Deliver stub entries first and enrich them afterwards",
        show_default=False,
    ),
]

MAX_CONCURRENT = Annotated[
    Optional[int],
    typer.Option("--max-concurrent", "-c", min=1, help="Concurrent enrichments"),
]

THRESHOLD = Annotated[
    Optional[float],
    typer.Option(
        "--threshold",
        "-t",
        min=0.0,
        max=1.0,
        help="Minimum similarity for a fuzzy sidecar match",
    ),
]

CHUNK_SIZE = Annotated[
    Optional[int],
    typer.Option("--chunk-size", min=1, help="Files per chunk in standard mode"),
]

PRIORITY_COUNT = Annotated[
    Optional[int],
    typer.Option(
        "--priority-count", min=0, help="Entries enriched first in progressive mode"
    ),
]

RECURSIVE = Annotated[
    bool,
    typer.Option("--recursive", "-r", help="Include files in subfolders"),
]

CUSTOM_METADATA = Annotated[
    Optional[Path],
    typer.Option(
        "--custom-metadata",
        dir_okay=False,
        help="JSON store of user metadata overrides",
    ),
]

JSON_OUTPUT = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format"),
]

VERBOSE = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Log debug output to stderr"),
]


class ProgressListener(LoadListener):
    """Drives a rich progress bar from load notifications."""

    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self.task_id: Optional[TaskID] = None

    def on_load_start(self, event: LoadStartEvent) -> None:
        self.task_id = self.progress.add_task("Loading...", total=None)

    def on_progress(self, event: ProgressEvent) -> None:
        if self.task_id is None:
            return
        self.progress.update(
            self.task_id,
            total=event.total,
            completed=event.current,
            description=event.file_name,
        )

    def on_progressive_update(self, event: ProgressiveUpdateEvent) -> None:
        if event.phase == 1 and self.task_id is not None:
            self.progress.update(
                self.task_id,
                total=len(event.entries),
                description=f"{len(event.entries)} entries ready",
            )


async def _run_load(
    manager: FileLoadingManager, folder: Path, *, recursive: bool, show_progress: bool
) -> LoadResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        disable=not show_progress,
        transient=True,
    ) as progress:
        manager.add_listener(ProgressListener(progress))
        result = await manager.load_folder(folder, recursive=recursive)
        if result.background is not None:
            result = await result.background
    return result


def _build_manager(
    options: LoaderOptions, custom_metadata: Optional[Path]
) -> FileLoadingManager:
    store_path = resolve_setting(
        "metadata.custom_store",
        default="",
        cli_value=str(custom_metadata) if custom_metadata else None,
    )
    return FileLoadingManager(
        options,
        extractor=FilenameMetadataExtractor(),
        duration_probe=default_duration_probe(),
        analysis_parser=DeepAnalysisParser(),
        custom_store=JsonCustomMetadataStore(Path(store_path)) if store_path else None,
    )


@app.callback()
def main_callback(verbose: VERBOSE = False) -> None:
    """Configure logging before any command runs."""
    setup_logger(logging.DEBUG if verbose or DEBUG_ON else logging.WARNING)


@app.command()
def load(  # noqa: PLR0913
    folder: FOLDER,
    progressive: PROGRESSIVE = None,
    max_concurrent: MAX_CONCURRENT = None,
    threshold: THRESHOLD = None,
    chunk_size: CHUNK_SIZE = None,
    priority_count: PRIORITY_COUNT = None,
    recursive: RECURSIVE = False,
    custom_metadata: CUSTOM_METADATA = None,
    json_output: JSON_OUTPUT = False,
) -> None:
    """Load a folder and list the entries built from it."""
    try:
        options = LoaderOptions.from_settings(
            progressive_mode=progressive,
            max_concurrent=max_concurrent,
            fuzzy_match_threshold=threshold,
            chunk_size=chunk_size,
            priority_count=priority_count,
        )
    except ValidationError as e:
        console.print(
            f"[red]Error: Invalid loader settings: {escape(str(e))}[/red]"
        )
        raise typer.Exit(ExitCode.ERROR)

    manager = _build_manager(options, custom_metadata)
    try:
        result = asyncio.run(
            _run_load(
                manager, folder, recursive=recursive, show_progress=not json_output
            )
        )
    except LoadFatalError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(ExitCode.ERROR)
    except (FileNotFoundError, PermissionError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(ExitCode.ERROR)

    if json_output:
        json_str = json.dumps(result_to_dict(result), cls=DateTimeEncoder, indent=2)
        sys.stdout.write(json_str + "\n")
        return

    render_entries(result.entries, console=console)
    render_stats(result, console=console)


@app.command()
def match(
    folder: FOLDER,
    threshold: THRESHOLD = None,
    recursive: RECURSIVE = False,
) -> None:
    """Show which sidecars each audio file would be matched with."""
    try:
        options = LoaderOptions.from_settings(fuzzy_match_threshold=threshold)
    except ValidationError as e:
        console.print(
            f"[red]Error: Invalid loader settings: {escape(str(e))}[/red]"
        )
        raise typer.Exit(ExitCode.ERROR)

    files = scan_folder(folder, recursive=recursive)
    categorized = categorize_files(files, audio_formats=options.audio_formats)
    if not categorized.primary:
        console.print("[yellow]No audio files found.[/yellow]")
        raise typer.Exit(ExitCode.SUCCESS)

    index = MatchIndex(
        categorized.caption,
        categorized.analysis,
        threshold=options.fuzzy_match_threshold,
    )
    report = build_match_report(categorized.primary, index)
    render_match_report(report, console, fuzzy_comparisons=index.fuzzy_comparisons)
    for issue in categorized.warnings:
        console.print(f"[dim]Skipped {issue.file_name}: {issue.message}[/dim]")


def _parse_value(raw: str) -> Any:  # noqa: ANN401
    """Read a command-line value as TOML, falling back to a plain string."""
    try:
        return tomli.loads(f"value = {raw}")["value"]
    except tomli.TOMLDecodeError:
        return raw


@config_app.command("set")
def config_set(key: str, value: str) -> None:
    """Store VALUE under the dotted KEY, e.g. loader.max_concurrent 4."""
    set_setting(key, _parse_value(value))
    console.print(f"[green]Set[/green] {key} = {value}")


@config_app.command("get")
def config_get(key: str) -> None:
    """Print the value stored under the dotted KEY."""
    value = get_setting(key)
    if value is None:
        console.print(f"[yellow]{key} is not set[/yellow]")
        raise typer.Exit(ExitCode.ERROR)
    console.print(f"{key} = {value}")


@app.command()
def version() -> None:
    """Show the version of trackloom."""
    from trackloom.__about__ import __version__

    console.print(f"trackloom version: [bold]{__version__}[/bold]")


def main() -> None:
    """Main entry point for the CLI."""
    app()
