"""Renderer for CLI output.

This module renders load results and match reports as rich tables.
- Entries: one row per entry with title, artist, sidecars and duration.
- Stats: a one-line summary plus any errors and warnings.
- Match reports: the sidecars resolved for each primary file and whether the
  exact or the fuzzy pass found them.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from trackloom.core.matching import MatchIndex, normalize_base_name
from trackloom.models.core import Entry, LoadIssue, LoadResult, MatchResult, RawFile


def format_duration(seconds: float) -> str:
    """Format seconds as ``m:ss`` (``h:mm:ss`` past an hour); ``-`` when unknown."""
    if seconds <= 0:
        return "-"
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def entry_to_dict(entry: Entry) -> Dict[str, Any]:
    """JSON-friendly view of an entry; file handles become file names."""
    data = entry.model_dump(
        mode="json", exclude={"file", "caption", "analysis_file"}
    )
    data["caption"] = entry.caption.name if entry.caption else None
    data["analysis_file"] = entry.analysis_file.name if entry.analysis_file else None
    return data


def result_to_dict(result: LoadResult) -> Dict[str, Any]:
    """JSON-friendly view of a load result."""
    return {
        "success": result.success,
        "session_id": result.session_id,
        "load_time": result.load_time,
        "stats": result.stats.model_dump(mode="json"),
        "entries": [entry_to_dict(entry) for entry in result.entries],
        "errors": [issue.model_dump(mode="json") for issue in result.errors],
        "warnings": [issue.model_dump(mode="json") for issue in result.warnings],
    }


def render_entries(entries: Sequence[Entry], console: Console | None = None) -> None:
    """Render entries as a rich table.

    Args:
        entries: Entries to render, in output order.
        console: Optional Console instance to use for rendering.
    """
    console = console or Console()

    table = Table(title=f"Entries ({len(entries)})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Artist")
    table.add_column("Caption", style="green")
    table.add_column("Analysis", style="magenta")
    table.add_column("Duration", justify="right")

    for number, entry in enumerate(entries, start=1):
        style = "yellow" if entry.metadata.is_custom else None
        table.add_row(
            str(number),
            escape(entry.file_name),
            escape(entry.metadata.title),
            escape(entry.metadata.artist),
            escape(entry.caption.name) if entry.caption else "-",
            "deep" if entry.has_deep_analysis else "-",
            format_duration(entry.duration),
            style=style,
        )

    console.print(table)


def _render_issues(
    title: str, issues: Sequence[LoadIssue], style: str, console: Console
) -> None:
    if not issues:
        return
    console.print(f"{title}:", style=style)
    for issue in issues:
        name, message = escape(issue.file_name), escape(issue.message)
        console.print(f"  {name}: {message} \\[{issue.kind.value}]")


def render_stats(result: LoadResult, console: Console | None = None) -> None:
    """Print the summary line and the issues of a load result."""
    console = console or Console()
    stats = result.stats
    console.print(
        f"Files: {stats.total_files} | Entries: {stats.entries} | "
        f"Captions: {stats.with_caption} | Analysis: {stats.with_deep_analysis} | "
        f"Duration: {format_duration(stats.total_duration)} | "
        f"Time: {result.load_time:.2f}s"
    )
    _render_issues("Errors", result.errors, "red bold", console)
    _render_issues("Warnings", result.warnings, "yellow", console)


def build_match_report(
    primaries: Sequence[RawFile], index: MatchIndex
) -> List[Tuple[RawFile, MatchResult]]:
    """Resolve the sidecars of every primary file, in input order."""
    return [(file, index.resolve(normalize_base_name(file.name))) for file in primaries]


def _describe(match: Optional[RawFile], exact: bool) -> str:
    if match is None:
        return "-"
    return f"{match.name} ({'exact' if exact else 'fuzzy'})"


def render_match_report(
    report: Sequence[Tuple[RawFile, MatchResult]],
    console: Console | None = None,
    *,
    fuzzy_comparisons: int = 0,
) -> None:
    """Render a match report as a rich table."""
    console = console or Console()

    table = Table(title="Sidecar matches")
    table.add_column("Primary", style="cyan")
    table.add_column("Caption", style="green")
    table.add_column("Analysis", style="magenta")

    for file, match in report:
        table.add_row(
            file.name,
            _describe(match.caption, match.caption_exact),
            _describe(match.analysis, match.analysis_exact),
        )

    console.print(table)
    console.print(f"Primary files: {len(report)} | Fuzzy comparisons: {fuzzy_comparisons}")
