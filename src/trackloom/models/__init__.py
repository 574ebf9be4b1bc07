"""Domain models for the trackloom application."""

from trackloom.models.core import (
    CategorizedFiles,
    EnrichmentResult,
    Entry,
    FileCategory,
    IssueKind,
    LoadIssue,
    LoadResult,
    LoadStats,
    MatchResult,
    RawFile,
)
from trackloom.models.events import LoadListener
from trackloom.models.options import LoaderOptions
from trackloom.models.session import LoadSession, SessionState

__all__ = [
    "CategorizedFiles",
    "EnrichmentResult",
    "Entry",
    "FileCategory",
    "IssueKind",
    "LoadIssue",
    "LoadListener",
    "LoadResult",
    "LoadSession",
    "LoadStats",
    "LoaderOptions",
    "MatchResult",
    "RawFile",
    "SessionState",
]
