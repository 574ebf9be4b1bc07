"""Core domain models for trackloom.

This module defines the foundational data structures of the ingestion
pipeline.
- RawFile is the small interface every input file adapter satisfies.
- FileCategory classifies raw files into primary media and sidecars.
- Entry is the output unit: one per primary file, created as a stub and
  enriched exactly once.
- LoadIssue, LoadStats and LoadResult report what happened during a load.

Design:
- Entries hold references to the caller's RawFile objects and never mutate
  or close them. Each entry owns a SourceHandle; releasing an entry only
  invalidates that handle.
- Entry identity is the pair (file_name, file_size); duplicates collapse during
  post-processing.
- Event payloads receive ``Entry.snapshot()`` copies so consumers never observe
  later mutations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from trackloom.metadata.models import AnalysisReport, TrackMetadata


@runtime_checkable
class RawFile(Protocol):
    """Handle on one input file.

    Any object exposing these attributes and coroutines is accepted: a path on
    disk, an upload held in memory, a remote blob.
    """

    name: str
    size: int
    last_modified: datetime
    mime_hint: Optional[str]

    async def read_bytes(self) -> bytes:
        """Return the complete file contents."""
        ...

    async def read_text(self, encoding: str = "utf-8") -> str:
        """Return the file contents decoded as text."""
        ...


class FileCategory(str, Enum):
    """Category of a raw file.

    Used to split a batch into primary media files and the sidecars that get
    matched to them.
    """

    PRIMARY = "primary"
    CAPTION = "caption"
    ANALYSIS = "analysis"
    UNKNOWN = "unknown"


class IssueKind(str, Enum):
    """Kind of a non-fatal problem recorded on a load session."""

    UNKNOWN_CATEGORY = "unknown_category"
    METADATA_FALLBACK = "metadata_fallback"
    ANALYSIS_PARSE = "analysis_parse"
    PERMANENT_FAILURE = "permanent_failure"
    RETRY_EXHAUSTED = "retry_exhausted"
    STALE_RESULT = "stale_result"


class LoadIssue(BaseModel):
    """One error or warning accumulated during a load."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    """Name of the file the issue is about."""

    message: str
    """Human-readable description."""

    kind: IssueKind
    """Classification of the issue."""

    attempts: int = 0
    """Attempts made before giving up (retry-related issues only)."""


@dataclass
class CategorizedFiles:
    """A batch split by category, each list in scan order."""

    primary: List[RawFile] = field(default_factory=list)
    caption: List[RawFile] = field(default_factory=list)
    analysis: List[RawFile] = field(default_factory=list)
    unknown: List[RawFile] = field(default_factory=list)
    warnings: List[LoadIssue] = field(default_factory=list)


class MatchResult(BaseModel):
    """Companion files resolved for one primary file."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    caption: Optional[RawFile] = None
    analysis: Optional[RawFile] = None
    caption_exact: bool = False
    """True when the caption came from the exact base-name pass."""

    analysis_exact: bool = False
    """True when the analysis file came from the exact base-name pass."""


class EnrichmentResult(BaseModel):
    """Everything one enrichment step computed for an entry.

    Built off to the side and applied to the entry in a single step, so an
    entry never shows a half-enriched state.
    """

    metadata: TrackMetadata
    duration: float = 0.0
    analysis: Optional[AnalysisReport] = None
    has_deep_analysis: bool = False
    issues: List[LoadIssue] = Field(default_factory=list)
    """Warnings produced while enriching (fallbacks, parse failures)."""


class SourceHandle:
    """Read handle on an entry's primary file, allocated by the pipeline.

    Consumers read the audio through the entry's handle. ``release`` only
    invalidates this handle; the caller's RawFile stays open and untouched.
    """

    def __init__(self, file: RawFile) -> None:
        self.file = file
        self.released = False

    async def read_bytes(self) -> bytes:
        if self.released:
            raise RuntimeError(f"Handle on {self.file.name} was released")
        return await self.file.read_bytes()

    def release(self) -> None:
        self.released = True


class Entry(BaseModel):
    """Output record for one primary file."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    file_name: str
    file_size: int
    file: RawFile
    """The primary file this entry was built from."""

    handle: Optional[SourceHandle] = Field(default=None, exclude=True)
    """Pipeline-owned handle on ``file``; created with the entry."""

    caption: Optional[RawFile] = None
    analysis_file: Optional[RawFile] = None
    metadata: TrackMetadata
    duration: float = 0.0
    """Duration in seconds; 0 when unknown or the probe timed out."""

    analysis: Optional[AnalysisReport] = None
    has_deep_analysis: bool = False
    enriched: bool = False
    failed: bool = False
    error: Optional[str] = None
    loaded_at: datetime = Field(default_factory=datetime.now)

    @property
    def identity(self) -> Tuple[str, int]:
        """Key used for de-duplication."""
        return (self.file_name, self.file_size)

    def apply(self, result: EnrichmentResult) -> None:
        """Write an enrichment result into this entry.

        Raises:
            RuntimeError: If the entry was already enriched or failed.
        """
        if self.enriched or self.failed:
            raise RuntimeError(f"Entry {self.file_name} was already finalized")
        self.metadata = result.metadata
        self.duration = result.duration
        self.analysis = result.analysis
        self.has_deep_analysis = result.has_deep_analysis
        self.enriched = True

    def mark_failed(self, message: str) -> None:
        """Record a terminal enrichment failure."""
        self.failed = True
        self.error = message
        self.metadata = self.metadata.model_copy(update={"is_loading": False})

    def snapshot(self) -> "Entry":
        """Return a copy that later mutations of this entry do not affect."""
        return self.model_copy(
            update={
                "metadata": self.metadata.model_copy(deep=True),
                "analysis": (
                    self.analysis.model_copy(deep=True) if self.analysis else None
                ),
            }
        )

    def model_post_init(self, __context: Any) -> None:
        if self.handle is None:
            self.handle = SourceHandle(self.file)

    def release(self) -> None:
        """Release the entry's own handle. The caller's RawFile is not closed."""
        if self.handle is not None:
            self.handle.release()


class LoadStats(BaseModel):
    """Summary counters for a finished load."""

    total_files: int = 0
    primary_files: int = 0
    caption_files: int = 0
    analysis_files: int = 0
    unknown_files: int = 0
    entries: int = 0
    errors: int = 0
    warnings: int = 0
    with_caption: int = 0
    with_analysis: int = 0
    with_deep_analysis: int = 0
    total_duration: float = 0.0
    progressive_mode: bool = False


class LoadResult(BaseModel):
    """Outcome of ``FileLoadingManager.load_files``.

    In progressive mode the result returned by ``load_files`` carries the
    phase-1 stubs and ``background``, an ``asyncio.Task`` that resolves to the
    final LoadResult once every entry has been enriched.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    session_id: str
    entries: List[Entry] = Field(default_factory=list)
    stats: LoadStats = Field(default_factory=LoadStats)
    load_time: float = 0.0
    """Seconds from load start until this result was produced."""

    errors: List[LoadIssue] = Field(default_factory=list)
    warnings: List[LoadIssue] = Field(default_factory=list)
    background: Optional[Any] = Field(default=None, exclude=True)

    @property
    def complete(self) -> bool:
        """True when every entry in the result reached a terminal state."""
        return self.background is None
