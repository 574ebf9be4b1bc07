"""Load notifications.

Every notification is an immutable point-in-time snapshot: entry lists are
copied with ``Entry.snapshot()`` before they are handed out, so a listener can
keep a payload around without seeing later enrichment.

Listeners subclass :class:`LoadListener` and override the hooks they care
about; the remaining hooks are no-ops.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from trackloom.models.core import Entry


class LoadEvent(BaseModel):
    """Base class of all notification payloads."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    session_id: str


class LoadStartEvent(LoadEvent):
    total: int


class ProgressEvent(LoadEvent):
    current: int
    total: int
    file_name: str
    percentage: int


class FileProcessedEvent(LoadEvent):
    entry: Entry


class ChunkCompleteEvent(LoadEvent):
    chunk_index: int
    """1-based index of the chunk that just finished."""

    total_chunks: int
    processed: int
    entries: Tuple[Entry, ...]


class ProgressiveUpdateEvent(LoadEvent):
    """Progressive-mode phase notification.

    ``phase`` is 1 for the stub list, 2 after each enriched entry and 3 once
    the final collection is ready.
    """

    phase: int
    entries: Tuple[Entry, ...]
    priority: bool = False
    entry_index: Optional[int] = None
    progress: Optional[int] = None
    complete: bool = False
    message: Optional[str] = None


class LoadCompleteEvent(LoadEvent):
    entries: Tuple[Entry, ...]


class LoadErrorEvent(LoadEvent):
    error: str
    error_type: str


class LoadListener:
    """Observer for load notifications. Override only what you need."""

    def on_load_start(self, event: LoadStartEvent) -> None:
        """Called once the batch is accepted."""

    def on_progress(self, event: ProgressEvent) -> None:
        """Called after each file finishes processing."""

    def on_file_processed(self, event: FileProcessedEvent) -> None:
        """Called with each successfully built entry (standard mode)."""

    def on_chunk_complete(self, event: ChunkCompleteEvent) -> None:
        """Called after each chunk in standard mode."""

    def on_progressive_update(self, event: ProgressiveUpdateEvent) -> None:
        """Called on every progressive phase transition and step."""

    def on_load_complete(self, event: LoadCompleteEvent) -> None:
        """Called with the final, post-processed collection."""

    def on_load_error(self, event: LoadErrorEvent) -> None:
        """Called when the whole load is rejected or aborted."""


def snapshot_entries(entries: "list[Entry]") -> Tuple[Entry, ...]:
    """Copy *entries* for use in an event payload."""
    return tuple(entry.snapshot() for entry in entries)
