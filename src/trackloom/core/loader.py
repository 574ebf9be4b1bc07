"""File loading manager.

Turns a batch of raw files into an ordered list of enriched entries.

Standard mode:
    Primary files are split into chunks of ``chunk_size``; each chunk runs
    through :func:`run_all` with at most ``max_concurrent`` enrichments in
    flight. ``load_files`` returns the final, post-processed result.

Progressive mode:
    Phase 1 builds a stub entry per primary file (title from the file name,
    sidecars already matched) and announces it before any enrichment starts.
    ``load_files`` returns right there, with the stubs and a ``background``
    task. That task enriches the first ``priority_count`` entries in order
    (phase 2a), then the rest one at a time with a cooperative yield between
    items (phase 2b), then post-processes and resolves to the final result.

Each enrichment captures its session and writes into the entry only if that
session is still the manager's current one. A new load started while an older
one is still in its background phase supersedes it once the new batch is
accepted; the older session's outstanding results are discarded. A batch
rejected as empty leaves the running session alone. A load started while
another is still in its foreground part is rejected with
:class:`SessionConflictError`.
"""

import asyncio
import logging
import random
import time
from pathlib import Path
from typing import (
    Awaitable,
    Callable,
    List,
    Optional,
    Sequence,
    Set,
    Union,
)

from trackloom.core.classifier import categorize_files
from trackloom.core.enrichment import Enricher
from trackloom.core.errors import (
    EmptyBatchError,
    RetryExhaustedError,
    SessionConflictError,
    TerminalFailure,
)
from trackloom.core.matching import MatchIndex, normalize_base_name
from trackloom.core.retry import is_transient_error, with_retry
from trackloom.core.scheduler import chunked, run_all
from trackloom.fs.sources import scan_folder
from trackloom.metadata.base import (
    AnalysisTextParser,
    CustomMetadataStore,
    DurationProbe,
    MetadataExtractor,
)
from trackloom.metadata.utils import stub_metadata
from trackloom.models.core import (
    CategorizedFiles,
    Entry,
    IssueKind,
    LoadResult,
    LoadStats,
    MatchResult,
    RawFile,
)
from trackloom.models.events import (
    ChunkCompleteEvent,
    FileProcessedEvent,
    LoadCompleteEvent,
    LoadErrorEvent,
    LoadListener,
    LoadStartEvent,
    ProgressEvent,
    ProgressiveUpdateEvent,
    snapshot_entries,
)
from trackloom.models.options import LoaderOptions
from trackloom.models.session import LoadSession, SessionState

logger = logging.getLogger(__name__)


class FileLoadingManager:
    """Loads batches of raw files into entries, one active session at a time.

    Args:
        options: Loader options; defaults to ``LoaderOptions()``.
        listeners: Observers notified of load events.
        enricher: Enrichment step. When omitted, one is built from the
            collaborator arguments below.
        extractor: Tag extractor for primary files.
        duration_probe: Duration probe for primary files.
        analysis_parser: Parser for analysis sidecars.
        custom_store: Source of user metadata overrides.
        classify_error: Decides whether an enrichment error is transient.
        sleep: Awaitable used for retry backoff.
        rng: Random source for retry jitter.
    """

    def __init__(
        self,
        options: Optional[LoaderOptions] = None,
        *,
        listeners: Optional[Sequence[LoadListener]] = None,
        enricher: Optional[Enricher] = None,
        extractor: Optional[MetadataExtractor] = None,
        duration_probe: Optional[DurationProbe] = None,
        analysis_parser: Optional[AnalysisTextParser] = None,
        custom_store: Optional[CustomMetadataStore] = None,
        classify_error: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.options = options or LoaderOptions()
        self.listeners: List[LoadListener] = list(listeners or [])
        self.classify_error = classify_error
        self.enricher = enricher or Enricher(
            extractor,
            duration_probe,
            analysis_parser,
            custom_store,
            duration_timeout_ms=self.options.duration_timeout_ms,
            classify_error=classify_error,
        )
        self.match_index: Optional[MatchIndex] = None
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._session: Optional[LoadSession] = None
        self._entries: List[Entry] = []
        self._background: Optional["asyncio.Task[LoadResult]"] = None
        self._refreshing: Set[asyncio.Event] = set()

    # ------------------------------------------------------------------ state

    @property
    def current_session(self) -> Optional[LoadSession]:
        """The most recent session, whatever its state."""
        return self._session

    @property
    def is_loading(self) -> bool:
        """True while a load is in its foreground part."""
        return self._session is not None and self._session.is_loading

    @property
    def entries(self) -> List[Entry]:
        """Entries of the current progressive session (live objects)."""
        return list(self._entries)

    @property
    def background(self) -> Optional["asyncio.Task[LoadResult]"]:
        """Background task of the current progressive session, if any."""
        return self._background

    def add_listener(self, listener: LoadListener) -> None:
        """Register an observer for load events."""
        self.listeners.append(listener)

    # ------------------------------------------------------------ public API

    async def load_files(self, files: Sequence[RawFile]) -> LoadResult:
        """Load a batch of raw files.

        Args:
            files: The batch, in scan order.

        Returns:
            In standard mode, the final result. In progressive mode, the
            phase-1 stubs plus ``background``, a task resolving to the final
            result.

        Raises:
            SessionConflictError: If another load is in its foreground part.
            EmptyBatchError: If the batch holds no primary files.
        """
        files = list(files)
        session = LoadSession(total_files=len(files))
        previous = self._session

        if previous is not None and previous.is_loading:
            self._reject(session, SessionConflictError(previous.id))
        if not files:
            self._reject(session, EmptyBatchError())

        # A rejected batch must leave the running session untouched.
        categorized = categorize_files(
            files, audio_formats=self.options.audio_formats
        )
        session.warnings.extend(categorized.warnings)
        if not categorized.primary:
            self._reject(session, EmptyBatchError("No primary files in batch"))

        if previous is not None and not previous.state.terminal:
            previous.transition(SessionState.SUPERSEDED)
            logger.info("Session %s superseded by %s", previous.id, session.id)

        self._session = session
        self._entries = []
        self._background = None
        session.is_loading = True
        started = time.perf_counter()
        logger.info(
            "Loading %d files (%s mode, session %s)",
            len(files),
            "progressive" if self.options.progressive_mode else "standard",
            session.id,
        )

        try:
            self._notify(
                "on_load_start",
                LoadStartEvent(session_id=session.id, total=len(files)),
            )

            self.match_index = MatchIndex(
                categorized.caption,
                categorized.analysis,
                threshold=self.options.fuzzy_match_threshold,
            )

            if self.options.progressive_mode:
                return self._progressive_load(
                    session, categorized, self.match_index, started
                )
            return await self._standard_load(
                session, categorized, self.match_index, started
            )
        except Exception as e:
            self._fail(session, e)
            raise
        finally:
            session.is_loading = False

    async def load_folder(
        self,
        path: Union[str, Path],
        *,
        recursive: bool = False,
        include_hidden: bool = False,
    ) -> LoadResult:
        """Scan *path* and load every file found in it.

        Raises:
            EmptyBatchError: If the folder holds no files.
            FileNotFoundError: If the folder does not exist.
        """
        folder = Path(path)
        files = await asyncio.to_thread(
            scan_folder, folder, recursive=recursive, include_hidden=include_hidden
        )
        if not files:
            self._reject(LoadSession(), EmptyBatchError(f"No files found in {folder}"))
        return await self.load_files(files)

    async def refresh_entry(self, index: int) -> bool:
        """Enrich entry *index* of the current progressive session now.

        Used to promote an entry the consumer needs before the background
        phase reaches it. An entry that is already enriched, failed, or being
        enriched is left alone.

        Returns:
            True if this call enriched the entry.
        """
        session = self._session
        if session is None or session.state.terminal:
            return False
        if not 0 <= index < len(self._entries):
            return False
        entry = self._entries[index]
        if entry.enriched or entry.failed or not session.claim(id(entry)):
            return False

        done = asyncio.Event()
        self._refreshing.add(done)
        try:
            applied = await self._enrich_entry(session, entry)
            if self._owns(session):
                self._report_progress(session, entry.file_name, len(self._entries))
                self._notify(
                    "on_progressive_update",
                    ProgressiveUpdateEvent(
                        session_id=session.id,
                        phase=2,
                        entries=snapshot_entries(self._entries),
                        priority=True,
                        entry_index=index,
                    ),
                )
        finally:
            done.set()
            self._refreshing.discard(done)
        return applied

    # --------------------------------------------------------- standard mode

    async def _standard_load(
        self,
        session: LoadSession,
        categorized: CategorizedFiles,
        index: MatchIndex,
        started: float,
    ) -> LoadResult:
        session.transition(SessionState.ACTIVE)
        primaries = categorized.primary
        total = len(primaries)
        chunk_size = self.options.chunk_size
        chunks = chunked(primaries, chunk_size)
        logger.debug("Processing %d files in %d chunks", total, len(chunks))

        entries: List[Entry] = []
        for chunk_number, chunk in enumerate(chunks, start=1):
            offset = (chunk_number - 1) * chunk_size

            async def process(file: RawFile, position: int) -> Optional[Entry]:
                return await self._process_file(session, file, index, total)

            outcomes = await run_all(chunk, process, self.options.max_concurrent)
            for outcome in outcomes:
                if outcome.ok:
                    if outcome.value is not None:
                        entries.append(outcome.value)
                else:
                    file = chunk[outcome.index]
                    logger.error(
                        "Unexpected failure loading %s: %s", file.name, outcome.error
                    )
                    session.add_error(
                        file.name, str(outcome.error), IssueKind.PERMANENT_FAILURE
                    )

            self._notify(
                "on_chunk_complete",
                ChunkCompleteEvent(
                    session_id=session.id,
                    chunk_index=chunk_number,
                    total_chunks=len(chunks),
                    processed=min(offset + len(chunk), total),
                    entries=snapshot_entries(entries),
                ),
            )

        return self._finish(session, categorized, entries, started)

    async def _process_file(
        self,
        session: LoadSession,
        file: RawFile,
        index: MatchIndex,
        total: int,
    ) -> Optional[Entry]:
        entry = self._make_stub(file, index)
        applied = await self._enrich_entry(session, entry)
        self._report_progress(session, file.name, total)
        if not applied:
            entry.release()
            return None
        self._notify(
            "on_file_processed",
            FileProcessedEvent(session_id=session.id, entry=entry.snapshot()),
        )
        return entry

    # ------------------------------------------------------ progressive mode

    def _progressive_load(
        self,
        session: LoadSession,
        categorized: CategorizedFiles,
        index: MatchIndex,
        started: float,
    ) -> LoadResult:
        session.transition(SessionState.PHASE1)
        entries = [self._make_stub(file, index) for file in categorized.primary]
        self._entries = entries
        logger.info(
            "Phase 1 complete in %.3fs: %d entries ready",
            time.perf_counter() - started,
            len(entries),
        )
        self._notify(
            "on_progressive_update",
            ProgressiveUpdateEvent(
                session_id=session.id,
                phase=1,
                entries=snapshot_entries(entries),
                message="Entries ready - loading details...",
            ),
        )

        self._background = asyncio.create_task(
            self._run_background(session, categorized, entries, started)
        )
        return LoadResult(
            success=True,
            session_id=session.id,
            entries=list(entries),
            stats=self._build_stats(session, categorized, entries, progressive=True),
            load_time=time.perf_counter() - started,
            errors=list(session.errors),
            warnings=list(session.warnings),
            background=self._background,
        )

    async def _run_background(
        self,
        session: LoadSession,
        categorized: CategorizedFiles,
        entries: List[Entry],
        started: float,
    ) -> LoadResult:
        total = len(entries)
        priority = min(self.options.priority_count, total)
        try:
            if self._owns(session):
                session.transition(SessionState.PHASE2_PRIORITY)
            for position in range(priority):
                if not self._owns(session):
                    break
                entry = entries[position]
                if not session.claim(id(entry)):
                    continue
                await self._enrich_entry(session, entry)
                if not self._owns(session):
                    break
                self._report_progress(session, entry.file_name, total)
                self._notify(
                    "on_progressive_update",
                    ProgressiveUpdateEvent(
                        session_id=session.id,
                        phase=2,
                        entries=snapshot_entries(entries),
                        priority=True,
                        entry_index=position,
                    ),
                )

            if self._owns(session):
                session.transition(SessionState.PHASE2_BACKGROUND)
            remaining = total - priority
            for step, position in enumerate(range(priority, total), start=1):
                await asyncio.sleep(self.options.background_yield_ms / 1000)
                if not self._owns(session):
                    break
                entry = entries[position]
                if not session.claim(id(entry)):
                    continue
                await self._enrich_entry(session, entry)
                if not self._owns(session):
                    break
                self._report_progress(session, entry.file_name, total)
                self._notify(
                    "on_progressive_update",
                    ProgressiveUpdateEvent(
                        session_id=session.id,
                        phase=2,
                        entries=snapshot_entries(entries),
                        priority=False,
                        entry_index=position,
                        progress=round(step / remaining * 100),
                    ),
                )

            while self._refreshing and self._owns(session):
                await asyncio.gather(*(done.wait() for done in list(self._refreshing)))

            if not self._owns(session):
                logger.info(
                    "Session %s superseded; background phase stopped", session.id
                )
                return LoadResult(
                    success=False,
                    session_id=session.id,
                    stats=self._build_stats(session, categorized, [], progressive=True),
                    load_time=time.perf_counter() - started,
                    errors=list(session.errors),
                    warnings=list(session.warnings),
                )

            logger.info("Background processing complete for session %s", session.id)
            return self._finish(
                session, categorized, entries, started, progressive=True
            )
        except Exception as e:
            self._fail(session, e)
            raise

    # ---------------------------------------------------------------- shared

    def _make_stub(self, file: RawFile, index: MatchIndex) -> Entry:
        matches = index.resolve(normalize_base_name(file.name))
        return Entry(
            file_name=file.name,
            file_size=file.size,
            file=file,
            caption=matches.caption,
            analysis_file=matches.analysis,
            metadata=stub_metadata(file.name),
        )

    async def _enrich_entry(self, session: LoadSession, entry: Entry) -> bool:
        """Enrich *entry* with retry and commit the result if still owned.

        Returns:
            True if the result was applied to the entry.
        """
        matches = MatchResult(caption=entry.caption, analysis=entry.analysis_file)
        try:
            outcome = await with_retry(
                lambda: self.enricher.enrich(entry.file, matches),
                classify_error=self.classify_error,
                max_attempts=self.options.max_attempts,
                base_delay=self.options.retry_base_delay_ms / 1000,
                max_delay=self.options.retry_max_delay_ms / 1000,
                sleep=self._sleep,
                rng=self._rng,
                label=entry.file_name,
            )
        except TerminalFailure as e:
            if not self._owns(session):
                logger.info("Discarding stale failure for %s", entry.file_name)
                return False
            kind = (
                IssueKind.RETRY_EXHAUSTED
                if isinstance(e, RetryExhaustedError)
                else IssueKind.PERMANENT_FAILURE
            )
            logger.warning("Failed to load %s: %s", entry.file_name, e)
            entry.mark_failed(str(e.last_error))
            session.add_error(entry.file_name, str(e), kind, attempts=e.attempts)
            return False

        if not self._owns(session):
            logger.info(
                "Discarding stale result for %s (session %s superseded)",
                entry.file_name,
                session.id,
            )
            session.add_warning(
                entry.file_name,
                "Result discarded: session superseded",
                IssueKind.STALE_RESULT,
            )
            return False

        entry.apply(outcome.value)
        session.warnings.extend(outcome.value.issues)
        return True

    def _owns(self, session: LoadSession) -> bool:
        return self._session is session and not session.state.terminal

    def _report_progress(
        self, session: LoadSession, file_name: str, total: int
    ) -> None:
        session.processed_count += 1
        current = session.processed_count
        self._notify(
            "on_progress",
            ProgressEvent(
                session_id=session.id,
                current=current,
                total=total,
                file_name=file_name,
                percentage=round(current / total * 100) if total else 100,
            ),
        )

    def _post_process(self, entries: List[Entry]) -> List[Entry]:
        """Drop failed entries, sort by file name and collapse duplicates."""
        kept: List[Entry] = []
        for entry in entries:
            if entry.failed or not entry.enriched:
                entry.release()
            else:
                kept.append(entry)
        kept.sort(key=lambda entry: entry.file_name)

        seen: Set[tuple] = set()
        unique: List[Entry] = []
        for entry in kept:
            if entry.identity in seen:
                logger.debug("Dropping duplicate %s (%d bytes)", *entry.identity)
                entry.release()
                continue
            seen.add(entry.identity)
            unique.append(entry)
        return unique

    def _finish(
        self,
        session: LoadSession,
        categorized: CategorizedFiles,
        entries: List[Entry],
        started: float,
        *,
        progressive: bool = False,
    ) -> LoadResult:
        final = self._post_process(entries)
        if progressive:
            self._entries = final
        session.transition(SessionState.COMPLETE)
        load_time = time.perf_counter() - started
        logger.info(
            "Loading complete in %.2fs: %d entries | %d errors",
            load_time,
            len(final),
            len(session.errors),
        )

        if progressive:
            self._notify(
                "on_progressive_update",
                ProgressiveUpdateEvent(
                    session_id=session.id,
                    phase=3,
                    entries=snapshot_entries(final),
                    complete=True,
                    message="Loading complete",
                ),
            )
        self._notify(
            "on_load_complete",
            LoadCompleteEvent(session_id=session.id, entries=snapshot_entries(final)),
        )
        return LoadResult(
            success=True,
            session_id=session.id,
            entries=final,
            stats=self._build_stats(
                session, categorized, final, progressive=progressive
            ),
            load_time=load_time,
            errors=list(session.errors),
            warnings=list(session.warnings),
        )

    def _build_stats(
        self,
        session: LoadSession,
        categorized: CategorizedFiles,
        entries: List[Entry],
        *,
        progressive: bool = False,
    ) -> LoadStats:
        return LoadStats(
            total_files=session.total_files,
            primary_files=len(categorized.primary),
            caption_files=len(categorized.caption),
            analysis_files=len(categorized.analysis),
            unknown_files=len(categorized.unknown),
            entries=len(entries),
            errors=len(session.errors),
            warnings=len(session.warnings),
            with_caption=sum(1 for e in entries if e.caption is not None),
            with_analysis=sum(1 for e in entries if e.analysis is not None),
            with_deep_analysis=sum(1 for e in entries if e.has_deep_analysis),
            total_duration=sum(e.duration for e in entries),
            progressive_mode=progressive,
        )

    def _reject(self, session: LoadSession, error: Exception) -> None:
        """Fail *session* before it starts and raise *error*."""
        self._fail(session, error)
        raise error

    def _fail(self, session: LoadSession, error: BaseException) -> None:
        if not session.state.terminal:
            session.transition(SessionState.FAILED)
        logger.error("Fatal loading error: %s", error)
        self._notify(
            "on_load_error",
            LoadErrorEvent(
                session_id=session.id,
                error=str(error),
                error_type=type(error).__name__,
            ),
        )

    def _notify(self, hook: str, event: object) -> None:
        for listener in self.listeners:
            try:
                getattr(listener, hook)(event)
            except Exception:
                logger.exception("Listener %r failed in %s", listener, hook)
