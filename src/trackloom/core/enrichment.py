"""Per-entry enrichment.

One ``Enricher.enrich`` call consults every collaborator for a single primary
file and returns an :class:`EnrichmentResult`; it never touches the entry
itself. The loader wraps the call in ``with_retry`` and applies the result
only if its session still owns the entry.

Failure rules:
- metadata extraction: transient errors and unreadable primary files
  propagate (retry, then terminal failure); any other failure falls back to
  filename defaults with a ``metadata_fallback`` warning.
- custom overrides: a lookup or merge failure that is not transient keeps the
  extracted metadata and adds a ``metadata_fallback`` warning.
- duration probe: bounded by ``duration_timeout_ms``; timeout or failure
  yields 0.0.
- analysis sidecar: read or parse failure yields no analysis and an
  ``analysis_parse`` warning; an unusable report is dropped silently.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from trackloom.core.errors import PrimaryFileReadError
from trackloom.core.retry import is_transient_error
from trackloom.metadata.base import (
    AnalysisTextParser,
    CustomMetadataStore,
    DurationProbe,
    MetadataExtractor,
)
from trackloom.metadata.models import AnalysisReport, TrackMetadata
from trackloom.metadata.utils import default_metadata, merge_overrides
from trackloom.models.core import (
    EnrichmentResult,
    IssueKind,
    LoadIssue,
    MatchResult,
    RawFile,
)

logger = logging.getLogger(__name__)


class Enricher:
    """Runs the enrichment collaborators for one primary file at a time.

    Every collaborator is optional. Without an extractor the metadata comes
    from the file name; without a probe the duration stays 0; without a
    parser analysis sidecars are ignored.
    """

    def __init__(
        self,
        extractor: Optional[MetadataExtractor] = None,
        duration_probe: Optional[DurationProbe] = None,
        analysis_parser: Optional[AnalysisTextParser] = None,
        custom_store: Optional[CustomMetadataStore] = None,
        *,
        duration_timeout_ms: int = 3000,
        classify_error: Callable[[BaseException], bool] = is_transient_error,
    ) -> None:
        self.extractor = extractor
        self.duration_probe = duration_probe
        self.analysis_parser = analysis_parser
        self.custom_store = custom_store
        self.duration_timeout_ms = duration_timeout_ms
        self.classify_error = classify_error

    async def enrich(self, file: RawFile, matches: MatchResult) -> EnrichmentResult:
        """Compute metadata, duration and analysis for *file*.

        Args:
            file: The primary file.
            matches: Its resolved sidecars.

        Returns:
            The enrichment result, including any warnings raised on the way.

        Raises:
            PrimaryFileReadError: If the primary file cannot be read.
            Exception: Transient extractor errors, for the retry layer.
        """
        issues: List[LoadIssue] = []

        metadata = await self._extract_metadata(file, issues)
        metadata = self._apply_overrides(file, metadata, issues)
        duration = await self._probe_duration(file)
        analysis = await self._parse_analysis(file, matches.analysis, issues)

        return EnrichmentResult(
            metadata=metadata,
            duration=duration,
            analysis=analysis,
            has_deep_analysis=analysis is not None,
            issues=issues,
        )

    async def _extract_metadata(
        self, file: RawFile, issues: List[LoadIssue]
    ) -> TrackMetadata:
        if self.extractor is None:
            return default_metadata(file.name)
        try:
            metadata = await self.extractor.extract(file)
        except PrimaryFileReadError:
            raise
        except Exception as e:
            if self.classify_error(e):
                raise
            logger.info("Metadata extraction failed for %s: %s", file.name, e)
            issues.append(
                LoadIssue(
                    file_name=file.name,
                    message=f"Metadata extraction failed, using defaults: {e}",
                    kind=IssueKind.METADATA_FALLBACK,
                )
            )
            return default_metadata(file.name)
        return metadata.model_copy(update={"is_loading": False})

    def _apply_overrides(
        self, file: RawFile, metadata: TrackMetadata, issues: List[LoadIssue]
    ) -> TrackMetadata:
        if self.custom_store is None:
            return metadata
        try:
            overrides = self.custom_store.lookup(file.name, file.size)
            if not overrides:
                return metadata
            merged = merge_overrides(metadata, overrides)
        except Exception as e:
            if self.classify_error(e):
                raise
            logger.info("Custom metadata ignored for %s: %s", file.name, e)
            issues.append(
                LoadIssue(
                    file_name=file.name,
                    message=f"Custom metadata could not be applied: {e}",
                    kind=IssueKind.METADATA_FALLBACK,
                )
            )
            return metadata
        logger.debug("Applying custom metadata to %s", file.name)
        return merged

    async def _probe_duration(self, file: RawFile) -> float:
        if self.duration_probe is None or self.duration_timeout_ms <= 0:
            return 0.0
        timeout = self.duration_timeout_ms / 1000
        try:
            duration = await asyncio.wait_for(
                self.duration_probe.probe(file, self.duration_timeout_ms), timeout
            )
        except TimeoutError:
            logger.debug("Duration probe timed out for %s", file.name)
            return 0.0
        except Exception as e:  # noqa: BLE001
            logger.debug("Duration probe failed for %s: %s", file.name, e)
            return 0.0
        return max(float(duration or 0.0), 0.0)

    async def _parse_analysis(
        self,
        file: RawFile,
        analysis_file: Optional[RawFile],
        issues: List[LoadIssue],
    ) -> Optional[AnalysisReport]:
        if analysis_file is None or self.analysis_parser is None:
            return None
        try:
            text = await analysis_file.read_text()
            report = self.analysis_parser.parse(text)
        except Exception as e:  # noqa: BLE001
            logger.info("Analysis parse failed for %s: %s", analysis_file.name, e)
            issues.append(
                LoadIssue(
                    file_name=analysis_file.name,
                    message=f"Analysis parse failed: {e}",
                    kind=IssueKind.ANALYSIS_PARSE,
                )
            )
            return None
        if not self.analysis_parser.is_valid(report):
            logger.debug(
                "Analysis sidecar %s for %s is incomplete; ignored",
                analysis_file.name,
                file.name,
            )
            return None
        return report
