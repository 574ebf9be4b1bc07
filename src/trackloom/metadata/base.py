"""Base abstractions for enrichment collaborators.

Defines the interfaces of the external collaborators the loader consults while
enriching an entry: tag extraction, duration probing, analysis-text parsing
and user metadata overrides. All implementations must inherit from these
classes; tests inject fakes through the same interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from trackloom.metadata.models import AnalysisReport, TrackMetadata
from trackloom.models.core import RawFile


class MetadataExtractor(ABC):
    """Abstract base class for tag extractors."""

    @abstractmethod
    async def extract(self, file: RawFile) -> TrackMetadata:
        """Extract descriptive metadata from a primary file.

        Args:
            file: The primary (audio) file.

        Returns:
            The extracted metadata.

        Raises:
            TransientCollaboratorError: For failures worth retrying.
            PrimaryFileReadError: If the file's bytes cannot be read.
            Exception: Any other failure; the loader falls back to
                filename-derived defaults.
        """
        raise NotImplementedError


class DurationProbe(ABC):
    """Abstract base class for duration probes."""

    @abstractmethod
    async def probe(self, file: RawFile, timeout_ms: int) -> float:
        """Return the playing time of *file* in seconds, 0.0 when unknown.

        Args:
            file: The primary (audio) file.
            timeout_ms: Budget for the probe. The loader also enforces it.
        """
        raise NotImplementedError


class AnalysisTextParser(ABC):
    """Abstract base class for analysis-text parsers."""

    @abstractmethod
    def parse(self, text: str) -> Optional[AnalysisReport]:
        """Parse an analysis sidecar's text, returning None when unusable."""
        raise NotImplementedError

    def is_valid(self, report: Optional[AnalysisReport]) -> bool:
        """Whether *report* carries enough data to be attached to an entry."""
        return report is not None


class CustomMetadataStore(ABC):
    """Abstract base class for user-maintained metadata overrides."""

    @abstractmethod
    def lookup(self, file_name: str, file_size: int) -> Optional[Dict[str, Any]]:
        """Return override fields for the file identified by name and size."""
        raise NotImplementedError
