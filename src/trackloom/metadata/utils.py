"""Filename-derived metadata helpers.

Used whenever no tag extractor is configured, when extraction fails
permanently, and to build the title of phase-1 stub entries.
"""

import re
from typing import Any, Dict, Optional

from trackloom.metadata.base import MetadataExtractor
from trackloom.metadata.models import TrackMetadata
from trackloom.models.core import RawFile

# Replacement char, C0/C1 controls, BOM and the private use area.
_JUNK_CHARS = re.compile(r"[\ufffd\u0000-\u001f\u007f-\u009f\ufeff\ue000-\uf8ff]")

_ARTIST_TITLE = re.compile(r"^(?P<artist>.+?)\s+-\s+(?P<title>.+)$")

UNKNOWN_TITLE = "Unknown Track"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
LOADING_ARTIST = "Loading..."


def clean_text(value: Optional[str]) -> str:
    """Strip control/garbage characters and surrounding whitespace."""
    if not value:
        return ""
    return _JUNK_CHARS.sub("", value).strip()


def strip_extension(file_name: str) -> str:
    """Drop the final ``.ext`` segment, keeping names without a dot intact."""
    stem, dot, _ = file_name.rpartition(".")
    return stem if dot else file_name


def default_metadata(file_name: str) -> TrackMetadata:
    """Build fallback metadata from a file name alone.

    Args:
        file_name: Name of the primary file, e.g. ``"Song.mp3"``.

    Returns:
        TrackMetadata titled after the file with placeholder artist and album.
    """
    title = clean_text(strip_extension(file_name))
    return TrackMetadata(
        title=title or UNKNOWN_TITLE,
        artist=UNKNOWN_ARTIST,
        album=UNKNOWN_ALBUM,
        has_metadata=False,
    )


def stub_metadata(file_name: str) -> TrackMetadata:
    """Placeholder metadata shown while an entry waits for enrichment."""
    return default_metadata(file_name).model_copy(
        update={"artist": LOADING_ARTIST, "is_loading": True}
    )


def merge_overrides(metadata: TrackMetadata, overrides: Dict[str, Any]) -> TrackMetadata:
    """Overlay user overrides on extracted metadata."""
    merged = {**metadata.model_dump(), **overrides}
    merged.update(has_metadata=True, is_custom=True, is_loading=False)
    return TrackMetadata.model_validate(merged)


class FilenameMetadataExtractor(MetadataExtractor):
    """Extractor that reads ``Artist - Title.ext`` style names.

    Never touches the file's bytes; names without the separator get
    :func:`default_metadata`.
    """

    async def extract(self, file: RawFile) -> TrackMetadata:
        """Derive metadata from the file name."""
        stem = clean_text(strip_extension(file.name))
        match = _ARTIST_TITLE.match(stem)
        if not match:
            return default_metadata(file.name)
        return TrackMetadata(
            title=match.group("title").strip(),
            artist=match.group("artist").strip(),
            album=UNKNOWN_ALBUM,
            has_metadata=True,
        )
