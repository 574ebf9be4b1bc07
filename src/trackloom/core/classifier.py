"""File classifier.

This module maps raw files to categories based on their extension and MIME
hint. Classification is deterministic and stateless: the same descriptor
always yields the same category.

Decision order:
1. audio MIME hint or a configured audio extension -> PRIMARY
2. caption/subtitle extension or MIME -> CAPTION
3. plain-text extension or MIME -> ANALYSIS
4. anything else -> UNKNOWN (reported as a warning, never matched)
"""

import logging
from typing import Iterable, Optional, Sequence

from trackloom.models.core import (
    CategorizedFiles,
    FileCategory,
    IssueKind,
    LoadIssue,
    RawFile,
)
from trackloom.models.options import DEFAULT_AUDIO_FORMATS

logger = logging.getLogger(__name__)

CAPTION_EXTENSIONS = {"vtt", "srt", "lrc"}
CAPTION_MIME_TYPES = {"text/vtt", "application/x-subrip", "text/x-lrc"}

ANALYSIS_EXTENSIONS = {"txt"}
ANALYSIS_MIME_TYPES = {"text/plain"}


def file_extension(name: str) -> str:
    """Lower-cased final extension without the dot; empty when there is none."""
    _, dot, ext = name.rpartition(".")
    return ext.lower() if dot else ""


def classify(
    file: RawFile, *, audio_formats: Optional[Iterable[str]] = None
) -> FileCategory:
    """Classify a raw file.

    Args:
        file: The file to classify.
        audio_formats: Extensions (without dot) treated as primary media.
            Defaults to DEFAULT_AUDIO_FORMATS.

    Returns:
        The file's category.
    """
    formats = set(DEFAULT_AUDIO_FORMATS if audio_formats is None else audio_formats)
    ext = file_extension(file.name)
    mime = (file.mime_hint or "").lower()

    if mime.startswith("audio/") or ext in formats:
        return FileCategory.PRIMARY
    if ext in CAPTION_EXTENSIONS or mime in CAPTION_MIME_TYPES:
        return FileCategory.CAPTION
    if ext in ANALYSIS_EXTENSIONS or mime in ANALYSIS_MIME_TYPES:
        return FileCategory.ANALYSIS
    return FileCategory.UNKNOWN


def categorize_files(
    files: Sequence[RawFile], *, audio_formats: Optional[Iterable[str]] = None
) -> CategorizedFiles:
    """Split a batch by category, preserving scan order in each bucket.

    Unknown files produce an ``unknown_category`` warning.
    """
    formats = list(audio_formats) if audio_formats is not None else None
    result = CategorizedFiles()
    buckets = {
        FileCategory.PRIMARY: result.primary,
        FileCategory.CAPTION: result.caption,
        FileCategory.ANALYSIS: result.analysis,
        FileCategory.UNKNOWN: result.unknown,
    }
    for file in files:
        category = classify(file, audio_formats=formats)
        buckets[category].append(file)
        if category is FileCategory.UNKNOWN:
            result.warnings.append(
                LoadIssue(
                    file_name=file.name,
                    message="Unknown file type",
                    kind=IssueKind.UNKNOWN_CATEGORY,
                )
            )
    logger.debug(
        "Categorized: %d primary, %d caption, %d analysis, %d unknown",
        len(result.primary),
        len(result.caption),
        len(result.analysis),
        len(result.unknown),
    )
    return result
