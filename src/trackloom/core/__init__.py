"""Core functionality for trackloom.

This package exposes the building blocks of the loading pipeline.
- classify / categorize_files: split a batch into primary files and sidecars.
- MatchIndex: resolve each primary file's caption and analysis sidecars.
- run_all: bounded-concurrency execution with per-item failure capture.
- with_retry: classified retry with exponential backoff and jitter.
- Enricher: the per-entry enrichment step.

The orchestrating FileLoadingManager lives in trackloom.core.loader; it is not
re-exported here because it depends on trackloom.fs, which itself imports
trackloom.core.errors.
"""

from trackloom.core.classifier import categorize_files, classify
from trackloom.core.enrichment import Enricher
from trackloom.core.matching import MatchIndex, normalize_base_name, similarity
from trackloom.core.retry import is_transient_error, with_retry
from trackloom.core.scheduler import chunked, run_all

__all__ = [
    "Enricher",
    "MatchIndex",
    "categorize_files",
    "chunked",
    "classify",
    "is_transient_error",
    "normalize_base_name",
    "run_all",
    "similarity",
    "with_retry",
]
