"""Sidecar matching for trackloom.

Resolves, for each primary file, the caption and analysis sidecars that belong
to it:

1. Exact pass: sidecars whose normalized base name equals the primary's. The
   first caption and the first analysis file (scan order) win, independently.
2. Fuzzy pass, only for a field the exact pass left empty: every sidecar of
   that kind is scored with a normalized edit-distance similarity. A candidate
   must score at least the threshold, and replaces the current best only when
   it scores strictly higher, so equal scores keep the earliest candidate in
   scan order. That tie-break is arbitrary but stable.

No match is not an error; the field simply stays None.
"""

import logging
from typing import Dict, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from trackloom.core.classifier import classify
from trackloom.models.core import FileCategory, MatchResult, RawFile

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8


def normalize_base_name(file_name: str) -> str:
    """Turn a file name into a matching key.

    Drops the final extension segment, trims whitespace and lower-cases.
    A name without a dot is kept whole.

    Example: ``"My Song (Live).MP3"`` -> ``"my song (live)"``.
    """
    stem, dot, _ = file_name.rpartition(".")
    base = stem if dot else file_name
    return base.strip().lower()


def edit_distance(a: str, b: str) -> int:
    """Unit-cost Levenshtein distance between *a* and *b*."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Normalized similarity in [0, 1]; two empty strings score 1.0.

    ``(max_len - edit_distance) / max_len``, symmetric in its arguments.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - edit_distance(a, b)) / max_len


class MatchIndex:
    """Lookup structure over a batch's sidecar files.

    Built once per load from every caption and analysis file seen at
    categorization time, then only read.

    Attributes:
        by_base_name: Normalized base name -> sidecars sharing it, scan order.
        captions: All caption files, scan order.
        analyses: All analysis files, scan order.
        threshold: Minimum similarity for a fuzzy match.
        fuzzy_comparisons: Similarity computations performed by the fuzzy pass.
    """

    def __init__(
        self,
        captions: Sequence[RawFile] = (),
        analyses: Sequence[RawFile] = (),
        *,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        """Index the given sidecars."""
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.captions: List[RawFile] = list(captions)
        self.analyses: List[RawFile] = list(analyses)
        self.threshold = threshold
        self.fuzzy_comparisons = 0
        self.by_base_name: Dict[str, List[RawFile]] = {}
        self._categories: Dict[int, FileCategory] = {}

        for category, files in (
            (FileCategory.CAPTION, self.captions),
            (FileCategory.ANALYSIS, self.analyses),
        ):
            for file in files:
                self._categories[id(file)] = category
                key = normalize_base_name(file.name)
                self.by_base_name.setdefault(key, []).append(file)

    @classmethod
    def build(
        cls, sidecars: Sequence[RawFile], *, threshold: float = DEFAULT_THRESHOLD
    ) -> "MatchIndex":
        """Build an index from an unsorted list of sidecars.

        Files that are neither captions nor analysis texts are ignored.
        """
        captions: List[RawFile] = []
        analyses: List[RawFile] = []
        for file in sidecars:
            category = classify(file)
            if category is FileCategory.CAPTION:
                captions.append(file)
            elif category is FileCategory.ANALYSIS:
                analyses.append(file)
        return cls(captions, analyses, threshold=threshold)

    def resolve(self, primary_base_name: str) -> MatchResult:
        """Find the caption and analysis companions of a primary file.

        Args:
            primary_base_name: ``normalize_base_name`` of the primary file.

        Returns:
            The resolved companions; fields without a match are None.
        """
        caption: Optional[RawFile] = None
        analysis: Optional[RawFile] = None

        for file in self.by_base_name.get(primary_base_name, []):
            category = self._categories[id(file)]
            if category is FileCategory.CAPTION and caption is None:
                caption = file
            elif category is FileCategory.ANALYSIS and analysis is None:
                analysis = file

        caption_exact = caption is not None
        analysis_exact = analysis is not None
        if caption is None:
            caption = self._fuzzy_match(primary_base_name, self.captions)
        if analysis is None:
            analysis = self._fuzzy_match(primary_base_name, self.analyses)

        return MatchResult(
            caption=caption,
            analysis=analysis,
            caption_exact=caption_exact,
            analysis_exact=analysis_exact,
        )

    def _fuzzy_match(
        self, base_name: str, candidates: Sequence[RawFile]
    ) -> Optional[RawFile]:
        best: Optional[RawFile] = None
        best_score = -1.0
        for file in candidates:
            score = similarity(base_name, normalize_base_name(file.name))
            self.fuzzy_comparisons += 1
            if score >= self.threshold and score > best_score:
                best, best_score = file, score
        if best is not None:
            logger.debug(
                "Fuzzy matched %r -> %s (score %.3f)", base_name, best.name, best_score
            )
        return best
