"""Tests for the per-entry enrichment step."""

import asyncio
from pathlib import Path

import pytest

from tests.helpers.fakes import (
    BrokenDurationProbe,
    FixedDurationProbe,
    ScriptedExtractor,
    UnreadableExtractor,
)
from trackloom.core.enrichment import Enricher
from trackloom.core.errors import (
    PermanentCollaboratorError,
    PrimaryFileReadError,
    TransientCollaboratorError,
)
from trackloom.fs.sources import MemoryFile
from trackloom.metadata.analysis_parser import DeepAnalysisParser
from trackloom.metadata.custom_store import JsonCustomMetadataStore
from trackloom.models.core import IssueKind, MatchResult

ANALYSIS = """Deep Analysis
BPM: 128 (confidence: high)
Energy: 87% (-8.2 LUFS)
Mood: Energetic and uplifting
"""


@pytest.fixture
def song() -> MemoryFile:
    return MemoryFile("Artist - Song.mp3", data=b"ID3")


@pytest.mark.asyncio
async def test_without_collaborators_uses_filename_defaults(song: MemoryFile) -> None:
    result = await Enricher().enrich(song, MatchResult())

    assert result.metadata.title == "Artist - Song"
    assert result.metadata.artist == "Unknown Artist"
    assert not result.metadata.is_loading
    assert result.duration == 0.0
    assert result.analysis is None
    assert not result.has_deep_analysis
    assert result.issues == []


@pytest.mark.asyncio
async def test_full_enrichment(song: MemoryFile) -> None:
    analysis_file = MemoryFile("Artist - Song.txt", data=ANALYSIS.encode())
    enricher = Enricher(
        ScriptedExtractor(),
        FixedDurationProbe(212.5),
        DeepAnalysisParser(),
    )

    result = await enricher.enrich(song, MatchResult(analysis=analysis_file))

    assert result.metadata.title == "ARTIST - SONG"
    assert result.metadata.has_metadata
    assert result.duration == 212.5
    assert result.analysis is not None
    assert result.analysis.bpm == 128
    assert result.has_deep_analysis


@pytest.mark.asyncio
async def test_permanent_extractor_failure_falls_back(song: MemoryFile) -> None:
    extractor = ScriptedExtractor(
        error=PermanentCollaboratorError, permanent=(song.name,)
    )

    result = await Enricher(extractor).enrich(song, MatchResult())

    assert result.metadata.title == "Artist - Song"
    assert not result.metadata.has_metadata
    assert [issue.kind for issue in result.issues] == [IssueKind.METADATA_FALLBACK]


@pytest.mark.asyncio
async def test_transient_extractor_failure_propagates(song: MemoryFile) -> None:
    extractor = ScriptedExtractor({song.name: 1})

    with pytest.raises(TransientCollaboratorError):
        await Enricher(extractor).enrich(song, MatchResult())


@pytest.mark.asyncio
async def test_unreadable_primary_propagates(song: MemoryFile) -> None:
    with pytest.raises(PrimaryFileReadError):
        await Enricher(UnreadableExtractor()).enrich(song, MatchResult())


@pytest.mark.asyncio
async def test_duration_timeout_yields_zero(song: MemoryFile) -> None:
    enricher = Enricher(
        duration_probe=FixedDurationProbe(99.0, delay=1.0), duration_timeout_ms=20
    )

    result = await enricher.enrich(song, MatchResult())

    assert result.duration == 0.0
    assert result.issues == []


@pytest.mark.asyncio
async def test_duration_probe_failure_yields_zero(song: MemoryFile) -> None:
    result = await Enricher(duration_probe=BrokenDurationProbe()).enrich(
        song, MatchResult()
    )
    assert result.duration == 0.0


@pytest.mark.asyncio
async def test_incomplete_analysis_is_dropped_without_warning(song: MemoryFile) -> None:
    analysis_file = MemoryFile("song.txt", data=b"BPM: 90\n")

    result = await Enricher(analysis_parser=DeepAnalysisParser()).enrich(
        song, MatchResult(analysis=analysis_file)
    )

    assert result.analysis is None
    assert not result.has_deep_analysis
    assert result.issues == []


@pytest.mark.asyncio
async def test_unreadable_analysis_becomes_warning(song: MemoryFile) -> None:
    analysis_file = MemoryFile("song.txt", data=ANALYSIS.encode())
    analysis_file.close()

    result = await Enricher(analysis_parser=DeepAnalysisParser()).enrich(
        song, MatchResult(analysis=analysis_file)
    )

    assert result.analysis is None
    assert [issue.kind for issue in result.issues] == [IssueKind.ANALYSIS_PARSE]
    assert result.issues[0].file_name == "song.txt"


@pytest.mark.asyncio
async def test_custom_overrides_are_merged(song: MemoryFile, tmp_path: Path) -> None:
    store = JsonCustomMetadataStore(tmp_path / "custom.json")
    store.save(song.name, song.size, {"title": "My Title", "album": "Live"})

    result = await Enricher(ScriptedExtractor(), custom_store=store).enrich(
        song, MatchResult()
    )

    assert result.metadata.title == "My Title"
    assert result.metadata.album == "Live"
    assert result.metadata.artist == "Tagged Artist"
    assert result.metadata.is_custom


@pytest.mark.asyncio
async def test_each_call_starts_from_scratch(song: MemoryFile) -> None:
    extractor = ScriptedExtractor(
        error=PermanentCollaboratorError, permanent=(song.name,)
    )
    enricher = Enricher(extractor)

    first, second = await asyncio.gather(
        enricher.enrich(song, MatchResult()), enricher.enrich(song, MatchResult())
    )

    assert len(first.issues) == 1
    assert len(second.issues) == 1
