"""Tests for the file classifier.

Covers the decision order (audio, caption, analysis, unknown), MIME hints,
configurable audio formats and scan-order preservation in categorize_files.
"""

import pytest

from trackloom.core.classifier import categorize_files, classify, file_extension
from trackloom.fs.sources import MemoryFile
from trackloom.models.core import FileCategory, IssueKind


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        "name",
        ["song.mp3", "SONG.MP3", "a.wav", "b.ogg", "c.m4a", "d.flac", "e.opus", "f.webm"],
    )
    def test_audio_extensions_are_primary(self, name: str) -> None:
        assert classify(MemoryFile(name)) is FileCategory.PRIMARY

    @pytest.mark.parametrize("name", ["song.vtt", "song.srt", "song.LRC"])
    def test_caption_extensions(self, name: str) -> None:
        assert classify(MemoryFile(name)) is FileCategory.CAPTION

    def test_txt_is_analysis(self) -> None:
        assert classify(MemoryFile("song.txt")) is FileCategory.ANALYSIS

    def test_unknown_extension(self) -> None:
        assert classify(MemoryFile("cover.jpg")) is FileCategory.UNKNOWN
        assert classify(MemoryFile("README")) is FileCategory.UNKNOWN

    def test_audio_mime_hint_wins_over_extension(self) -> None:
        file = MemoryFile("track.bin", mime_hint="audio/mpeg")
        assert classify(file) is FileCategory.PRIMARY

    def test_mime_hints_for_sidecars(self) -> None:
        assert classify(MemoryFile("lyrics", mime_hint="text/vtt")) is FileCategory.CAPTION
        assert (
            classify(MemoryFile("notes", mime_hint="text/plain")) is FileCategory.ANALYSIS
        )

    def test_custom_audio_formats(self) -> None:
        file = MemoryFile("take.aiff")
        assert classify(file) is FileCategory.UNKNOWN
        assert classify(file, audio_formats=["aiff"]) is FileCategory.PRIMARY
        assert classify(MemoryFile("x.mp3"), audio_formats=["aiff"]) is FileCategory.UNKNOWN

    def test_deterministic(self) -> None:
        file = MemoryFile("song.srt")
        assert {classify(file) for _ in range(5)} == {FileCategory.CAPTION}


def test_file_extension() -> None:
    assert file_extension("a.b.MP3") == "mp3"
    assert file_extension("noext") == ""
    assert file_extension(".vtt") == "vtt"


def test_categorize_files_keeps_scan_order_and_warns_on_unknown() -> None:
    files = [
        MemoryFile("b.mp3"),
        MemoryFile("cover.png"),
        MemoryFile("b.vtt"),
        MemoryFile("a.mp3"),
        MemoryFile("a.txt"),
        MemoryFile("a.srt"),
    ]

    result = categorize_files(files)

    assert [f.name for f in result.primary] == ["b.mp3", "a.mp3"]
    assert [f.name for f in result.caption] == ["b.vtt", "a.srt"]
    assert [f.name for f in result.analysis] == ["a.txt"]
    assert [f.name for f in result.unknown] == ["cover.png"]
    assert len(result.warnings) == 1
    assert result.warnings[0].file_name == "cover.png"
    assert result.warnings[0].kind is IssueKind.UNKNOWN_CATEGORY
