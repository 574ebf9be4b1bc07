"""Tests for the core models module."""

import json

import pytest
from pydantic import ValidationError

from trackloom.fs.sources import MemoryFile
from trackloom.metadata.models import AnalysisReport, TrackMetadata
from trackloom.metadata.utils import stub_metadata
from trackloom.models.core import (
    EnrichmentResult,
    Entry,
    FileCategory,
    IssueKind,
    LoadIssue,
    LoadResult,
    RawFile,
)
from trackloom.models.session import LoadSession, SessionState
from trackloom.utils.json import DateTimeEncoder


def make_entry(name: str = "a.mp3") -> Entry:
    file = MemoryFile(name, data=b"abc")
    return Entry(
        file_name=file.name,
        file_size=file.size,
        file=file,
        metadata=stub_metadata(file.name),
    )


class TestEnums:
    """Tests for the string enums."""

    def test_values(self) -> None:
        assert FileCategory.PRIMARY.value == "primary"
        assert IssueKind.RETRY_EXHAUSTED.value == "retry_exhausted"
        assert SessionState.PHASE2_PRIORITY.value == "phase2_priority"

    @pytest.mark.parametrize(
        "state, terminal",
        [
            (SessionState.CREATED, False),
            (SessionState.PHASE2_BACKGROUND, False),
            (SessionState.COMPLETE, True),
            (SessionState.FAILED, True),
            (SessionState.SUPERSEDED, True),
        ],
    )
    def test_terminal_states(self, state: SessionState, terminal: bool) -> None:
        assert state.terminal is terminal


class TestEntry:
    """Tests for Entry lifecycle."""

    def test_memory_file_satisfies_raw_file(self) -> None:
        assert isinstance(MemoryFile("a.mp3"), RawFile)

    def test_identity(self) -> None:
        assert make_entry().identity == ("a.mp3", 3)

    def test_apply_once(self) -> None:
        entry = make_entry()
        result = EnrichmentResult(
            metadata=TrackMetadata(title="A", artist="B"),
            duration=12.5,
            analysis=AnalysisReport(bpm=100, energy=0.5, mood="Calm"),
            has_deep_analysis=True,
        )

        entry.apply(result)

        assert entry.enriched
        assert entry.duration == 12.5
        assert entry.has_deep_analysis
        with pytest.raises(RuntimeError):
            entry.apply(result)

    def test_failed_entry_cannot_be_enriched(self) -> None:
        entry = make_entry()
        entry.mark_failed("corrupt")

        assert entry.failed
        assert entry.error == "corrupt"
        assert not entry.metadata.is_loading
        with pytest.raises(RuntimeError):
            entry.apply(EnrichmentResult(metadata=TrackMetadata(title="x")))

    def test_snapshot_is_isolated(self) -> None:
        entry = make_entry()
        snapshot = entry.snapshot()

        entry.metadata.title = "changed"
        entry.duration = 99.0

        assert snapshot.metadata.title == "a"
        assert snapshot.duration == 0.0
        assert snapshot.file is entry.file

    @pytest.mark.asyncio
    async def test_release_invalidates_own_handle_only(self) -> None:
        entry = make_entry()
        assert await entry.handle.read_bytes() == b"abc"

        entry.release()

        assert entry.handle.released
        with pytest.raises(RuntimeError):
            await entry.handle.read_bytes()
        assert not entry.file.closed
        assert await entry.file.read_bytes() == b"abc"

    def test_each_entry_gets_its_own_handle(self) -> None:
        first = make_entry()
        second = Entry(
            file_name=first.file_name,
            file_size=first.file_size,
            file=first.file,
            metadata=stub_metadata(first.file_name),
        )

        assert first.handle is not second.handle
        assert first.snapshot().handle is first.handle
        assert "handle" not in first.model_dump(exclude={"file"})


class TestLoadSession:
    """Tests for LoadSession bookkeeping."""

    def test_transitions_end_at_terminal_state(self) -> None:
        session = LoadSession()
        session.transition(SessionState.PHASE1)
        session.transition(SessionState.COMPLETE)

        assert session.finished_at is not None
        with pytest.raises(RuntimeError):
            session.transition(SessionState.ACTIVE)

    def test_issues_and_claims(self) -> None:
        session = LoadSession()
        session.add_error("a.mp3", "boom", IssueKind.PERMANENT_FAILURE, attempts=1)
        session.add_warning("c.jpg", "skipped", IssueKind.UNKNOWN_CATEGORY)

        assert session.errors[0].attempts == 1
        assert session.warnings[0].kind is IssueKind.UNKNOWN_CATEGORY
        assert session.claim(1)
        assert not session.claim(1)

    def test_issue_is_frozen(self) -> None:
        issue = LoadIssue(file_name="a", message="m", kind=IssueKind.STALE_RESULT)
        with pytest.raises(ValidationError):
            issue.message = "changed"


def test_result_serializes_without_background() -> None:
    result = LoadResult(success=True, session_id="s1", entries=[make_entry()])
    result.background = object()

    payload = json.loads(
        json.dumps(result.model_dump(mode="json", exclude={"entries"}), cls=DateTimeEncoder)
    )

    assert "background" not in payload
    assert payload["session_id"] == "s1"
    assert not result.complete
