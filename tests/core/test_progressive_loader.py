"""Tests for FileLoadingManager in progressive mode.

This test suite covers:
- Phase 1 stubs returned and announced before any enrichment starts
- Sequential priority and background phases, in processing order
- Final post-processed collection delivered by the background task
- Stale-write prevention when a newer load supersedes a running one
- refresh_entry promotion and the single-writer rule
"""

import asyncio
from typing import List

import pytest

from tests.helpers.fakes import (
    GatedExtractor,
    RecordingListener,
    ScriptedExtractor,
    make_files,
    no_sleep,
)
from trackloom.core.errors import EmptyBatchError
from trackloom.core.loader import FileLoadingManager
from trackloom.fs.sources import MemoryFile
from trackloom.models.core import IssueKind
from trackloom.models.events import ProgressiveUpdateEvent
from trackloom.models.options import LoaderOptions
from trackloom.models.session import SessionState


def progressive_options(**overrides) -> LoaderOptions:  # noqa: ANN003
    return LoaderOptions(progressive_mode=True, **overrides)


async def wait_until_started(extractor: GatedExtractor, count: int = 1) -> None:
    for _ in range(1000):
        if len(extractor.started) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError("extractor never started")


def updates(listener: RecordingListener) -> List[ProgressiveUpdateEvent]:
    return listener.of("progressive_update")  # type: ignore[return-value]


@pytest.mark.asyncio
async def test_phase_one_is_returned_before_any_enrichment() -> None:
    extractor = ScriptedExtractor()
    listener = RecordingListener()
    files = make_files("b.mp3", "a.mp3", "a.vtt")
    manager = FileLoadingManager(
        progressive_options(), listeners=[listener], extractor=extractor, sleep=no_sleep
    )

    result = await manager.load_files(files)

    assert extractor.order == []
    assert not result.complete
    assert [e.file_name for e in result.entries] == ["b.mp3", "a.mp3"]
    stub = result.entries[1]
    assert stub.metadata.title == "a"
    assert stub.metadata.artist == "Loading..."
    assert stub.metadata.is_loading
    assert not stub.enriched
    assert stub.caption is files[2]
    assert [u.phase for u in updates(listener)] == [1]
    assert not manager.is_loading

    final = await result.background

    assert final.complete
    assert [e.file_name for e in final.entries] == ["a.mp3", "b.mp3"]
    assert all(e.enriched and not e.metadata.is_loading for e in final.entries)
    assert final.stats.progressive_mode
    assert manager.current_session.state is SessionState.COMPLETE


@pytest.mark.asyncio
async def test_phase_order_and_payloads() -> None:
    listener = RecordingListener()
    manager = FileLoadingManager(
        progressive_options(priority_count=1),
        listeners=[listener],
        extractor=ScriptedExtractor(),
        sleep=no_sleep,
    )

    result = await manager.load_files(make_files("c.mp3", "b.mp3", "a.mp3"))
    await result.background

    phases = [(u.phase, u.priority, u.entry_index, u.progress) for u in updates(listener)]
    assert phases == [
        (1, False, None, None),
        (2, True, 0, None),
        (2, False, 1, 50),
        (2, False, 2, 100),
        (3, False, None, None),
    ]
    assert updates(listener)[-1].complete
    assert listener.hooks()[-1] == "load_complete"

    phase_one = updates(listener)[0]
    assert all(e.metadata.is_loading for e in phase_one.entries)
    final = updates(listener)[-1]
    assert [e.file_name for e in final.entries] == ["a.mp3", "b.mp3", "c.mp3"]


@pytest.mark.asyncio
async def test_enrichment_is_sequential_in_list_order() -> None:
    names = [f"t{i}.mp3" for i in range(6)]
    extractor = ScriptedExtractor(delay=0.005)
    manager = FileLoadingManager(
        progressive_options(priority_count=2, max_concurrent=4),
        extractor=extractor,
        sleep=no_sleep,
    )

    result = await manager.load_files(make_files(*names))
    await result.background

    assert extractor.order == names
    assert extractor.max_active == 1


@pytest.mark.asyncio
async def test_failed_entries_are_excluded_from_final_collection() -> None:
    files = make_files("a.mp3", "b.mp3", "c.mp3")
    files[1].close()
    manager = FileLoadingManager(
        progressive_options(), extractor=ScriptedExtractor({"c.mp3": 9}), sleep=no_sleep
    )

    result = await manager.load_files(files)
    final = await result.background

    assert [e.file_name for e in final.entries] == ["a.mp3"]
    assert {(i.file_name, i.kind) for i in final.errors} == {
        ("b.mp3", IssueKind.PERMANENT_FAILURE),
        ("c.mp3", IssueKind.RETRY_EXHAUSTED),
    }
    assert result.entries[1].failed
    assert not result.entries[1].metadata.is_loading


@pytest.mark.asyncio
async def test_superseded_session_discards_late_results() -> None:
    extractor = GatedExtractor()
    for name in ("x.mp3", "y.mp3"):
        extractor.gate(name).set()
    manager = FileLoadingManager(
        progressive_options(), extractor=extractor, sleep=no_sleep
    )

    first = await manager.load_files(make_files("a.mp3", "b.mp3"))
    first_session = manager.current_session
    await wait_until_started(extractor)
    assert extractor.started == ["a.mp3"]

    second = await manager.load_files(make_files("x.mp3", "y.mp3"))
    assert first_session.state is SessionState.SUPERSEDED

    extractor.gate("a.mp3").set()
    stale = await first.background

    assert not stale.success
    assert stale.entries == []
    assert not first.entries[0].enriched
    assert first.entries[0].metadata.is_loading
    assert [w.kind for w in first_session.warnings] == [IssueKind.STALE_RESULT]
    assert "b.mp3" not in extractor.started

    final = await second.background
    assert final.success
    assert [e.file_name for e in final.entries] == ["x.mp3", "y.mp3"]
    assert manager.current_session.id == second.session_id


@pytest.mark.asyncio
async def test_rejected_sidecar_only_load_keeps_running_session() -> None:
    extractor = GatedExtractor()
    manager = FileLoadingManager(
        progressive_options(), extractor=extractor, sleep=no_sleep
    )
    names = [f"t{i}.mp3" for i in range(5)]

    first = await manager.load_files(make_files(*names))
    first_session = manager.current_session
    await wait_until_started(extractor)

    with pytest.raises(EmptyBatchError):
        await manager.load_files(make_files("notes.vtt"))

    assert manager.current_session is first_session
    assert first_session.state is SessionState.PHASE2_PRIORITY
    for name in names:
        extractor.gate(name).set()
    final = await first.background

    assert final.success
    assert [e.file_name for e in final.entries] == names
    assert final.errors == []
    assert first_session.state is SessionState.COMPLETE


@pytest.mark.asyncio
async def test_refresh_entry_promotes_waiting_entry() -> None:
    extractor = GatedExtractor()
    extractor.gate("c.mp3").set()
    listener = RecordingListener()
    manager = FileLoadingManager(
        progressive_options(priority_count=0),
        listeners=[listener],
        extractor=extractor,
        sleep=no_sleep,
    )

    result = await manager.load_files(make_files("a.mp3", "b.mp3", "c.mp3"))

    assert await manager.refresh_entry(2)
    assert result.entries[2].enriched
    promoted = updates(listener)[-1]
    assert (promoted.phase, promoted.priority, promoted.entry_index) == (2, True, 2)

    assert not await manager.refresh_entry(2)
    assert not await manager.refresh_entry(7)

    await wait_until_started(extractor, 2)
    assert extractor.started == ["c.mp3", "a.mp3"]
    assert not await manager.refresh_entry(0)

    extractor.gate("a.mp3").set()
    extractor.gate("b.mp3").set()
    final = await result.background

    assert [e.file_name for e in final.entries] == ["a.mp3", "b.mp3", "c.mp3"]
    assert extractor.started.count("c.mp3") == 1
    assert not await manager.refresh_entry(0)


@pytest.mark.asyncio
async def test_background_waits_for_inflight_refresh() -> None:
    extractor = GatedExtractor()
    extractor.gate("a.mp3").set()
    manager = FileLoadingManager(
        progressive_options(priority_count=0), extractor=extractor, sleep=no_sleep
    )

    result = await manager.load_files(make_files("a.mp3", "b.mp3"))
    refresh = asyncio.create_task(manager.refresh_entry(1))
    await wait_until_started(extractor, 2)

    background = result.background
    await asyncio.sleep(0.01)
    assert not background.done()

    extractor.gate("b.mp3").set()
    assert await refresh
    final = await background

    assert [e.file_name for e in final.entries] == ["a.mp3", "b.mp3"]


@pytest.mark.asyncio
async def test_stub_title_keeps_original_case() -> None:
    manager = FileLoadingManager(progressive_options(), sleep=no_sleep)

    result = await manager.load_files([MemoryFile("My Song (Live).MP3")])

    assert result.entries[0].metadata.title == "My Song (Live)"
    await result.background
