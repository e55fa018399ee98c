"""Tests for the progress emitter and event streaming."""

import asyncio

import pytest

from models.generation import ProgressEvent, ProgressStage
from services.progress import ProgressEmitter, stream_events


async def collect(emitter: ProgressEmitter) -> list[ProgressEvent]:
    return [event async for event in emitter]


class TestProgressEmitter:
    """Tests for ProgressEmitter ordering and terminal handling."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        emitter = ProgressEmitter()
        await emitter.progress(ProgressStage.STORY, 10, "Writing story")
        await emitter.progress(ProgressStage.IMAGE, 45, "Generating images")
        await emitter.progress(ProgressStage.COMPLETE, 100, "Done")

        events = await collect(emitter)

        assert [e.stage for e in events] == [
            ProgressStage.STORY,
            ProgressStage.IMAGE,
            ProgressStage.COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self):
        """A lower progress value is raised to the last one emitted."""
        emitter = ProgressEmitter()
        await emitter.progress(ProgressStage.IMAGE, 60, "Image 2/3")
        await emitter.progress(ProgressStage.IMAGE, 53, "Image 1/3")
        await emitter.progress(ProgressStage.COMPLETE, 150, "Done")

        events = await collect(emitter)

        assert [e.progress for e in events] == [60, 60, 100]
        assert events[1].message == "Image 1/3"

    @pytest.mark.asyncio
    async def test_error_event_not_clamped(self):
        emitter = ProgressEmitter()
        await emitter.progress(ProgressStage.STORY, 40, "Story complete")
        await emitter.fail("Error: boom")

        events = await collect(emitter)

        assert events[-1].stage is ProgressStage.ERROR
        assert events[-1].progress == 0
        assert emitter.closed

    @pytest.mark.asyncio
    async def test_emit_after_terminal_is_rejected(self):
        emitter = ProgressEmitter()
        assert await emitter.progress(ProgressStage.COMPLETE, 100, "Done") is True

        assert await emitter.progress(ProgressStage.IMAGE, 50, "late") is False
        assert await emitter.fail("Error: late") is False

        events = await collect(emitter)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_detach_drops_buffered_and_later_events(self):
        emitter = ProgressEmitter(maxsize=2)
        await emitter.progress(ProgressStage.STORY, 10, "a")
        await emitter.progress(ProgressStage.STORY, 20, "b")

        emitter.detach()

        # Would block on a full queue if not detached
        assert await emitter.progress(ProgressStage.STORY, 30, "c") is True
        assert emitter._queue.empty()
        assert emitter.last_progress == 30

    @pytest.mark.asyncio
    async def test_detach_releases_blocked_producer(self):
        emitter = ProgressEmitter(maxsize=1)
        await emitter.progress(ProgressStage.STORY, 10, "a")

        blocked = asyncio.create_task(emitter.progress(ProgressStage.STORY, 20, "b"))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        emitter.detach()
        assert await asyncio.wait_for(blocked, timeout=1) is True


class TestStreamEvents:
    """Tests for stream_events."""

    @pytest.mark.asyncio
    async def test_yields_producer_events(self):
        async def producer(emitter: ProgressEmitter) -> None:
            await emitter.progress(ProgressStage.STORY, 10, "Writing story")
            await emitter.progress(ProgressStage.COMPLETE, 100, "Done")

        background: set = set()
        events = [e async for e in stream_events(producer, background)]

        assert [e.progress for e in events] == [10, 100]

    @pytest.mark.asyncio
    async def test_missing_terminal_event_becomes_error(self):
        async def producer(emitter: ProgressEmitter) -> None:
            await emitter.progress(ProgressStage.STORY, 10, "Writing story")

        events = [e async for e in stream_events(producer, set())]

        assert events[-1].stage is ProgressStage.ERROR
        assert events[-1].message == "Error: generation ended unexpectedly"

    @pytest.mark.asyncio
    async def test_producer_exception_becomes_error(self):
        async def producer(emitter: ProgressEmitter) -> None:
            raise RuntimeError("boom")

        events = [e async for e in stream_events(producer, set())]

        assert len(events) == 1
        assert events[0].stage is ProgressStage.ERROR

    @pytest.mark.asyncio
    async def test_producer_finishes_after_consumer_leaves(self):
        """The producer keeps running when the consumer stops reading."""
        finished = asyncio.Event()

        async def producer(emitter: ProgressEmitter) -> None:
            await emitter.progress(ProgressStage.STORY, 10, "Writing story")
            for i in range(100):
                await emitter.progress(ProgressStage.IMAGE, 45, f"Image {i}")
            await emitter.progress(ProgressStage.COMPLETE, 100, "Done")
            finished.set()

        background: set = set()
        stream = stream_events(producer, background, maxsize=2)
        first = await stream.__anext__()
        await stream.aclose()

        assert first.progress == 10
        await asyncio.wait_for(asyncio.gather(*list(background)), timeout=1)
        assert finished.is_set()
        assert not background
