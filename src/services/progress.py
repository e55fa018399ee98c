"""Ordered progress channel between a generation run and its consumer."""

import asyncio
import dataclasses
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from models.generation import ProgressEvent, ProgressStage

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 32


class ProgressEmitter:
    """Single-producer, single-consumer stream of progress events.

    Guarantees:
    - events are delivered in emission order
    - progress never decreases, except on the ``error`` event
    - exactly one terminal event (``complete`` or ``error``); later emits are dropped
    - the producer waits when the consumer falls behind, until ``detach()``

    Example usage:
        emitter = ProgressEmitter()
        await emitter.emit(ProgressEvent(ProgressStage.STORY, 10, "Writing story"))
        async for event in emitter:
            ...
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self._last_progress = 0
        self._closed = False
        self._detached = False

    @property
    def closed(self) -> bool:
        """True once a terminal event has been emitted."""
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    @property
    def last_progress(self) -> int:
        return self._last_progress

    async def emit(self, event: ProgressEvent) -> bool:
        """Queue an event for the consumer.

        Args:
            event: Event to deliver; its progress is clamped to be non-decreasing

        Returns:
            False if the event was rejected because the stream already ended
        """
        if self._closed:
            logger.warning(
                f"Dropping '{event.stage.value}' event emitted after the stream ended"
            )
            return False

        if event.stage is not ProgressStage.ERROR:
            progress = min(100, max(event.progress, self._last_progress))
            if progress != event.progress:
                event = dataclasses.replace(event, progress=progress)
            self._last_progress = progress

        if event.stage.is_terminal:
            self._closed = True

        if self._detached:
            return True

        await self._queue.put(event)
        return True

    async def progress(
        self,
        stage: ProgressStage,
        progress: int,
        message: str,
        current_scene: Optional[int] = None,
        total_scenes: Optional[int] = None,
        data: Optional[dict] = None,
    ) -> bool:
        """Build and emit an event in one call."""
        return await self.emit(
            ProgressEvent(
                stage=stage,
                progress=progress,
                message=message,
                current_scene=current_scene,
                total_scenes=total_scenes,
                data=data,
            )
        )

    async def fail(self, message: str) -> bool:
        """Emit the terminal error event if the stream is still open."""
        if self._closed:
            return False
        return await self.progress(ProgressStage.ERROR, 0, message)

    def detach(self) -> None:
        """Stop delivering events because the consumer went away.

        Buffered events are discarded so a producer waiting on a full queue
        resumes; the producer keeps running and later emits are dropped.
        """
        if self._detached:
            return
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()
        logger.debug("Progress consumer detached")

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.stage.is_terminal:
                return


async def stream_events(
    producer: Callable[[ProgressEmitter], Awaitable[Any]],
    background: set,
    maxsize: int = DEFAULT_QUEUE_SIZE,
) -> AsyncIterator[ProgressEvent]:
    """Run ``producer`` as a task and yield the events it emits.

    The producer keeps running if the consumer stops early; the task is held
    in ``background`` until it finishes. A producer that returns without a
    terminal event gets an error event appended.
    """
    emitter = ProgressEmitter(maxsize)

    async def produce() -> None:
        try:
            await producer(emitter)
        finally:
            if not emitter.closed:
                await emitter.fail("Error: generation ended unexpectedly")

    task = asyncio.create_task(produce())
    background.add(task)
    task.add_done_callback(background.discard)

    try:
        async for event in emitter:
            yield event
    finally:
        emitter.detach()
