"""Server-sent event framing for progress streams."""

import json
import logging
from contextlib import aclosing
from typing import AsyncGenerator, AsyncIterator, Iterable, Iterator

from models.generation import ProgressEvent

logger = logging.getLogger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_sse_event(event: ProgressEvent | dict) -> str:
    """Encode one event as a ``data: <json>`` frame."""
    payload = event.to_dict() if isinstance(event, ProgressEvent) else event
    return f"data: {json.dumps(payload)}\n\n"


async def sse_frames(events: AsyncGenerator[ProgressEvent, None]) -> AsyncIterator[str]:
    """Encode an event stream for a StreamingResponse body.

    The source generator is closed when the client disconnects.
    """
    async with aclosing(events) as stream:
        async for event in stream:
            yield encode_sse_event(event)


def _parse_frame(frame: str) -> dict | None:
    data_lines = [
        line[5:].lstrip() for line in frame.splitlines() if line.startswith("data:")
    ]
    if not data_lines:
        return None
    try:
        payload = json.loads("\n".join(data_lines))
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE frame")
        return None
    return payload if isinstance(payload, dict) else None


def iter_sse_events(lines: Iterable[str]) -> Iterator[dict]:
    """Parse SSE text lines into event payloads.

    Frames are separated by blank lines. Frames that are not valid JSON are
    skipped.
    """
    buffer: list[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if line == "":
            if buffer:
                payload = _parse_frame("\n".join(buffer))
                buffer = []
                if payload is not None:
                    yield payload
            continue
        buffer.append(line)

    if buffer:
        payload = _parse_frame("\n".join(buffer))
        if payload is not None:
            yield payload


def split_sse_text(text: str) -> list[dict]:
    """Parse a complete SSE body into event payloads."""
    return list(iter_sse_events(text.split("\n")))
