"""Server-sent event fan-out of change signals to connected clients."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

import structlog
from starlette.responses import StreamingResponse

logger = structlog.get_logger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0
SUBSCRIBER_QUEUE_SIZE = 100


def sse_event(data: dict) -> str:
    """Serialize an event payload into SSE wire format."""
    payload = json.dumps(data, separators=(",", ":"))
    return f"data: {payload}\n\n"


class EventBroker:
    """In-memory subscriber queues; slow clients drop events."""

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def publish(self, event: dict) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Dropping event for slow subscriber", event=event)


broker = EventBroker()


async def sse_stream(
    queue: asyncio.Queue, *, keepalive: float = SSE_KEEPALIVE_SECONDS
) -> AsyncIterator[bytes]:
    """Stream events from a subscribed queue as UTF-8 bytes."""
    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield b": keepalive\n\n"
                continue
            yield sse_event(event).encode("utf-8")
    finally:
        broker.unsubscribe(queue)


def stream_response() -> StreamingResponse:
    """Build a StreamingResponse for the change feed."""
    return StreamingResponse(sse_stream(broker.subscribe()), media_type="text/event-stream")
