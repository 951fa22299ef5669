"""Single-consumer sample stream."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from ..models.sensor_data import SensorSample

_CLOSED = object()


class SampleStream:
    """Unbounded, ordered, non-restartable stream of samples.

    Producers call ``put`` on the event loop; exactly one consumer may
    iterate. Iteration ends once ``close`` is called and the samples queued
    before it are drained. Samples put after ``close`` are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._consumed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, sample: SensorSample) -> bool:
        """Queue a sample. Returns False if the stream is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(sample)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def discard(self) -> int:
        """Close the stream and drop everything still queued."""
        self._closed = True
        dropped = 0
        while not self._queue.empty():
            if self._queue.get_nowait() is not _CLOSED:
                dropped += 1
        self._queue.put_nowait(_CLOSED)
        return dropped

    def __aiter__(self) -> AsyncIterator[SensorSample]:
        if self._consumed:
            raise RuntimeError("SampleStream supports a single consumer")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[SensorSample]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

