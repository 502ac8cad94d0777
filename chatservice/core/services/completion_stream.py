"""Per-turn output stream of cumulative completion snapshots."""

import asyncio
import copy
from typing import Optional

from ..errors import IllegalStateError
from ..models.completion import ChatCompletionOutput

_END = object()


class CompletionStream:
    """Bounded single-turn channel between the streaming loop and a consumer.

    ``publish`` blocks while the buffer is full, which in turn stops the
    model read. Iterating yields snapshots in order and, once the producer
    closes the stream, either stops or raises the error the turn failed with.
    A stream serves exactly one turn.
    """

    def __init__(self, maxsize: int = 16):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._error: Optional[BaseException] = None
        self._started = False

    @property
    def closed(self) -> bool:
        return self._closed

    def claim(self) -> None:
        """Bind the stream to a turn. A second claim is rejected."""
        if self._started or self._closed:
            raise IllegalStateError("Completion stream already used")
        self._started = True

    async def publish(self, snapshot: ChatCompletionOutput) -> None:
        if self._closed:
            raise IllegalStateError("Completion stream is closed")
        await self._queue.put(snapshot)

    def close(self, error: Optional[BaseException] = None) -> None:
        """Close the stream. Never blocks; idempotent."""
        if self._closed:
            return
        self._closed = True
        self._error = error
        try:
            self._queue.put_nowait(_END)
        except asyncio.QueueFull:
            # Consumer sees the closed flag once it drains the buffer.
            pass

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> ChatCompletionOutput:
        if self._closed and self._queue.empty():
            self._finish()
        item = await self._queue.get()
        if item is _END:
            self._finish()
        return item

    def _finish(self) -> None:
        if self._error is not None:
            # The producer raises the original; the consumer gets a copy.
            raise copy.copy(self._error) from self._error
        raise StopAsyncIteration
