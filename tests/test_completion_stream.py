"""Tests for the per-turn bounded snapshot stream."""

from __future__ import annotations

import asyncio

import pytest

from chatservice.core.errors import (
    IllegalStateError,
    NotFoundError,
    OverCapacityError,
    UpstreamError,
)
from chatservice.core.models.completion import ChatCompletionOutput
from chatservice.core.services.completion_stream import CompletionStream


def _snap(content: str) -> ChatCompletionOutput:
    return ChatCompletionOutput(chat_id="c", user_id="u", content=content)


async def _drain(stream: CompletionStream) -> list[str]:
    return [s.content async for s in stream]


@pytest.mark.asyncio
async def test_yields_in_order_then_stops():
    stream = CompletionStream(maxsize=8)
    for text in ("a", "ab", "abc"):
        await stream.publish(_snap(text))
    stream.close()

    assert await _drain(stream) == ["a", "ab", "abc"]


@pytest.mark.asyncio
async def test_error_raised_after_buffered_snapshots():
    stream = CompletionStream(maxsize=8)
    await stream.publish(_snap("par"))
    stream.close(UpstreamError("boom"))

    received = []
    with pytest.raises(UpstreamError):
        async for snapshot in stream:
            received.append(snapshot.content)
    assert received == ["par"]


@pytest.mark.asyncio
async def test_publish_blocks_when_full():
    stream = CompletionStream(maxsize=1)
    await stream.publish(_snap("a"))

    pending = asyncio.create_task(stream.publish(_snap("ab")))
    await asyncio.sleep(0.01)
    assert not pending.done()

    first = await stream.__anext__()
    await asyncio.wait_for(pending, timeout=1)
    assert first.content == "a"


@pytest.mark.asyncio
async def test_close_on_full_buffer_does_not_block():
    stream = CompletionStream(maxsize=1)
    await stream.publish(_snap("a"))
    stream.close()

    assert await _drain(stream) == ["a"]


@pytest.mark.asyncio
async def test_consumer_waiting_on_empty_stream_is_released_by_close():
    stream = CompletionStream(maxsize=2)
    consumer = asyncio.create_task(_drain(stream))
    await asyncio.sleep(0.01)

    stream.close()

    assert await asyncio.wait_for(consumer, timeout=1) == []


@pytest.mark.asyncio
async def test_publish_after_close_rejected():
    stream = CompletionStream()
    stream.close()
    with pytest.raises(IllegalStateError):
        await stream.publish(_snap("a"))


def test_stream_serves_one_turn():
    stream = CompletionStream()
    stream.claim()
    with pytest.raises(IllegalStateError):
        stream.claim()


def test_maxsize_must_be_positive():
    with pytest.raises(ValueError):
        CompletionStream(maxsize=0)


@pytest.mark.asyncio
async def test_consumer_gets_its_own_error_instance():
    stream = CompletionStream()
    error = UpstreamError("boom")
    stream.close(error)

    with pytest.raises(UpstreamError) as exc_info:
        await stream.__anext__()

    assert exc_info.value is not error
    assert exc_info.value.__cause__ is error
    assert error.__traceback__ is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [NotFoundError("c-9"), OverCapacityError(12, 10)],
    ids=["not-found", "over-capacity"],
)
async def test_copied_error_keeps_its_fields(error):
    stream = CompletionStream()
    stream.close(error)

    with pytest.raises(type(error)) as exc_info:
        await stream.__anext__()

    assert vars(exc_info.value) == vars(error)
    assert str(exc_info.value) == str(error)
