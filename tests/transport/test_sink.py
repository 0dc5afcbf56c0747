"""Tests for transport/sink.py."""

import asyncio

import pytest

from transport.sink import EventSink, QueueSink, SinkClosedError, format_sse_event


def test_format_single_line_event():
    assert format_sse_event("endpoint", "/message?sessionId=abc") == (
        "event: endpoint\ndata: /message?sessionId=abc\n\n"
    )


def test_format_multiline_data_prefixes_every_line():
    assert format_sse_event("message", "a\nb") == "event: message\ndata: a\ndata: b\n\n"


def test_queue_sink_satisfies_protocol():
    assert isinstance(QueueSink(), EventSink)


@pytest.mark.asyncio
async def test_queue_sink_streams_until_closed():
    sink = QueueSink()
    await sink.set_headers(200, {"Content-Type": "text/event-stream"})
    await sink.write("one")
    await sink.write("two")
    await sink.close()

    chunks = [chunk async for chunk in sink.stream()]
    assert chunks == ["one", "two"]
    assert sink.status == 200
    assert sink.closed


@pytest.mark.asyncio
async def test_write_after_close_raises():
    sink = QueueSink()
    await sink.close()
    with pytest.raises(SinkClosedError):
        await sink.write("late")


@pytest.mark.asyncio
async def test_close_on_full_buffer_still_ends_stream():
    sink = QueueSink(max_buffered=2)
    await sink.write("a")
    await sink.write("b")
    await sink.close()

    chunks = await asyncio.wait_for(
        _collect(sink), timeout=1
    )
    assert chunks == ["a", "b"]


async def _collect(sink):
    return [chunk async for chunk in sink.stream()]
