import asyncio

import pytest

from site_diff.crawler.models import Side
from site_diff.events import Outcome, ProgressChannel, ProgressEvent


def event(path: str) -> ProgressEvent:
    return ProgressEvent(path, Side.BEFORE, Outcome.FETCHED)


def test_drop_oldest_when_full():
    channel = ProgressChannel(maxsize=2)
    for path in ("/a", "/b", "/c"):
        channel.publish(event(path))
    assert [e.path for e in channel.drain()] == ["/b", "/c"]
    assert channel.dropped == 1
    assert channel.published == 3
    assert channel.drain() == []


def test_publish_after_close_is_ignored():
    channel = ProgressChannel()
    channel.close()
    channel.publish(event("/a"))
    assert channel.drain() == []


def test_invalid_size():
    with pytest.raises(ValueError):
        ProgressChannel(maxsize=0)


@pytest.mark.asyncio()
async def test_async_consumer_receives_events_in_order():
    channel = ProgressChannel()
    received = []

    async def consume():
        async for e in channel:
            received.append(e.path)

    consumer = asyncio.create_task(consume())
    channel.publish(event("/a"))
    await asyncio.sleep(0)
    channel.publish(event("/b"))
    channel.close()
    await asyncio.wait_for(consumer, timeout=1)
    assert received == ["/a", "/b"]
