"""
Progress events published by the fetch layer.

The channel never blocks the publisher: when its buffer is full the oldest
event is dropped. Consumers read synchronously with :meth:`ProgressChannel.drain`
or asynchronously with ``async for event in channel``.
"""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Deque, List, Optional

from site_diff.crawler.models import Side

__all__ = ["Outcome", "ProgressEvent", "ProgressChannel"]


class Outcome(str, Enum):
    FETCHED = "fetched"
    CACHED = "cached"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    path: str
    side: Side
    outcome: Outcome
    detail: str = ""


class ProgressChannel:
    """Bounded, drop-oldest buffer of :class:`ProgressEvent`."""

    def __init__(self, maxsize: int = 1000) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._buffer: Deque[ProgressEvent] = deque(maxlen=maxsize)
        self._wakeup: Optional[asyncio.Event] = None
        self.closed = False
        self.published = 0
        self.dropped = 0

    def publish(self, event: ProgressEvent) -> None:
        if self.closed:
            return
        if len(self._buffer) == self._buffer.maxlen:
            self.dropped += 1
        self._buffer.append(event)
        self.published += 1
        if self._wakeup is not None:
            self._wakeup.set()

    def drain(self) -> List[ProgressEvent]:
        """Pop every buffered event, oldest first."""
        events = list(self._buffer)
        self._buffer.clear()
        return events

    def close(self) -> None:
        self.closed = True
        if self._wakeup is not None:
            self._wakeup.set()

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        self._wakeup = asyncio.Event()
        while True:
            while self._buffer:
                yield self._buffer.popleft()
            if self.closed:
                return
            self._wakeup.clear()
            await self._wakeup.wait()
