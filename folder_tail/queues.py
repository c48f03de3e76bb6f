from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Deque, Generic, List, TypeVar

logger = logging.getLogger("folder_tail.queues")

T = TypeVar("T")


class QueueClosed(Exception):
    pass


class EventQueue(Generic[T]):
    """Bounded, closable queue that never blocks the producer.

    Lossy: when full, ``drop_oldest`` queues evict the oldest
    entry to make room, otherwise the new entry is discarded. Producers and
    consumers must share one event loop thread.
    """

    def __init__(self, maxsize: int, drop_oldest: bool = True, name: str = "events"):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self.drop_oldest = drop_oldest
        self.name = name
        self.dropped = 0
        self._items: Deque[T] = deque()
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, item: T) -> bool:
        if self._closed:
            return False
        if len(self._items) >= self.maxsize:
            self.dropped += 1
            if not self.drop_oldest:
                logger.debug("%s queue full, discarding new item", self.name)
                return False
            self._items.popleft()
            logger.debug("%s queue full, dropped oldest item", self.name)
        self._items.append(item)
        self._ready.set()
        return True

    def get_nowait(self) -> T:
        if not self._items:
            if self._closed:
                raise QueueClosed(self.name)
            raise asyncio.QueueEmpty()
        return self._items.popleft()

    async def get(self) -> T:
        while not self._items:
            if self._closed:
                raise QueueClosed(self.name)
            self._ready.clear()
            await self._ready.wait()
        return self._items.popleft()

    def drain(self) -> List[T]:
        items = list(self._items)
        self._items.clear()
        return items

    def close(self) -> None:
        """Stop accepting items; consumers finish what is queued, then stop."""
        if self._closed:
            return
        self._closed = True
        self._ready.set()

    def __len__(self) -> int:
        return len(self._items)

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            try:
                yield await self.get()
            except QueueClosed:
                return
