"""Poke port: content-free "data changed, re-pull" hints.

Channels are plain strings such as ``list/<id>`` or ``user/<id>``. Delivery is
best effort; listeners must never treat a poke as the source of truth.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from todosync_backend.config import settings

logger = logging.getLogger(__name__)


class PokeBackend(ABC):
    @abstractmethod
    async def poke(self, channel: str) -> None: ...


class LoggingPokeBackend(PokeBackend):
    async def poke(self, channel: str) -> None:
        logger.info("poke channel=%s", channel)


class LocalPokeBackend(PokeBackend):
    """In-process fan-out hub.

    This is the attachment point for a client-facing transport (websocket,
    SSE) mounted in the same process: it calls ``subscribe`` per connection
    and forwards queued channels. With no such transport mounted, pokes are
    delivered to no one; use ``POKE_BACKEND=log`` to at least record them.

    Each subscriber owns a bounded queue; a poke that finds the queue full is
    dropped for that subscriber since one pending poke already triggers a pull.
    """

    def __init__(self, queue_size: int = 64) -> None:
        self._queue_size = queue_size
        self._listeners: dict[str, set[asyncio.Queue[str]]] = {}
        self._lock = asyncio.Lock()

    async def poke(self, channel: str) -> None:
        async with self._lock:
            queues = list(self._listeners.get(channel, ()))
        for queue in queues:
            try:
                queue.put_nowait(channel)
            except asyncio.QueueFull:
                logger.debug("poke dropped channel=%s (listener queue full)", channel)
        logger.debug("poke channel=%s listeners=%d", channel, len(queues))

    @asynccontextmanager
    async def subscribe(self, *channels: str) -> AsyncIterator[asyncio.Queue[str]]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            for channel in channels:
                self._listeners.setdefault(channel, set()).add(queue)
        try:
            yield queue
        finally:
            async with self._lock:
                for channel in channels:
                    listeners = self._listeners.get(channel)
                    if listeners is None:
                        continue
                    listeners.discard(queue)
                    if not listeners:
                        del self._listeners[channel]

    def listener_count(self, channel: str) -> int:
        return len(self._listeners.get(channel, ()))


def create_poke_backend() -> PokeBackend:
    if settings.poke_backend == "log":
        return LoggingPokeBackend()
    return LocalPokeBackend(queue_size=settings.poke_queue_size)
