from __future__ import annotations

import asyncio
import weakref
from typing import TYPE_CHECKING, AsyncGenerator

import structlog

from watchstore.domain.models import Snapshot
from watchstore.infrastructure.event_bus import EventBus
from watchstore.services.observer import ChangeObserver

if TYPE_CHECKING:
    from watchstore.domain.models import Query
    from watchstore.domain.ports import Store

logger = structlog.get_logger(__name__)


class WatchedCollection:
    """Live, multi-subscriber view of one query's results.

    Each call to ``stream()`` yields the current snapshot first and then every snapshot the
    store pushes afterwards. ``None`` travels on the bus as the end-of-stream marker.
    """

    def __init__(self, query: Query, store: Store) -> None:
        self._query = query
        self._observer = ChangeObserver(query, store)
        self._bus = EventBus[Snapshot | None]()
        self._closed = False
        self._finalizer = weakref.finalize(self, self._observer.stop)

    @property
    def query(self) -> Query:
        return self._query

    @property
    def latest(self) -> Snapshot:
        return self._observer.latest

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return self._bus.subscriber_count

    async def start(self) -> None:
        await self._observer.start(self)

    def receive(self, snapshot: Snapshot) -> None:
        if not self._closed:
            self._bus.publish(snapshot)

    async def stream(self) -> AsyncGenerator[Snapshot, None]:
        if self._closed:
            return
        queue: asyncio.Queue[Snapshot | None] = asyncio.Queue()
        unsubscribe = self._bus.subscribe(queue)
        try:
            initial = await self._observer.initial_values()
            if self._closed:
                return
            yield initial
            while True:
                snapshot = await queue.get()
                if snapshot is None or self._closed:
                    return
                # already reflected in the initial snapshot
                if snapshot.generation <= initial.generation:
                    continue
                yield snapshot
        finally:
            unsubscribe()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._finalizer()
        self._bus.publish(None)
        logger.debug("watched collection closed", query=self._query.value)
