from __future__ import annotations

import asyncio
import uuid
from contextlib import aclosing
from datetime import datetime
from typing import TYPE_CHECKING, AsyncGenerator

import structlog

from watchstore.domain.models import MatchAll, Query, Record, Snapshot, TimestampEquals
from watchstore.services.observer import ChangeObserver
from watchstore.services.subscriptions import Subscription
from watchstore.services.watched import WatchedCollection

if TYPE_CHECKING:
    from watchstore.domain.ports import Store

logger = structlog.get_logger(__name__)


class PersistenceFacade:
    """Creates and deletes records and hands out live watches over them.

    Writes go straight to the store; watchers learn about them through the store's change
    notifications. Live watches are tracked by id so cancelling one always unregisters its
    observer from the store.
    """

    def __init__(self, store: Store) -> None:
        self._store = store
        self._watchers: dict[uuid.UUID, WatchedCollection] = {}
        self._lock = asyncio.Lock()

    @property
    def active_watches(self) -> tuple[uuid.UUID, ...]:
        return tuple(self._watchers)

    async def create(self, timestamp: datetime) -> Record:
        record = await self._store.insert(Record(timestamp=timestamp))
        logger.info("record created", timestamp=record.timestamp.isoformat())
        return record

    async def delete(self, id: datetime) -> None:
        deleted = await self._store.delete_where(TimestampEquals(id))
        if deleted:
            logger.info("record deleted", timestamp=id.isoformat())
        else:
            logger.debug("delete skipped, no such record", timestamp=id.isoformat())

    async def destroy_all(self) -> int:
        deleted = await self._store.delete_where(MatchAll())
        logger.info("all records destroyed", count=deleted)
        return deleted

    async def records(self, query: Query = Query.ALL) -> Snapshot:
        return await ChangeObserver(query, self._store).initial_values()

    async def watch(self, query: Query = Query.ALL) -> Subscription:
        collection = WatchedCollection(query, self._store)
        await collection.start()
        watch_id = uuid.uuid4()
        async with self._lock:
            self._watchers[watch_id] = collection
        logger.info("watch established", watch_id=str(watch_id), query=query.value)
        return Subscription(watch_id, self._stream(watch_id, collection), self.cancel)

    async def cancel(self, subscription_id: uuid.UUID) -> None:
        async with self._lock:
            collection = self._watchers.pop(subscription_id, None)
        if collection is None:
            return
        collection.close()
        logger.info("watch cancelled", watch_id=str(subscription_id))

    async def close(self) -> None:
        async with self._lock:
            watchers = list(self._watchers.items())
            self._watchers.clear()
        for _, collection in watchers:
            collection.close()
        if watchers:
            logger.info("all watches cancelled", watch_ids=[str(id) for id, _ in watchers])

    async def _stream(
        self, watch_id: uuid.UUID, collection: WatchedCollection
    ) -> AsyncGenerator[Snapshot, None]:
        try:
            async with aclosing(collection.stream()) as snapshots:
                async for snapshot in snapshots:
                    yield snapshot
        finally:
            await self.cancel(watch_id)
