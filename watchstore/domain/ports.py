from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Callable, Protocol

if TYPE_CHECKING:
    from watchstore.domain.models import Predicate, Query, Record, ResultSet, Snapshot

ChangeCallback = Callable[["ResultSet"], None]
NotificationHandle = uuid.UUID


class Store(Protocol):
    """A persistence engine with serialized units of work and change notifications.

    Change callbacks are invoked synchronously inside the writing unit of work, after it has
    committed, with the fresh result set of the query they were registered for.
    """

    async def insert(self, record: Record) -> Record: ...
    async def delete_where(self, predicate: Predicate) -> int: ...
    async def fetch(self, query: Query) -> ResultSet: ...
    def register_change_notification(
        self, query: Query, callback: ChangeCallback
    ) -> NotificationHandle: ...
    def unregister(self, handle: NotificationHandle) -> None: ...


class SnapshotTarget(Protocol):
    def receive(self, snapshot: Snapshot) -> None: ...

