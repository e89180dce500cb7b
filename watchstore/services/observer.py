from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any, Callable, Mapping

import structlog

from watchstore.domain.errors import StoreFetchFailed
from watchstore.domain.models import Record, ResultSet, Snapshot

if TYPE_CHECKING:
    from watchstore.domain.models import Query
    from watchstore.domain.ports import NotificationHandle, SnapshotTarget, Store

logger = structlog.get_logger(__name__)

RowConverter = Callable[[Mapping[str, Any]], Record]


class ChangeObserver:
    """Turns a store's change notifications for one query into snapshots for a single target.

    The target is only weakly referenced: the observer pushes to it but never keeps it alive.
    Rows that fail conversion are dropped so one bad row never blocks the rest of a snapshot,
    and nothing raised while handling a notification escapes back into the store.
    """

    def __init__(
        self, query: Query, store: Store, converter: RowConverter = Record.from_row
    ) -> None:
        self._query = query
        self._store = store
        self._converter = converter
        self._target: weakref.ReferenceType[SnapshotTarget] | None = None
        self._handle: NotificationHandle | None = None
        self._started = False
        self.latest = Snapshot.empty()

    @property
    def query(self) -> Query:
        return self._query

    @property
    def is_registered(self) -> bool:
        return self._handle is not None

    async def start(self, target: SnapshotTarget) -> None:
        if self._started:
            raise RuntimeError("ChangeObserver has already been started")
        self._started = True
        self._target = weakref.ref(target)
        self._handle = self._store.register_change_notification(self._query, self.on_store_changed)
        self.latest = await self.initial_values()
        logger.debug(
            "change observer started", query=self._query.value, record_count=len(self.latest)
        )

    def stop(self) -> None:
        if self._handle is None:
            return
        self._store.unregister(self._handle)
        self._handle = None
        logger.debug("change observer stopped", query=self._query.value)

    def on_store_changed(self, results: ResultSet) -> None:
        if self._handle is None:
            return
        try:
            snapshot = self._transform(results)
            self.latest = snapshot
            target = self._target() if self._target is not None else None
            if target is not None:
                target.receive(snapshot)
        except Exception:
            logger.exception("change notification dropped", query=self._query.value)

    async def initial_values(self) -> Snapshot:
        try:
            results = await self._store.fetch(self._query)
        except StoreFetchFailed:
            logger.warning("initial fetch failed", query=self._query.value, exc_info=True)
            return Snapshot.empty()
        return self._transform(results)

    def _transform(self, results: ResultSet) -> Snapshot:
        records = []
        for row in results.rows:
            try:
                records.append(self._converter(row))
            except Exception as exc:
                logger.warning(
                    "dropping unconvertible row", query=self._query.value, error=str(exc)
                )
        return Snapshot(records=tuple(records), generation=results.generation)
