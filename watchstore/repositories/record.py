from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import aiosqlite
import structlog

from watchstore.common.aio import shielded
from watchstore.domain.errors import StoreFetchFailed, StoreWriteFailed
from watchstore.domain.models import (
    MatchAll,
    Predicate,
    Query,
    Record,
    ResultSet,
    TimestampEquals,
    format_timestamp,
)
from watchstore.domain.ports import ChangeCallback, NotificationHandle, Store

logger = structlog.get_logger(__name__)

_QUERIES: dict[Query, str] = {
    Query.ALL: "SELECT * FROM records ORDER BY timestamp DESC",
}


@dataclass(frozen=True)
class _Registration:
    query: Query
    callback: ChangeCallback


@dataclass
class _UnitOfWork:
    conn: aiosqlite.Connection
    changed_rows: int = 0


class SqliteRecordStore(Store):
    """Record store over a single aiosqlite connection.

    Every read and write is a unit of work serialized by one lock. Writes that change rows bump
    the store generation and notify registered callbacks before the lock is released, so
    callbacks observe mutations in commit order.

    A write runs in its own task once submitted. Cancelling the caller stops it waiting, but
    the unit of work still commits (or rolls back) and notifies as a whole.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self._lock = asyncio.Lock()
        self._generation = 0
        self._registrations: dict[NotificationHandle, _Registration] = {}

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def registration_count(self) -> int:
        return len(self._registrations)

    async def insert(self, record: Record) -> Record:
        return await shielded(self._insert(record), name="store_insert")

    async def delete_where(self, predicate: Predicate) -> int:
        return await shielded(self._delete_where(predicate), name="store_delete")

    async def fetch(self, query: Query) -> ResultSet:
        async with self._lock:
            return await self._fetch(query)

    def register_change_notification(
        self, query: Query, callback: ChangeCallback
    ) -> NotificationHandle:
        handle = uuid.uuid4()
        self._registrations[handle] = _Registration(query=query, callback=callback)
        logger.debug("change notification registered", handle=str(handle), query=query.value)
        return handle

    def unregister(self, handle: NotificationHandle) -> None:
        if self._registrations.pop(handle, None) is not None:
            logger.debug("change notification unregistered", handle=str(handle))

    async def _insert(self, record: Record) -> Record:
        async with self._write() as uow:
            cursor = await uow.conn.execute(
                "INSERT INTO records (timestamp) VALUES (?) RETURNING *",
                (format_timestamp(record.timestamp),),
            )
            row = await cursor.fetchone()
            await cursor.close()
            uow.changed_rows = 1
        return Record.from_row(dict(row))  # type: ignore[arg-type]

    async def _delete_where(self, predicate: Predicate) -> int:
        async with self._write() as uow:
            match predicate:
                case TimestampEquals(timestamp=timestamp):
                    cursor = await uow.conn.execute(
                        """
                        DELETE FROM records WHERE id IN (
                            SELECT id FROM records
                            WHERE timestamp = ?
                            ORDER BY timestamp DESC LIMIT 1
                        )
                        """,
                        (format_timestamp(timestamp),),
                    )
                case MatchAll():
                    cursor = await uow.conn.execute("DELETE FROM records")
                case _:
                    raise ValueError(f"Unsupported predicate: {predicate!r}")
            uow.changed_rows = max(cursor.rowcount, 0)
            await cursor.close()
        return uow.changed_rows

    async def _fetch(self, query: Query) -> ResultSet:
        try:
            rows = await self.conn.execute_fetchall(_QUERIES[query])
        except aiosqlite.Error as exc:
            raise StoreFetchFailed(f"fetch for {query.value} failed: {exc}") from exc
        return ResultSet(rows=tuple(dict(row) for row in rows), generation=self._generation)

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[_UnitOfWork]:
        async with self._lock:
            uow = _UnitOfWork(conn=self.conn)
            try:
                yield uow
                await self.conn.commit()
            except aiosqlite.Error as exc:
                await self.conn.rollback()
                logger.warning("store write failed", error=str(exc))
                raise StoreWriteFailed(str(exc)) from exc
            except BaseException:
                await self.conn.rollback()
                raise

            if uow.changed_rows:
                self._generation += 1
                await self._notify()

    async def _notify(self) -> None:
        results: dict[Query, ResultSet | None] = {}
        for handle, registration in list(self._registrations.items()):
            query = registration.query
            if query not in results:
                try:
                    results[query] = await self._fetch(query)
                except StoreFetchFailed:
                    logger.exception("change notification fetch failed", query=query.value)
                    results[query] = None
            result_set = results[query]
            if result_set is None or handle not in self._registrations:
                continue
            try:
                registration.callback(result_set)
            except Exception:
                logger.exception("change callback failed", handle=str(handle))
