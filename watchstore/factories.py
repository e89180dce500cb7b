from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

import structlog

from watchstore.infrastructure.db import connect_db, init_db
from watchstore.repositories.record import SqliteRecordStore
from watchstore.services.facade import PersistenceFacade

if TYPE_CHECKING:
    from watchstore.infrastructure.config import StoreConfig

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def connect_facade(config: StoreConfig) -> AsyncGenerator[PersistenceFacade, None]:
    """Open a facade over its own store, built from explicit configuration.

    In-memory configurations get a private database that disappears with the connection, so
    every caller is isolated from every other.
    """
    async with connect_db(config.database) as conn:
        await init_db(conn)
        logger.info("connected to watchstore db", database=config.database)
        facade = PersistenceFacade(SqliteRecordStore(conn))
        try:
            yield facade
        finally:
            await facade.close()
