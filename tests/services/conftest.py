import aiosqlite
import pytest

from watchstore.infrastructure.db import init_db
from watchstore.repositories.record import SqliteRecordStore


@pytest.fixture
async def store():
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await init_db(conn)
    yield SqliteRecordStore(conn)
    await conn.close()
