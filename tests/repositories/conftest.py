import aiosqlite
import pytest

from watchstore.infrastructure.db import init_db
from watchstore.repositories.record import SqliteRecordStore


@pytest.fixture
async def conn():
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await init_db(conn)
    yield conn
    await conn.close()


@pytest.fixture
def store(conn):
    return SqliteRecordStore(conn)
