import asyncio
import os
import tempfile
from pathlib import Path

import aiosqlite
import pytest
from alembic import command
from alembic.config import Config

from watchstore.factories import connect_facade
from watchstore.infrastructure.config import StoreConfig

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
async def conn():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    command.upgrade(alembic_cfg, "head")

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    yield conn
    await conn.close()
    os.unlink(db_path)


@pytest.fixture
async def facade():
    # _env_file=None ensures the local env file is not used
    config = StoreConfig(in_memory=True, _env_file=None)
    async with connect_facade(config) as facade:
        yield facade


@pytest.fixture
def next_snapshot():
    async def pull(stream, timeout: float = 1.0):
        async def advance():
            return await anext(stream)

        return await asyncio.wait_for(advance(), timeout)

    return pull
