from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog

from watchstore.domain.models import Query
from watchstore.factories import connect_facade
from watchstore.infrastructure.config import StoreConfig
from watchstore.infrastructure.logging import configure_logging
from watchstore.services.subscriptions import Subscription

config = StoreConfig()
configure_logging(config.log_level, config.log_to_console)
logger = structlog.get_logger(__name__)


async def show_records(subscription: Subscription) -> None:
    async for snapshot in subscription:
        logger.info(
            "records changed",
            count=len(snapshot),
            timestamps=[timestamp.isoformat() for timestamp in snapshot.timestamps],
        )


async def main() -> None:
    async with connect_facade(config) as facade, asyncio.TaskGroup() as tasks:
        subscription = await facade.watch(Query.ALL)
        tasks.create_task(show_records(subscription), name="show_records")

        now = datetime.now(tz=timezone.utc)
        created = []
        for offset in range(3):
            created.append(await facade.create(now + timedelta(seconds=offset)))
            await asyncio.sleep(0.5)

        await facade.delete(created[0].id)
        await asyncio.sleep(0.5)

        await subscription.cancel()


if __name__ == "__main__":
    try:
        logger.info("starting watchstore demo", database=config.database)
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    logger.info("watchstore demo stopped")
