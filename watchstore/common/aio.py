import asyncio
from typing import Any, Coroutine, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _log_orphaned_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("detached task failed", task=task.get_name(), exc_info=exc)


async def shielded(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> T:
    """Run ``coro`` to completion even if the awaiting caller is cancelled.

    The caller still sees ``CancelledError``; the work carries on in its own task. Once the
    caller has gone, a failure has nobody to receive it, so it is logged instead.
    """
    task = asyncio.create_task(coro, name=name or coro.__qualname__)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        task.add_done_callback(_log_orphaned_failure)
        raise


__all__ = ["shielded"]
