from __future__ import annotations

import uuid
from types import TracebackType
from typing import Any, AsyncIterator, Callable, Coroutine

from watchstore.domain.models import Snapshot

CancelFn = Callable[[uuid.UUID], Coroutine[Any, Any, None]]


class Subscription:
    """Client handle for one watch: an async iterator of snapshots plus its teardown."""

    def __init__(
        self, id: uuid.UUID, stream: AsyncIterator[Snapshot], cancel_fn: CancelFn
    ) -> None:
        self.id = id
        self._stream = stream
        self._cancel_fn = cancel_fn

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        return self._stream

    async def cancel(self) -> None:
        await self._cancel_fn(self.id)

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.cancel()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id})"
