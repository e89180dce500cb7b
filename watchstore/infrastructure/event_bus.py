import asyncio
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class EventBus(Generic[T]):
    """Fans every published event out to all currently attached queues."""

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[T]] = set()

    def subscribe(self, queue: asyncio.Queue[T]) -> Callable[[], None]:
        self._subscribers.add(queue)

        def unsubscribe() -> None:
            self._subscribers.discard(queue)

        return unsubscribe

    def publish(self, event: T) -> None:
        for queue in self._subscribers:
            queue.put_nowait(event)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
