import asyncio
import gc
from datetime import datetime, timedelta, timezone

import pytest

from watchstore.domain.models import Query, Record, Snapshot
from watchstore.services.watched import WatchedCollection

BASE = datetime(2024, 5, 22, 12, 0, tzinfo=timezone.utc)


def at(seconds: int) -> Record:
    return Record(timestamp=BASE + timedelta(seconds=seconds))


@pytest.fixture
async def collection(store):
    collection = WatchedCollection(Query.ALL, store)
    await collection.start()
    yield collection
    collection.close()


@pytest.mark.asyncio
async def test_start_registers_with_store(store, collection):
    assert store.registration_count == 1


@pytest.mark.asyncio
async def test_initial_snapshot_then_live_changes(store, collection, next_snapshot):
    await store.insert(at(1))
    stream = collection.stream()

    initial = await next_snapshot(stream)
    await store.insert(at(2))
    live = await next_snapshot(stream)

    assert list(initial) == [at(1)]
    assert list(live) == [at(2), at(1)]
    await stream.aclose()


@pytest.mark.asyncio
async def test_each_subscriber_gets_its_own_initial_snapshot(store, collection, next_snapshot):
    await store.insert(at(1))
    early = collection.stream()
    assert list(await next_snapshot(early)) == [at(1)]

    await store.insert(at(2))
    assert list(await next_snapshot(early)) == [at(2), at(1)]

    late = collection.stream()
    assert list(await next_snapshot(late)) == [at(2), at(1)]

    await store.insert(at(3))
    from_early = await next_snapshot(early)
    from_late = await next_snapshot(late)

    assert from_early == from_late
    assert list(from_late) == [at(3), at(2), at(1)]
    await early.aclose()
    await late.aclose()


@pytest.mark.asyncio
async def test_snapshots_already_in_initial_are_skipped(store, collection, next_snapshot):
    await store.insert(at(1))
    stream = collection.stream()
    initial = await next_snapshot(stream)

    collection.receive(Snapshot(records=(), generation=initial.generation))
    await store.insert(at(2))

    assert list(await next_snapshot(stream)) == [at(2), at(1)]
    await stream.aclose()


@pytest.mark.asyncio
async def test_snapshots_preserve_store_order(store, collection, next_snapshot):
    stream = collection.stream()
    await next_snapshot(stream)

    for seconds in range(1, 4):
        await store.insert(at(seconds))

    sizes = [len(await next_snapshot(stream)) for _ in range(3)]
    assert sizes == [1, 2, 3]
    await stream.aclose()


@pytest.mark.asyncio
async def test_closing_stream_detaches_subscriber(collection, next_snapshot):
    stream = collection.stream()
    await next_snapshot(stream)
    assert collection.subscriber_count == 1

    await stream.aclose()

    assert collection.subscriber_count == 0


@pytest.mark.asyncio
async def test_close_ends_streams_and_unregisters(store, collection, next_snapshot):
    stream = collection.stream()
    await next_snapshot(stream)

    collection.close()
    await store.insert(at(1))

    with pytest.raises(StopAsyncIteration):
        await next_snapshot(stream)
    assert store.registration_count == 0
    assert collection.closed


@pytest.mark.asyncio
async def test_close_wakes_waiting_subscriber(collection, next_snapshot):
    stream = collection.stream()
    await next_snapshot(stream)

    waiting = asyncio.create_task(next_snapshot(stream))
    await asyncio.sleep(0)
    collection.close()

    with pytest.raises(StopAsyncIteration):
        await waiting


@pytest.mark.asyncio
async def test_stream_after_close_is_empty(collection):
    collection.close()

    assert [snapshot async for snapshot in collection.stream()] == []


@pytest.mark.asyncio
async def test_latest_tracks_store(store, collection):
    await store.insert(at(1))

    assert list(collection.latest) == [at(1)]


@pytest.mark.asyncio
async def test_garbage_collected_collection_unregisters(store):
    collection = WatchedCollection(Query.ALL, store)
    await collection.start()
    assert store.registration_count == 1

    del collection
    gc.collect()

    assert store.registration_count == 0
