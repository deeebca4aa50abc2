"""
Unit tests for the change broadcaster.

Tests cover:
- Tenant and collection scoped delivery
- Non-blocking publish with drops on full queues
- Idempotent unsubscribe and tenant close
- Stale listener eviction
- The SSE delivery loop
"""

import asyncio

import pytest

from dbaas.jsondrop_server.events import (
    Broadcaster,
    DeleteEvent,
    InsertEvent,
    SchemaCreatedEvent,
    format_ping,
)


def insert(tenant_id="db_a", collection="users", doc_id="doc_1"):
    return InsertEvent(tenant_id, collection, doc_id, snapshot={"name": "Alice"})


def drain(listener):
    events = []
    while not listener.events.empty():
        events.append(listener.events.get_nowait())
    return events


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestDelivery:
    """Tests for publish fan-out."""

    @pytest.mark.asyncio
    async def test_tenant_listener_receives_all_collections(self):
        broadcaster = Broadcaster()
        listener = broadcaster.subscribe("db_a")

        broadcaster.publish(insert(collection="users"))
        broadcaster.publish(insert(collection="orders"))

        assert [e.collection for e in drain(listener)] == ["users", "orders"]

    @pytest.mark.asyncio
    async def test_collection_listener_is_scoped(self):
        broadcaster = Broadcaster()
        users = broadcaster.subscribe_collection("db_a", "users")
        orders = broadcaster.subscribe_collection("db_a", "orders")

        broadcaster.publish(insert(collection="users"))

        assert len(drain(users)) == 1
        assert drain(orders) == []

    @pytest.mark.asyncio
    async def test_both_scopes_receive(self):
        broadcaster = Broadcaster()
        tenant = broadcaster.subscribe("db_a")
        collection = broadcaster.subscribe_collection("db_a", "users")

        event = insert()
        broadcaster.publish(event)

        assert drain(tenant) == [event]
        assert drain(collection) == [event]

    @pytest.mark.asyncio
    async def test_other_tenant_receives_nothing(self):
        broadcaster = Broadcaster()
        other = broadcaster.subscribe("db_b")
        other_collection = broadcaster.subscribe_collection("db_b", "users")

        broadcaster.publish(insert(tenant_id="db_a"))

        assert drain(other) == []
        assert drain(other_collection) == []

    @pytest.mark.asyncio
    async def test_schema_events_reach_collection_listeners(self):
        broadcaster = Broadcaster()
        listener = broadcaster.subscribe_collection("db_a", "users")

        broadcaster.publish(SchemaCreatedEvent("db_a", "users", fields={"name": "string"}))

        assert drain(listener)[0].kind.value == "schema_created"

    @pytest.mark.asyncio
    async def test_publish_without_listeners(self):
        Broadcaster().publish(insert())

    @pytest.mark.asyncio
    async def test_full_queue_drops_for_that_listener_only(self):
        broadcaster = Broadcaster(queue_size=2)
        slow = broadcaster.subscribe("db_a")
        fast = broadcaster.subscribe("db_a")

        broadcaster.publish(insert(doc_id="doc_1"))
        broadcaster.publish(insert(doc_id="doc_2"))
        drain(fast)
        broadcaster.publish(insert(doc_id="doc_3"))

        assert [e.document_id for e in drain(slow)] == ["doc_1", "doc_2"]
        assert [e.document_id for e in drain(fast)] == ["doc_3"]


class TestLifecycle:
    """Tests for unsubscribe, tenant close and sweeping."""

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self):
        broadcaster = Broadcaster()
        listener = broadcaster.subscribe_collection("db_a", "users")

        broadcaster.unsubscribe_collection(listener)
        broadcaster.unsubscribe_collection(listener)
        broadcaster.unsubscribe(listener)

        assert listener.closed
        assert broadcaster.listener_count("db_a") == 0
        broadcaster.publish(insert())
        assert drain(listener) == []

    @pytest.mark.asyncio
    async def test_listener_count(self):
        broadcaster = Broadcaster()
        broadcaster.subscribe("db_a")
        broadcaster.subscribe_collection("db_a", "users")
        broadcaster.subscribe("db_b")

        assert broadcaster.listener_count("db_a") == 2
        assert broadcaster.listener_count("db_b") == 1
        assert broadcaster.listener_count() == 3

    @pytest.mark.asyncio
    async def test_close_tenant(self):
        broadcaster = Broadcaster()
        tenant = broadcaster.subscribe("db_a")
        collection = broadcaster.subscribe_collection("db_a", "users")
        other = broadcaster.subscribe("db_b")

        closed = broadcaster.close_tenant("db_a")

        assert closed == 2
        assert tenant.closed and collection.closed
        assert not other.closed
        assert broadcaster.close_tenant("db_a") == 0

    @pytest.mark.asyncio
    async def test_sweep_evicts_stale_listeners(self):
        clock = FakeClock()
        broadcaster = Broadcaster(stale_after=120, clock=clock)
        stale = broadcaster.subscribe("db_a")
        clock.now += 100
        fresh = broadcaster.subscribe_collection("db_a", "users")

        evicted = broadcaster.sweep(now=clock.now + 30)

        assert evicted == 1
        assert stale.closed
        assert not fresh.closed
        assert broadcaster.listener_count("db_a") == 1

    @pytest.mark.asyncio
    async def test_heartbeat_keeps_listener_alive(self):
        clock = FakeClock()
        broadcaster = Broadcaster(stale_after=120, clock=clock)
        listener = broadcaster.subscribe("db_a")

        clock.now += 110
        broadcaster.heartbeat(listener)
        clock.now += 110

        assert broadcaster.sweep() == 0
        assert not listener.closed

    @pytest.mark.asyncio
    async def test_stop_closes_everything(self):
        broadcaster = Broadcaster(sweep_interval=0.01)
        broadcaster.start()
        listener = broadcaster.subscribe("db_a")

        await broadcaster.stop()

        assert listener.closed
        assert broadcaster.listener_count() == 0


class TestStream:
    """Tests for the SSE delivery loop."""

    @pytest.mark.asyncio
    async def test_stream_delivers_until_unsubscribed(self):
        broadcaster = Broadcaster()
        listener = broadcaster.subscribe("db_a")
        chunks = []

        async def consume():
            async for chunk in broadcaster.stream(listener):
                chunks.append(chunk)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        broadcaster.publish(insert(doc_id="doc_1"))
        broadcaster.publish(DeleteEvent("db_a", "users", "doc_1"))
        await asyncio.sleep(0.05)
        broadcaster.unsubscribe(listener)
        await asyncio.wait_for(task, timeout=1)

        assert len(chunks) == 2
        assert chunks[0].startswith("event: change\ndata: ")
        assert '"event_type":"delete"' in chunks[1]

    @pytest.mark.asyncio
    async def test_stream_ends_on_tenant_close(self):
        broadcaster = Broadcaster()
        listener = broadcaster.subscribe_collection("db_a", "users")

        async def consume():
            return [chunk async for chunk in broadcaster.stream(listener)]

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        broadcaster.close_tenant("db_a")

        assert await asyncio.wait_for(task, timeout=1) == []

    @pytest.mark.asyncio
    async def test_stream_pings_and_stops_on_disconnect(self):
        broadcaster = Broadcaster(heartbeat_interval=0.01, stale_after=1)
        listener = broadcaster.subscribe("db_a")
        checks = 0

        async def is_disconnected():
            nonlocal checks
            checks += 1
            return checks > 2

        chunks = [
            chunk
            async for chunk in broadcaster.stream(listener, is_disconnected=is_disconnected)
        ]

        assert chunks == [format_ping(), format_ping()]
        assert listener.closed
        assert broadcaster.listener_count("db_a") == 0

    @pytest.mark.asyncio
    async def test_stream_cancel_unsubscribes(self):
        broadcaster = Broadcaster()
        listener = broadcaster.subscribe("db_a")

        async def consume():
            async for _ in broadcaster.stream(listener):
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert listener.closed
        assert broadcaster.listener_count() == 0
