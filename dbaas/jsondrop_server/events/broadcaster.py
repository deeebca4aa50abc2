"""
In-process change broadcaster.

Fans change events out to live listeners registered either for a whole
tenant or for one (tenant, collection) pair. Each listener owns a small
bounded queue; publishing never waits on a slow consumer.

Invariants:
    - publish() never blocks and never raises into the writer
    - A full listener queue drops the event for that listener only
    - A listener is in the registry iff it has not been closed
    - Closing a listener is idempotent (unsubscribe, sweep and tenant
      deletion may all race to close the same one)

How to change safely:
    - Only ListenerRegistry touches the listener maps, always under its lock
    - Never deliver while holding the registry lock
    - Keep heartbeat_interval well below stale_after, or live streams
      get evicted
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

from .sse import format_ping, format_sse
from .types import ChangeEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 10
DEFAULT_HEARTBEAT_INTERVAL = 15.0
DEFAULT_STALE_AFTER = 120.0
DEFAULT_SWEEP_INTERVAL = 30.0


@dataclass(eq=False)
class Listener:
    """A live subscription.

    Attributes:
        listener_id: Unique id, for logging
        tenant_id: Tenant subscribed to
        collection: Collection subscribed to, or None for the whole tenant
        events: Bounded queue of pending events
        done: Set when the listener has been closed
        last_ping: Liveness timestamp (monotonic seconds)
    """

    tenant_id: str
    collection: str | None
    events: asyncio.Queue[ChangeEvent]
    listener_id: str = field(default_factory=lambda: f"listener_{uuid.uuid4().hex}")
    done: asyncio.Event = field(default_factory=asyncio.Event)
    last_ping: float = field(default_factory=time.monotonic)

    @property
    def closed(self) -> bool:
        return self.done.is_set()

    def close(self) -> None:
        self.done.set()


class ListenerRegistry:
    """Thread-safe maps of tenant and collection listeners.

    This is the single owner of the listener maps. All access goes
    through one lock; readers get snapshots so delivery happens
    outside the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tenant: dict[str, set[Listener]] = {}
        self._collection: dict[str, dict[str, set[Listener]]] = {}

    def add(self, listener: Listener) -> None:
        with self._lock:
            if listener.collection is None:
                self._tenant.setdefault(listener.tenant_id, set()).add(listener)
            else:
                collections = self._collection.setdefault(listener.tenant_id, {})
                collections.setdefault(listener.collection, set()).add(listener)

    def remove(self, listener: Listener) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        with self._lock:
            return self._remove_locked(listener)

    def _remove_locked(self, listener: Listener) -> bool:
        if listener.collection is None:
            listeners = self._tenant.get(listener.tenant_id)
            if not listeners or listener not in listeners:
                return False
            listeners.discard(listener)
            if not listeners:
                del self._tenant[listener.tenant_id]
            return True

        collections = self._collection.get(listener.tenant_id)
        if not collections:
            return False
        listeners = collections.get(listener.collection)
        if not listeners or listener not in listeners:
            return False
        listeners.discard(listener)
        if not listeners:
            del collections[listener.collection]
        if not collections:
            del self._collection[listener.tenant_id]
        return True

    def targets(self, tenant_id: str, collection: str) -> list[Listener]:
        """Snapshot of listeners that should receive an event."""
        with self._lock:
            result = list(self._tenant.get(tenant_id, ()))
            collections = self._collection.get(tenant_id)
            if collections:
                result.extend(collections.get(collection, ()))
            return result

    def _all_locked(self) -> list[Listener]:
        result = [lst for listeners in self._tenant.values() for lst in listeners]
        for collections in self._collection.values():
            for listeners in collections.values():
                result.extend(listeners)
        return result

    def evict_stale(self, cutoff: float) -> list[Listener]:
        """Remove and return listeners whose last_ping is before cutoff."""
        with self._lock:
            stale = [lst for lst in self._all_locked() if lst.last_ping < cutoff]
            for listener in stale:
                self._remove_locked(listener)
            return stale

    def evict_tenant(self, tenant_id: str) -> list[Listener]:
        """Remove and return every listener of a tenant."""
        with self._lock:
            evicted = list(self._tenant.pop(tenant_id, ()))
            for listeners in self._collection.pop(tenant_id, {}).values():
                evicted.extend(listeners)
            return evicted

    def evict_all(self) -> list[Listener]:
        """Remove and return every listener."""
        with self._lock:
            evicted = self._all_locked()
            self._tenant.clear()
            self._collection.clear()
            return evicted

    def count(self, tenant_id: str | None = None) -> int:
        """Count listeners, for one tenant or overall."""
        with self._lock:
            if tenant_id is None:
                return len(self._all_locked())
            total = len(self._tenant.get(tenant_id, ()))
            for listeners in self._collection.get(tenant_id, {}).values():
                total += len(listeners)
            return total


class Broadcaster:
    """Distributes change events to listeners and reaps dead ones.

    Example:
        >>> broadcaster = Broadcaster()
        >>> broadcaster.start()
        >>> listener = broadcaster.subscribe_collection("db_abc", "users")
        >>> async for chunk in broadcaster.stream(listener):
        ...     send(chunk)
    """

    def __init__(
        self,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        stale_after: float = DEFAULT_STALE_AFTER,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the broadcaster.

        Args:
            queue_size: Capacity of each listener's event queue
            heartbeat_interval: Seconds between heartbeats in stream()
            stale_after: Seconds without heartbeat before eviction
            sweep_interval: Seconds between stale-listener sweeps
            clock: Monotonic time source
        """
        self.queue_size = queue_size
        self.heartbeat_interval = heartbeat_interval
        self.stale_after = stale_after
        self.sweep_interval = sweep_interval
        self._clock = clock
        self.registry = ListenerRegistry()
        self._sweeper: asyncio.Task | None = None

    def _new_listener(self, tenant_id: str, collection: str | None) -> Listener:
        return Listener(
            tenant_id=tenant_id,
            collection=collection,
            events=asyncio.Queue(maxsize=self.queue_size),
            last_ping=self._clock(),
        )

    def subscribe(self, tenant_id: str) -> Listener:
        """Register a listener for every event of a tenant."""
        listener = self._new_listener(tenant_id, None)
        self.registry.add(listener)
        return listener

    def subscribe_collection(self, tenant_id: str, collection: str) -> Listener:
        """Register a listener for one collection of a tenant."""
        listener = self._new_listener(tenant_id, collection)
        self.registry.add(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        """Deregister and close a listener. Safe to call repeatedly."""
        self.registry.remove(listener)
        listener.close()

    def unsubscribe_collection(self, listener: Listener) -> None:
        """Deregister a collection listener. Same as unsubscribe()."""
        self.unsubscribe(listener)

    def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to tenant and collection listeners.

        Never blocks: listeners with a full queue miss the event.
        """
        for listener in self.registry.targets(event.tenant_id, event.collection):
            if listener.closed:
                continue
            try:
                listener.events.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug(
                    "Listener queue full, dropping event",
                    extra={
                        "listener_id": listener.listener_id,
                        "tenant_id": event.tenant_id,
                        "event_type": event.kind.value,
                    },
                )

    def heartbeat(self, listener: Listener) -> None:
        """Refresh a listener's liveness timestamp."""
        listener.last_ping = self._clock()

    def sweep(self, now: float | None = None) -> int:
        """Evict listeners that missed heartbeats for stale_after seconds.

        Returns:
            Number of listeners evicted
        """
        now = self._clock() if now is None else now
        stale = self.registry.evict_stale(now - self.stale_after)
        for listener in stale:
            listener.close()
        if stale:
            logger.info(f"Evicted {len(stale)} stale listener(s)")
        return len(stale)

    def close_tenant(self, tenant_id: str) -> int:
        """Close every listener of a tenant (e.g. on tenant deletion)."""
        evicted = self.registry.evict_tenant(tenant_id)
        for listener in evicted:
            listener.close()
        return len(evicted)

    def listener_count(self, tenant_id: str | None = None) -> int:
        """Number of live listeners for a tenant (both scopes), or overall."""
        return self.registry.count(tenant_id)

    async def stream(
        self,
        listener: Listener,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[str]:
        """Yield SSE chunks for a listener until it ends.

        The loop ends when the listener is closed (unsubscribe, sweep or
        tenant deletion), when is_disconnected reports true at a
        heartbeat, or when the consumer cancels or closes the iterator.
        A heartbeat comment is emitted every heartbeat_interval seconds.
        The listener is always unsubscribed on exit.
        """
        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self.heartbeat_interval
        try:
            while not listener.closed:
                timeout = max(0.0, next_ping - loop.time())
                get_task = asyncio.ensure_future(listener.events.get())
                done_task = asyncio.ensure_future(listener.done.wait())
                try:
                    finished, _ = await asyncio.wait(
                        {get_task, done_task},
                        timeout=timeout,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    for task in (get_task, done_task):
                        if not task.done():
                            task.cancel()
                            with contextlib.suppress(asyncio.CancelledError):
                                await task

                if get_task in finished:
                    yield format_sse(get_task.result())
                    continue
                if done_task in finished:
                    break

                if is_disconnected is not None and await is_disconnected():
                    break
                self.heartbeat(listener)
                next_ping = loop.time() + self.heartbeat_interval
                yield format_ping()
        finally:
            self.unsubscribe(listener)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Listener sweep failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the background stale-listener sweep."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep and close every listener."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        for listener in self.registry.evict_all():
            listener.close()
