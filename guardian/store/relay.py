"""
Gateway-side connection relay.

Each remote client owns one ``RelayConnection``: a MemoryStore client of the
gateway's database plus a queue feeding that client's event stream. While
the event stream is attached the connection counts as connected; when the
stream ends for any reason the connection's disconnect hooks run.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from guardian import config
from guardian.errors import NotConnected
from .base import Snapshot, Unsubscribe
from .memory import MemoryDatabase
from .sse import format_comment, format_event

logger = logging.getLogger(__name__)


class RelayConnection:

    def __init__(self, database: MemoryDatabase, connection_id: str, keepalive: float):
        self.id = connection_id
        self.store = database.client(connection_id, connect=False)
        self.keepalive = keepalive
        self.attached = False
        self.detached_at = time.monotonic()
        self._queue: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()
        self._subscriptions: Dict[str, Unsubscribe] = {}

    @property
    def subscription_ids(self):
        return list(self._subscriptions)

    async def subscribe(self, path: str) -> str:
        subscription_id = uuid.uuid4().hex[:12]

        def forward(snapshot: Snapshot) -> None:
            self._queue.put_nowait((
                "snapshot",
                {"subscriptionId": subscription_id, "path": snapshot.path, "data": snapshot.val()},
            ))

        self._subscriptions[subscription_id] = await self.store.subscribe(path, forward)
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        unsubscribe = self._subscriptions.pop(subscription_id, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        return True

    async def set_hook(self, path: str, op: str, value: Any = None) -> None:
        if not self.attached:
            raise NotConnected("Event stream is not attached")
        hook = self.store.on_disconnect(path)
        if op == "update":
            await hook.update(value)
        elif op == "remove":
            await hook.remove()
        else:
            await hook.set(value)

    async def cancel_hook(self, path: str) -> None:
        await self.store.on_disconnect(path).cancel()

    async def events(self) -> AsyncIterator[str]:
        """
        Event stream body. Attaching connects the underlying store client,
        which re-delivers a snapshot for every subscription.
        """
        if self.attached:
            raise NotConnected("Event stream already attached")

        self.attached = True
        self._queue = asyncio.Queue()
        await self.store.connect()
        try:
            yield format_event("connected", {"connectionId": self.id})
            while True:
                try:
                    event, data = await asyncio.wait_for(self._queue.get(), timeout=self.keepalive)
                except asyncio.TimeoutError:
                    yield format_comment("keepalive")
                    continue
                yield format_event(event, data)
        finally:
            self.attached = False
            self.detached_at = time.monotonic()
            await self.store.drop()
            logger.info("Connection %s detached", self.id)

    def close(self) -> None:
        for subscription_id in list(self._subscriptions):
            self.unsubscribe(subscription_id)


class ConnectionRegistry:
    """
    Tracks relay connections for one database.

    Connections whose stream has been detached for longer than ``idle_ttl``
    seconds are forgotten the next time a connection is opened.
    """

    def __init__(
        self,
        database: MemoryDatabase,
        keepalive: float = config.GATEWAY_KEEPALIVE_SECONDS,
        idle_ttl: float = 300.0
    ):
        self.database = database
        self.keepalive = keepalive
        self.idle_ttl = idle_ttl
        self._connections: Dict[str, RelayConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def connection_ids(self):
        return list(self._connections)

    def open(self) -> RelayConnection:
        self.prune()
        connection = RelayConnection(self.database, uuid.uuid4().hex, self.keepalive)
        self._connections[connection.id] = connection
        return connection

    def get(self, connection_id: str) -> Optional[RelayConnection]:
        return self._connections.get(connection_id)

    def prune(self) -> int:
        cutoff = time.monotonic() - self.idle_ttl
        stale = [
            connection_id for connection_id, connection in self._connections.items()
            if not connection.attached and connection.detached_at < cutoff
        ]
        for connection_id in stale:
            self.discard(connection_id)
        return len(stale)

    def discard(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        connection.close()
        self.database.forget(connection_id)
