"""
In-process realtime tree.

``MemoryDatabase`` is the shared backend; every ``MemoryStore`` is one
client connection to it. The gateway serves a single MemoryDatabase to
remote clients, and tests wire parent and child services to two
MemoryStore clients of the same database.
"""

import copy
import itertools
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from guardian.errors import WriteError
from guardian.utils.time import Clock, now_ms
from .base import (
    CONNECTED_PATH,
    CallbackDispatcher,
    OnDisconnect,
    Snapshot,
    StateStore,
    Unsubscribe,
    patch_writes,
    paths_overlap,
    resolve_server_values,
    split_path,
    validate_path,
)

logger = logging.getLogger(__name__)

Write = Tuple[List[str], Any]


def _normalize(value: Any) -> Any:
    """Deep-copy a value, dropping null children and empty branches."""
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            item = _normalize(item)
            if item is not None:
                cleaned[str(key)] = item
        return cleaned or None
    return copy.deepcopy(value)


class MemoryDatabase:
    """
    Shared tree with per-path last-write-wins and synchronous fan-out.

    Every committed write bumps ``commit`` and notifies, in commit order,
    each connected client's subscriptions whose path overlaps a written path.
    """

    def __init__(self, clock: Clock = now_ms):
        self.clock = clock
        self.commit = 0
        self._root: Dict[str, Any] = {}
        self._clients: Dict[str, "MemoryStore"] = {}
        self._hooks: Dict[str, Dict[Tuple[str, ...], Tuple[str, Any]]] = {}

    # -- clients -----------------------------------------------------------

    def client(self, client_id: Optional[str] = None, connect: bool = True) -> "MemoryStore":
        """Create a client connection, connected by default."""
        client_id = client_id or uuid.uuid4().hex
        store = MemoryStore(self, client_id)
        self._clients[client_id] = store
        if connect:
            store._set_connected(True)
        return store

    def forget(self, client_id: str) -> None:
        self._clients.pop(client_id, None)
        self._hooks.pop(client_id, None)

    # -- reads and writes --------------------------------------------------

    def read(self, path: str) -> Any:
        node: Any = self._root
        for segment in validate_path(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        if node == {}:
            return None
        return copy.deepcopy(node)

    def set(self, path: str, value: Any) -> None:
        self._commit([(validate_path(path), value)])

    def update(self, path: str, patch: Dict[str, Any]) -> None:
        writes = patch_writes(path, patch)
        if writes:
            self._commit(writes)

    def _commit(self, writes: List[Write]) -> None:
        timestamp = self.clock()
        for segments, value in writes:
            self._put(segments, _normalize(resolve_server_values(value, timestamp)))
        self.commit += 1

        written = [segments for segments, _ in writes]
        for client in list(self._clients.values()):
            client._deliver_changes(written)

    def _put(self, segments: List[str], value: Any) -> None:
        if not segments:
            self._root = value if isinstance(value, dict) else {}
            return

        parents = []
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[segment] = child
            parents.append((node, segment))
            node = child

        leaf = segments[-1]
        if value is None:
            node.pop(leaf, None)
            # prune empty branches
            for parent, segment in reversed(parents):
                if parent[segment]:
                    break
                del parent[segment]
        else:
            node[leaf] = value

    # -- disconnect hooks --------------------------------------------------

    def register_hook(self, client_id: str, path: str, op: str, value: Any = None) -> None:
        if op not in ("set", "update", "remove"):
            raise ValueError(f"Unknown disconnect operation '{op}'")
        if op == "update" and not isinstance(value, dict):
            raise ValueError("update hooks need a mapping")
        key = tuple(validate_path(path))
        self._hooks.setdefault(client_id, {})[key] = (op, value)

    def cancel_hook(self, client_id: str, path: str) -> None:
        self._hooks.get(client_id, {}).pop(tuple(validate_path(path)), None)

    def hooks_for(self, client_id: str) -> Dict[str, Tuple[str, Any]]:
        return {"/".join(key): hook for key, hook in self._hooks.get(client_id, {}).items()}

    def run_hooks(self, client_id: str) -> int:
        """Execute and clear a client's disconnect hooks. Returns how many ran."""
        hooks = self._hooks.pop(client_id, {})
        for key, (op, value) in hooks.items():
            path = "/".join(key)
            try:
                if op == "update":
                    self.update(path, value)
                elif op == "remove":
                    self.set(path, None)
                else:
                    self.set(path, value)
            except ValueError:
                logger.exception("Disconnect hook on '%s' for client %s failed", path, client_id)
        if hooks:
            logger.debug("Ran %d disconnect hook(s) for client %s", len(hooks), client_id)
        return len(hooks)

    async def settle(self) -> None:
        """Wait until every client's callback tasks (and their cascades) finish."""
        while any(client._dispatcher.pending for client in self._clients.values()):
            for client in list(self._clients.values()):
                await client._dispatcher.settle()


class _Subscription:
    __slots__ = ("id", "path", "segments", "callback", "active")

    def __init__(self, sub_id: int, path: str, callback: Callable[[Snapshot], Any]):
        self.id = sub_id
        self.path = path
        self.segments = split_path(path)
        self.callback = callback
        self.active = True


class MemoryOnDisconnect(OnDisconnect):

    def __init__(self, store: "MemoryStore", path: str):
        self._store = store
        self._path = path

    async def set(self, value: Any) -> None:
        self._store._register_hook(self._path, "set", value)

    async def update(self, patch: Dict[str, Any]) -> None:
        self._store._register_hook(self._path, "update", patch)

    async def remove(self) -> None:
        self._store._register_hook(self._path, "remove")

    async def cancel(self) -> None:
        self._store._database.cancel_hook(self._store.client_id, self._path)


class MemoryStore(StateStore):
    """One client connection to a MemoryDatabase."""

    def __init__(self, database: MemoryDatabase, client_id: str):
        self._database = database
        self.client_id = client_id
        self._connected = False
        self._subscriptions: Dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._dispatcher = CallbackDispatcher()

    @property
    def database(self) -> MemoryDatabase:
        return self._database

    @property
    def connected(self) -> bool:
        return self._connected

    # -- connection lifecycle ----------------------------------------------

    async def connect(self) -> None:
        if self._connected:
            return
        self._database._clients[self.client_id] = self
        self._set_connected(True)

    async def drop(self) -> None:
        """
        Simulate a lost socket. The backend runs this client's disconnect
        hooks once and clears them.
        """
        if not self._connected:
            return
        self._connected = False
        self._database.run_hooks(self.client_id)
        self._deliver_connection_state()

    async def close(self) -> None:
        """Graceful disconnect. Registered hooks still run, as on the backend."""
        await self.drop()

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        self._deliver_connection_state()
        if connected:
            for subscription in list(self._subscriptions.values()):
                if subscription.path != CONNECTED_PATH:
                    self._deliver(subscription)

    # -- data operations ---------------------------------------------------

    def _require_connected(self) -> None:
        if not self._connected:
            raise WriteError(f"Store client {self.client_id} is not connected")

    async def get(self, path: str) -> Any:
        self._require_connected()
        return self._database.read(path)

    async def set(self, path: str, value: Any) -> None:
        self._require_connected()
        self._database.set(path, value)

    async def update(self, path: str, patch: Dict[str, Any]) -> None:
        self._require_connected()
        self._database.update(path, patch)

    # -- subscriptions -----------------------------------------------------

    async def subscribe(self, path: str, callback: Callable[[Snapshot], Any]) -> Unsubscribe:
        if path != CONNECTED_PATH:
            path = "/".join(validate_path(path))

        subscription = _Subscription(next(self._ids), path, callback)
        self._subscriptions[subscription.id] = subscription

        if path == CONNECTED_PATH:
            self._dispatcher.invoke(callback, Snapshot(CONNECTED_PATH, self._connected))
        elif self._connected:
            self._deliver(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            self._subscriptions.pop(subscription.id, None)

        return unsubscribe

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _deliver(self, subscription: _Subscription) -> None:
        if not subscription.active:
            return
        snapshot = Snapshot(subscription.path, self._database.read(subscription.path))
        self._dispatcher.invoke(subscription.callback, snapshot)

    def _deliver_changes(self, written: List[List[str]]) -> None:
        if not self._connected:
            return
        for subscription in list(self._subscriptions.values()):
            if subscription.path == CONNECTED_PATH:
                continue
            if any(paths_overlap(subscription.segments, segments) for segments in written):
                self._deliver(subscription)

    def _deliver_connection_state(self) -> None:
        for subscription in list(self._subscriptions.values()):
            if subscription.path == CONNECTED_PATH and subscription.active:
                self._dispatcher.invoke(subscription.callback, Snapshot(CONNECTED_PATH, self._connected))

    # -- disconnect hooks --------------------------------------------------

    def on_disconnect(self, path: str) -> OnDisconnect:
        validate_path(path)
        return MemoryOnDisconnect(self, path)

    def _register_hook(self, path: str, op: str, value: Any = None) -> None:
        self._require_connected()
        self._database.register_hook(self.client_id, path, op, value)

    async def settle(self) -> None:
        await self._database.settle()
