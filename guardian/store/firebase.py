"""
Firebase Realtime Database as a StateStore.

The Admin SDK is synchronous, so every data call runs in a worker thread.
``Reference.listen`` delivers ``put``/``patch`` events on the SDK's own
thread; they are handed to the event loop and folded into a per-subscription
copy of the value so callbacks always get the full snapshot of their path.

The Admin SDK is a server client: it has no connection state and no
disconnect hooks. ``.info/connected`` mirrors whether the store is open, and
disconnect hook registration fails with ``WriteError``. Presence therefore
needs the gateway (``RemoteStore``); this store suits the parent side and
operator tooling.
"""

import asyncio
import copy
import itertools
import logging
from typing import Any, Callable, Dict, Optional, Set

import firebase_admin
from firebase_admin import credentials, db, exceptions

from guardian import config
from guardian.errors import NotConnected, WriteError
from .base import (
    CONNECTED_PATH,
    CallbackDispatcher,
    OnDisconnect,
    Snapshot,
    StateStore,
    Unsubscribe,
    join_path,
    patch_writes,
    split_path,
    validate_path,
)

logger = logging.getLogger(__name__)


def _put_at(node: Any, segments, data: Any) -> Any:
    if not segments:
        return copy.deepcopy(data)
    branch = dict(node) if isinstance(node, dict) else {}
    child = _put_at(branch.get(segments[0]), segments[1:], data)
    if child is None or child == {}:
        branch.pop(segments[0], None)
    else:
        branch[segments[0]] = child
    return branch or None


def apply_event(value: Any, event_type: str, path: str, data: Any) -> Any:
    """Fold one listener event into the cached value of the listened path."""
    segments = split_path(path)
    if event_type == "put":
        return _put_at(value, segments, data)
    if event_type == "patch" and isinstance(data, dict):
        for key, item in data.items():
            value = _put_at(value, segments + split_path(key), item)
    return value


class _Listener:
    __slots__ = ("id", "path", "callback", "value", "registration", "active")

    def __init__(self, sub_id: int, path: str, callback: Callable[[Snapshot], Any]):
        self.id = sub_id
        self.path = path
        self.callback = callback
        self.value: Any = None
        self.registration = None
        self.active = True


class FirebaseOnDisconnect(OnDisconnect):

    def __init__(self, path: str):
        self._path = path

    def _unsupported(self):
        return WriteError(f"Disconnect hooks on '{self._path}' need a realtime client connection")

    async def set(self, value: Any) -> None:
        raise self._unsupported()

    async def update(self, patch: Dict[str, Any]) -> None:
        raise self._unsupported()

    async def remove(self) -> None:
        raise self._unsupported()

    async def cancel(self) -> None:
        # nothing was ever registered
        return None


class FirebaseStore(StateStore):
    """
    StateStore backed by Firebase Realtime Database through firebase_admin.

    Usage:
        >>> store = FirebaseStore("https://my-app-default-rtdb.firebaseio.com", "/etc/guardian/key.json")
        >>> await store.connect()
        >>> await store.set("families/f1/commands", {"type": "VIBRATE"})
        >>> await store.close()
    """

    def __init__(
        self,
        database_url: str = config.FIREBASE_DATABASE_URL,
        credentials_path: str = config.FIREBASE_CREDENTIALS_PATH,
        root: Optional[db.Reference] = None
    ):
        self.database_url = database_url
        self.credentials_path = credentials_path
        self._root = root
        self._connected = False
        self._listeners: Dict[int, _Listener] = {}
        self._ids = itertools.count(1)
        self._dispatcher = CallbackDispatcher()
        self._background: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    def initialize(self) -> db.Reference:
        """Initialize the default Firebase app once and return the root reference."""
        if self._root is not None:
            return self._root
        try:
            app = firebase_admin.get_app()
        except ValueError:
            if self.credentials_path:
                cred = credentials.Certificate(self.credentials_path)
            else:
                cred = credentials.ApplicationDefault()
            app = firebase_admin.initialize_app(cred, {"databaseURL": self.database_url})
            logger.info("Firebase app initialized for %s", self.database_url)
        self._root = db.reference(app=app)
        return self._root

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        await asyncio.to_thread(self.initialize)
        self._set_connected(True)
        for listener in list(self._listeners.values()):
            if listener.path != CONNECTED_PATH and listener.registration is None:
                await self._listen(listener)

    async def close(self) -> None:
        registrations = []
        for listener in self._listeners.values():
            if listener.registration is not None:
                registrations.append(listener.registration)
                listener.registration = None
        for registration in registrations:
            await asyncio.to_thread(registration.close)
        self._set_connected(False)
        for task in list(self._background):
            task.cancel()

    def _set_connected(self, connected: bool) -> None:
        if self._connected == connected:
            return
        self._connected = connected
        for listener in list(self._listeners.values()):
            if listener.path == CONNECTED_PATH and listener.active:
                self._dispatcher.invoke(listener.callback, Snapshot(CONNECTED_PATH, connected))

    # -- data --------------------------------------------------------------

    def _ref(self, segments) -> db.Reference:
        if not self._connected:
            raise NotConnected("Firebase store is not connected")
        if not segments:
            return self._root
        return self._root.child("/".join(segments))

    async def _call(self, func, *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except exceptions.FirebaseError as e:
            raise WriteError(f"Firebase request failed: {e}") from e

    async def get(self, path: str) -> Any:
        return await self._call(self._ref(validate_path(path)).get)

    async def set(self, path: str, value: Any) -> None:
        ref = self._ref(validate_path(path))
        # the SDK refuses None; deleting is what a null write means
        if value is None:
            await self._call(ref.delete)
        else:
            await self._call(ref.set, value)

    async def update(self, path: str, patch: Dict[str, Any]) -> None:
        base = validate_path(path)
        writes = patch_writes(path, patch)
        if not writes:
            return
        relative = {"/".join(segments[len(base):]): value for segments, value in writes}
        await self._call(self._ref(base).update, relative)

    async def remove(self, path: str) -> None:
        await self._call(self._ref(validate_path(path)).delete)

    # -- subscriptions -----------------------------------------------------

    async def _listen(self, listener: _Listener) -> None:
        loop = asyncio.get_running_loop()
        ref = self._ref(split_path(listener.path))

        def on_event(event) -> None:
            loop.call_soon_threadsafe(self._on_event, listener, event.event_type, event.path, event.data)

        try:
            listener.registration = await asyncio.to_thread(ref.listen, on_event)
        except exceptions.FirebaseError as e:
            raise WriteError(f"Failed to listen on '{listener.path}': {e}") from e

    def _on_event(self, listener: _Listener, event_type: str, path: str, data: Any) -> None:
        if not listener.active:
            return
        listener.value = apply_event(listener.value, event_type, path, data)
        self._dispatcher.invoke(listener.callback, Snapshot(listener.path, copy.deepcopy(listener.value)))

    async def subscribe(self, path: str, callback: Callable[[Snapshot], Any]) -> Unsubscribe:
        if path != CONNECTED_PATH:
            path = join_path(*validate_path(path))

        listener = _Listener(next(self._ids), path, callback)
        self._listeners[listener.id] = listener

        if path == CONNECTED_PATH:
            self._dispatcher.invoke(callback, Snapshot(CONNECTED_PATH, self._connected))
        elif self._connected:
            await self._listen(listener)

        def unsubscribe() -> None:
            listener.active = False
            self._listeners.pop(listener.id, None)
            registration, listener.registration = listener.registration, None
            if registration is not None:
                self._spawn(asyncio.to_thread(registration.close))

        return unsubscribe

    def _spawn(self, coroutine) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coroutine)
        except RuntimeError:
            coroutine.close()
            return
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def on_disconnect(self, path: str) -> OnDisconnect:
        return FirebaseOnDisconnect(join_path(*validate_path(path)))

    async def settle(self) -> None:
        await self._dispatcher.settle()
