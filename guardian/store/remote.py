"""
HTTP client for the store gateway.

Data operations map onto ``/tree`` requests. Subscriptions are registered on
a gateway connection and delivered over that connection's Server-Sent
Events stream, which a background task keeps reading. The stream being open
is what the gateway treats as "connected", so ``.info/connected`` here
mirrors the stream state.
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, Optional, Set

import httpx

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
    validate_path,
)
from .sse import SseParser

logger = logging.getLogger(__name__)


class _RemoteSubscription:
    __slots__ = ("id", "path", "callback", "server_id", "active")

    def __init__(self, sub_id: int, path: str, callback: Callable[[Snapshot], Any]):
        self.id = sub_id
        self.path = path
        self.callback = callback
        self.server_id: Optional[str] = None
        self.active = True


class RemoteOnDisconnect(OnDisconnect):

    def __init__(self, store: "RemoteStore", path: str):
        self._store = store
        self._path = path

    async def set(self, value: Any) -> None:
        await self._store._put_hook(self._path, "set", value)

    async def update(self, patch: Dict[str, Any]) -> None:
        await self._store._put_hook(self._path, "update", patch)

    async def remove(self) -> None:
        await self._store._put_hook(self._path, "remove", None)

    async def cancel(self) -> None:
        await self._store._request(
            "DELETE",
            f"/connections/{self._store.connection_id}/on-disconnect",
            params={"path": self._path},
        )


class RemoteStore(StateStore):
    """
    StateStore backed by a remote gateway.

    Usage:
        >>> store = RemoteStore("http://gateway:8080")
        >>> await store.connect()
        >>> unsubscribe = await store.subscribe("families/f1/childStatus", print)
        >>> await store.close()
    """

    def __init__(
        self,
        base_url: str = config.GATEWAY_URL,
        client: Optional[httpx.AsyncClient] = None,
        reconnect_delay: float = config.GATEWAY_RECONNECT_SECONDS
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )
        self._reconnect_delay = reconnect_delay
        self._connection_id: Optional[str] = None
        self._connected = False
        self._closed = False
        self._subscriptions: Dict[int, _RemoteSubscription] = {}
        self._by_server_id: Dict[str, _RemoteSubscription] = {}
        self._ids = itertools.count(1)
        self._dispatcher = CallbackDispatcher()
        self._stream_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def connection_id(self) -> Optional[str]:
        return self._connection_id

    # -- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        """Open a gateway connection and start reading its event stream."""
        if self._stream_task is not None:
            return
        self._closed = False
        await self._open_connection()
        self._stream_task = asyncio.create_task(self._run_stream())

    async def close(self) -> None:
        """Close the gateway connection. Registered disconnect hooks run."""
        self._closed = True
        if self._connection_id is not None:
            try:
                await self._request("DELETE", f"/connections/{self._connection_id}")
            except WriteError as e:
                logger.warning("Failed to close gateway connection: %s", e)
            self._connection_id = None
        if self._stream_task is not None:
            self._stream_task.cancel()
            await asyncio.wait({self._stream_task})
            self._stream_task = None
        self._set_connected(False)
        for task in list(self._background):
            task.cancel()
        if self._owns_client:
            await self._client.aclose()

    async def _open_connection(self) -> None:
        response = await self._client.post("/connections")
        response.raise_for_status()
        self._connection_id = response.json()["connectionId"]
        self._by_server_id.clear()
        for subscription in list(self._subscriptions.values()):
            if subscription.path != CONNECTED_PATH:
                await self._register(subscription)

    async def _run_stream(self) -> None:
        while not self._closed:
            try:
                async with self._client.stream(
                    "GET",
                    f"/connections/{self._connection_id}/events",
                    headers={"Accept": "text/event-stream"},
                ) as response:
                    if response.status_code == 404:
                        logger.info("Gateway forgot connection %s, reopening", self._connection_id)
                        await self._open_connection()
                        continue
                    response.raise_for_status()

                    parser = SseParser()
                    async for line in response.aiter_lines():
                        event = parser.feed(line)
                        if event is not None:
                            self._handle_event(*event)
            except (httpx.HTTPError, WriteError) as e:
                logger.warning("Event stream error: %s", e)
            finally:
                self._set_connected(False)

            if not self._closed:
                await asyncio.sleep(self._reconnect_delay)

    def _handle_event(self, event: str, data: Any) -> None:
        if event == "connected":
            self._set_connected(True)
        elif event == "snapshot" and isinstance(data, dict):
            subscription = self._by_server_id.get(data.get("subscriptionId"))
            if subscription is not None and subscription.active:
                self._dispatcher.invoke(subscription.callback, Snapshot(subscription.path, data.get("data")))

    def _set_connected(self, connected: bool) -> None:
        if self._connected == connected:
            return
        self._connected = connected
        for subscription in list(self._subscriptions.values()):
            if subscription.path == CONNECTED_PATH and subscription.active:
                self._dispatcher.invoke(subscription.callback, Snapshot(CONNECTED_PATH, connected))

    # -- requests ----------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._connection_id is None and url.startswith("/connections"):
            raise NotConnected("No gateway connection")
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise WriteError(f"{method} {url} failed: {e}") from e
        return response

    @staticmethod
    def _tree_url(path: str) -> str:
        return "/tree/" + join_path(*validate_path(path))

    async def get(self, path: str) -> Any:
        response = await self._request("GET", self._tree_url(path))
        return response.json().get("value")

    async def set(self, path: str, value: Any) -> None:
        await self._request("PUT", self._tree_url(path), json={"value": value})

    async def update(self, path: str, patch: Dict[str, Any]) -> None:
        await self._request("PATCH", self._tree_url(path), json={"patch": patch})

    async def remove(self, path: str) -> None:
        await self._request("DELETE", self._tree_url(path))

    # -- subscriptions -----------------------------------------------------

    async def _register(self, subscription: _RemoteSubscription) -> None:
        response = await self._request(
            "POST",
            f"/connections/{self._connection_id}/subscriptions",
            json={"path": subscription.path},
        )
        subscription.server_id = response.json()["subscriptionId"]
        self._by_server_id[subscription.server_id] = subscription

    async def subscribe(self, path: str, callback: Callable[[Snapshot], Any]) -> Unsubscribe:
        if path != CONNECTED_PATH:
            path = join_path(*validate_path(path))

        subscription = _RemoteSubscription(next(self._ids), path, callback)
        self._subscriptions[subscription.id] = subscription

        if path == CONNECTED_PATH:
            self._dispatcher.invoke(callback, Snapshot(CONNECTED_PATH, self._connected))
        elif self._connection_id is not None:
            await self._register(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            self._subscriptions.pop(subscription.id, None)
            if subscription.server_id is not None:
                self._by_server_id.pop(subscription.server_id, None)
                self._spawn(self._request(
                    "DELETE",
                    f"/connections/{self._connection_id}/subscriptions/{subscription.server_id}",
                ))

        return unsubscribe

    def _spawn(self, coroutine) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coroutine)
        except RuntimeError:
            coroutine.close()
            return
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background gateway request failed: %s", task.exception())

    # -- disconnect hooks --------------------------------------------------

    def on_disconnect(self, path: str) -> OnDisconnect:
        return RemoteOnDisconnect(self, join_path(*validate_path(path)))

    async def _put_hook(self, path: str, op: str, value: Any) -> None:
        await self._request(
            "PUT",
            f"/connections/{self._connection_id}/on-disconnect",
            json={"path": path, "op": op, "value": value},
        )

    async def settle(self) -> None:
        await self._dispatcher.settle()
