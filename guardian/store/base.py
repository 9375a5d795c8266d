"""
Shared state store interface.

The store is a realtime key-value tree addressed by slash-separated paths.
It offers single-path atomic writes, field-level merges (which double as
atomic multi-path writes when issued against the root), change
subscriptions that always deliver a full snapshot of the subscribed path,
the reserved ``.info/connected`` pseudo-path, and disconnect hooks that the
backend executes when a client's connection goes away.

There are no multi-key transactions. Every cross-entity invariant is kept by
the protocol in the services built on top of this interface.
"""

import asyncio
import copy
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

CONNECTED_PATH = ".info/connected"

# Replaced by the store's clock at the moment a write is applied
SERVER_TIMESTAMP = {".sv": "timestamp"}

FORBIDDEN_KEY_CHARS = set(".$#[]")

Unsubscribe = Callable[[], None]


def split_path(path: str) -> List[str]:
    """Split a slash-separated path into segments, ignoring empty ones."""
    return [segment for segment in (path or "").split("/") if segment]


def join_path(*parts: str) -> str:
    """Join path fragments into a normalized path."""
    segments: List[str] = []
    for part in parts:
        segments.extend(split_path(str(part)))
    return "/".join(segments)


def validate_path(path: str) -> List[str]:
    """
    Split a data path and validate every segment.

    Raises:
        ValueError: If a segment contains a reserved character
    """
    segments = split_path(path)
    for segment in segments:
        if FORBIDDEN_KEY_CHARS & set(segment):
            raise ValueError(f"Invalid key '{segment}' in path '{path}'")
    return segments


def is_prefix(prefix: List[str], segments: List[str]) -> bool:
    return len(prefix) <= len(segments) and segments[:len(prefix)] == prefix


def paths_overlap(a: List[str], b: List[str]) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    return is_prefix(a, b) or is_prefix(b, a)


def patch_writes(path: str, patch: Dict[str, Any]) -> List[Tuple[List[str], Any]]:
    """
    Expand a merge patch into absolute (segments, value) writes.

    Raises:
        ValueError: Not a mapping, an empty key, or two keys where one is an
            ancestor of the other
    """
    if not isinstance(patch, dict):
        raise ValueError("update() expects a mapping of relative paths to values")

    base = validate_path(path)
    writes = [(base + validate_path(key), value) for key, value in patch.items()]

    for index, (first, _) in enumerate(writes):
        if not first[len(base):]:
            raise ValueError("update() keys must not be empty")
        for second, _ in writes[index + 1:]:
            if paths_overlap(first, second):
                raise ValueError(
                    f"Overlapping paths in update: '{'/'.join(first)}' and '{'/'.join(second)}'"
                )
    return writes


def resolve_server_values(value: Any, timestamp: int) -> Any:
    """Replace SERVER_TIMESTAMP sentinels in a value tree."""
    if isinstance(value, dict):
        if value == SERVER_TIMESTAMP:
            return timestamp
        return {key: resolve_server_values(item, timestamp) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_server_values(item, timestamp) for item in value]
    return value


class Snapshot:
    """Immutable view of the value at a path at delivery time."""

    __slots__ = ("path", "_value")

    def __init__(self, path: str, value: Any):
        self.path = path
        self._value = value

    @property
    def key(self) -> Optional[str]:
        segments = split_path(self.path)
        return segments[-1] if segments else None

    def exists(self) -> bool:
        return self._value is not None

    def val(self) -> Any:
        return copy.deepcopy(self._value)

    def __repr__(self) -> str:
        return f"Snapshot({self.path!r}, {self._value!r})"


class OnDisconnect(ABC):
    """
    Write registered with the backend to run when this client disconnects.

    Registering again on the same path replaces the earlier registration.
    """

    @abstractmethod
    async def set(self, value: Any) -> None:
        pass

    @abstractmethod
    async def update(self, patch: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def remove(self) -> None:
        pass

    @abstractmethod
    async def cancel(self) -> None:
        pass


class StateStore(ABC):
    """
    Client handle on the shared realtime tree.

    Data operations are coroutines. ``subscribe`` delivers the current
    snapshot right away and then a fresh snapshot after every write that
    touches the subscribed path, including writes that change nothing.
    Callbacks may be plain functions or return an awaitable, which is
    scheduled on the running loop.
    """

    @property
    @abstractmethod
    def connected(self) -> bool:
        pass

    @abstractmethod
    async def get(self, path: str) -> Any:
        pass

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        pass

    @abstractmethod
    async def update(self, path: str, patch: Dict[str, Any]) -> None:
        pass

    async def remove(self, path: str) -> None:
        await self.set(path, None)

    @abstractmethod
    async def subscribe(self, path: str, callback: Callable[[Snapshot], Any]) -> Unsubscribe:
        pass

    @abstractmethod
    def on_disconnect(self, path: str) -> OnDisconnect:
        pass


class CallbackDispatcher:
    """
    Invokes subscriber callbacks without letting their failures escape.

    Awaitable results are wrapped in tasks that are tracked until they finish
    so that ``settle()`` can wait for the resulting cascade of writes.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Future] = set()

    def invoke(self, callback: Callable[[Snapshot], Any], snapshot: Snapshot) -> None:
        try:
            result = callback(snapshot)
        except Exception:
            logger.exception("Subscriber callback for '%s' failed", snapshot.path)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Subscriber task failed: %r", error, exc_info=error)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def settle(self) -> None:
        """Wait until no callback task is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ListenerGroup:
    """
    Collects unsubscribe handles so a session can tear all of them down at once.
    """

    def __init__(self):
        self._handles: List[Unsubscribe] = []

    def add(self, handle: Unsubscribe) -> Unsubscribe:
        self._handles.append(handle)
        return handle

    def __len__(self) -> int:
        return len(self._handles)

    def close(self) -> None:
        handles, self._handles = self._handles, []
        for handle in reversed(handles):
            try:
                handle()
            except Exception:
                logger.exception("Failed to detach listener")
