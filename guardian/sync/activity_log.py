"""
Family activity log: a bounded ring buffer under families/{id}/logs.
"""

import logging
from typing import Any, Callable, List, Optional

from guardian import config, paths
from guardian.errors import WriteError
from guardian.models import LogEntry, LogKind
from guardian.store.base import Snapshot, StateStore, Unsubscribe, join_path
from guardian.utils.time import Clock, now_ms

logger = logging.getLogger(__name__)


def _entries(value: Any) -> List[LogEntry]:
    """Parse a logs subtree, newest first."""
    if not isinstance(value, dict):
        return []
    entries = []
    for key in sorted(value, key=_sort_key, reverse=True):
        try:
            entries.append(LogEntry.model_validate(value[key]))
        except ValueError:
            logger.debug("Skipping malformed log entry %s", key)
    return entries


def _sort_key(key: str):
    return (0, int(key)) if key.isdigit() else (1, key)


class ActivityLog:
    """
    Append-only log keyed by timestamp, pruned to the newest ``limit`` entries
    after each append.

    Keys are strictly increasing per writer, so two appends within the same
    millisecond never overwrite each other.
    """

    def __init__(
        self,
        store: StateStore,
        family_id: str,
        clock: Clock = now_ms,
        limit: int = config.LOG_LIMIT
    ):
        self._store = store
        self._path = paths.logs(family_id)
        self._clock = clock
        self._limit = limit
        self._last_key = 0

    async def append(self, message: str, kind: LogKind = LogKind.INFO, title: str = None) -> Optional[int]:
        """
        Append an entry and prune. Returns the entry key, or None when the
        store rejected the write (the failure is logged).
        """
        key = max(self._clock(), self._last_key + 1)
        self._last_key = key
        entry = LogEntry(message=message, timestamp=key, kind=kind, title=title)

        try:
            await self._store.set(join_path(self._path, str(key)), entry.to_wire())
            await self._prune()
        except WriteError as e:
            logger.warning("Activity log append failed: %s", e)
            return None
        return key

    async def _prune(self) -> None:
        current = await self._store.get(self._path)
        if not isinstance(current, dict) or len(current) <= self._limit:
            return
        keys = sorted(current, key=_sort_key)
        excess = keys[:len(keys) - self._limit]
        await self._store.update(self._path, {key: None for key in excess})

    async def entries(self) -> List[LogEntry]:
        return _entries(await self._store.get(self._path))

    async def subscribe(self, callback: Callable[[List[LogEntry]], Any]) -> Unsubscribe:
        """Deliver the full entry list, newest first, on every change."""

        def on_logs(snapshot: Snapshot):
            return callback(_entries(snapshot.val()))

        return await self._store.subscribe(self._path, on_logs)
