"""
Repeating local alert.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from guardian import config

logger = logging.getLogger(__name__)


class AlertLoop:
    """
    Calls ``impulse`` every ``interval`` seconds until stopped.

    ``start`` cancels a running loop before starting a new one, so at most
    one loop is ever active.
    """

    def __init__(self, impulse: Callable[[], Any], interval: float = config.SOS_ALERT_INTERVAL_SECONDS):
        self._impulse = impulse
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self.active_loops = 0
        self.impulses = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        async with self._lock:
            await self._cancel()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        async with self._lock:
            await self._cancel()

    async def _cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        # a cancel aimed at the caller still propagates
        await asyncio.wait({task})

    async def _run(self) -> None:
        self.active_loops += 1
        try:
            while True:
                try:
                    result = self._impulse()
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Alert impulse failed")
                self.impulses += 1
                await asyncio.sleep(self._interval)
        finally:
            self.active_loops -= 1
