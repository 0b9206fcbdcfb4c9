"""
Fixed-interval polling.

Displays learn about changes made by other displays only by re-fetching the
order collection, so the worst-case staleness of a display is one interval.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollingTask:
    """
    Calls `callback` immediately, then every `interval` seconds, until stopped.

    Callback errors are logged and polling continues; a display that loses
    the network recovers on the first successful poll.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        interval: float,
        name: str = "poll",
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self.interval = interval
        self.name = name
        self.ticks = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.debug(f"Polling '{self.name}' started every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug(f"Polling '{self.name}' stopped after {self.ticks} ticks")

    async def _loop(self) -> None:
        while True:
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                logger.warning(f"Polling '{self.name}' failed: {e}")
            self.ticks += 1
            await asyncio.sleep(self.interval)
