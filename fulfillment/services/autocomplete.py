"""
Auto-Completion Schedulers

After an order turns `ready` it is completed automatically once a short
grace delay has passed (the ready state stays visible on the displays for
that long). Two implementations:

    - AsyncioAutoCompleter: in-process asyncio task (development, tests)
    - CeleryAutoCompleter: Celery task with a countdown (staging, production)

Neither retries. If the completion write fails the order stays `ready`, the
failure is logged and recorded in the order history, and staff complete it
by hand.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Awaitable, Callable, Dict

from fulfillment.core.config import get_settings

logger = logging.getLogger(__name__)

CompleteCallback = Callable[[str], Awaitable[object]]


class BaseAutoCompleter(ABC):
    """Schedules the ready -> completed step for one order."""

    def __init__(self, delay_seconds: float):
        self.delay_seconds = delay_seconds

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    def schedule(self, order_id: str, complete: CompleteCallback) -> None:
        """
        Arrange for `complete(order_id)` to run after the grace delay.

        Args:
            order_id: Order that just became ready
            complete: Coroutine function performing the completion step
        """
        pass

    async def shutdown(self) -> None:
        """Release any pending work. Default: nothing to do."""


class AsyncioAutoCompleter(BaseAutoCompleter):
    """Runs the completion step as a task on the running event loop."""

    def __init__(self, delay_seconds: float):
        super().__init__(delay_seconds)
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def provider_name(self) -> str:
        return "asyncio"

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, order_id: str, complete: CompleteCallback) -> None:
        if order_id in self._tasks:
            logger.debug(f"Auto-completion already pending for order {order_id}")
            return
        task = asyncio.create_task(self._run(order_id, complete))
        self._tasks[order_id] = task
        task.add_done_callback(lambda _t, oid=order_id: self._tasks.pop(oid, None))

    async def _run(self, order_id: str, complete: CompleteCallback) -> None:
        await asyncio.sleep(self.delay_seconds)
        try:
            await complete(order_id)
        except Exception:
            # complete() records its own failures; this only guards the task
            logger.exception(f"Auto-completion task for order {order_id} crashed")

    async def drain(self) -> None:
        """Wait for every scheduled completion to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks.values()):
            task.cancel()
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        self._tasks.clear()


class CeleryAutoCompleter(BaseAutoCompleter):
    """Enqueues the completion step on the Celery worker with a countdown."""

    @property
    def provider_name(self) -> str:
        return "celery"

    def schedule(self, order_id: str, complete: CompleteCallback) -> None:
        from fulfillment.tasks import complete_ready_order

        result = complete_ready_order.apply_async(args=[order_id], countdown=self.delay_seconds)
        logger.debug(f"Auto-completion for order {order_id} queued as task {result.id}")


@lru_cache()
def get_auto_completer() -> BaseAutoCompleter:
    """Get the configured auto-completer (cached)."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Auto-completion: Using CeleryAutoCompleter ({settings.env_mode.value} mode)")
        return CeleryAutoCompleter(settings.auto_complete_delay_seconds)
    logger.info("Auto-completion: Using AsyncioAutoCompleter (development mode)")
    return AsyncioAutoCompleter(settings.auto_complete_delay_seconds)


def reset_auto_completer() -> None:
    get_auto_completer.cache_clear()
