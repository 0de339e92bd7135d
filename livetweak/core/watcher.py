"""
Change-notification watcher with trailing-edge debounce.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

from ..host.base import Host, MutationFilter, Subscription

logger = logging.getLogger(__name__)


class Watcher:
    """
    Turns bursts of tree mutations into single change signals.

    Every qualifying mutation restarts the debounce timer; ``on_change`` runs
    once the window passes without further mutations. ``on_change`` may be a
    plain function or a coroutine function. Whatever it raises is logged and
    the subscription stays in place.
    """

    def __init__(self, host: Host, on_change: Callable[[], Any], root: str = "body",
                 mutation_filter: Optional[MutationFilter] = None, debounce_ms: int = 200):
        self.host = host
        self.on_change = on_change
        self.root = root
        self.mutation_filter = mutation_filter or MutationFilter()
        self.debounce_ms = debounce_ms
        self.fired = 0
        self._subscription: Optional[Subscription] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Future] = set()

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._subscription = await self.host.observe(self.root, self.mutation_filter, self._on_mutation)
        logger.info(f"Watching '{self.root}' (debounce {self.debounce_ms}ms)")

    async def stop(self) -> None:
        """Release the subscription and drop any pending signal."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._subscription is not None:
            await self._subscription.disconnect()
            self._subscription = None
        for task in list(self._tasks):
            task.cancel()

    def _on_mutation(self, count: int) -> None:
        if self._loop is None:
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(self.debounce_ms / 1000, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self.fired += 1
        try:
            result = self.on_change()
        except Exception:
            logger.exception("Change callback failed")
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
            logger.error("Change callback failed", exc_info=error)
