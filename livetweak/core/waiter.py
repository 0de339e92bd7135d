"""
Waiting for elements that have not appeared yet.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set

from ..host.base import Element, Host, MutationFilter, Subscription
from .lookup import Lookup, find

logger = logging.getLogger(__name__)


class WaitState(Enum):
    PENDING = "pending"
    FOUND = "found"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class WaitOutcome:
    state: WaitState
    lookup: Lookup
    element: Optional[Element] = None
    elapsed_ms: float = 0.0

    @property
    def found(self) -> bool:
        return self.state is WaitState.FOUND


class WaitRequest:
    """A single wait for ``lookup``, resolved at most once."""

    def __init__(self, lookup: Lookup, timeout_ms: int):
        self.lookup = lookup
        self.timeout_ms = timeout_ms
        self.state = WaitState.PENDING
        self._cancelled = False
        self._changed: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        """Resolve the request early as CANCELLED, releasing its subscription."""
        if self.state is not WaitState.PENDING:
            return
        self._cancelled = True
        if self._changed is not None:
            self._changed.set()

    def _notify(self, count: int) -> None:
        if self._changed is not None:
            self._changed.set()


class ElementWaiter:
    """
    Resolves lookups that may only match after the tree changes.

    Each pending wait owns one temporary subscription on ``root``; the
    subscription is released however the wait ends (found, timed out,
    cancelled, or the awaiting task itself being cancelled). The timeout
    covers the initial lookup and the subscribe call as well, so a slow host
    does not stretch a wait past its bound.
    """

    def __init__(self, host: Host, root: str = "body", mutation_filter: Optional[MutationFilter] = None):
        self.host = host
        self.root = root
        self.mutation_filter = mutation_filter or MutationFilter()
        self._pending: Set[WaitRequest] = set()
        self._releasing: Set[asyncio.Future] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request(self, lookup: Lookup, timeout_ms: int) -> WaitRequest:
        return WaitRequest(lookup, timeout_ms)

    async def wait_for(self, lookup: Lookup, timeout_ms: int) -> WaitOutcome:
        """Wait up to ``timeout_ms`` for ``lookup`` to match."""
        return await self.wait(self.request(lookup, timeout_ms))

    async def wait(self, request: WaitRequest) -> WaitOutcome:
        if request.state is not WaitState.PENDING:
            raise RuntimeError(f"Wait for '{request.lookup.describe()}' already resolved")

        started = asyncio.get_running_loop().time()
        if request._cancelled:
            return self._resolve(request, WaitState.CANCELLED, None, started)

        request._changed = asyncio.Event()
        subscribing: List[asyncio.Future] = []
        self._pending.add(request)
        try:
            element = await asyncio.wait_for(self._watch(request, subscribing), request.timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.debug(f"Element not found within {request.timeout_ms}ms: {request.lookup.describe()}")
            return self._resolve(request, WaitState.TIMED_OUT, None, started)
        finally:
            self._pending.discard(request)
            if subscribing:
                await self._release(subscribing[0])

        if element is None:
            logger.debug(f"Wait cancelled: {request.lookup.describe()}")
            return self._resolve(request, WaitState.CANCELLED, None, started)
        logger.debug(f"Element found: {request.lookup.describe()}")
        return self._resolve(request, WaitState.FOUND, element, started)

    async def _watch(self, request: WaitRequest, subscribing: List[asyncio.Future]) -> Optional[Element]:
        element = await find(self.host, request.lookup)
        if element is not None or request._cancelled:
            return element

        # Shielded so a timeout during the subscribe call still leaves a
        # subscription object to release.
        subscribing.append(asyncio.ensure_future(
            self.host.observe(self.root, self.mutation_filter, request._notify)
        ))
        await asyncio.shield(subscribing[0])

        # The first pass covers changes between the initial lookup and the
        # subscription being installed.
        while True:
            if request._cancelled:
                return None
            element = await find(self.host, request.lookup)
            if element is not None:
                return element
            await request._changed.wait()
            request._changed.clear()

    async def _release(self, subscribing: asyncio.Future) -> None:
        if subscribing.done():
            subscription = self._subscription_of(subscribing)
            if subscription is not None:
                await subscription.disconnect()
        else:
            subscribing.add_done_callback(self._release_late)

    def _release_late(self, subscribing: asyncio.Future) -> None:
        subscription = self._subscription_of(subscribing)
        if subscription is None:
            return
        task = asyncio.ensure_future(subscription.disconnect())
        self._releasing.add(task)
        task.add_done_callback(self._releasing.discard)

    @staticmethod
    def _subscription_of(subscribing: asyncio.Future) -> Optional[Subscription]:
        if subscribing.cancelled():
            return None
        if subscribing.exception() is not None:
            logger.debug(f"Subscribing for a wait failed: {subscribing.exception()}")
            return None
        return subscribing.result()

    @staticmethod
    def _resolve(request: WaitRequest, state: WaitState, element: Optional[Element],
                 started: float) -> WaitOutcome:
        request.state = state
        elapsed = (asyncio.get_running_loop().time() - started) * 1000
        return WaitOutcome(state, request.lookup, element, elapsed)
