"""
Per-origin admission control: a concurrency cap plus minimum spacing between dispatches.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from sitecrawler.scope import Origin

logger = logging.getLogger(__name__)


class _OriginSlot:
    def __init__(self, capacity: int):
        self.semaphore = asyncio.Semaphore(capacity)
        self.lock = asyncio.Lock()
        self.last_dispatch: Optional[float] = None
        self.crawl_delay = 0.0
        self.paused_until = 0.0
        self.in_flight = 0
        self.dispatched = 0

    def ready_at(self, delay: float) -> float:
        ready = self.paused_until
        if self.last_dispatch is not None:
            ready = max(ready, self.last_dispatch + delay)
        return ready


class ThrottleTicket:
    """One in-flight request slot for an origin. Always released on exit."""

    def __init__(self, throttle: "DomainThrottle", origin: Origin):
        self.throttle = throttle
        self.origin = origin
        self.dispatched_at: Optional[float] = None

    async def __aenter__(self):
        self.dispatched_at = await self.throttle._admit(self.origin)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.throttle._release(self.origin)
        return False


class DomainThrottle:
    """
    FLOW: acquire(origin) -> waits for one of `max_per_origin` slots ->
    waits until last dispatch + effective delay (and any Retry-After pause) ->
    records the dispatch -> slot released when the ticket exits.

    effective delay = max(configured min_delay, robots crawl-delay for the origin).
    State is per origin; origins never wait on each other.
    """

    def __init__(
        self,
        max_per_origin: int = 2,
        min_delay: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_per_origin = max_per_origin
        self.min_delay = min_delay
        self.clock = clock
        self._slots: Dict[Origin, _OriginSlot] = {}

    def _slot(self, origin: Origin) -> _OriginSlot:
        slot = self._slots.get(origin)
        if slot is None:
            slot = self._slots.setdefault(origin, _OriginSlot(self.max_per_origin))
        return slot

    def acquire(self, origin: Origin) -> ThrottleTicket:
        return ThrottleTicket(self, origin)

    def effective_delay(self, origin: Origin) -> float:
        return max(self.min_delay, self._slot(origin).crawl_delay)

    def set_crawl_delay(self, origin: Origin, seconds: Optional[float]) -> None:
        if seconds is None:
            return
        self._slot(origin).crawl_delay = max(0.0, float(seconds))
        logger.info(f"[THROTTLE] {origin} crawl-delay set to {seconds}s (effective {self.effective_delay(origin)}s)")

    def pause(self, origin: Origin, seconds: float) -> None:
        """Hold every request to `origin` until `seconds` from now (server asked us to slow down)."""
        if seconds <= 0:
            return
        slot = self._slot(origin)
        until = self.clock() + seconds
        if until > slot.paused_until:
            logger.warning(f"[THROTTLE] {origin} asked to slow down. Setting ORIGIN-WIDE PAUSE for {seconds:.1f}s")
            slot.paused_until = until

    def remaining_pause(self, origin: Origin) -> float:
        return max(0.0, self._slot(origin).paused_until - self.clock())

    async def _admit(self, origin: Origin) -> float:
        slot = self._slot(origin)
        await slot.semaphore.acquire()
        try:
            async with slot.lock:
                while True:
                    wait = slot.ready_at(self.effective_delay(origin)) - self.clock()
                    if wait <= 0:
                        break
                    await asyncio.sleep(wait)
                slot.last_dispatch = self.clock()
                slot.in_flight += 1
                slot.dispatched += 1
                return slot.last_dispatch
        except BaseException:
            slot.semaphore.release()
            raise

    def _release(self, origin: Origin) -> None:
        slot = self._slot(origin)
        slot.in_flight -= 1
        slot.semaphore.release()

    def in_flight(self, origin: Origin) -> int:
        return self._slot(origin).in_flight

    def stats(self):
        return {
            str(origin): {"dispatched": slot.dispatched, "in_flight": slot.in_flight}
            for origin, slot in self._slots.items()
        }
