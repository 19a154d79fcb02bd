"""
Hook points for observers (metrics, progress output, tracing exporters).

Events are plain dicts with a "type" key, e.g.
{"type": "fetch_retried", "url": ..., "attempt": 2, "delay": 1.3, "cause": "http_error:503"}.
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

CRAWL_STARTED = "crawl_started"
FETCH_ATTEMPTED = "fetch_attempted"
FETCH_RETRIED = "fetch_retried"
FETCH_SUCCEEDED = "fetch_succeeded"
FETCH_FAILED = "fetch_failed"
PAGE_VISITED = "page_visited"
CRAWL_TERMINATED = "crawl_terminated"

Event = Dict[str, Any]


class EventBus:
    def __init__(self):
        self._subscribers: List[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event_type: str, **fields) -> None:
        event = {"type": event_type, **fields}
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # observers never abort the crawl
                logger.exception(f"event subscriber failed on {event_type}")
