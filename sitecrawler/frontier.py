"""
Thread-safe frontier for the crawler.
Manages the queue of targets to crawl and the set of claimed targets.
Ensures no target is fetched twice.
"""

import logging
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from sitecrawler.policy import URLPolicy
from sitecrawler.scope import CrawlScope, CrawlTarget

logger = logging.getLogger(__name__)

ENQUEUED = "enqueued"
DUPLICATE = "duplicate"
OUT_OF_SCOPE = "out_of_scope"
POLICY_SKIPPED = "policy_skipped"
REDIRECT_CLAIMED = "redirect_claimed"


@dataclass(frozen=True)
class FrontierEntry:
    target: CrawlTarget
    discovered_from: Optional[str] = None


class Frontier:
    """
    FLOW: Filters by scope and URL policy -> Claims and queues a target in one
    critical section -> Hands targets out in FIFO (breadth-first) order.

    A target enters `claimed` exactly once, at admission. That reservation is what
    stops two tasks discovering the same link from both fetching it. `dispatched`
    records which claimed targets have been handed to a fetch task.
    """

    def __init__(self, scope: CrawlScope, policy: Optional[URLPolicy] = None):
        self.scope = scope
        self.policy = policy or URLPolicy()
        self.queue = deque()
        self.claimed = set()
        self.dispatched = set()
        self.lock = Lock()
        self.counters = {ENQUEUED: 0, DUPLICATE: 0, OUT_OF_SCOPE: 0, POLICY_SKIPPED: 0, REDIRECT_CLAIMED: 0}

    def enqueue(self, target: CrawlTarget, discovered_from: Optional[str] = None, force: bool = False) -> str:
        """
        Returns:
        - "enqueued" if this call claimed the target
        - "duplicate" if it was already claimed
        - "out_of_scope" if the host is not part of the seed's site
        - "policy_skipped" if URLPolicy rejected it (assets)

        force=True skips the scope/policy filters (the seed is always admitted).
        """
        if not force:
            if not self.scope.in_scope(target):
                return self._count(OUT_OF_SCOPE)
            if not self.policy.should_crawl(target):
                return self._count(POLICY_SKIPPED)

        with self.lock:
            if target in self.claimed:
                self.counters[DUPLICATE] += 1
                return DUPLICATE
            self.claimed.add(target)
            self.queue.append(FrontierEntry(target, discovered_from))
            self.counters[ENQUEUED] += 1

        logger.debug(f"enqueue: queued {target.url} (discovered_from={discovered_from}) qsize={len(self.queue)}")
        return ENQUEUED

    def claim_redirect(self, target: CrawlTarget) -> str:
        """
        Claim a redirect destination that is being fetched in place by the page
        that reached it. Same filters as enqueue(); the target is marked dispatched
        and never queued. Returns "redirect_claimed" or the enqueue() rejection status.
        """
        if not self.scope.in_scope(target):
            return self._count(OUT_OF_SCOPE)
        if not self.policy.should_crawl(target):
            return self._count(POLICY_SKIPPED)

        with self.lock:
            if target in self.claimed:
                self.counters[DUPLICATE] += 1
                return DUPLICATE
            self.claimed.add(target)
            self.dispatched.add(target)
            self.counters[REDIRECT_CLAIMED] += 1
        return REDIRECT_CLAIMED

    def try_claim(self, target: CrawlTarget, discovered_from: Optional[str] = None) -> bool:
        """True iff this call won the claim for `target` (and queued it)."""
        return self.enqueue(target, discovered_from) == ENQUEUED

    def dequeue(self) -> Optional[FrontierEntry]:
        with self.lock:
            if not self.queue:
                return None
            entry = self.queue.popleft()
            self.dispatched.add(entry.target)
        return entry

    def is_claimed(self, target: CrawlTarget) -> bool:
        with self.lock:
            return target in self.claimed

    def _count(self, status: str) -> str:
        with self.lock:
            self.counters[status] += 1
        return status

    def __len__(self):
        with self.lock:
            return len(self.queue)

    def get_stats(self):
        with self.lock:
            return {
                "queued": len(self.queue),
                "claimed": len(self.claimed),
                "dispatched": len(self.dispatched),
                **self.counters,
            }
