"""
Retry classification with exponential backoff.

RetryPolicy.classify is a decision function only: the fetcher owns the loop,
the sleep and the RetryState it threads through each attempt.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, List, Optional, Union

from sitecrawler.errors import REASON_CANCELLED, REASON_RETRIES_EXHAUSTED, http_error

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})
RETRY_AFTER_STATUSES = frozenset({429, 503})

# Upper bound of the multiplicative jitter; must stay below the backoff base (2)
# so that jittered delays never decrease from one attempt to the next.
JITTER_SPREAD = 0.5


@dataclass(frozen=True)
class FetchOutcome:
    """Either an HTTP status (with its Retry-After header, if any) or a transport error kind."""
    status: Optional[int] = None
    error: Optional[str] = None
    retry_after: Optional[str] = None

    @classmethod
    def http(cls, status: int, retry_after: Optional[str] = None) -> "FetchOutcome":
        return cls(status=status, retry_after=retry_after)

    @classmethod
    def transport(cls, kind: str) -> "FetchOutcome":
        return cls(error=kind)

    @property
    def retryable(self) -> bool:
        return self.error is not None or self.status in RETRYABLE_STATUSES


@dataclass(frozen=True)
class Proceed:
    pass


@dataclass(frozen=True)
class RetryAfter:
    delay: float


@dataclass(frozen=True)
class GiveUp:
    reason: str


Decision = Union[Proceed, RetryAfter, GiveUp]

PROCEED = Proceed()


@dataclass
class RetryState:
    """
    Attempt bookkeeping for one fetch sequence.
    attempt = retries already performed; deadline is a monotonic timestamp.
    """
    attempt: int = 0
    deadline: Optional[float] = None
    delays: List[float] = field(default_factory=list)

    @property
    def last_delay(self) -> float:
        return self.delays[-1] if self.delays else 0.0

    def record(self, delay: float) -> None:
        self.attempt += 1
        self.delays.append(delay)


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header: delta-seconds or an HTTP-date.
    Returns seconds to wait (>= 0) or None when absent/unparseable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.isdigit():
        return float(int(value))
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class RetryPolicy:
    """
    FLOW: Terminal statuses -> Proceed / GiveUp(http_error) ->
    Retryable outcome -> attempt cap -> Retry-After or jittered exponential backoff ->
    no shorter than the previous delay -> deadline guard -> RetryAfter(delay).
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        max_delay: float = 60.0,
        max_retries: int = 5,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries
        self.rng = rng or random.Random()
        self.clock = clock

    def backoff(self, attempt: int) -> float:
        """base * 2^attempt scaled by jitter in [1, 1 + JITTER_SPREAD), capped at max_delay."""
        jitter = 1.0 + JITTER_SPREAD * self.rng.random()
        return min(self.max_delay, self.base_delay * (2 ** attempt) * jitter)

    def classify(self, outcome: FetchOutcome, state: RetryState) -> Decision:
        if not outcome.retryable:
            if outcome.status is not None and outcome.status >= 400:
                return GiveUp(http_error(outcome.status))
            return PROCEED

        if state.attempt >= self.max_retries:
            return GiveUp(REASON_RETRIES_EXHAUSTED)

        delay = None
        if outcome.status in RETRY_AFTER_STATUSES:
            delay = parse_retry_after(outcome.retry_after)
        if delay is None:
            delay = self.backoff(state.attempt)
        # Never wait less than the previous retry did, even after a Retry-After
        delay = min(self.max_delay, max(delay, state.last_delay))

        if state.deadline is not None and self.clock() + delay > state.deadline:
            return GiveUp(REASON_CANCELLED)
        return RetryAfter(delay)
