"""
HTTP fetching for the crawler.
One fetch = robots check -> throttled GET -> retry classification -> link extraction.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple, Union
from urllib.parse import urljoin

import httpx

from sitecrawler.core import USER_AGENT
from sitecrawler.errors import REASON_CANCELLED, REASON_ROBOTS, InvalidUrl, UnsupportedScheme, http_error, transport_error
from sitecrawler.events import (
    FETCH_ATTEMPTED,
    FETCH_FAILED,
    FETCH_RETRIED,
    FETCH_SUCCEEDED,
    EventBus,
)
from sitecrawler.models import PageResult
from sitecrawler.parser import extract_links, is_html
from sitecrawler.retry import (
    RETRY_AFTER_STATUSES,
    FetchOutcome,
    GiveUp,
    RetryAfter,
    RetryPolicy,
    RetryState,
)
from sitecrawler.robots import AllowAllGate, PolitenessGate
from sitecrawler.scope import CrawlTarget, Origin, normalize
from sitecrawler.throttle import DomainThrottle

logger = logging.getLogger(__name__)

# Same bound as common browsers and HTTP clients
MAX_REDIRECTS = 10

ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def _transport_kind(exc: httpx.RequestError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.ConnectError):
        return "connect"
    if isinstance(exc, httpx.TransportError):
        return "transport"
    return "request"


class Fetcher:
    """
    FLOW: Checks the politeness gate before every attempt -> Acquires a throttle
    ticket for the request only -> Classifies the outcome with RetryPolicy ->
    Sleeps the backoff (ticket released) and retries -> Follows redirects in place
    while the frontier lets it claim each new hop -> Extracts and normalizes links
    against the final URL.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        throttle: DomainThrottle,
        retry_policy: RetryPolicy,
        user_agent: str = USER_AGENT,
        events: Optional[EventBus] = None,
        gate: Optional[Union[PolitenessGate, AllowAllGate]] = None,
        claim: Optional[Callable[[CrawlTarget], bool]] = None,
    ):
        self.client = client
        self.throttle = throttle
        self.retry_policy = retry_policy
        self.headers = {"User-Agent": user_agent, "Accept": ACCEPT}
        self.events = events or EventBus()
        self.gate = gate or AllowAllGate()
        self.claim = claim

    async def _attempt(self, url: str, origin: Origin, state: RetryState) -> Tuple[Optional[httpx.Response], FetchOutcome]:
        self.events.emit(FETCH_ATTEMPTED, url=url, attempt=state.attempt + 1)
        try:
            async with self.throttle.acquire(origin):
                response = await self.client.get(url, headers=self.headers, follow_redirects=False)
        except httpx.RequestError as e:
            kind = _transport_kind(e)
            logger.warning(f"[FETCH] {kind} error for {url}: {e!r}")
            return None, FetchOutcome.transport(kind)
        return response, FetchOutcome.http(response.status_code, response.headers.get("Retry-After"))

    async def _backoff(self, url: str, origin: Origin, outcome: FetchOutcome, decision: RetryAfter, state: RetryState):
        cause = transport_error(outcome.error) if outcome.error else http_error(outcome.status)
        if outcome.status in RETRY_AFTER_STATUSES:
            self.throttle.pause(origin, decision.delay)
        state.record(decision.delay)
        logger.warning(
            f"[RETRY {state.attempt}/{self.retry_policy.max_retries}] {cause} for {url}. "
            f"Waiting {decision.delay:.2f}s...",
            extra={"context": str(origin)},
        )
        self.events.emit(FETCH_RETRIED, url=url, attempt=state.attempt, delay=decision.delay, cause=cause)
        await asyncio.sleep(decision.delay)

    async def fetch(self, target: CrawlTarget, discovered_from: Optional[str] = None, deadline: Optional[float] = None) -> PageResult:
        start = time.monotonic()
        state = RetryState(deadline=deadline)
        current, request_url, redirects = target, target.url, 0

        def elapsed_ms():
            return int((time.monotonic() - start) * 1000)

        while True:
            if not await self.gate.is_allowed(current):
                logger.info(f"[ROBOTS] Disallowed: {current.url}")
                return PageResult.skipped(
                    target, REASON_ROBOTS,
                    attempts=state.attempt, discovered_from=discovered_from, elapsed_ms=elapsed_ms(),
                )

            response, outcome = await self._attempt(request_url, current.origin, state)
            decision = self.retry_policy.classify(outcome, state)
            if isinstance(decision, RetryAfter):
                await self._backoff(request_url, current.origin, outcome, decision, state)
                continue
            if isinstance(decision, GiveUp) or not response.is_redirect:
                break

            hop = await self._follow(response, current, redirects)
            if hop is None:
                break
            request_url, current = hop
            redirects += 1

        if isinstance(decision, GiveUp):
            if decision.reason == REASON_CANCELLED:
                logger.info(f"Giving up on {target.url}: next retry would outlive the crawl deadline")
            else:
                logger.warning(f"Fetch failed for {target.url}: {decision.reason}")
            self.events.emit(FETCH_FAILED, url=target.url, reason=decision.reason, status=outcome.status, error=outcome.error)
            return PageResult.failed(
                target, decision.reason,
                http_status=outcome.status, attempts=state.attempt + 1,
                discovered_from=discovered_from, elapsed_ms=elapsed_ms(),
            )

        final_url = str(response.url)
        links = await self._links(response, final_url)
        self.events.emit(FETCH_SUCCEEDED, url=target.url, status=response.status_code, links=len(links), final_url=final_url)
        return PageResult.success(
            target, links,
            http_status=response.status_code, attempts=state.attempt + 1,
            discovered_from=discovered_from, elapsed_ms=elapsed_ms(),
            final_url=final_url if redirects else None,
        )

    async def _follow(self, response: httpx.Response, current: CrawlTarget, redirects: int) -> Optional[Tuple[str, CrawlTarget]]:
        """
        Next hop of a redirect chain, or None to stop and report the redirect itself.
        A hop to the same normalized target (/docs -> /docs/) is always followed.
        A hop to a new target is followed only when robots allows it and the frontier
        lets this page claim it.
        """
        location = response.headers.get("Location")
        if not location:
            return None
        if redirects >= MAX_REDIRECTS:
            logger.warning(f"[REDIRECT] Giving up after {redirects} redirects at {response.url}")
            return None
        hop_url = urljoin(str(response.url), location.strip())
        try:
            hop = normalize(hop_url)
        except InvalidUrl:
            return None

        if hop != current:
            if self.claim is None or not await self.gate.is_allowed(hop):
                return None
            if not self.claim(hop):
                return None
            logger.debug(f"[REDIRECT] {current.url} -> {hop.url}")
        return hop_url, hop

    async def _links(self, response: httpx.Response, base_url: str) -> List[CrawlTarget]:
        if response.is_redirect:
            # Unfollowed redirects report their Location so the frontier decides what happens to it
            location = response.headers.get("Location")
            raw_links = [location] if location else []
        elif 200 <= response.status_code < 300 and is_html(response.headers.get("Content-Type", "")):
            raw_links = await asyncio.to_thread(extract_links, response.content, base_url)
        else:
            raw_links = []

        links, seen = [], set()
        for raw in raw_links:
            try:
                link = normalize(raw, base=base_url)
            except UnsupportedScheme:
                continue
            except InvalidUrl as e:
                logger.debug(f"Dropping link on {base_url}: {e}")
                continue
            if link not in seen:
                seen.add(link)
                links.append(link)
        return links

    async def fetch_robots(self, origin: Origin) -> Optional[bytes]:
        """GET /robots.txt for an origin. Bypasses the politeness gate; None on any failure."""
        url = origin.robots_url
        state = RetryState()
        while True:
            response, outcome = await self._attempt(url, origin, state)
            decision = self.retry_policy.classify(outcome, state)
            if isinstance(decision, RetryAfter):
                await self._backoff(url, origin, outcome, decision, state)
                continue
            break

        if response is None or not 200 <= response.status_code < 300:
            status = response.status_code if response is not None else outcome.error
            logger.info(f"[ROBOTS] {url} unavailable ({status})")
            return None
        return response.content
