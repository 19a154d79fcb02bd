"""
FILE DESCRIPTION: Crawl orchestration: fetch task pool, frontier draining, termination.
KEY FUNCTIONS/CLASSES: Crawler, run
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from sitecrawler.core import CrawlConfig
from sitecrawler.errors import REASON_CANCELLED, CrawlConfigError, InvalidUrl
from sitecrawler.events import CRAWL_STARTED, CRAWL_TERMINATED, PAGE_VISITED, EventBus
from sitecrawler.fetcher import Fetcher
from sitecrawler.frontier import ENQUEUED, REDIRECT_CLAIMED, Frontier, FrontierEntry
from sitecrawler.models import CrawlReport, PageResult, PageStatus, TerminationReason
from sitecrawler.retry import RetryPolicy
from sitecrawler.robots import AllowAllGate, PolitenessGate
from sitecrawler.scope import CrawlScope, canonicalize_seed, normalize
from sitecrawler.throttle import DomainThrottle

logger = logging.getLogger(__name__)


class Crawler:
    """
    FLOW: Normalizes the seed and claims it -> Spawns fetch tasks up to the global cap
    and the page budget -> Waits for the first completion or the deadline ->
    Emits each PageResult and feeds its links back into the frontier ->
    Stops on frontier exhaustion, page budget, deadline or stop().
    """

    def __init__(self, config: CrawlConfig, client: Optional[httpx.AsyncClient] = None, sink=None, events: Optional[EventBus] = None):
        self.config = config.validate()
        try:
            self.seed = normalize(canonicalize_seed(config.seed))
        except InvalidUrl as e:
            raise CrawlConfigError(f"Invalid seed URL {config.seed!r}: {e}") from e

        self.events = events or EventBus()
        self.sink = sink
        self.scope = CrawlScope(self.seed)
        self.frontier = Frontier(self.scope)
        self.throttle = DomainThrottle(config.max_per_origin, config.request_delay)
        self.retry_policy = RetryPolicy(config.retry_base_delay, config.max_backoff, config.max_retries)

        self._client = client
        self._owns_client = client is None
        self._stop = asyncio.Event()
        self._deadline_dropped = False
        self.fetcher: Optional[Fetcher] = None

    def stop(self) -> None:
        """External cancellation: stop spawning and cancel in-flight fetches."""
        self._stop.set()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.request_timeout,
            headers={"User-Agent": self.config.user_agent},
            limits=httpx.Limits(max_connections=self.config.max_concurrency),
        )

    def _build_fetcher(self, client: httpx.AsyncClient) -> Fetcher:
        fetcher = Fetcher(
            client, self.throttle, self.retry_policy, self.config.user_agent, self.events,
            claim=lambda target: self.frontier.claim_redirect(target) == REDIRECT_CLAIMED,
        )
        if self.config.ignore_robots:
            fetcher.gate = AllowAllGate()
        else:
            fetcher.gate = PolitenessGate(fetcher.fetch_robots, self.config.user_agent, self.throttle.set_crawl_delay)
        return fetcher

    async def _visit(self, entry: FrontierEntry, deadline: Optional[float]) -> PageResult:
        try:
            return await self.fetcher.fetch(entry.target, entry.discovered_from, deadline=deadline)
        except Exception as e:
            logger.exception(f"Process error for {entry.target.url}: {e}", extra={"context": str(entry.target.origin)})
            return PageResult.failed(entry.target, f"error:{type(e).__name__}", discovered_from=entry.discovered_from)

    def _handle(self, report: CrawlReport, result: PageResult) -> None:
        if result.status is PageStatus.FAILED and result.reason == REASON_CANCELLED:
            logger.info(f"Dropping {result.url}: backoff would outlive the crawl deadline")
            self._deadline_dropped = True
            return

        report.pages.append(result)
        if result.status is PageStatus.SUCCESS:
            for link in result.links:
                if self.frontier.enqueue(link, discovered_from=result.url) == ENQUEUED:
                    logger.debug(f"Discovered {link.url} on {result.url}")

        if self.sink is not None:
            self.sink.emit(result)
        self.events.emit(
            PAGE_VISITED, url=result.url, status=result.status.value,
            reason=result.reason, http_status=result.http_status, links=len(result.links),
            count=len(report.pages),
        )

    async def crawl(self) -> CrawlReport:
        client = self._client or self._build_client()
        self.fetcher = self._build_fetcher(client)
        report = CrawlReport(seed=self.seed)

        self.frontier.enqueue(self.seed, force=True)
        logger.info(f"Crawl started at {self.seed.url} (scope={sorted(self.scope.hosts)})")
        self.events.emit(CRAWL_STARTED, url=self.seed.url, config=self.config)

        start = time.monotonic()
        deadline = start + self.config.max_time if self.config.max_time else None
        max_pages = self.config.max_pages
        in_flight = set()
        dispatched = 0
        reason = None

        try:
            while reason is None:
                if self._stop.is_set():
                    reason = TerminationReason.CANCELLED
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    reason = TerminationReason.MAX_TIME
                    break

                while len(in_flight) < self.config.max_concurrency and (max_pages is None or dispatched < max_pages):
                    entry = self.frontier.dequeue()
                    if entry is None:
                        break
                    in_flight.add(asyncio.create_task(self._visit(entry, deadline), name=entry.target.url))
                    dispatched += 1

                if not in_flight:
                    if self._deadline_dropped:
                        # A page was given up on because of the deadline, so the crawl is incomplete
                        reason = TerminationReason.MAX_TIME
                    elif max_pages is not None and dispatched >= max_pages and len(self.frontier):
                        reason = TerminationReason.MAX_PAGES
                    else:
                        reason = TerminationReason.COMPLETED
                    break

                stop_waiter = asyncio.create_task(self._stop.wait())
                timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    done, _ = await asyncio.wait(in_flight | {stop_waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    stop_waiter.cancel()

                for task in done:
                    if task is stop_waiter:
                        continue
                    in_flight.discard(task)
                    self._handle(report, task.result())
        except asyncio.CancelledError:
            reason = TerminationReason.CANCELLED
            raise
        finally:
            await self._cancel_all(in_flight)
            if self._owns_client:
                await client.aclose()
            report.reason = reason or TerminationReason.CANCELLED
            report.elapsed = time.monotonic() - start
            report.stats = {
                **self.frontier.get_stats(),
                "pages": len(report.pages),
                "in_flight_cancelled": len(in_flight),
            }
            logger.info(
                f"Crawl finished: {report.reason.value} after {report.elapsed:.1f}s, "
                f"{len(report.pages)} pages, {len(self.frontier)} left in frontier"
            )
            self.events.emit(CRAWL_TERMINATED, reason=report.reason.value, pages=len(report.pages), elapsed=report.elapsed)

        return report

    async def _cancel_all(self, tasks) -> None:
        """Cancel in-flight fetches; their partial results are dropped, never emitted."""
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def run(config: CrawlConfig, sink=None, events: Optional[EventBus] = None) -> CrawlReport:
    """Blocking entry point used by the CLI."""
    crawler = Crawler(config, sink=sink, events=events)
    return asyncio.run(crawler.crawl())
