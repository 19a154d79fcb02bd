"""
robots.txt handling: parsing into a rules object and the per-origin politeness gate.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional
from urllib import robotparser

from sitecrawler.scope import CrawlTarget, Origin

logger = logging.getLogger(__name__)

MALFORMED_HINTS = ("<!doctype html", "<html", "<head", "<body")


class RobotRules:
    """Answers allowed(path, user_agent) and delay(user_agent) for one origin."""

    def __init__(self, parser: Optional[robotparser.RobotFileParser] = None):
        self._parser = parser

    @property
    def allow_all(self) -> bool:
        return self._parser is None

    def allowed(self, path: str, user_agent: str) -> bool:
        if self._parser is None:
            return True
        return self._parser.can_fetch(user_agent, path or "/")

    def delay(self, user_agent: str) -> Optional[float]:
        if self._parser is None:
            return None
        value = self._parser.crawl_delay(user_agent)
        if value is None:
            rate = self._parser.request_rate(user_agent)
            if rate is not None and rate.requests:
                return rate.seconds / rate.requests
            return None
        return float(value)


ALLOW_ALL = RobotRules()


def _looks_like_html(text: str) -> bool:
    lt = text.lower()
    return any(h in lt for h in MALFORMED_HINTS) and "user-agent:" not in lt


def parse_robots(data: Optional[bytes]) -> RobotRules:
    """
    Parse raw robots.txt bytes. Missing, empty or HTML-looking bodies (soft 404
    pages served as robots.txt) mean no restrictions.
    """
    if not data:
        return ALLOW_ALL
    text = data.decode("utf-8", errors="replace")
    if _looks_like_html(text):
        return ALLOW_ALL
    parser = robotparser.RobotFileParser()
    parser.parse(text.splitlines())
    return RobotRules(parser)


class PolitenessGate:
    """
    FLOW: First request to an origin -> loader fetches /robots.txt once (other
    requests to that origin wait on the same lock) -> rules cached for the crawl ->
    crawl-delay handed to on_crawl_delay -> is_allowed() answers from the cache.
    """

    def __init__(
        self,
        loader: Callable[[Origin], Awaitable[Optional[bytes]]],
        user_agent: str,
        on_crawl_delay: Optional[Callable[[Origin, float], None]] = None,
    ):
        self.loader = loader
        self.user_agent = user_agent
        self.on_crawl_delay = on_crawl_delay
        self._rules: Dict[Origin, RobotRules] = {}
        self._locks: Dict[Origin, asyncio.Lock] = {}

    async def rules_for(self, origin: Origin) -> RobotRules:
        rules = self._rules.get(origin)
        if rules is not None:
            return rules
        lock = self._locks.setdefault(origin, asyncio.Lock())
        async with lock:
            rules = self._rules.get(origin)
            if rules is None:
                rules = await self._load(origin)
                self._rules[origin] = rules
        return rules

    async def _load(self, origin: Origin) -> RobotRules:
        try:
            data = await self.loader(origin)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ROBOTS] {origin.robots_url} could not be fetched ({e}); assuming no restrictions")
            return ALLOW_ALL

        rules = parse_robots(data)
        if rules.allow_all:
            logger.info(f"[ROBOTS] {origin.robots_url}: no usable rules, allowing all")
            return rules

        delay = rules.delay(self.user_agent)
        logger.info(f"[ROBOTS] {origin.robots_url} loaded (crawl-delay={delay})")
        if delay is not None and self.on_crawl_delay is not None:
            self.on_crawl_delay(origin, delay)
        return rules

    async def is_allowed(self, target: CrawlTarget) -> bool:
        rules = await self.rules_for(target.origin)
        return rules.allowed(target.path, self.user_agent)

    def crawl_delay(self, origin: Origin) -> Optional[float]:
        rules = self._rules.get(origin)
        return rules.delay(self.user_agent) if rules is not None else None


class AllowAllGate:
    """Stand-in gate for --ignore-robots: never fetches robots.txt, never blocks."""

    async def is_allowed(self, target: CrawlTarget) -> bool:
        return True

    def crawl_delay(self, origin: Origin) -> Optional[float]:
        return None
