"""
robots.txt parsing and the politeness gate.
"""

import asyncio
import unittest

from sitecrawler.robots import AllowAllGate, PolitenessGate, parse_robots
from sitecrawler.scope import normalize

UA = "sitecrawler/test"

ROBOTS = b"""
User-agent: *
Disallow: /private/
Crawl-delay: 2

User-agent: badbot
Disallow: /
"""


class TestParseRobots(unittest.TestCase):
    def test_rules(self):
        rules = parse_robots(ROBOTS)
        self.assertFalse(rules.allow_all)
        self.assertTrue(rules.allowed("/", UA))
        self.assertTrue(rules.allowed("/public/page", UA))
        self.assertFalse(rules.allowed("/private/x", UA))
        self.assertFalse(rules.allowed("/anything", "badbot"))
        self.assertEqual(rules.delay(UA), 2.0)

    def test_request_rate_as_delay(self):
        rules = parse_robots(b"User-agent: *\nRequest-rate: 1/5\n")
        self.assertEqual(rules.delay(UA), 5.0)

    def test_missing_or_html_means_allow_all(self):
        for data in (None, b"", b"<!DOCTYPE html><html><body>Not found</body></html>"):
            with self.subTest(data=data):
                rules = parse_robots(data)
                self.assertTrue(rules.allow_all)
                self.assertTrue(rules.allowed("/private/x", UA))
                self.assertIsNone(rules.delay(UA))

    def test_undecodable_bytes(self):
        rules = parse_robots(b"User-agent: *\nDisallow: /caf\xe9/\n")
        self.assertTrue(rules.allowed("/menu", UA))


class TestPolitenessGate(unittest.IsolatedAsyncioTestCase):
    async def test_single_fetch_per_origin(self):
        loads = []

        async def loader(origin):
            loads.append(origin)
            await asyncio.sleep(0.01)
            return ROBOTS

        delays = {}
        gate = PolitenessGate(loader, UA, on_crawl_delay=lambda o, d: delays.__setitem__(o, d))
        targets = [normalize(f"https://x.test/p{i}") for i in range(10)] + [normalize("https://x.test/private/a")]
        allowed = await asyncio.gather(*(gate.is_allowed(t) for t in targets))

        self.assertEqual(len(loads), 1)
        self.assertEqual(allowed, [True] * 10 + [False])
        origin = targets[0].origin
        self.assertEqual(delays, {origin: 2.0})
        self.assertEqual(gate.crawl_delay(origin), 2.0)

    async def test_loader_failure_allows_all(self):
        async def loader(origin):
            raise ConnectionError("refused")

        gate = PolitenessGate(loader, UA)
        self.assertTrue(await gate.is_allowed(normalize("https://x.test/private/a")))
        self.assertIsNone(gate.crawl_delay(normalize("https://x.test/").origin))

    async def test_origins_cached_separately(self):
        seen = []

        async def loader(origin):
            seen.append(str(origin))
            return ROBOTS if origin.scheme == "https" else None

        gate = PolitenessGate(loader, UA)
        self.assertFalse(await gate.is_allowed(normalize("https://x.test/private/a")))
        self.assertTrue(await gate.is_allowed(normalize("http://x.test/private/a")))
        self.assertFalse(await gate.is_allowed(normalize("https://x.test/private/b")))
        self.assertEqual(seen, ["https://x.test", "http://x.test"])

    async def test_allow_all_gate(self):
        gate = AllowAllGate()
        self.assertTrue(await gate.is_allowed(normalize("https://x.test/private/a")))
        self.assertIsNone(gate.crawl_delay(normalize("https://x.test/").origin))


if __name__ == "__main__":
    unittest.main()
