"""
Configuration layering, logging setup and the command line entry point.
"""

import logging
import os
import tempfile
import unittest
from unittest import mock

import main
from sitecrawler.core import CompanyFormatter, CrawlConfig, setup_logger
from sitecrawler.engine import run
from sitecrawler.errors import CrawlConfigError
from sitecrawler.models import CrawlReport


class TestCrawlConfig(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = CrawlConfig("https://x.test/")
        self.assertEqual(config.max_concurrency, 32)
        self.assertEqual(config.max_per_origin, 2)
        self.assertIsNone(config.max_pages)
        self.assertIsNone(config.max_time)
        self.assertFalse(config.ignore_robots)
        self.assertTrue(config.user_agent.startswith("sitecrawler/"))

    def test_environment_overrides_defaults(self):
        env = {"CRAWLER_MAX_PAGES": "7", "CRAWLER_IGNORE_ROBOTS": "yes", "CRAWLER_REQUEST_DELAY": "0.25"}
        with mock.patch.dict(os.environ, env, clear=True):
            config = CrawlConfig("https://x.test/")
        self.assertEqual(config.max_pages, 7)
        self.assertTrue(config.ignore_robots)
        self.assertEqual(config.request_delay, 0.25)

    def test_with_overrides_skips_none(self):
        config = CrawlConfig("https://x.test/", max_pages=3).with_overrides(max_pages=None, max_per_origin=5)
        self.assertEqual(config.max_pages, 3)
        self.assertEqual(config.max_per_origin, 5)

    def test_run_rejects_bad_config_before_crawling(self):
        with self.assertRaises(CrawlConfigError):
            run(CrawlConfig("https://x.test/", max_pages=0))

    def test_validate(self):
        for overrides in ({"max_concurrency": 0}, {"max_per_origin": 0}, {"max_pages": 0},
                          {"max_time": -1.0}, {"max_retries": -1}, {"request_delay": -0.5}):
            with self.subTest(overrides=overrides):
                with self.assertRaises(CrawlConfigError):
                    CrawlConfig("https://x.test/", **overrides).validate()


class TestLogging(unittest.TestCase):
    def test_formatter(self):
        record = logging.LogRecord("sitecrawler.engine", logging.WARNING, __file__, 1, "slow down", None, None)
        record.context = "https://x.test"
        line = CompanyFormatter().format(record)
        self.assertTrue(line.startswith("[ "))
        self.assertTrue(line.endswith(" : WARNING : https://x.test : slow down"))

    def test_child_logger_propagates(self):
        child = setup_logger("sitecrawler.tests")
        self.assertTrue(child.propagate)
        root = logging.getLogger("sitecrawler")
        self.assertTrue(root.handlers)
        handlers = len(root.handlers)
        setup_logger()
        self.assertEqual(len(root.handlers), handlers)


class TestMain(unittest.TestCase):
    def test_startup_errors_exit_1(self):
        self.assertEqual(main.main(["https://x.test/", "--max-pages", "0"]), CrawlReport.EXIT_STARTUP_ERROR)
        self.assertEqual(main.main(["http://[::1"]), CrawlReport.EXIT_STARTUP_ERROR)

    def test_bad_config_leaves_output_file_untouched(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "previous.txt")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("https://x.test/\n")

            code = main.main(["https://x.test/", "--max-pages", "0", "-o", path])

            self.assertEqual(code, CrawlReport.EXIT_STARTUP_ERROR)
            with open(path, encoding="utf-8") as fh:
                self.assertEqual(fh.read(), "https://x.test/\n")

    def test_parser_flags(self):
        args = main.build_parser().parse_args(
            ["x.test", "-c", "8", "--max-per-domain", "3", "-m", "1.5", "-p", "10", "-i", "-l", "--delay", "0.2"]
        )
        self.assertEqual(args.max_concurrency, 8)
        self.assertEqual(args.max_per_origin, 3)
        self.assertEqual(args.max_time, 1.5)
        self.assertEqual(args.max_pages, 10)
        self.assertTrue(args.ignore_robots)
        self.assertTrue(args.hide_links)
        self.assertEqual(args.request_delay, 0.2)

        defaults = main.build_parser().parse_args(["x.test"])
        self.assertIsNone(defaults.ignore_robots)
        self.assertIsNone(defaults.max_pages)


if __name__ == "__main__":
    unittest.main()
