import argparse
import asyncio
import logging
import signal
import sys

from sitecrawler.core import CrawlConfig, setup_logger
from sitecrawler.engine import Crawler
from sitecrawler.errors import CrawlConfigError
from sitecrawler.events import EventBus
from sitecrawler.metrics import CrawlMetrics
from sitecrawler.models import CrawlReport
from sitecrawler.output import ConsoleSink, FileSink
from sitecrawler.progress import ProgressReporter


def build_parser():
    parser = argparse.ArgumentParser(
        prog="sitecrawler",
        description="Crawl every page of one site (same host, www alias included) and list its links.",
    )
    parser.add_argument("url", help="Seed URL; https:// is assumed when no scheme is given")
    parser.add_argument("-o", "--output", help="Write pages and links to this file instead of stdout")
    parser.add_argument("-l", "--hide-links", action="store_true", help="Print only page URLs")
    parser.add_argument("-c", "--max-concurrent-connections", type=int, dest="max_concurrency",
                        help="Global cap on concurrent fetches")
    parser.add_argument("--max-per-domain", type=int, dest="max_per_origin",
                        help="Cap on concurrent fetches per origin")
    parser.add_argument("-m", "--max-time", type=float, help="Stop after this many seconds")
    parser.add_argument("-p", "--max-pages", type=int, help="Stop after dispatching this many pages")
    parser.add_argument("-i", "--ignore-robots", action="store_true", default=None,
                        help="Do not fetch or honour robots.txt")
    parser.add_argument("--delay", type=float, dest="request_delay",
                        help="Minimum seconds between requests to one origin")
    parser.add_argument("--max-retries", type=int, help="Retries per page for transient failures")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


async def _crawl(crawler):
    """Run the crawl with Ctrl+C mapped to a graceful stop."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, crawler.stop)
    except (NotImplementedError, RuntimeError):
        pass
    return await crawler.crawl()


def main(argv=None):
    args = build_parser().parse_args(argv)
    logger = setup_logger(log_file=args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = CrawlConfig(args.url).with_overrides(
            max_concurrency=args.max_concurrency,
            max_per_origin=args.max_per_origin,
            max_time=args.max_time,
            max_pages=args.max_pages,
            ignore_robots=args.ignore_robots,
            request_delay=args.request_delay,
            max_retries=args.max_retries,
        )
        events = EventBus()
        metrics = CrawlMetrics()
        metrics.attach(events)
        if not args.verbose and sys.stderr.isatty():
            ProgressReporter(sys.stderr).attach(events)
        crawler = Crawler(config, events=events)
        # Only touch the output file once the crawl is known to start
        sink = FileSink(args.output) if args.output else ConsoleSink(hide_links=args.hide_links)
        crawler.sink = sink
    except (CrawlConfigError, ValueError, OSError) as e:
        logger.error(f"Startup failed: {e}")
        return CrawlReport.EXIT_STARTUP_ERROR

    try:
        report = asyncio.run(_crawl(crawler))
    finally:
        if isinstance(sink, FileSink):
            sink.close()

    metrics.print_final_summary(stream=sys.stderr)
    if report.reason.truncated:
        logger.warning(f"Crawl truncated: {report.reason.value}")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
