"""
FILE DESCRIPTION: Live progress line for interactive runs.
KEY FUNCTIONS/CLASSES: ProgressReporter
"""

import shutil
import sys
import time
from datetime import timedelta

from sitecrawler.events import CRAWL_STARTED, CRAWL_TERMINATED, FETCH_RETRIED, PAGE_VISITED, EventBus


class ProgressReporter:
    """
    FLOW: Subscribes to the EventBus -> Rewrites one status line per visited page
    (count, elapsed time, retries, latest URL) -> Ends the line when the crawl stops.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stderr
        self.start_time = time.time()
        self.pages = 0
        self.failed = 0
        self.retries = 0
        self._width = 0

    def attach(self, events: EventBus):
        return events.subscribe(self.on_event)

    def on_event(self, event):
        kind = event["type"]
        if kind == CRAWL_STARTED:
            self.start_time = time.time()
            self.stream.write(f"Crawling {event['url']}\n")
        elif kind == FETCH_RETRIED:
            self.retries += 1
        elif kind == PAGE_VISITED:
            self.pages += 1
            if event["status"] != "SUCCESS":
                self.failed += 1
            self._render(event["url"])
        elif kind == CRAWL_TERMINATED:
            self.stream.write("\n" if self._width else "")
        self.stream.flush()

    def status_line(self, url):
        elapsed = timedelta(seconds=int(time.time() - self.start_time))
        line = f"Visited {self.pages} pages ({self.failed} not ok, {self.retries} retries) in {elapsed}  {url}"
        columns = shutil.get_terminal_size().columns - 1
        if len(line) > columns:
            line = line[:max(0, columns - 3)] + "..."
        return line

    def _render(self, url):
        line = self.status_line(url)
        # Pad over the tail of a longer previous line
        self.stream.write("\r" + line.ljust(self._width))
        self._width = len(line)
