"""
FILE DESCRIPTION: Crawl metrics observer and final summary rendering.
KEY FUNCTIONS/CLASSES: CrawlMetrics
"""

import time
from collections import defaultdict
from datetime import datetime, timedelta
from threading import Lock
from urllib.parse import urlsplit

import psutil
from tabulate import tabulate

from sitecrawler.events import (
    CRAWL_STARTED,
    CRAWL_TERMINATED,
    FETCH_ATTEMPTED,
    FETCH_RETRIED,
    PAGE_VISITED,
    EventBus,
)


def _origin_of(url):
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class CrawlMetrics:
    """
    FLOW: Subscribes to the EventBus -> Counts attempts, retries and page outcomes
    per origin and overall -> Samples process memory on every visited page ->
    print_final_summary() renders everything with tabulate.
    """

    def __init__(self):
        self.lock = Lock()
        self.start_time = time.time()
        self.process = psutil.Process()
        self.initial_memory_mb = self._rss_mb()

        self.origin_stats = defaultdict(lambda: {
            "pages": 0,
            "success": 0,
            "skipped": 0,
            "failed": 0,
            "attempts": 0,
            "retries": 0,
            "links": 0,
        })
        self.overall_stats = {
            "start_time": datetime.now(),
            "pages": 0,
            "success": 0,
            "skipped": 0,
            "failed": 0,
            "attempts": 0,
            "retries": 0,
            "retry_wait": 0.0,
            "links": 0,
            "peak_memory_mb": self.initial_memory_mb,
        }
        self.failure_reasons = defaultdict(int)
        self.termination = None

    def _rss_mb(self):
        return self.process.memory_info().rss / 1024 / 1024

    def attach(self, events: EventBus):
        """Subscribe to an EventBus; returns the unsubscribe function."""
        return events.subscribe(self.on_event)

    def on_event(self, event):
        kind = event["type"]
        if kind == CRAWL_STARTED:
            self.start_time = time.time()
            self.overall_stats["start_time"] = datetime.now()
        elif kind == FETCH_ATTEMPTED:
            self._count(event["url"], "attempts")
        elif kind == FETCH_RETRIED:
            self._count(event["url"], "retries")
            with self.lock:
                self.overall_stats["retry_wait"] += event.get("delay", 0.0)
        elif kind == PAGE_VISITED:
            self.record_page(event)
        elif kind == CRAWL_TERMINATED:
            self.termination = event.get("reason")

    def _count(self, url, key, amount=1):
        with self.lock:
            self.origin_stats[_origin_of(url)][key] += amount
            self.overall_stats[key] += amount

    def record_page(self, event):
        status = event["status"].lower()
        origin = _origin_of(event["url"])
        with self.lock:
            stats = self.origin_stats[origin]
            stats["pages"] += 1
            stats[status] += 1
            stats["links"] += event.get("links", 0)
            self.overall_stats["pages"] += 1
            self.overall_stats[status] += 1
            self.overall_stats["links"] += event.get("links", 0)
            if status != "success":
                self.failure_reasons[event.get("reason") or "unknown"] += 1

            mem = self._rss_mb()
            if mem > self.overall_stats["peak_memory_mb"]:
                self.overall_stats["peak_memory_mb"] = mem

    def get_summary(self):
        with self.lock:
            return {
                **{k: v for k, v in self.overall_stats.items() if k != "start_time"},
                "origins": {k: dict(v) for k, v in self.origin_stats.items()},
                "reasons": dict(self.failure_reasons),
                "termination": self.termination,
            }

    def print_final_summary(self, stream=None):
        """
        Print the final crawl summary (stderr-friendly; pass stream to redirect).
        """
        out = stream
        elapsed = time.time() - self.start_time
        total = max(1, self.overall_stats["pages"])
        final_mem = self._rss_mb()

        def emit(line=""):
            print(line, file=out)

        emit("\n" + "=" * 80)
        emit(f"CRAWL FINISHED - {self.termination or 'UNKNOWN'}")
        emit("=" * 80)

        emit("\nTIME METRICS:")
        emit(f"   Start Time:      {self.overall_stats['start_time'].strftime('%Y-%m-%d %H:%M:%S')}")
        emit(f"   Total Duration:  {timedelta(seconds=int(elapsed))}")
        emit(f"   Crawl Speed:     {self.overall_stats['pages'] / max(0.001, elapsed):.2f} pages/s")

        emit("\nPAGE METRICS:")
        emit(f"   Pages Reported:  {self.overall_stats['pages']}")
        for key, label in (("success", "Success"), ("skipped", "Skipped"), ("failed", "Failed")):
            count = self.overall_stats[key]
            emit(f"   {label + ':':<16} {count} ({count / total * 100:.1f}%)")
        emit(f"   Links Found:     {self.overall_stats['links']}")
        emit(f"   Attempts:        {self.overall_stats['attempts']}")
        emit(f"   Retries:         {self.overall_stats['retries']} "
             f"({self.overall_stats['retry_wait']:.1f}s spent in backoff)")

        if self.failure_reasons:
            emit("\nSKIP / FAILURE REASONS:")
            rows = sorted(self.failure_reasons.items(), key=lambda kv: (-kv[1], kv[0]))
            emit(tabulate(rows, headers=["Reason", "Count"], tablefmt="grid"))

        if self.origin_stats:
            emit("\nPER-ORIGIN STATISTICS:")
            rows = []
            for origin in sorted(self.origin_stats):
                s = self.origin_stats[origin]
                rows.append([
                    origin, s["pages"], s["success"], s["skipped"], s["failed"],
                    s["attempts"], s["retries"],
                    f"{s['success'] / max(1, s['pages']) * 100:.1f}%",
                ])
            emit(tabulate(
                rows,
                headers=["Origin", "Pages", "Success", "Skipped", "Failed", "Attempts", "Retries", "Success %"],
                tablefmt="grid",
            ))

        emit("\nMEMORY:")
        emit(f"   Initial Memory:  {self.initial_memory_mb:.2f} MB")
        emit(f"   Final Memory:    {final_mem:.2f} MB")
        emit(f"   Peak Memory:     {self.overall_stats['peak_memory_mb']:.2f} MB")
        emit("=" * 80)
