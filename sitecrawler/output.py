"""
Page result sinks. A sink is anything with emit(PageResult); the crawler calls it
once per reported page, in completion order.
"""

import sys
from typing import List, TextIO

from sitecrawler.models import PageResult, PageStatus


def format_page(result: PageResult, hide_links: bool = False) -> List[str]:
    """URL line (with status suffix for non-success pages), then '  --> link' lines."""
    if result.status is PageStatus.SUCCESS:
        lines = [result.url]
    else:
        lines = [f"{result.url}  [{result.status.value} {result.reason}]"]
    if not hide_links:
        lines.extend(f"  --> {link.url}" for link in result.links)
    return lines


class ConsoleSink:
    def __init__(self, hide_links: bool = False, stream: TextIO = None):
        self.hide_links = hide_links
        self.stream = stream or sys.stdout

    def emit(self, result: PageResult) -> None:
        for line in format_page(result, self.hide_links):
            print(line, file=self.stream)
        self.stream.flush()


class FileSink:
    """
    FLOW: Opens the output file once -> writes each page as it completes ->
    close() flushes and releases the handle. Links are always written.
    """

    def __init__(self, path):
        self.path = path
        self._fh = open(path, "w", encoding="utf-8")

    def emit(self, result: PageResult) -> None:
        self._fh.write("\n".join(format_page(result)) + "\n")

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
