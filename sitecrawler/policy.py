"""
Which in-scope links are worth fetching.

Scope says whether a link belongs to the site; the policy says whether it is a
page at all. Links rejected here are still reported on the page that linked
them, they are just never fetched.
"""

import posixpath
from threading import Lock
from typing import Dict, Iterable, Optional
from urllib.parse import urlsplit

from sitecrawler.scope import CrawlTarget

ALLOWED = "allowed"
BLOCKED_ASSET = "blocked_asset"

# Extensions of resources that are never HTML pages
ASSET_EXTENSIONS = frozenset({
    # Images
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".bmp", ".tiff", ".avif",
    # Video/Audio
    ".mp4", ".mp3", ".avi", ".mov", ".mkv", ".webm", ".wav", ".ogg",
    # Archives
    ".zip", ".rar", ".tar", ".gz", ".7z", ".bz2", ".xz",
    # Documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".csv",
    # Stylesheets, scripts, feeds
    ".css", ".js", ".json", ".xml", ".rss", ".atom",
    # Fonts
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    # Binaries
    ".exe", ".msi", ".dmg", ".apk", ".iso",
})


def extension_of(url: str) -> str:
    """Lower-cased extension of the last path segment ('' when there is none)."""
    path = urlsplit(url).path
    return posixpath.splitext(path.rsplit("/", 1)[-1])[1].lower()


class URLPolicy:
    """
    FLOW: Frontier hands over an in-scope target -> extension checked against the
    skip list -> verdict counted per reason -> frontier admits or drops it.
    """

    def __init__(self, skip_extensions: Optional[Iterable[str]] = None):
        self.skip_extensions = frozenset(skip_extensions) if skip_extensions is not None else ASSET_EXTENSIONS
        self._lock = Lock()
        self._stats: Dict[str, int] = {"evaluations": 0, ALLOWED: 0, BLOCKED_ASSET: 0}

    def is_asset(self, url: str) -> bool:
        return extension_of(url) in self.skip_extensions

    def eval(self, target: CrawlTarget):
        """(allowed, reason); counters move exactly once per call."""
        reason = BLOCKED_ASSET if self.is_asset(target.url) else ALLOWED
        with self._lock:
            self._stats["evaluations"] += 1
            self._stats[reason] += 1
        return reason == ALLOWED, reason

    def should_crawl(self, target: CrawlTarget) -> bool:
        allowed, _ = self.eval(target)
        return allowed

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)
