"""
Error taxonomy for the crawler.

Only CrawlConfigError is fatal (raised before the crawl starts). Everything that
goes wrong with a single page becomes a PageResult reason string instead.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""


class CrawlConfigError(CrawlerError):
    """Startup misconfiguration, e.g. an unparseable seed URL."""


class InvalidUrl(CrawlerError, ValueError):
    """A link that cannot be parsed or resolved against its base."""

    def __init__(self, raw, message="invalid url"):
        super().__init__(f"{message}: {raw!r}")
        self.raw = raw


class UnsupportedScheme(InvalidUrl):
    """mailto:, javascript:, tel:, ftp: ... not a crawl target."""

    def __init__(self, raw, scheme):
        super().__init__(raw, f"unsupported scheme {scheme!r}")
        self.scheme = scheme


# PageResult.reason values
REASON_ROBOTS = "robots"
REASON_RETRIES_EXHAUSTED = "retries_exhausted"
REASON_CANCELLED = "cancelled"


def http_error(status: int) -> str:
    return f"http_error:{status}"


def transport_error(kind: str) -> str:
    return f"transport_error:{kind}"
