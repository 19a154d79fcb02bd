"""
URL normalization and crawl-scope checks.

Every URL the crawler touches goes through normalize() so that two spellings of
the same page (case of scheme/host, default port, fragment, doubled slashes,
trailing slash) compare equal. CrawlScope holds the one predicate that decides
whether a normalized target belongs to the seed's site.
"""

import posixpath
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

import tldextract

from sitecrawler.errors import InvalidUrl, UnsupportedScheme

DEFAULT_PORTS = {"http": 80, "https": 443}

# Offline extractor: bundled public suffix snapshot, never hits the network
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

_MULTI_SLASH = re.compile(r"/{2,}")


@dataclass(frozen=True)
class Origin:
    scheme: str
    host: str
    port: int

    def __str__(self):
        host = f"[{self.host}]" if ":" in self.host else self.host
        if DEFAULT_PORTS.get(self.scheme) == self.port:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"

    @property
    def robots_url(self) -> str:
        return f"{self}/robots.txt"


@dataclass(frozen=True)
class CrawlTarget:
    """A normalized absolute URL. Equality is on the normalized string only."""
    url: str
    origin: Origin = field(compare=False)

    @property
    def path(self) -> str:
        """Path plus query, as robots.txt rules see it."""
        parts = urlsplit(self.url)
        return parts.path + (f"?{parts.query}" if parts.query else "")

    def __str__(self):
        return self.url


def canonicalize_seed(url: str) -> str:
    """Seeds may be typed without a scheme (example.com/docs); assume https."""
    url = (url or "").strip()
    if url and "://" not in url:
        url = "https://" + url
    return url


def normalize(raw: str, base: Optional[str] = None) -> CrawlTarget:
    """
    Resolve ``raw`` against ``base`` and return its canonical CrawlTarget.

    Raises UnsupportedScheme for mailto:/javascript:/tel: and friends, and
    InvalidUrl for anything that cannot be parsed into an http(s) URL with a host.
    """
    if raw is None:
        raise InvalidUrl(raw, "missing url")
    raw = raw.strip()
    if not raw:
        raise InvalidUrl(raw, "empty url")

    try:
        absolute = urljoin(base, raw) if base else raw
        parts = urlsplit(absolute)
        port = parts.port
    except ValueError as exc:
        raise InvalidUrl(raw) from exc

    scheme = parts.scheme.lower()
    if not scheme:
        raise InvalidUrl(raw, "relative url without base")
    if scheme not in DEFAULT_PORTS:
        raise UnsupportedScheme(raw, scheme)

    host = parts.hostname
    if not host:
        raise InvalidUrl(raw, "missing host")
    host = host.rstrip(".")
    if ":" not in host:
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError as exc:
            raise InvalidUrl(raw, "invalid host") from exc
    if port is None:
        port = DEFAULT_PORTS[scheme]

    origin = Origin(scheme, host, port)
    netloc = str(origin).split("://", 1)[1]

    path = _MULTI_SLASH.sub("/", parts.path or "/")
    path = posixpath.normpath(path)
    if not path.startswith("/"):
        path = "/" + path

    return CrawlTarget(urlunsplit((scheme, netloc, path, parts.query, "")), origin)


@lru_cache(maxsize=256)
def site_hosts(host: str) -> frozenset:
    """
    Hosts treated as the same site as ``host``: the host itself, plus the www
    alias when the host is a naked registrable domain (example.com <-> www.example.com).
    Any other subdomain is a different site.
    """
    hosts = {host}
    ext = _EXTRACT(host)
    if not ext.domain or not ext.suffix:
        return frozenset(hosts)
    registrable = f"{ext.domain}.{ext.suffix}".lower()
    if ext.subdomain == "":
        hosts.add(f"www.{registrable}")
    elif ext.subdomain == "www":
        hosts.add(registrable)
    return frozenset(hosts)


def in_scope(candidate: CrawlTarget, seed_origin: Origin) -> bool:
    return candidate.origin.host in site_hosts(seed_origin.host)


class CrawlScope:
    """
    FLOW: Built once from the seed -> Precomputes the allowed host set ->
    Answers in_scope() for every discovered link.
    """

    def __init__(self, seed: CrawlTarget):
        self.seed = seed
        self.hosts = site_hosts(seed.origin.host)

    def in_scope(self, target: CrawlTarget) -> bool:
        return target.origin.host in self.hosts

    def __repr__(self):
        return f"CrawlScope(seed={self.seed.url!r}, hosts={sorted(self.hosts)})"
