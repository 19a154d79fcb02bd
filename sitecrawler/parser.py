"""
URL extraction from HTML for the crawler.
Never executes scripts; malformed markup yields whatever anchors BeautifulSoup can recover.
"""

from typing import List, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


def is_html(content_type: str) -> bool:
    """Missing Content-Type is treated as HTML."""
    if not content_type:
        return True
    ct = content_type.split(";", 1)[0].strip().lower()
    return ct in HTML_CONTENT_TYPES


def extract_links(html: Union[bytes, str], base_url: str) -> List[str]:
    """
    Return href values of <a> and <area> tags in document order.
    Relative links are made absolute only when the page declares <base href>;
    otherwise they are returned as written and resolved by the caller.
    """
    soup = BeautifulSoup(html, "html.parser")

    base_href = None
    base_tag = soup.find("base", href=True)
    if base_tag is not None and base_tag["href"].strip():
        base_href = urljoin(base_url, base_tag["href"].strip())

    links = []
    for a in soup.find_all(["a", "area"], href=True):
        href = a["href"].strip()
        if not href or href.startswith("#"):
            continue
        links.append(urljoin(base_href, href) if base_href else href)
    return links
