"""Link extraction and internal page selection over rendered HTML."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from urllib.parse import SplitResult, parse_qsl, urldefrag, urlencode, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

HTTP_SCHEMES = ("http", "https")
SKIPPED_HREF_PREFIXES = ("mailto:", "tel:", "javascript:")
NON_CONTENT_EXTENSION = re.compile(
    r"\.(?:pdf|docx?|xlsx?|pptx?|zip|rar|7z|tar|gz|bz2|mp[34]|m4a|wav|ogg|mov|mp4|avi|webm"
    r"|png|jpe?g|gif|webp|svg|ico|css|js|map|json|xml|rss|atom|woff2?|ttf|otf|eot)$",
    re.IGNORECASE,
)
TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gclid",
        "fbclid",
        "msclkid",
    }
)
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass
class PageLinks:
    """Links found on one page."""

    absolute_links: List[str] = field(default_factory=list)
    internal_links: List[str] = field(default_factory=list)


def _split(url: str, *, drop_fragment: bool = False) -> Optional[SplitResult]:
    try:
        if drop_fragment:
            url = urldefrag(url)[0]
        parts = urlsplit(url)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return None
    return parts


def _host(parts: SplitResult) -> str:
    hostname = parts.hostname or ""
    port = parts.port
    if port is None or port == _DEFAULT_PORTS.get(parts.scheme):
        return hostname
    return f"{hostname}:{port}"


def _normalize(parts: SplitResult) -> str:
    """Render a URL without its fragment, with lowercase scheme/host and a non-empty path."""
    netloc = _host(parts)
    if parts.username or parts.password:
        netloc = parts.netloc.rsplit("@", 1)[0] + "@" + netloc
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or "/", parts.query, ""))


def normalize_url(url: str) -> Optional[str]:
    """Return the fragment-free canonical form of an http(s) URL, else None."""
    parts = _split(url.strip(), drop_fragment=True)
    if parts is None or parts.scheme.lower() not in HTTP_SCHEMES or not parts.hostname:
        return None
    return _normalize(parts)


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` for the URL."""
    parts = _split(url)
    if parts is None or not parts.scheme or not parts.hostname:
        raise ValueError(f"Invalid URL: {url!r}")
    return f"{parts.scheme.lower()}://{_host(parts)}"


def same_origin(url: str, origin: str) -> bool:
    try:
        return origin_of(url) == origin
    except ValueError:
        return False


def _strip_tracking_params(url: str) -> str:
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(key, value) for key, value in pairs if key.lower() not in TRACKING_PARAMS]
    if len(kept) == len(pairs):
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))


def extract_page_links(html: str, page_url: str, origin: str) -> PageLinks:
    """Collect the absolute and same-origin crawlable links of a rendered page.

    Absolute links include every http(s) anchor regardless of origin. Internal
    links are the subset on ``origin`` that point at content pages: downloads,
    ``rel=nofollow`` anchors and non-content file extensions are dropped, and
    tracking query parameters removed.
    """
    soup = BeautifulSoup(html, "html.parser")
    container = soup.body or soup
    absolute: Dict[str, None] = {}
    internal: Dict[str, None] = {}

    for anchor in container.find_all("a", href=True):
        raw = anchor["href"].strip()
        if not raw or raw.lower().startswith(SKIPPED_HREF_PREFIXES):
            continue
        try:
            resolved = normalize_url(urljoin(page_url, raw))
        except ValueError:
            continue
        if resolved is None:
            continue
        absolute.setdefault(resolved, None)

        if origin_of(resolved) != origin:
            continue
        if anchor.has_attr("download"):
            continue
        rel = anchor.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "nofollow" in (value.lower() for value in rel):
            continue
        if NON_CONTENT_EXTENSION.search(urlsplit(resolved).path):
            continue
        internal.setdefault(_strip_tracking_params(resolved), None)

    return PageLinks(absolute_links=list(absolute), internal_links=list(internal))


def extract_title(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title is None or soup.title.string is None:
        return ""
    return soup.title.string.strip()


def select_internal_pages_to_crawl(
    root_url: str,
    candidates: Iterable[str],
    max_internal_pages: int,
) -> List[str]:
    """Pick the internal pages to visit after the root.

    Keeps http(s) candidates on the root's host, ignoring fragments, the root
    itself and duplicates, up to ``max_internal_pages`` in first-seen order.
    """
    root_parts = _split(root_url, drop_fragment=True)
    if root_parts is None:
        return []
    root_host = _host(root_parts)
    root = _normalize(root_parts)

    selected: List[str] = []
    seen = set()
    for candidate in candidates:
        if len(selected) >= max_internal_pages:
            break
        parts = _split(candidate, drop_fragment=True)
        if parts is None or parts.scheme.lower() not in HTTP_SCHEMES:
            continue
        if _host(parts) != root_host:
            continue
        normalized = _normalize(parts)
        if normalized == root or normalized in seen:
            continue
        seen.add(normalized)
        selected.append(normalized)
    return selected
