"""Sitemap discovery: robots.txt directives, sitemap indexes and urlsets."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import structlog
from bs4 import BeautifulSoup

from linkwatch.fetch.http import HttpFetcher
from linkwatch.fetch.robots import robots_url, sitemap_candidates
from linkwatch.observability.metrics import MetricsRegistry

LOGGER = structlog.get_logger(__name__)

DEFAULT_MAX_DEPTH = 5


@dataclass
class SitemapEntries:
    """Locations listed by one sitemap document."""

    child_sitemaps: List[str] = field(default_factory=list)
    urls: List[str] = field(default_factory=list)


def _locs(soup: BeautifulSoup, parent: str) -> List[str]:
    locations: List[str] = []
    for element in soup.find_all(parent):
        loc = element.find("loc")
        if loc is None:
            continue
        text = loc.get_text(strip=True)
        if text:
            locations.append(text)
    return locations


def extract_sitemap_urls_from_xml(xml: str) -> SitemapEntries:
    """Classify a sitemap document as an index or a urlset and list its locations.

    A document with at least one ``<sitemap><loc>`` entry is an index and its
    page URLs are ignored. Anything else is treated as a urlset, even when it
    lists nothing.
    """
    soup = BeautifulSoup(xml, "html.parser")
    child_sitemaps = _locs(soup, "sitemap")
    if child_sitemaps:
        return SitemapEntries(child_sitemaps=child_sitemaps, urls=[])
    return SitemapEntries(child_sitemaps=[], urls=_locs(soup, "url"))


class SitemapResolver:
    """Resolve every sitemap reachable from a site's origin into page URLs."""

    def __init__(
        self,
        fetcher: HttpFetcher,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._fetcher = fetcher
        self._max_depth = max_depth
        self._metrics = metrics or MetricsRegistry()

    async def discover(self, origin: str) -> List[str]:
        """Return the deduplicated leaf URLs of all sitemaps for ``origin``.

        An empty list means no sitemap was reachable or none listed any URL.
        """
        robots_txt = await self._fetcher.fetch_text(robots_url(origin))
        candidates = sitemap_candidates(origin, robots_txt)
        LOGGER.info("sitemap_candidates", origin=origin, count=len(candidates))

        visited: Set[str] = set()
        found: Dict[str, None] = {}
        for sitemap_url in candidates:
            for url in await self._resolve(sitemap_url, depth=0, visited=visited):
                found.setdefault(url, None)
        self._metrics.incr("sitemap_urls", len(found))
        return list(found)

    async def _resolve(self, sitemap_url: str, *, depth: int, visited: Set[str]) -> List[str]:
        if sitemap_url in visited:
            return []
        visited.add(sitemap_url)
        if depth > self._max_depth:
            LOGGER.warning("sitemap_depth_exceeded", sitemap=sitemap_url, max_depth=self._max_depth)
            return []

        xml = await self._fetcher.fetch_text(sitemap_url)
        if not xml:
            return []
        self._metrics.incr("sitemaps_fetched")
        try:
            entries = extract_sitemap_urls_from_xml(xml)
        except Exception as exc:  # pragma: no cover - bs4 rarely raises on bad markup
            LOGGER.warning("sitemap_parse_failed", sitemap=sitemap_url, reason=str(exc))
            return []

        if not entries.child_sitemaps:
            LOGGER.debug("sitemap_urlset", sitemap=sitemap_url, urls=len(entries.urls))
            return entries.urls

        LOGGER.info("sitemap_index", sitemap=sitemap_url, children=len(entries.child_sitemaps))
        urls: List[str] = []
        for child in entries.child_sitemaps:
            urls.extend(await self._resolve(child, depth=depth + 1, visited=visited))
        return urls
