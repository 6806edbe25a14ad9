"""Bounded same-origin crawl that harvests links from rendered pages."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import structlog

from linkwatch.errors import NavigationError
from linkwatch.fetch.render import PageRenderer, PageSession
from linkwatch.observability.metrics import MetricsRegistry
from linkwatch.orchestrator.options import JobOptions
from linkwatch.orchestrator.timing import jitter, sleep_ms
from linkwatch.parse.links import extract_page_links, normalize_url, origin_of, select_internal_pages_to_crawl

LOGGER = structlog.get_logger(__name__)

SETTLE_DELAY_MS = 250
SETTLE_JITTER_MS = 250


@dataclass
class CrawlOutcome:
    """Title of the root page plus every link found across crawled pages."""

    title: str
    links: List[str] = field(default_factory=list)
    pages_crawled_urls: List[str] = field(default_factory=list)


class _CrawlState:
    def __init__(self, origin: str) -> None:
        self.origin = origin
        self.links: Dict[str, None] = {}
        self.pages: Dict[str, None] = {}


class PageCrawler:
    """Visit the root page and a bounded set of internal pages, one at a time."""

    def __init__(
        self,
        renderer: PageRenderer,
        *,
        settle_delay_ms: int = SETTLE_DELAY_MS,
        settle_jitter_ms: int = SETTLE_JITTER_MS,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._renderer = renderer
        self._settle_delay_ms = settle_delay_ms
        self._settle_jitter_ms = settle_jitter_ms
        self._metrics = metrics or MetricsRegistry()

    async def crawl(
        self,
        root_url: str,
        options: JobOptions,
        extra_seed_pages: Iterable[str] = (),
    ) -> CrawlOutcome:
        """Crawl ``root_url`` and, if enabled, internal pages and seeds.

        A navigation failure on the root page propagates. Failures on internal
        pages are logged and skipped.
        """
        state = _CrawlState(origin_of(root_url))
        async with self._renderer.open_page() as page:
            title, internal_links = await self._visit(page, root_url, state)
            if options.follow_internal_links:
                candidates: Dict[str, None] = dict.fromkeys(internal_links)
                for seed in extra_seed_pages:
                    candidates.setdefault(seed, None)
                to_visit = select_internal_pages_to_crawl(root_url, candidates, options.max_internal_pages)
                LOGGER.info("internal_pages_selected", count=len(to_visit), candidates=len(candidates))
                for internal_url in to_visit:
                    await sleep_ms(options.navigation_delay_ms + jitter(options.navigation_jitter_ms))
                    try:
                        await self._visit(page, internal_url, state)
                    except NavigationError as exc:
                        # Link checking surfaces unreachable pages on its own.
                        self._metrics.incr("navigation_failures")
                        LOGGER.info("internal_page_skipped", url=internal_url, reason=exc.reason)

        return CrawlOutcome(title=title, links=list(state.links), pages_crawled_urls=list(state.pages))

    async def _visit(self, page: PageSession, url: str, state: _CrawlState) -> tuple[str, List[str]]:
        rendered = await page.render(url)
        await sleep_ms(self._settle_delay_ms + jitter(self._settle_jitter_ms))

        state.pages.setdefault(normalize_url(url) or url, None)
        self._metrics.incr("pages_crawled")

        links = extract_page_links(rendered.html, rendered.url, state.origin)
        for link in links.absolute_links:
            state.links.setdefault(link, None)
        LOGGER.debug(
            "page_links_extracted",
            url=url,
            absolute=len(links.absolute_links),
            internal=len(links.internal_links),
        )
        return rendered.title, links.internal_links
