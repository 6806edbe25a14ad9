"""crawl4ai-backed browser sessions used to render pages for link extraction."""
from __future__ import annotations

import contextlib
import uuid
from typing import Any, AsyncIterator, Dict, Optional

import structlog
from crawl4ai import AsyncWebCrawler, BrowserConfig, CacheMode, CrawlerRunConfig

from linkwatch.errors import NavigationError
from linkwatch.fetch.http import ACCEPT_HTML, ACCEPT_LANGUAGE, USER_AGENT
from linkwatch.fetch.render import RenderedPage
from linkwatch.parse.links import extract_title

LOGGER = structlog.get_logger(__name__)

BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font"})
DEFAULT_NAVIGATION_TIMEOUT_MS = 15_000


async def _block_heavy_resources(route: Any) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
        return
    await route.continue_()


async def _on_page_context_created(page: Any, context: Any, **kwargs: Any) -> Any:
    await context.route("**/*", _block_heavy_resources)
    return page


class CrawlSession:
    """A crawl4ai session id bound to one browser page and context."""

    def __init__(self, crawler: AsyncWebCrawler, *, session_id: str, navigation_timeout_ms: int, locale: str) -> None:
        self._crawler = crawler
        self.session_id = session_id
        self._navigation_timeout_ms = navigation_timeout_ms
        self._locale = locale

    def _run_config(self) -> CrawlerRunConfig:
        return CrawlerRunConfig(
            cache_mode=CacheMode.BYPASS,
            session_id=self.session_id,
            wait_until="domcontentloaded",
            page_timeout=self._navigation_timeout_ms,
            locale=self._locale,
            override_navigator=True,
            verbose=False,
        )

    async def render(self, url: str) -> RenderedPage:
        """Navigate to ``url`` and return the rendered markup."""
        try:
            result = await self._crawler.arun(url=url, config=self._run_config())
        except Exception as exc:
            raise NavigationError(url, str(exc) or repr(exc)) from exc
        if not result.success:
            raise NavigationError(url, result.error_message or "unknown error")
        html = result.html or ""
        title = (result.metadata or {}).get("title") or extract_title(html)
        return RenderedPage(url=result.redirected_url or result.url or url, title=title, html=html)

    async def close(self) -> None:
        await self._crawler.crawler_strategy.kill_session(self.session_id)


class BrowserSession:
    """Shared headless browser handing out one crawl session per job."""

    def __init__(self, crawler: AsyncWebCrawler, *, navigation_timeout_ms: int, locale: str) -> None:
        self._crawler = crawler
        self._navigation_timeout_ms = navigation_timeout_ms
        self._locale = locale

    @contextlib.asynccontextmanager
    async def open_page(self) -> AsyncIterator[CrawlSession]:
        session = CrawlSession(
            self._crawler,
            session_id=f"linkwatch-{uuid.uuid4()}",
            navigation_timeout_ms=self._navigation_timeout_ms,
            locale=self._locale,
        )
        try:
            yield session
        finally:
            await session.close()


def browser_config(settings: Dict[str, Any], *, user_agent: str = USER_AGENT) -> BrowserConfig:
    """Build the crawl4ai browser configuration from ``[browser]`` settings."""
    return BrowserConfig(
        browser_type="chromium",
        headless=bool(settings.get("headless", True)),
        user_agent=user_agent,
        viewport_width=int(settings.get("viewport_width", 1365)),
        viewport_height=int(settings.get("viewport_height", 768)),
        headers={"Accept": ACCEPT_HTML, "Accept-Language": ACCEPT_LANGUAGE},
        verbose=False,
    )


@contextlib.asynccontextmanager
async def create_browser_session(
    settings: Optional[Dict[str, Any]] = None,
    *,
    user_agent: str = USER_AGENT,
) -> AsyncIterator[BrowserSession]:
    """Yield a started `BrowserSession` for the duration of the context."""
    settings = settings or {}
    crawler = AsyncWebCrawler(config=browser_config(settings, user_agent=user_agent))
    crawler.crawler_strategy.set_hook("on_page_context_created", _on_page_context_created)
    await crawler.start()
    LOGGER.info("browser_started", headless=settings.get("headless", True))
    try:
        yield BrowserSession(
            crawler,
            navigation_timeout_ms=int(settings.get("navigation_timeout_ms", DEFAULT_NAVIGATION_TIMEOUT_MS)),
            locale=str(settings.get("locale", "en-US")),
        )
    finally:
        await crawler.close()
        LOGGER.info("browser_closed")
