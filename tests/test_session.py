import asyncio
from types import SimpleNamespace
from typing import List

import pytest

from linkwatch.errors import NavigationError
from linkwatch.fetch.session import BrowserSession


class DummyStrategy:
    def __init__(self) -> None:
        self.killed: List[str] = []

    async def kill_session(self, session_id: str) -> None:
        self.killed.append(session_id)


class DummyCrawler:
    """Stands in for AsyncWebCrawler, recording each run config."""

    def __init__(self, result) -> None:
        self.result = result
        self.configs = []
        self.crawler_strategy = DummyStrategy()

    async def arun(self, url, config):
        self.configs.append(config)
        return self.result


def _result(**overrides):
    fields = dict(
        success=True,
        html="<html><head><title> Home </title></head><body></body></html>",
        metadata={},
        url="https://example.com/",
        redirected_url="https://example.com/home",
        error_message=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _render(crawler: DummyCrawler, url: str = "https://example.com/"):
    browser = BrowserSession(crawler, navigation_timeout_ms=15000, locale="en-US")

    async def _run():
        async with browser.open_page() as page:
            return page.session_id, await page.render(url)

    return asyncio.run(_run())


def test_navigation_hides_webdriver_flag():
    crawler = DummyCrawler(_result())
    _render(crawler)

    config = crawler.configs[0]
    assert config.override_navigator is True
    assert config.wait_until == "domcontentloaded"
    assert config.page_timeout == 15000


def test_render_uses_final_url_and_falls_back_to_markup_title():
    crawler = DummyCrawler(_result())
    session_id, page = _render(crawler)

    assert page.url == "https://example.com/home"
    assert page.title == "Home"
    assert crawler.configs[0].session_id == session_id
    assert crawler.crawler_strategy.killed == [session_id]


def test_failed_navigation_raises_and_still_kills_session():
    crawler = DummyCrawler(_result(success=False, error_message="net::ERR_NAME_NOT_RESOLVED"))

    with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
        _render(crawler, "https://nowhere.invalid/")
    assert len(crawler.crawler_strategy.killed) == 1
