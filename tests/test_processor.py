import asyncio
from typing import List, Optional, Sequence

import pytest

from linkwatch.crawl.crawler import CrawlOutcome
from linkwatch.errors import NavigationError
from linkwatch.observability.metrics import MetricsRegistry
from linkwatch.orchestrator.options import JobOptions
from linkwatch.orchestrator.processor import JobOrchestrator
from linkwatch.storage.job_store import InMemoryJobStore
from linkwatch.storage.models import JobResult, LinkResult


class FakeResolver:
    def __init__(self, urls: List[str]) -> None:
        self.urls = urls
        self.origins: List[str] = []

    async def discover(self, origin: str) -> List[str]:
        self.origins.append(origin)
        return list(self.urls)


class FakeCrawler:
    def __init__(self, links: List[str], error: Optional[Exception] = None) -> None:
        self.links = links
        self.error = error
        self.calls = []

    async def crawl(self, root_url: str, options: JobOptions, extra_seed_pages: Sequence[str] = ()) -> CrawlOutcome:
        self.calls.append((root_url, list(extra_seed_pages)))
        if self.error is not None:
            raise self.error
        return CrawlOutcome(title="Example", links=list(self.links), pages_crawled_urls=[root_url])


class FakeChecker:
    def __init__(self) -> None:
        self.checked: List[str] = []

    async def check_links(self, urls: Sequence[str], options: JobOptions) -> List[LinkResult]:
        self.checked = list(urls)
        return [
            LinkResult(url=url, status="dead", status_code=404)
            if url.endswith("/gone")
            else LinkResult(url=url, status="alive", status_code=200)
            for url in urls
        ]


class RecordingStore(InMemoryJobStore):
    def __init__(self) -> None:
        super().__init__()
        self.events: List[str] = []

    async def on_processing(self, job_id: str) -> None:
        self.events.append("processing")
        await super().on_processing(job_id)

    async def on_completed(self, job_id: str, result: JobResult) -> None:
        self.events.append("completed")
        await super().on_completed(job_id, result)

    async def on_failed(self, job_id: str, error: str) -> None:
        self.events.append("failed")
        await super().on_failed(job_id, error)


def _orchestrator(resolver, crawler, checker, store, metrics=None) -> JobOrchestrator:
    return JobOrchestrator(resolver=resolver, crawler=crawler, checker=checker, store=store, metrics=metrics)


def test_sitemap_discovery_seeds_crawler_with_same_origin_pages():
    resolver = FakeResolver(
        [
            "https://example.com/one",
            "https://cdn.example.net/asset",
            "https://example.com/two",
            "https://example.com/three",
        ]
    )
    crawler = FakeCrawler(["https://example.com/ok", "https://example.com/gone"])
    checker = FakeChecker()
    store = RecordingStore()
    metrics = MetricsRegistry()

    async def _run():
        orchestrator = _orchestrator(resolver, crawler, checker, store, metrics)
        job = await orchestrator.submit("https://example.com/start?x=1", {"max_internal_pages": 2})
        assert job.status == "pending"
        await orchestrator.wait()
        return job, await store.get(job.job_id)

    job, stored = asyncio.run(_run())

    assert resolver.origins == ["https://example.com"]
    assert crawler.calls == [("https://example.com/start?x=1", ["https://example.com/one", "https://example.com/two"])]
    assert store.events == ["processing", "completed"]
    assert job.status == "completed"
    assert job.completed_at is not None
    assert stored.status == "completed"
    result = stored.result
    assert result.discovery_method == "sitemap"
    assert result.title == "Example"
    assert (result.links_checked, result.alive, result.dead, result.errors) == (2, 1, 1, 0)
    assert result.pages_crawled_urls == ["https://example.com/start?x=1"]
    assert metrics.get("jobs_completed") == 1


def test_scrape_fallback_and_link_cap():
    crawler = FakeCrawler([f"https://example.com/{index}" for index in range(5)])
    checker = FakeChecker()
    store = RecordingStore()

    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), crawler, checker, store)
        job = await orchestrator.submit("https://example.com/", {"maxLinksToCheck": 3})
        await orchestrator.wait(job.job_id)
        return await store.get(job.job_id)

    stored = asyncio.run(_run())

    assert crawler.calls == [("https://example.com/", [])]
    assert checker.checked == ["https://example.com/0", "https://example.com/1", "https://example.com/2"]
    assert stored.result.discovery_method == "scrape"
    assert stored.result.links_checked == 3


def test_failures_mark_job_failed():
    crawler = FakeCrawler([], error=NavigationError("https://example.com/", "net::ERR_NAME_NOT_RESOLVED"))
    store = RecordingStore()
    metrics = MetricsRegistry()

    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), crawler, FakeChecker(), store, metrics)
        job = await orchestrator.submit("https://example.com/")
        await orchestrator.wait()
        return job, await store.get(job.job_id)

    job, stored = asyncio.run(_run())

    assert store.events == ["processing", "failed"]
    assert job.status == "failed"
    assert job.result is None
    assert job.completed_at is not None
    assert stored.error == "Navigation to https://example.com/ failed: net::ERR_NAME_NOT_RESOLVED"
    assert metrics.get("jobs_failed") == 1


def test_invalid_job_url_fails_the_job():
    store = RecordingStore()

    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), FakeCrawler([]), FakeChecker(), store)
        job = await orchestrator.submit("not-a-url")
        await orchestrator.wait()
        return await store.get(job.job_id)

    stored = asyncio.run(_run())
    assert stored.status == "failed"
    assert "Invalid URL" in stored.error


def test_submit_requires_url():
    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), FakeCrawler([]), FakeChecker(), RecordingStore())
        await orchestrator.submit("  ")

    with pytest.raises(ValueError):
        asyncio.run(_run())


def test_multiple_jobs_run_concurrently():
    store = RecordingStore()

    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), FakeCrawler(["https://example.com/a"]), FakeChecker(), store)
        jobs = [await orchestrator.submit(f"https://site{index}.example/") for index in range(3)]
        await orchestrator.wait()
        return [await store.get(job.job_id) for job in jobs]

    stored = asyncio.run(_run())
    assert [job.status for job in stored] == ["completed"] * 3
    assert store.events.count("completed") == 3


class FlakyCompletionStore(RecordingStore):
    """Store whose completion write fails for one URL."""

    def __init__(self, broken_url: str) -> None:
        super().__init__()
        self.broken_url = broken_url

    async def on_completed(self, job_id: str, result: JobResult) -> None:
        job = await self.get(job_id)
        if job.url == self.broken_url:
            raise OSError("disk full")
        await super().on_completed(job_id, result)


def test_wait_survives_a_crashed_job_task():
    store = FlakyCompletionStore("https://broken.example/")

    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), FakeCrawler(["https://example.com/a"]), FakeChecker(), store)
        broken = await orchestrator.submit("https://broken.example/")
        healthy = await orchestrator.submit("https://healthy.example/")
        await orchestrator.wait()
        return await store.get(broken.job_id), await store.get(healthy.job_id)

    broken, healthy = asyncio.run(_run())

    assert healthy.status == "completed"
    assert broken.status == "processing"
    assert store.events.count("completed") == 1
    assert "failed" not in store.events


def test_wait_for_a_single_crashed_job_returns():
    store = FlakyCompletionStore("https://broken.example/")

    async def _run():
        orchestrator = _orchestrator(FakeResolver([]), FakeCrawler([]), FakeChecker(), store)
        job = await orchestrator.submit("https://broken.example/")
        await orchestrator.wait(job.job_id)
        return job

    job = asyncio.run(_run())
    assert job.status == "completed"
