"""Per-job pipeline: sitemap discovery, crawling, link checking."""
from __future__ import annotations

import asyncio
import functools
from typing import Dict, Optional

import structlog

from linkwatch.check.checker import LinkChecker, cap_links
from linkwatch.crawl.crawler import PageCrawler
from linkwatch.discovery.sitemap import SitemapResolver
from linkwatch.errors import JobStateError
from linkwatch.observability.metrics import MetricsRegistry, record_duration
from linkwatch.observability.tracing import clear_job_context, set_job_context, span
from linkwatch.orchestrator.jobs import Job
from linkwatch.orchestrator.options import JobOptions, OptionsInput, normalize_options
from linkwatch.parse.links import origin_of, same_origin
from linkwatch.storage.job_store import JobStore
from linkwatch.storage.models import DiscoveryMethod, JobResult

LOGGER = structlog.get_logger(__name__)


class JobOrchestrator:
    """Runs jobs as background tasks and reports lifecycle changes to a store."""

    def __init__(
        self,
        *,
        resolver: SitemapResolver,
        crawler: PageCrawler,
        checker: LinkChecker,
        store: JobStore,
        metrics: Optional[MetricsRegistry] = None,
        default_options: Optional[JobOptions] = None,
    ) -> None:
        self._resolver = resolver
        self._crawler = crawler
        self._checker = checker
        self._store = store
        self._metrics = metrics or MetricsRegistry()
        self._default_options = default_options
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    async def submit(self, url: str, options: OptionsInput = None) -> Job:
        """Create a pending job and start processing it in the background."""
        if not url or not url.strip():
            raise ValueError("url is required")
        job = Job(url=url.strip(), options=normalize_options(options, defaults=self._default_options))
        await self._store.add(job)
        LOGGER.info("job_created", job_id=job.job_id, url=job.url)

        task = asyncio.create_task(self.process(job), name=f"job-{job.job_id}")
        self._tasks[job.job_id] = task
        task.add_done_callback(functools.partial(self._on_task_done, job.job_id))
        return job

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._tasks.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error("job_task_crashed", job_id=job_id, error=str(task.exception()))

    async def wait(self, job_id: Optional[str] = None) -> None:
        """Wait for one job, or every in-flight job, to finish.

        Crashed tasks are already logged by the done callback, so their
        exceptions are collected here rather than re-raised.
        """
        if job_id is not None:
            task = self._tasks.get(job_id)
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)
            return
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def process(self, job: Job) -> None:
        """Drive ``job`` to a terminal state, notifying the store exactly once at the end."""
        if job.status != "pending":
            raise JobStateError(f"Job {job.job_id} is {job.status}; only pending jobs can be processed")
        set_job_context(job_id=job.job_id, url=job.url)
        try:
            with record_duration(self._metrics, "job_duration_ms"):
                try:
                    job.mark_processing()
                    await self._store.on_processing(job.job_id)
                    result = await self._run(job)
                except Exception as exc:
                    job.mark_failed(str(exc) or repr(exc))
                    self._metrics.incr("jobs_failed")
                    LOGGER.error("job_failed", error=job.error, exc_info=True)
                    await self._store.on_failed(job.job_id, job.error)
                else:
                    job.mark_completed(result)
                    self._metrics.incr("jobs_completed")
                    LOGGER.info(
                        "job_completed",
                        alive=result.alive,
                        dead=result.dead,
                        errors=result.errors,
                    )
                    await self._store.on_completed(job.job_id, result)
        finally:
            clear_job_context()

    async def _run(self, job: Job) -> JobResult:
        options = job.options
        origin = origin_of(job.url)

        with span(name="sitemap_discovery", url=origin):
            sitemap_pages = await self._resolver.discover(origin)

        discovery_method: DiscoveryMethod
        if sitemap_pages:
            discovery_method = "sitemap"
            LOGGER.info("sitemap_found", urls=len(sitemap_pages))
            seeds = [url for url in sitemap_pages if same_origin(url, origin)][: options.max_internal_pages]
            with span(name="crawl", url=job.url):
                outcome = await self._crawler.crawl(job.url, options, seeds)
        else:
            discovery_method = "scrape"
            LOGGER.info("sitemap_missing_fallback_scrape")
            with span(name="crawl", url=job.url):
                outcome = await self._crawler.crawl(job.url, options)

        links = cap_links(outcome.links, options.max_links_to_check)
        LOGGER.info("links_to_check", count=len(links))
        with span(name="link_check", url=job.url):
            results = await self._checker.check_links(links, options)

        return JobResult.from_links(
            title=outcome.title,
            discovery_method=discovery_method,
            pages_crawled_urls=outcome.pages_crawled_urls,
            links=results,
        )
