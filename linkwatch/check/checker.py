"""Batched, rate-limited link probing and status classification."""
from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

import httpx
import structlog

from linkwatch.fetch.http import ACCEPT_HTML, DEFAULT_TIMEOUT_SECONDS, is_alive
from linkwatch.observability.metrics import MetricsRegistry
from linkwatch.orchestrator.options import JobOptions
from linkwatch.orchestrator.timing import jitter, sleep_ms
from linkwatch.storage.models import LinkResult

LOGGER = structlog.get_logger(__name__)

HEAD_HEADERS = {"Accept": "*/*"}
GET_HEADERS = {"Accept": ACCEPT_HTML}


def cap_links(urls: Sequence[str], max_links: int) -> List[str]:
    """Keep the first ``max_links`` URLs."""
    if len(urls) > max_links:
        LOGGER.info("links_capped", found=len(urls), kept=max_links)
    return list(urls[:max_links])


class LinkChecker:
    """Check URLs with HEAD (falling back to GET on 405) in paced batches."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._metrics = metrics or MetricsRegistry()

    async def _fetch_status(self, url: str) -> int:
        response = await self._client.head(url, headers=HEAD_HEADERS)
        if response.status_code != httpx.codes.METHOD_NOT_ALLOWED:
            return response.status_code
        async with self._client.stream("GET", url, headers=GET_HEADERS) as response:
            return response.status_code

    async def check_link(self, url: str) -> LinkResult:
        """Check one URL within the deadline; exceptions become ``error`` results."""
        try:
            async with asyncio.timeout(self._timeout):
                status_code = await self._fetch_status(url)
        except TimeoutError:
            return LinkResult(url=url, status="error", error=f"Timed out after {self._timeout}s")
        except Exception as exc:
            return LinkResult(url=url, status="error", error=str(exc) or repr(exc))
        status = "alive" if is_alive(status_code) else "dead"
        return LinkResult(url=url, status=status, status_code=status_code)

    async def check_links(self, urls: Sequence[str], options: JobOptions) -> List[LinkResult]:
        """Check ``urls`` in sequential batches of concurrent requests.

        Each batch is awaited in full before the next starts, with a jittered
        pause between batches. Results keep the input order.
        """
        results: List[LinkResult] = []
        batch_size = max(1, options.link_check_concurrency)
        total = len(urls)
        for start in range(0, total, batch_size):
            batch = urls[start : start + batch_size]
            results.extend(await asyncio.gather(*(self.check_link(url) for url in batch)))
            LOGGER.info("link_batch_checked", checked=min(start + batch_size, total), total=total)
            if start + batch_size < total:
                await sleep_ms(options.link_batch_delay_ms + jitter(options.link_batch_jitter_ms))

        for result in results:
            self._metrics.incr(f"links_{result.status}")
        self._metrics.incr("links_checked", len(results))
        return results
