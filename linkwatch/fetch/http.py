"""HTTP client identity and the text fetcher used during discovery."""
from __future__ import annotations

import asyncio
from typing import Dict, Optional

import httpx
import structlog

LOGGER = structlog.get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_LANGUAGE = "en-US,en;q=0.9"
DEFAULT_TIMEOUT_SECONDS = 10.0


def default_headers(user_agent: str = USER_AGENT) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": ACCEPT_HTML,
        "Accept-Language": ACCEPT_LANGUAGE,
    }


def build_client(
    *,
    user_agent: str = USER_AGENT,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared client carrying the fixed request identity."""
    return httpx.AsyncClient(
        headers=default_headers(user_agent),
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


def is_alive(status_code: int) -> bool:
    """Return True for statuses that indicate the linked resource exists."""
    if 200 <= status_code < 400:
        return True
    # Auth-required pages exist, access is just restricted.
    return status_code in (401, 403)


class HttpFetcher:
    """Fetches text bodies, mapping every failure to ``None``.

    ``timeout`` bounds the whole request, redirects and body included.
    """

    def __init__(self, client: httpx.AsyncClient, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._client = client
        self._timeout = timeout

    async def fetch_text(self, url: str) -> Optional[str]:
        """GET ``url`` and return the body, or None on non-2xx or any failure."""
        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.get(url)
        except TimeoutError:
            LOGGER.info("fetch_failed", url=url, reason=f"exceeded {self._timeout}s deadline")
            return None
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            LOGGER.info("fetch_failed", url=url, reason=str(exc) or repr(exc))
            return None
        if not response.is_success:
            LOGGER.debug("fetch_non_success", url=url, status=response.status_code)
            return None
        return response.text
