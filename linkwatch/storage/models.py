"""Pydantic models for link check results."""
from __future__ import annotations

from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

LinkStatus = Literal["alive", "dead", "error"]
DiscoveryMethod = Literal["sitemap", "scrape"]


class LinkResult(BaseModel):
    """Outcome of probing a single URL."""

    url: str
    status: LinkStatus
    status_code: Optional[int] = Field(default=None, description="HTTP status for alive/dead links")
    error: Optional[str] = Field(default=None, description="Exception text for errored links")


class JobResult(BaseModel):
    """Aggregated output of a completed job."""

    title: str
    discovery_method: DiscoveryMethod
    pages_crawled: int
    pages_crawled_urls: List[str]
    links_checked: int
    alive: int
    dead: int
    errors: int
    links: List[LinkResult]

    @classmethod
    def from_links(
        cls,
        *,
        title: str,
        discovery_method: DiscoveryMethod,
        pages_crawled_urls: Sequence[str],
        links: Sequence[LinkResult],
    ) -> "JobResult":
        """Build a result, deriving the tallies from ``links``."""
        statuses = [link.status for link in links]
        return cls(
            title=title,
            discovery_method=discovery_method,
            pages_crawled=len(pages_crawled_urls),
            pages_crawled_urls=list(pages_crawled_urls),
            links_checked=len(links),
            alive=statuses.count("alive"),
            dead=statuses.count("dead"),
            errors=statuses.count("error"),
            links=list(links),
        )
