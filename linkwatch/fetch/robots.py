"""Robots.txt helpers for locating sitemaps."""
from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urljoin

_SITEMAP_DIRECTIVE = re.compile(r"^Sitemap:\s*(.+)$", re.IGNORECASE)

WELL_KNOWN_SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")


def robots_url(origin: str) -> str:
    return urljoin(origin, "/robots.txt")


def extract_sitemap_urls_from_robots_txt(robots_txt: str) -> List[str]:
    """Return the URL of every ``Sitemap:`` directive in encounter order."""
    sitemap_urls: List[str] = []
    for line in robots_txt.splitlines():
        match = _SITEMAP_DIRECTIVE.match(line.strip())
        if match:
            sitemap_urls.append(match.group(1).strip())
    return sitemap_urls


def sitemap_candidates(origin: str, robots_txt: Optional[str]) -> List[str]:
    """Combine robots.txt directives with the well-known sitemap locations."""
    candidates = extract_sitemap_urls_from_robots_txt(robots_txt) if robots_txt else []
    for path in WELL_KNOWN_SITEMAP_PATHS:
        url = urljoin(origin, path)
        if url not in candidates:
            candidates.append(url)
    return candidates
