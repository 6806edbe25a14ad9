"""Interfaces between the crawler and whatever renders pages for it."""
from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class RenderedPage:
    """DOM snapshot of a page after navigation."""

    url: str
    title: str
    html: str


class PageSession(Protocol):
    """One browsing session; pages are rendered one at a time."""

    async def render(self, url: str) -> RenderedPage:
        """Navigate to ``url``; raise `NavigationError` when it cannot be loaded."""
        ...


class PageRenderer(Protocol):
    """Hands out browsing sessions that are released when the block exits."""

    def open_page(self) -> contextlib.AbstractAsyncContextManager[PageSession]: ...
