"""Exception types raised by the link checking pipeline."""
from __future__ import annotations


class LinkwatchError(Exception):
    """Base class for errors raised by linkwatch."""


class NavigationError(LinkwatchError):
    """Raised when the browser fails to load a page."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class JobStateError(LinkwatchError):
    """Raised on an invalid job lifecycle transition."""


class JobStoreError(LinkwatchError):
    """Raised when a persisted job record cannot be read back."""
