"""Log context helpers for job processing stages."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

LOGGER = structlog.get_logger("linkwatch.trace")

_JOB_KEYS = ("job_id", "job_url")


def set_job_context(*, job_id: str, url: str) -> None:
    bind_contextvars(job_id=job_id, job_url=url)


def clear_job_context() -> None:
    unbind_contextvars(*_JOB_KEYS)


@contextlib.contextmanager
def span(*, name: str, url: Optional[str] = None) -> Iterator[None]:
    """Log the elapsed time of a pipeline stage."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        LOGGER.info("trace_span", span=name, url=url, elapsed_ms=elapsed_ms)
