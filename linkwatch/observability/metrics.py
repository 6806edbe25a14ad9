"""Per-run counters for discovery, crawling and link checks."""
from __future__ import annotations

import contextlib
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator

import orjson
import structlog

LOGGER = structlog.get_logger(__name__)

COUNTERS = (
    "sitemaps_fetched",
    "sitemap_urls",
    "pages_crawled",
    "navigation_failures",
    "links_checked",
    "links_alive",
    "links_dead",
    "links_error",
    "jobs_completed",
    "jobs_failed",
    "job_duration_ms",
)


class MetricsRegistry:
    """Counters shared by the pipeline stages of one process.

    Every name in ``COUNTERS`` is reported even when it never moved, so
    exported runs always carry the same keys.
    """

    def __init__(self) -> None:
        self._counts: Counter = Counter(dict.fromkeys(COUNTERS, 0))

    def incr(self, name: str, value: int = 1) -> None:
        self._counts[name] += value

    def get(self, name: str) -> int:
        return self._counts[name]

    def link_summary(self) -> Dict[str, int]:
        """Checked/alive/dead/error tallies, as logged at the end of a run."""
        return {status: self._counts[f"links_{status}"] for status in ("checked", "alive", "dead", "error")}

    def export(self, *, path: Path, run_id: str) -> Path:
        """Write ``{run_id, generated_at, counters}`` as JSON to ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "run_id": run_id,
            "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "counters": dict(sorted(self._counts.items())),
        }
        path.write_bytes(orjson.dumps(document, option=orjson.OPT_INDENT_2))
        LOGGER.info("metrics_exported", path=str(path))
        return path


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Add the block's wall time in milliseconds to ``metric_name``."""
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.debug("duration_recorded", metric=metric_name, duration_ms=elapsed_ms)
