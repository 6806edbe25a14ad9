"""Command-line entrypoints for linkwatch."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import orjson
import structlog
import tomllib
from dotenv import load_dotenv
from pydantic import ValidationError

from linkwatch.check.checker import LinkChecker
from linkwatch.errors import JobStoreError
from linkwatch.crawl.crawler import PageCrawler
from linkwatch.discovery.sitemap import DEFAULT_MAX_DEPTH, SitemapResolver
from linkwatch.fetch.http import DEFAULT_TIMEOUT_SECONDS, USER_AGENT, HttpFetcher, build_client
from linkwatch.fetch.session import create_browser_session
from linkwatch.observability.log import configure_logging
from linkwatch.observability.metrics import MetricsRegistry
from linkwatch.orchestrator.jobs import Job
from linkwatch.orchestrator.options import JobOptions, normalize_options
from linkwatch.orchestrator.processor import JobOrchestrator
from linkwatch.storage.job_store import InMemoryJobStore, JobStore, JsonFileJobStore

LOGGER = structlog.get_logger(__name__)

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")
DEFAULT_LOGGING_PATH = Path("config/logging.yaml")

# CLI flag -> JobOptions field
OPTION_FLAGS = {
    "max_internal_pages": "max_internal_pages",
    "max_links": "max_links_to_check",
    "concurrency": "link_check_concurrency",
    "batch_delay_ms": "link_batch_delay_ms",
    "batch_jitter_ms": "link_batch_jitter_ms",
    "nav_delay_ms": "navigation_delay_ms",
    "nav_jitter_ms": "navigation_jitter_ms",
}

T = TypeVar("T")


def load_settings(path: Path) -> Dict[str, Any]:
    """Read the TOML configuration file, returning an empty mapping when absent."""
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="linkwatch", description="Find dead outbound links on a website")
    parser.add_argument("--settings", help="Path to settings.toml (default: $LINKWATCH_SETTINGS or config/settings.toml)")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Discover and check the links of a site")
    check.add_argument("url", help="Root URL of the site to check")
    check.add_argument("--no-follow", action="store_true", help="Only harvest links from the root page")
    check.add_argument("--max-internal-pages", type=int, help="Internal pages to visit after the root")
    check.add_argument("--max-links", type=int, help="Maximum number of links to check")
    check.add_argument("--concurrency", type=int, help="Links checked per batch")
    check.add_argument("--batch-delay-ms", type=int, help="Pause between link check batches")
    check.add_argument("--batch-jitter-ms", type=int, help="Random extra pause between batches")
    check.add_argument("--nav-delay-ms", type=int, help="Pause between page navigations")
    check.add_argument("--nav-jitter-ms", type=int, help="Random extra pause between navigations")
    check.add_argument("--store-dir", help="Persist the job as JSON under this directory")

    status = sub.add_parser("status", help="Show a stored job")
    status.add_argument("job_id")
    status.add_argument("--store-dir", help="Directory used by a previous check run")

    return parser


def options_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect the job option overrides given on the command line."""
    overrides: Dict[str, Any] = {
        field: getattr(args, flag) for flag, field in OPTION_FLAGS.items() if getattr(args, flag, None) is not None
    }
    if getattr(args, "no_follow", False):
        overrides["follow_internal_links"] = False
    return overrides


def _store_dir(args: argparse.Namespace, settings: Dict[str, Any]) -> Optional[Path]:
    if getattr(args, "store_dir", None):
        return Path(args.store_dir)
    jobs_dir = settings.get("app", {}).get("jobs_dir")
    return Path(jobs_dir) if jobs_dir else None


def _print_job(job: Job) -> None:
    sys.stdout.write(orjson.dumps(job.to_dict(), option=orjson.OPT_INDENT_2).decode())
    sys.stdout.write("\n")


async def run_check(
    args: argparse.Namespace,
    settings: Dict[str, Any],
    *,
    store: Optional[JobStore] = None,
    metrics: Optional[MetricsRegistry] = None,
) -> Job:
    """Run one job end-to-end with a real browser and HTTP client."""
    fetch_cfg = settings.get("fetch", {})
    user_agent = str(fetch_cfg.get("user_agent", USER_AGENT))
    metrics = metrics or MetricsRegistry()
    if store is None:
        store_dir = _store_dir(args, settings)
        store = JsonFileJobStore(store_dir) if store_dir else InMemoryJobStore()
    defaults = normalize_options(settings.get("job_defaults"))
    timeout = float(fetch_cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))

    async with contextlib.AsyncExitStack() as stack:
        client = await stack.enter_async_context(
            build_client(user_agent=user_agent, timeout=timeout)
        )
        browser = await stack.enter_async_context(
            create_browser_session(settings.get("browser", {}), user_agent=user_agent)
        )
        orchestrator = JobOrchestrator(
            resolver=SitemapResolver(
                HttpFetcher(client, timeout=timeout),
                max_depth=int(settings.get("sitemap", {}).get("max_depth", DEFAULT_MAX_DEPTH)),
                metrics=metrics,
            ),
            crawler=PageCrawler(browser, metrics=metrics),
            checker=LinkChecker(client, timeout=timeout, metrics=metrics),
            store=store,
            metrics=metrics,
            default_options=defaults,
        )
        job = await orchestrator.submit(args.url, options_from_args(args))
        await orchestrator.wait(job.job_id)

    LOGGER.info("run_finished", job_id=job.job_id, status=job.status, **metrics.link_summary())
    metrics_dir = settings.get("app", {}).get("metrics_dir")
    if metrics_dir:
        metrics.export(path=Path(metrics_dir) / f"run_{job.job_id}.json", run_id=job.job_id)
    return job


async def run_status(args: argparse.Namespace, settings: Dict[str, Any]) -> Optional[Job]:
    store_dir = _store_dir(args, settings)
    if store_dir is None:
        raise SystemExit("status requires --store-dir or [app] jobs_dir in settings")
    return await JsonFileJobStore(store_dir).get(args.job_id)


def _run(coro: Awaitable[T]) -> T:
    if sys.platform != "win32":
        import uvloop

        return uvloop.run(coro)
    return asyncio.run(coro)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings_path = Path(args.settings or os.environ.get("LINKWATCH_SETTINGS") or DEFAULT_SETTINGS_PATH)
    settings = load_settings(settings_path)
    configure_logging(Path(settings.get("app", {}).get("logging_config", DEFAULT_LOGGING_PATH)))

    if args.command == "check":
        try:
            JobOptions.model_validate(options_from_args(args))
        except ValidationError as exc:
            raise SystemExit(f"Invalid options: {exc}")
        job = _run(run_check(args, settings))
        _print_job(job)
        if job.status == "failed":
            raise SystemExit(1)
        return

    if args.command == "status":
        try:
            stored = _run(run_status(args, settings))
        except JobStoreError as exc:
            raise SystemExit(str(exc)) from exc
        if stored is None:
            raise SystemExit(f"Job {args.job_id} not found")
        _print_job(stored)


if __name__ == "__main__":
    main()
