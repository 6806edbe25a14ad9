"""Job persistence backends notified through lifecycle callbacks."""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

import orjson
import structlog

from linkwatch.errors import JobStoreError
from linkwatch.orchestrator.jobs import Job
from linkwatch.storage.models import JobResult

LOGGER = structlog.get_logger(__name__)


class JobStore(Protocol):
    """Mutation surface required by the orchestrator.

    Updates are last-write-wins keyed by job id; calling a callback twice with
    the same arguments leaves the stored job unchanged.
    """

    async def add(self, job: Job) -> None: ...

    async def get(self, job_id: str) -> Optional[Job]: ...

    async def on_processing(self, job_id: str) -> None: ...

    async def on_completed(self, job_id: str, result: JobResult) -> None: ...

    async def on_failed(self, job_id: str, error: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryJobStore:
    """Keeps job snapshots in a dictionary for the lifetime of the process."""

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}

    async def add(self, job: Job) -> None:
        self._jobs[job.job_id] = dataclasses.replace(job)

    async def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return dataclasses.replace(job) if job else None

    async def on_processing(self, job_id: str) -> None:
        self._jobs[job_id].status = "processing"

    async def on_completed(self, job_id: str, result: JobResult) -> None:
        job = self._jobs[job_id]
        job.status = "completed"
        job.result = result
        job.completed_at = _utcnow()

    async def on_failed(self, job_id: str, error: str) -> None:
        job = self._jobs[job_id]
        job.status = "failed"
        job.error = error
        job.completed_at = _utcnow()


class JsonFileJobStore:
    """Persist one JSON document per job under a directory."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def path_for(self, job_id: str) -> Path:
        return self._root / f"{job_id}.json"

    def _read(self, job_id: str) -> Optional[Job]:
        path = self.path_for(job_id)
        if not path.exists():
            return None
        try:
            return Job.from_dict(orjson.loads(path.read_bytes()))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.error("job_record_corrupt", job_id=job_id, path=str(path), error=str(exc))
            raise JobStoreError(f"Job record {path} is unreadable: {exc}") from exc

    def _write(self, job: Job) -> None:
        self.path_for(job.job_id).write_bytes(orjson.dumps(job.to_dict(), option=orjson.OPT_INDENT_2))

    async def _update(self, job_id: str, **changes: object) -> None:
        async with self._lock:
            job = await asyncio.to_thread(self._read, job_id)
            if job is None:
                raise KeyError(f"Unknown job {job_id}")
            await asyncio.to_thread(self._write, dataclasses.replace(job, **changes))

    async def add(self, job: Job) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, job)

    async def get(self, job_id: str) -> Optional[Job]:
        return await asyncio.to_thread(self._read, job_id)

    async def on_processing(self, job_id: str) -> None:
        await self._update(job_id, status="processing")

    async def on_completed(self, job_id: str, result: JobResult) -> None:
        await self._update(job_id, status="completed", result=result, completed_at=_utcnow())

    async def on_failed(self, job_id: str, error: str) -> None:
        await self._update(job_id, status="failed", error=error, completed_at=_utcnow())
