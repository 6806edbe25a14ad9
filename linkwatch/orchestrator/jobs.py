"""Definitions for link check jobs and their lifecycle."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from linkwatch.errors import JobStateError
from linkwatch.orchestrator.options import JobOptions
from linkwatch.storage.models import JobResult

JobStatus = Literal["pending", "processing", "completed", "failed"]

TERMINAL_STATUSES = frozenset({"completed", "failed"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """A request to discover and check the links of one website."""

    url: str
    options: JobOptions
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = "pending"
    result: Optional[JobResult] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _ensure_not_terminal(self, target: str) -> None:
        if self.is_terminal:
            raise JobStateError(f"Job {self.job_id} is {self.status}; cannot move to {target}")

    def mark_processing(self) -> None:
        """Transition the job into the processing state."""
        self._ensure_not_terminal("processing")
        if self.status != "pending":
            raise JobStateError(f"Job {self.job_id} is {self.status}; cannot move to processing")
        self.status = "processing"

    def mark_completed(self, result: JobResult) -> None:
        """Record the job result and mark it completed."""
        self._ensure_not_terminal("completed")
        self.status = "completed"
        self.result = result
        self.completed_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        """Record a failure and capture the error message."""
        self._ensure_not_terminal("failed")
        self.status = "failed"
        self.error = error
        self.completed_at = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-compatible representation of the job."""
        return {
            "job_id": self.job_id,
            "url": self.url,
            "status": self.status,
            "options": self.options.model_dump(),
            "result": self.result.model_dump(mode="json") if self.result else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Job":
        completed_at = payload.get("completed_at")
        result = payload.get("result")
        return cls(
            job_id=payload["job_id"],
            url=payload["url"],
            status=payload["status"],
            options=JobOptions.model_validate(payload.get("options") or {}),
            result=JobResult.model_validate(result) if result else None,
            error=payload.get("error"),
            created_at=datetime.fromisoformat(payload["created_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )
