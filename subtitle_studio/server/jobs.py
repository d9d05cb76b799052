"""In-memory job store for long-running project operations with TTL cleanup.

WHY: Transcription, translation and dubbing take seconds to minutes, so
the HTTP API returns a job ID immediately and runs the operation in the
background. Clients poll the job for status and progress, then re-read
the project. An in-memory store is sufficient for a single-process server.

HOW: Three components work together:
  JobStatus : enum of valid job states
  Job       : dataclass holding the operation kind, owner, status, progress
  JobStore  : thread-safe dict-based store with create/update/get/list/delete
              and TTL cleanup of finished jobs

RULES:
- All store mutations are protected by threading.Lock
- Job IDs are UUID4 hex strings generated at creation time
- Jobs move pending -> running -> completed | failed
- progress is a 0-100 percentage, only reported by dub jobs
- Default TTL is 1 hour (3600 seconds), measured from completion
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Default time-to-live for completed/failed jobs (seconds)
DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for a background job.

    RULES:
    - pending: job created, not yet started
    - running: the operation is awaiting the AI service
    - completed: the project has been updated
    - failed: terminal error; error holds the user-facing message
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, enum.Enum):
    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"
    DUB = "dub"


@dataclass
class Job:
    """Metadata and state for a single background operation.

    RULES:
    - id: UUID4 hex string, unique and immutable after creation
    - kind: which project operation the job runs
    - user_id: owner; other users cannot see the job
    - completed_at: epoch timestamp when the job reached a terminal state
    - error: message string if status is FAILED, else None
    - result: small summary dict (e.g. {"cue_count": 12})
    """

    id: str
    kind: JobKind
    user_id: str
    status: JobStatus
    created_at: float
    updated_at: float
    completed_at: float | None = None
    error: str | None = None
    progress: float | None = None
    config: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobStore:
    """Thread-safe in-memory store for background jobs.

    RULES:
    - get_job() returns None for missing job IDs (no exceptions)
    - update_job() only applies non-None arguments and bumps updated_at
    - create_job() raises ValueError once max_jobs are stored
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(
        self,
        kind: JobKind,
        user_id: str,
        config: dict[str, Any] | None = None,
    ) -> Job:
        """Create a new job in PENDING state."""
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(
                        self.max_jobs
                    )
                )

            now = time.time()
            job = Job(
                id=uuid.uuid4().hex,
                kind=kind,
                user_id=user_id,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
                config=config or {},
            )
            self._jobs[job.id] = job

        logger.info("Created %s job %s for user %s", kind.value, job.id, user_id)
        return job

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self, user_id: str | None = None) -> list[Job]:
        """All jobs (optionally one user's), oldest first."""
        with self._lock:
            jobs = [j for j in self._jobs.values() if user_id is None or j.user_id == user_id]
        return sorted(jobs, key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: JobStatus | None = None,
        error: str | None = None,
        progress: float | None = None,
        result: dict[str, Any] | None = None,
    ) -> Job | None:
        """Update a job's mutable fields.

        completed_at is set when the job reaches COMPLETED or FAILED.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            now = time.time()

            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if progress is not None:
                job.progress = progress
            if result is not None:
                job.result = result

            job.updated_at = now

            if job.finished and job.completed_at is None:
                job.completed_at = now

            return job

    def delete_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        logger.info("Deleted job %s", job_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove finished jobs older than the TTL. Returns the count removed."""
        now = time.time()
        expired: list[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.finished or job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired.append(self._jobs.pop(job_id))

        for job in expired:
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)

        return len(expired)
