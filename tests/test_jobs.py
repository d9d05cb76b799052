"""Unit tests for the in-memory job store and background job runner.

WHY: The job store is what API clients poll while transcription, translation
or dubbing runs. Incorrect status transitions or missing cleanup would leave
clients polling forever or leak memory in a long-running server.

HOW: Tests are organized by class, one per JobStore method or concern:
  - TestJobCreation: create_job basics, defaults and the job cap
  - TestJobRetrieval: get_job and list_jobs (per user)
  - TestJobUpdate: status transitions, progress, errors, terminal states
  - TestTTLCleanup: expiry logic
  - TestBackgroundRunner: run_project_job success, failure, supersession
  - TestThreadSafety: concurrent access doesn't corrupt state

RULES:
- Each test creates its own JobStore instance (no shared mutable state)
- Time-dependent tests use monkeypatch to control time.time()
"""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from subtitle_studio.server.app import run_project_job
from subtitle_studio.server.jobs import (
    DEFAULT_TTL_SECONDS,
    JobKind,
    JobStatus,
    JobStore,
)


def _make_store(**kwargs) -> JobStore:
    """Create a JobStore with optional overrides."""
    return JobStore(**kwargs)


class TestJobCreation:

    def test_creates_job_with_pending_status(self):
        job = _make_store().create_job(JobKind.TRANSCRIBE, "u1")
        assert job.status == JobStatus.PENDING
        assert job.kind == JobKind.TRANSCRIBE
        assert job.user_id == "u1"

    def test_assigns_unique_id(self):
        store = _make_store()
        assert store.create_job(JobKind.DUB, "u1").id != store.create_job(JobKind.DUB, "u1").id

    def test_sets_timestamps(self):
        before = time.time()
        job = _make_store().create_job(JobKind.DUB, "u1")
        after = time.time()
        assert before <= job.created_at <= after
        assert before <= job.updated_at <= after

    def test_stores_config(self):
        job = _make_store().create_job(JobKind.TRANSLATE, "u1", config={"target_language": "Spanish"})
        assert job.config == {"target_language": "Spanish"}

    def test_initial_fields_are_none_or_empty(self):
        job = _make_store().create_job(JobKind.DUB, "u1")
        assert job.completed_at is None
        assert job.error is None
        assert job.progress is None
        assert job.result == {}
        assert job.config == {}

    def test_max_jobs_enforced(self):
        store = _make_store(max_jobs=2)
        store.create_job(JobKind.DUB, "u1")
        store.create_job(JobKind.DUB, "u1")
        with pytest.raises(ValueError, match="Maximum number"):
            store.create_job(JobKind.DUB, "u1")


class TestJobRetrieval:

    def test_get_missing_job_returns_none(self):
        assert _make_store().get_job("nonexistent-id") is None

    def test_list_jobs_filters_by_user(self):
        store = _make_store()
        mine = store.create_job(JobKind.DUB, "u1")
        store.create_job(JobKind.DUB, "u2")
        assert [j.id for j in store.list_jobs("u1")] == [mine.id]
        assert len(store.list_jobs()) == 2

    def test_list_jobs_ordered_by_creation_time(self, monkeypatch):
        store = _make_store()
        monkeypatch.setattr(time, "time", lambda: 200.0)
        later = store.create_job(JobKind.DUB, "u1")
        monkeypatch.setattr(time, "time", lambda: 100.0)
        earlier = store.create_job(JobKind.DUB, "u1")
        assert [j.id for j in store.list_jobs()] == [earlier.id, later.id]


class TestJobUpdate:

    def test_update_status_and_progress(self):
        store = _make_store()
        job = store.create_job(JobKind.DUB, "u1")
        store.update_job(job.id, status=JobStatus.RUNNING, progress=50.0)
        assert job.status == JobStatus.RUNNING
        assert job.progress == 50.0
        assert job.completed_at is None

    def test_terminal_status_sets_completed_at(self):
        store = _make_store()
        job = store.create_job(JobKind.DUB, "u1")
        store.update_job(job.id, status=JobStatus.FAILED, error="boom")
        assert job.finished
        assert job.completed_at is not None
        assert job.error == "boom"

    def test_only_non_none_fields_updated(self):
        store = _make_store()
        job = store.create_job(JobKind.DUB, "u1")
        store.update_job(job.id, progress=10.0)
        store.update_job(job.id, result={"chunk_count": 2})
        assert job.progress == 10.0
        assert job.result == {"chunk_count": 2}

    def test_update_missing_job_returns_none(self):
        assert _make_store().update_job("missing", status=JobStatus.RUNNING) is None

    def test_delete(self):
        store = _make_store()
        job = store.create_job(JobKind.DUB, "u1")
        assert store.delete_job(job.id) is True
        assert store.delete_job(job.id) is False


class TestTTLCleanup:

    def test_cleanup_removes_expired_completed_job(self, monkeypatch):
        store = _make_store(ttl_seconds=60)
        job = store.create_job(JobKind.TRANSCRIBE, "u1")

        # Complete the job at t=100
        monkeypatch.setattr(time, "time", lambda: 100.0)
        store.update_job(job.id, status=JobStatus.COMPLETED)

        # Cleanup at t=161 (61 seconds later, past 60s TTL)
        monkeypatch.setattr(time, "time", lambda: 161.0)
        assert store.cleanup_expired() == 1
        assert store.get_job(job.id) is None

    def test_cleanup_keeps_non_expired_job(self, monkeypatch):
        store = _make_store(ttl_seconds=60)
        job = store.create_job(JobKind.TRANSCRIBE, "u1")
        monkeypatch.setattr(time, "time", lambda: 100.0)
        store.update_job(job.id, status=JobStatus.COMPLETED)
        monkeypatch.setattr(time, "time", lambda: 130.0)
        assert store.cleanup_expired() == 0
        assert store.get_job(job.id) is not None

    def test_cleanup_ignores_running_jobs(self, monkeypatch):
        store = _make_store(ttl_seconds=1)
        job = store.create_job(JobKind.DUB, "u1")
        store.update_job(job.id, status=JobStatus.RUNNING)
        monkeypatch.setattr(time, "time", lambda: 10.0 ** 12)
        assert store.cleanup_expired() == 0

    def test_default_ttl_is_one_hour(self):
        assert DEFAULT_TTL_SECONDS == 3600


class TestBackgroundRunner:

    def test_successful_operation_completes_job(self):
        store = _make_store()
        job = store.create_job(JobKind.TRANSLATE, "u1")

        async def operation():
            assert store.get_job(job.id).status == JobStatus.RUNNING
            return {"cue_count": 3}

        asyncio.run(run_project_job(store, job.id, operation))
        assert job.status == JobStatus.COMPLETED
        assert job.result == {"cue_count": 3}

    def test_failed_operation_sets_error(self):
        store = _make_store()
        job = store.create_job(JobKind.DUB, "u1")

        async def operation():
            store.update_job(job.id, progress=40.0)
            raise RuntimeError("No audio generated from batches.")

        asyncio.run(run_project_job(store, job.id, operation))
        assert job.status == JobStatus.FAILED
        assert job.error == "No audio generated from batches."
        assert job.progress == 40.0

    def test_superseded_operation_completes_with_flag(self):
        store = _make_store()
        job = store.create_job(JobKind.TRANSCRIBE, "u1")

        async def operation():
            return None

        asyncio.run(run_project_job(store, job.id, operation))
        assert job.status == JobStatus.COMPLETED
        assert job.result == {"superseded": True}


class TestThreadSafety:

    def test_concurrent_creates(self):
        store = _make_store()
        results = []
        errors = []

        def create_job(idx):
            try:
                results.append(store.create_job(JobKind.DUB, "u{}".format(idx)).id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=create_job, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == 20
        assert len(store.list_jobs()) == 20


class TestJobEnums:

    def test_values_are_lowercase_strings(self):
        assert [s.value for s in JobStatus] == ["pending", "running", "completed", "failed"]
        assert [k.value for k in JobKind] == ["transcribe", "translate", "dub"]

    def test_string_comparison(self):
        assert JobStatus.COMPLETED == "completed"
