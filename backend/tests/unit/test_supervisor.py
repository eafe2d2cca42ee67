"""Unit tests for JobSupervisor background runs, cancellation and crash isolation."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from manuscript_pipeline.core.exceptions import JobAlreadyRunningError
from manuscript_pipeline.jobs.tracker import JobTracker
from manuscript_pipeline.storage.base import ChunkStatus, JobStatus, ManuscriptStatus
from manuscript_pipeline.workers.supervisor import JobSupervisor


@pytest.fixture
def make_supervisor(store, make_orchestrator):
    def _build(**providers) -> JobSupervisor:
        return JobSupervisor(JobTracker(store, make_orchestrator(**providers)))
    return _build


@pytest.mark.unit
class TestJobSupervisor:

    async def test_start_returns_immediately_then_completes(
        self, store, seed_manuscript, make_supervisor, make_provider,
    ):
        manuscript = await seed_manuscript(["a", "b"])
        supervisor = make_supervisor(main=make_provider(default="edited"))

        job = await supervisor.start(manuscript.id, user_prompt="Edit:")

        assert job.status == JobStatus.IN_PROGRESS
        assert supervisor.is_running(job.id)

        finished = await supervisor.wait(job.id)

        assert finished.status == JobStatus.COMPLETED
        assert finished.completed_chunks == 2
        assert supervisor.active_jobs == []

    async def test_start_validation_errors_raise(self, seed_manuscript, make_supervisor, make_provider):
        manuscript = await seed_manuscript(["a"])
        supervisor = make_supervisor(main=make_provider(default="edited"))
        job = await supervisor.start(manuscript.id)

        with pytest.raises(JobAlreadyRunningError):
            await supervisor.start(manuscript.id)

        await supervisor.wait(job.id)

    async def test_crash_recorded_and_isolated(
        self, store, seed_manuscript, make_orchestrator, make_provider,
    ):
        bad = await seed_manuscript(["a"], filename="bad.txt")
        good = await seed_manuscript(["b"], filename="good.txt")
        tracker = JobTracker(store, make_orchestrator(main=make_provider(default="edited")))
        supervisor = JobSupervisor(tracker)
        real_run = tracker.run_job
        bad_job_ids: set[str] = set()

        async def _run_job(job_id, **kwargs):
            if job_id in bad_job_ids:
                raise RuntimeError("worker exploded")
            return await real_run(job_id, **kwargs)

        with patch.object(tracker, "run_job", side_effect=_run_job):
            first = await supervisor.start(bad.id)
            bad_job_ids.add(first.id)
            second = await supervisor.start(good.id)

            crashed = await supervisor.wait(first.id)
            healthy = await supervisor.wait(second.id)

        assert crashed.status == JobStatus.FAILED
        assert crashed.error_message == "worker exploded"
        assert (await store.get_manuscript(bad.id)).status == ManuscriptStatus.FAILED
        assert healthy.status == JobStatus.COMPLETED

    async def test_cancel_running_job(
        self, store, seed_manuscript, make_supervisor, hanging_provider,
    ):
        manuscript = await seed_manuscript(["a", "b"])
        supervisor = make_supervisor(main=hanging_provider)
        job = await supervisor.start(manuscript.id)
        await hanging_provider.started.wait()

        assert supervisor.cancel(job.id) is True
        finished = await asyncio.wait_for(supervisor.wait(job.id), timeout=1)

        assert finished.status == JobStatus.FAILED
        assert finished.error_message == "Job cancelled"
        assert (finished.completed_chunks, finished.failed_chunks) == (0, 1)
        chunks = await store.list_chunks(manuscript.id)
        assert chunks[0].status == ChunkStatus.FAILED
        assert chunks[0].error_message == "Processing cancelled"
        assert chunks[1].status == ChunkStatus.PENDING

    async def test_cancel_unknown_job(self, make_supervisor):
        assert make_supervisor().cancel("missing") is False

    async def test_shutdown_cancels_everything(
        self, seed_manuscript, make_supervisor, hanging_provider,
    ):
        manuscript = await seed_manuscript(["a"])
        supervisor = make_supervisor(main=hanging_provider)
        job = await supervisor.start(manuscript.id)
        await hanging_provider.started.wait()

        await asyncio.wait_for(supervisor.shutdown(), timeout=1)

        assert supervisor.active_jobs == []
        assert (await supervisor.wait(job.id)).status == JobStatus.FAILED

    async def test_task_cancelled_from_outside_marks_job_failed(
        self, store, seed_manuscript, make_supervisor, hanging_provider, make_provider,
    ):
        manuscript = await seed_manuscript(["a"])
        supervisor = make_supervisor(main=hanging_provider)
        job = await supervisor.start(manuscript.id)
        await hanging_provider.started.wait()
        task = next(t for t in asyncio.all_tasks() if t.get_name() == f"processing-job-{job.id}")

        task.cancel()
        await asyncio.wait({task})

        assert task.cancelled()
        assert supervisor.active_jobs == []
        stored = await store.get_job(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_message == "Job cancelled"
        assert (await store.get_manuscript(manuscript.id)).status == ManuscriptStatus.FAILED

        retry = make_supervisor(main=make_provider(default="edited"))
        rerun = await retry.wait((await retry.start(manuscript.id)).id)
        assert rerun.status == JobStatus.COMPLETED
