"""
Job Supervisor — Background Processing Runs

Runs each processing job as its own asyncio.Task inside the caller's event
loop:

  start()     create the job (validation errors raise to the caller), then
              schedule run_job() in the background and return immediately
  cancel()    cooperative: sets the job's cancel event; the in-flight chunk
              fails with "Processing cancelled" and the job ends failed
  wait()      block until the job's task finishes, return the stored job
  shutdown()  cancel every running job and wait for all of them

Crash isolation:
  Anything that escapes run_job() is logged with traceback and recorded on
  that job as failed. It never propagates into another job's task or into
  the code that called start().
  A task cancelled from outside (loop teardown) also leaves its job failed
  with "Job cancelled" before the cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial

from manuscript_pipeline.core.exceptions import JobCancelledError, JobStateError
from manuscript_pipeline.jobs.tracker import JobTracker
from manuscript_pipeline.storage.base import ProcessingJob

logger = logging.getLogger(__name__)


@dataclass
class _SupervisedJob:
    task:         asyncio.Task
    cancel_event: asyncio.Event


class JobSupervisor:

    def __init__(self, tracker: JobTracker, concurrency: int = 1) -> None:
        self._tracker     = tracker
        self._concurrency = concurrency
        self._jobs: dict[str, _SupervisedJob] = {}

    @property
    def active_jobs(self) -> list[str]:
        return list(self._jobs)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._jobs

    async def start(
        self,
        manuscript_id: str,
        system_prompt: str | None = None,
        user_prompt:   str | None = None,
        concurrency:   int | None = None,
    ) -> ProcessingJob:
        """
        Create a job for the manuscript and process it in the background.

        Raises:
            ManuscriptNotFoundError, JobAlreadyRunningError
        """
        job          = await self._tracker.start_job(manuscript_id, system_prompt)
        cancel_event = asyncio.Event()

        task = asyncio.create_task(
            self._run(
                job.id,
                system_prompt,
                user_prompt,
                concurrency if concurrency is not None else self._concurrency,
                cancel_event,
            ),
            name=f"processing-job-{job.id}",
        )
        self._jobs[job.id] = _SupervisedJob(task=task, cancel_event=cancel_event)
        task.add_done_callback(partial(self._on_done, job.id))

        logger.info("JobSupervisor | job=%s manuscript=%s scheduled", job.id, manuscript_id)
        return job

    def cancel(self, job_id: str) -> bool:
        """Request cancellation; False when the job is not running here."""
        entry = self._jobs.get(job_id)
        if entry is None:
            return False
        entry.cancel_event.set()
        logger.info("JobSupervisor | job=%s cancellation requested", job_id)
        return True

    async def wait(self, job_id: str) -> ProcessingJob:
        entry = self._jobs.get(job_id)
        if entry is not None:
            await asyncio.wait({entry.task})
        return await self._tracker.store.get_job(job_id)

    async def shutdown(self) -> None:
        entries = list(self._jobs.values())
        if not entries:
            return
        logger.info("JobSupervisor | shutting down running_jobs=%d", len(entries))
        for entry in entries:
            entry.cancel_event.set()
        await asyncio.gather(*(e.task for e in entries), return_exceptions=True)

    async def _run(
        self,
        job_id:        str,
        system_prompt: str | None,
        user_prompt:   str | None,
        concurrency:   int,
        cancel_event:  asyncio.Event,
    ) -> ProcessingJob | None:
        try:
            return await self._tracker.run_job(
                job_id,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                concurrency=concurrency,
                cancel_event=cancel_event,
            )
        except JobStateError:
            logger.warning("JobSupervisor | job=%s not runnable", job_id, exc_info=True)
            return None
        except asyncio.CancelledError:
            logger.warning("JobSupervisor | job=%s task cancelled mid-run", job_id)
            try:
                await self._tracker.fail_job(job_id, JobCancelledError())
            except Exception:
                logger.exception("JobSupervisor | job=%s could not be marked failed", job_id)
            raise
        except Exception as exc:
            logger.exception("JobSupervisor | job=%s crashed", job_id)
            try:
                return await self._tracker.fail_job(job_id, exc)
            except Exception:
                logger.exception("JobSupervisor | job=%s could not be marked failed", job_id)
                return None

    def _on_done(self, job_id: str, task: asyncio.Task) -> None:
        self._jobs.pop(job_id, None)
        if task.cancelled():
            logger.warning("JobSupervisor | job=%s task cancelled", job_id)
            return
        job = task.result()
        logger.info(
            "JobSupervisor | job=%s finished status=%s",
            job_id, job.status.value if job is not None else "unknown",
        )
