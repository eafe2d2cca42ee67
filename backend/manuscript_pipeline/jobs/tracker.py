"""
Job Tracker — Chunk and Job State Machine

Drives one processing run over a manuscript's chunks and keeps the persisted
state consistent at every step, so status polling mid-run is always safe.

Chunk states
────────────
    pending → processing → completed | failed

    processing   set immediately before the orchestrator is invoked
    completed    ProcessResult.success; response and provider recorded
    failed       exhausted providers, cancellation, or an unexpected
                 exception inside the per-chunk scope (absorbed here)

Job states
──────────
    in_progress → completed   every chunk resolved, none failed
                → partial     every chunk resolved, at least one failed
                → failed      job-fatal error (chunk list unreadable,
                              store failure outside the chunk scope,
                              job cancellation)

Counters
────────
  completed_chunks / failed_chunks are persisted after every chunk
  resolution. Each update is a read-modify-write of the stored job under a
  per-job asyncio.Lock, so concurrent chunks in the batched path never lose
  an update.

Ordering
────────
  concurrency <= 1  strictly ascending chunk index, one at a time
  concurrency  > 1  sequential batches of `concurrency` chunks, each batch
                    processed concurrently
"""

from __future__ import annotations

import asyncio
import logging

from manuscript_pipeline.core.exceptions import (
    JobAlreadyRunningError,
    JobCancelledError,
    JobStateError,
)
from manuscript_pipeline.llm.fallback import FallbackOrchestrator, ProcessResult
from manuscript_pipeline.observability.tracing import traced
from manuscript_pipeline.storage.base import (
    ChunkRecord,
    ChunkStatus,
    ChunkStore,
    JobStatus,
    ManuscriptStatus,
    ProcessingJob,
    ProviderAttemptLog,
)

logger = logging.getLogger(__name__)

FATAL_ERROR_FALLBACK = "Fatal processing error"
CHUNK_ERROR_FALLBACK = "Unknown error"


def terminal_status(failed_chunks: int) -> JobStatus:
    """Terminal status of a job whose chunks have all resolved."""
    return JobStatus.COMPLETED if failed_chunks == 0 else JobStatus.PARTIAL


class JobTracker:
    """
    Usage::

        tracker = JobTracker(store, orchestrator)
        job = await tracker.start_job(manuscript_id, system_prompt="...")
        job = await tracker.run_job(job.id, system_prompt="...", user_prompt="Edit:")
        assert job.status.is_terminal
    """

    def __init__(self, store: ChunkStore, orchestrator: FallbackOrchestrator) -> None:
        self._store        = store
        self._orchestrator = orchestrator
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> ChunkStore:
        return self._store

    # -----------------------------------------------------------------------
    # Job creation
    # -----------------------------------------------------------------------

    async def start_job(
        self, manuscript_id: str, system_prompt: str | None = None,
    ) -> ProcessingJob:
        """
        Create an in_progress job for the manuscript and mark it processing.

        Raises:
            ManuscriptNotFoundError: unknown manuscript.
            JobAlreadyRunningError:  the manuscript is already processing.
        """
        manuscript = await self._store.get_manuscript(manuscript_id)
        if manuscript.status == ManuscriptStatus.PROCESSING:
            raise JobAlreadyRunningError(manuscript_id)

        chunks = await self._store.list_chunks(manuscript_id)
        job = await self._store.create_job(ProcessingJob(
            manuscript_id=manuscript_id,
            total_chunks=len(chunks),
            system_prompt=system_prompt or None,
        ))
        await self._store.set_manuscript_status(manuscript_id, ManuscriptStatus.PROCESSING)

        logger.info(
            "JobTracker | job=%s manuscript=%s total_chunks=%d created",
            job.id, manuscript_id, job.total_chunks,
        )
        return job

    # -----------------------------------------------------------------------
    # Job execution
    # -----------------------------------------------------------------------

    @traced("jobs.run_job")
    async def run_job(
        self,
        job_id:        str,
        system_prompt: str | None           = None,
        user_prompt:   str | None           = None,
        concurrency:   int                  = 1,
        cancel_event:  asyncio.Event | None = None,
    ) -> ProcessingJob:
        """
        Resolve every chunk of the job's manuscript and set the terminal status.

        Per-chunk failures never escape; job-fatal errors are recorded on the
        job (status failed) and the failed job is returned.

        Raises:
            JobNotFoundError: unknown job id.
            JobStateError:    the job already finished or is running here.
        """
        if job_id in self._locks:
            raise JobStateError(job_id, "already running")
        self._locks[job_id] = asyncio.Lock()
        try:
            job = await self._store.get_job(job_id)
            if job.status.is_terminal:
                raise JobStateError(job_id, f"already {job.status.value}")
        except BaseException:
            self._locks.pop(job_id, None)
            raise

        try:
            chunks = await self._store.list_chunks(job.manuscript_id)
            logger.info(
                "JobTracker | job=%s chunks=%d concurrency=%d starting",
                job_id, len(chunks), concurrency,
            )

            if concurrency <= 1:
                for chunk in chunks:
                    _raise_if_cancelled(cancel_event)
                    await self._process_chunk(job, chunk, system_prompt, user_prompt, cancel_event)
            else:
                for offset in range(0, len(chunks), concurrency):
                    _raise_if_cancelled(cancel_event)
                    batch = chunks[offset : offset + concurrency]
                    results = await asyncio.gather(
                        *(
                            self._process_chunk(job, chunk, system_prompt, user_prompt, cancel_event)
                            for chunk in batch
                        ),
                        return_exceptions=True,
                    )
                    for result in results:
                        if isinstance(result, BaseException):
                            raise result

            _raise_if_cancelled(cancel_event)
            return await self._finish(job_id)

        except Exception as exc:
            logger.exception("JobTracker | job=%s fatal error", job_id)
            return await self.fail_job(job_id, exc)

        finally:
            self._locks.pop(job_id, None)

    async def fail_job(self, job_id: str, exc: BaseException) -> ProcessingJob:
        """Force the job and its manuscript to failed, keeping counters as they are."""
        job = await self._store.get_job(job_id)
        job.status        = JobStatus.FAILED
        job.error_message = str(exc) or FATAL_ERROR_FALLBACK
        job = await self._store.update_job(job)
        await self._store.set_manuscript_status(job.manuscript_id, ManuscriptStatus.FAILED)

        logger.error(
            "JobTracker | job=%s failed completed=%d failed_chunks=%d error=%s",
            job_id, job.completed_chunks, job.failed_chunks, job.error_message,
        )
        return job

    async def _finish(self, job_id: str) -> ProcessingJob:
        job = await self._store.get_job(job_id)
        job.status        = terminal_status(job.failed_chunks)
        job.error_message = (
            f"{job.failed_chunks} chunks failed to process" if job.failed_chunks else None
        )
        job = await self._store.update_job(job)
        await self._store.set_manuscript_status(
            job.manuscript_id, ManuscriptStatus(job.status.value),
        )

        logger.info(
            "JobTracker | job=%s status=%s completed=%d failed=%d total=%d",
            job_id, job.status.value, job.completed_chunks, job.failed_chunks, job.total_chunks,
        )
        return job

    # -----------------------------------------------------------------------
    # Per-chunk scope
    # -----------------------------------------------------------------------

    async def _process_chunk(
        self,
        job:           ProcessingJob,
        chunk:         ChunkRecord,
        system_prompt: str | None,
        user_prompt:   str | None,
        cancel_event:  asyncio.Event | None,
    ) -> bool:
        """
        Resolve one chunk and bump the job counters. Returns True on success.

        Anything raised before the chunk is resolved is absorbed and the chunk
        is marked failed; a store failure while recording that failure, or
        while updating counters, escapes as job-fatal.
        """
        try:
            chunk.status = ChunkStatus.PROCESSING
            chunk = await self._store.update_chunk(chunk)

            result = await self._orchestrator.process_chunk(
                chunk.content,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                chunk_id=chunk.id,
                job_id=job.id,
                cancel_event=cancel_event,
            )
            await self._store.record_attempts(_attempt_logs(job.id, chunk.id, result))
            chunk = await self._store.update_chunk(_resolved_chunk(chunk, result))
            succeeded = chunk.status == ChunkStatus.COMPLETED

        except Exception as exc:
            logger.exception(
                "JobTracker | job=%s chunk_index=%d error processing chunk", job.id, chunk.index,
            )
            chunk.status        = ChunkStatus.FAILED
            chunk.error_message = str(exc) or CHUNK_ERROR_FALLBACK
            await self._store.update_chunk(chunk)
            succeeded = False

        job_now = await self._bump_counters(job.id, succeeded)
        logger.info(
            "JobTracker | job=%s chunk_index=%d %s progress=%d/%d",
            job.id, chunk.index, "completed" if succeeded else "failed",
            job_now.resolved_chunks, job_now.total_chunks,
        )
        return succeeded

    async def _bump_counters(self, job_id: str, succeeded: bool) -> ProcessingJob:
        async with self._locks[job_id]:
            job = await self._store.get_job(job_id)
            if succeeded:
                job.completed_chunks += 1
            else:
                job.failed_chunks += 1
            return await self._store.update_job(job)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise JobCancelledError()


def _resolved_chunk(chunk: ChunkRecord, result: ProcessResult) -> ChunkRecord:
    chunk.retry_count = result.attempts
    if result.success and result.response:
        chunk.status        = ChunkStatus.COMPLETED
        chunk.response      = result.response
        chunk.provider_used = result.provider_used.value if result.provider_used else None
        chunk.error_message = None
    else:
        chunk.status        = ChunkStatus.FAILED
        chunk.error_message = result.error_message or CHUNK_ERROR_FALLBACK
    return chunk


def _attempt_logs(job_id: str, chunk_id: str, result: ProcessResult) -> list[ProviderAttemptLog]:
    return [
        ProviderAttemptLog(
            job_id=job_id,
            chunk_id=chunk_id,
            provider=record.provider.value,
            attempt=record.attempt,
            success=record.success,
            response_time_ms=record.response_time_ms,
            error_message=record.error_message,
        )
        for record in result.provider_attempts
    ]
