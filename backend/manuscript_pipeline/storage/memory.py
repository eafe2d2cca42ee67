"""
In-memory ChunkStore.

Backs the CLI and the test suite. State lives in plain dicts owned by one
event loop; no method awaits between reading and writing, so every call is
atomic with respect to other coroutines.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace

from manuscript_pipeline.core.exceptions import (
    ChunkStoreError,
    JobNotFoundError,
    ManuscriptNotFoundError,
)
from manuscript_pipeline.storage.base import (
    ChunkRecord,
    ChunkStore,
    Manuscript,
    ManuscriptStatus,
    ProcessingJob,
    ProviderAttemptLog,
    _utcnow,
)

logger = logging.getLogger(__name__)


class InMemoryChunkStore(ChunkStore):

    def __init__(self) -> None:
        self._manuscripts: dict[str, Manuscript]            = {}
        self._chunks:      dict[str, dict[str, ChunkRecord]] = {}   # manuscript_id → chunk_id → record
        self._jobs:        dict[str, ProcessingJob]          = {}
        self._attempts:    dict[str, list[ProviderAttemptLog]] = {}  # job_id → append-only log

    # -- manuscripts ---------------------------------------------------------

    async def create_manuscript(
        self, manuscript: Manuscript, chunks: list[ChunkRecord],
    ) -> Manuscript:
        if manuscript.id in self._manuscripts:
            raise ChunkStoreError(f"Manuscript already exists: {manuscript.id}")
        for chunk in chunks:
            if chunk.manuscript_id != manuscript.id:
                raise ChunkStoreError(
                    f"Chunk {chunk.id} belongs to {chunk.manuscript_id}, not {manuscript.id}"
                )

        self._manuscripts[manuscript.id] = copy.deepcopy(manuscript)
        self._chunks[manuscript.id] = {c.id: copy.deepcopy(c) for c in chunks}
        logger.debug(
            "InMemoryChunkStore | manuscript=%s chunks=%d created", manuscript.id, len(chunks),
        )
        return copy.deepcopy(manuscript)

    async def get_manuscript(self, manuscript_id: str) -> Manuscript:
        return copy.deepcopy(self._require_manuscript(manuscript_id))

    async def set_manuscript_status(
        self, manuscript_id: str, status: ManuscriptStatus,
    ) -> Manuscript:
        updated = replace(
            self._require_manuscript(manuscript_id), status=status, updated_at=_utcnow(),
        )
        self._manuscripts[manuscript_id] = updated
        return copy.deepcopy(updated)

    # -- chunks --------------------------------------------------------------

    async def list_chunks(self, manuscript_id: str) -> list[ChunkRecord]:
        self._require_manuscript(manuscript_id)
        chunks = sorted(self._chunks[manuscript_id].values(), key=lambda c: c.index)
        return [copy.deepcopy(c) for c in chunks]

    async def update_chunk(self, chunk: ChunkRecord) -> ChunkRecord:
        chunks = self._chunks.get(chunk.manuscript_id)
        if chunks is None:
            raise ManuscriptNotFoundError(chunk.manuscript_id)
        if chunk.id not in chunks:
            raise ChunkStoreError(f"Chunk not found: {chunk.id}")

        stored = replace(chunk, updated_at=_utcnow())
        chunks[chunk.id] = copy.deepcopy(stored)
        return stored

    # -- jobs ----------------------------------------------------------------

    async def create_job(self, job: ProcessingJob) -> ProcessingJob:
        self._require_manuscript(job.manuscript_id)
        if job.id in self._jobs:
            raise ChunkStoreError(f"Processing job already exists: {job.id}")
        self._jobs[job.id] = copy.deepcopy(job)
        self._attempts[job.id] = []
        return copy.deepcopy(job)

    async def get_job(self, job_id: str) -> ProcessingJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return copy.deepcopy(job)

    async def latest_job(self, manuscript_id: str) -> ProcessingJob | None:
        self._require_manuscript(manuscript_id)
        # dicts keep insertion order, so the last match is the newest job
        latest = None
        for job in self._jobs.values():
            if job.manuscript_id == manuscript_id:
                latest = job
        return copy.deepcopy(latest) if latest is not None else None

    async def update_job(self, job: ProcessingJob) -> ProcessingJob:
        if job.id not in self._jobs:
            raise JobNotFoundError(job.id)
        stored = replace(job, updated_at=_utcnow())
        self._jobs[job.id] = copy.deepcopy(stored)
        return stored

    # -- attempts ------------------------------------------------------------

    async def record_attempts(self, attempts: list[ProviderAttemptLog]) -> None:
        for attempt in attempts:
            log = self._attempts.get(attempt.job_id)
            if log is None:
                raise JobNotFoundError(attempt.job_id)
            log.append(copy.deepcopy(attempt))

    async def list_attempts(
        self, job_id: str, limit: int | None = None,
    ) -> list[ProviderAttemptLog]:
        log = self._attempts.get(job_id)
        if log is None:
            raise JobNotFoundError(job_id)
        newest_first = list(reversed(log))
        if limit is not None:
            newest_first = newest_first[:limit]
        return [copy.deepcopy(a) for a in newest_first]

    # -- helpers -------------------------------------------------------------

    def _require_manuscript(self, manuscript_id: str) -> Manuscript:
        manuscript = self._manuscripts.get(manuscript_id)
        if manuscript is None:
            raise ManuscriptNotFoundError(manuscript_id)
        return manuscript
