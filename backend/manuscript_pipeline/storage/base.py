"""
Chunk Store — Abstract Base

The job tracker, ingestion service and reporting helpers only speak this
interface, so the persistence backend (a database, a document store, or the
in-memory store used by the CLI and tests) is swappable.

Snapshot contract (enforced by ALL implementations):
  - Every read returns a copy; mutating a returned record never changes
    stored state.
  - Every write replaces the stored record whole, so a concurrent reader sees
    either the old or the new record, never a mix.
  - list_chunks() returns chunks in ascending index order.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Status enums
# ---------------------------------------------------------------------------

class ChunkStatus(str, Enum):
    """pending → processing → completed | failed"""
    PENDING    = "pending"
    PROCESSING = "processing"
    COMPLETED  = "completed"
    FAILED     = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ChunkStatus.COMPLETED, ChunkStatus.FAILED)


class JobStatus(str, Enum):
    """in_progress → completed | partial | failed"""
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    PARTIAL     = "partial"
    FAILED      = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.IN_PROGRESS


class ManuscriptStatus(str, Enum):
    """pending → processing → completed | partial | failed"""
    PENDING    = "pending"
    PROCESSING = "processing"
    COMPLETED  = "completed"
    PARTIAL    = "partial"
    FAILED     = "failed"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Manuscript:
    filename:   str
    mime_type:  str
    size_bytes: int
    word_count: int
    status:     ManuscriptStatus = ManuscriptStatus.PENDING
    id:         str              = field(default_factory=new_id)
    created_at: datetime         = field(default_factory=_utcnow)
    updated_at: datetime         = field(default_factory=_utcnow)


@dataclass
class ChunkRecord:
    """Persisted form of a Chunk plus its processing outcome."""
    manuscript_id: str
    index:         int
    content:       str
    status:        ChunkStatus = ChunkStatus.PENDING
    response:      str | None  = None   # set iff completed
    provider_used: str | None  = None   # set iff completed
    error_message: str | None  = None   # set iff failed
    retry_count:   int         = 0      # attempts made in the last run
    id:            str         = field(default_factory=new_id)
    updated_at:    datetime    = field(default_factory=_utcnow)

    @property
    def char_count(self) -> int:
        return len(self.content)

    @property
    def word_count(self) -> int:
        return len(self.content.split())


@dataclass
class ProcessingJob:
    """
    Aggregate progress of one processing run over a manuscript.

    completed_chunks + failed_chunks <= total_chunks at every point;
    equality holds once status is completed or partial.
    """
    manuscript_id:    str
    total_chunks:     int
    status:           JobStatus  = JobStatus.IN_PROGRESS
    completed_chunks: int        = 0
    failed_chunks:    int        = 0
    system_prompt:    str | None = None
    error_message:    str | None = None
    id:               str        = field(default_factory=new_id)
    created_at:       datetime   = field(default_factory=_utcnow)
    updated_at:       datetime   = field(default_factory=_utcnow)

    @property
    def resolved_chunks(self) -> int:
        return self.completed_chunks + self.failed_chunks

    @property
    def progress(self) -> float:
        """Percent of chunks resolved, 0–100."""
        if not self.total_chunks:
            return 100.0 if self.status.is_terminal else 0.0
        return self.resolved_chunks / self.total_chunks * 100


@dataclass
class ProviderAttemptLog:
    """One persisted provider attempt, kept for audit and provider health."""
    job_id:           str
    chunk_id:         str
    provider:         str
    attempt:          int
    success:          bool
    response_time_ms: float
    error_message:    str | None = None
    id:               str        = field(default_factory=new_id)
    created_at:       datetime   = field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class ChunkStore(ABC):
    """
    Async persistence capability for manuscripts, chunks, jobs and attempts.

    Lookups of unknown ids raise ManuscriptNotFoundError / JobNotFoundError;
    any other backend failure surfaces as ChunkStoreError.
    """

    # -- manuscripts ---------------------------------------------------------

    @abstractmethod
    async def create_manuscript(
        self, manuscript: Manuscript, chunks: list[ChunkRecord],
    ) -> Manuscript:
        """Persist a manuscript together with its initial pending chunks."""

    @abstractmethod
    async def get_manuscript(self, manuscript_id: str) -> Manuscript:
        ...

    @abstractmethod
    async def set_manuscript_status(
        self, manuscript_id: str, status: ManuscriptStatus,
    ) -> Manuscript:
        ...

    # -- chunks --------------------------------------------------------------

    @abstractmethod
    async def list_chunks(self, manuscript_id: str) -> list[ChunkRecord]:
        """All chunks of a manuscript, ascending by index."""

    @abstractmethod
    async def update_chunk(self, chunk: ChunkRecord) -> ChunkRecord:
        """Replace the stored chunk with `chunk` (matched by id)."""

    # -- jobs ----------------------------------------------------------------

    @abstractmethod
    async def create_job(self, job: ProcessingJob) -> ProcessingJob:
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> ProcessingJob:
        ...

    @abstractmethod
    async def latest_job(self, manuscript_id: str) -> ProcessingJob | None:
        """Most recently created job for the manuscript, or None."""

    @abstractmethod
    async def update_job(self, job: ProcessingJob) -> ProcessingJob:
        """Replace the stored job with `job` (matched by id)."""

    # -- attempts ------------------------------------------------------------

    @abstractmethod
    async def record_attempts(self, attempts: list[ProviderAttemptLog]) -> None:
        """Append attempt logs; order is preserved."""

    @abstractmethod
    async def list_attempts(
        self, job_id: str, limit: int | None = None,
    ) -> list[ProviderAttemptLog]:
        """Attempts for a job, newest first, at most `limit` of them."""
