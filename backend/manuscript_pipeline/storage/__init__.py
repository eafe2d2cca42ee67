"""Chunk/job persistence capability and its in-memory implementation."""

from manuscript_pipeline.storage.base import (
    ChunkRecord,
    ChunkStatus,
    ChunkStore,
    JobStatus,
    Manuscript,
    ManuscriptStatus,
    ProcessingJob,
    ProviderAttemptLog,
)
from manuscript_pipeline.storage.memory import InMemoryChunkStore

__all__ = [
    "ChunkRecord",
    "ChunkStatus",
    "ChunkStore",
    "InMemoryChunkStore",
    "JobStatus",
    "Manuscript",
    "ManuscriptStatus",
    "ProcessingJob",
    "ProviderAttemptLog",
]
