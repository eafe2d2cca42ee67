"""
Read-side views over a manuscript's processing state.

    build_status_report()  chunk counts, progress, provider statistics
    collect_results()      completed responses in index order, combined
"""

from __future__ import annotations

from dataclasses import dataclass, field

from manuscript_pipeline.llm.providers import ProviderSlot
from manuscript_pipeline.observability.provider_stats import (
    AttemptStats,
    ProviderHealth,
    provider_health,
    summarize_attempts,
)
from manuscript_pipeline.storage.base import (
    ChunkRecord,
    ChunkStatus,
    ChunkStore,
    Manuscript,
    ProcessingJob,
)

RECENT_ATTEMPTS_WINDOW = 50
RESULT_SEPARATOR       = "\n\n---\n\n"


@dataclass
class StatusReport:
    manuscript:       Manuscript
    job:              ProcessingJob | None          # latest job, if any
    chunks:           list[ChunkRecord]
    chunks_by_status: dict[ChunkStatus, int]
    progress:         float                         # percent of chunks completed
    provider_stats:   AttemptStats                  # over the recent attempts window
    provider_health:  dict[ProviderSlot, ProviderHealth] = field(default_factory=dict)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def total_attempts(self) -> int:
        return self.provider_stats.total_attempts


@dataclass
class ManuscriptResults:
    manuscript: Manuscript
    chunks:     list[ChunkRecord]    # completed only, ascending index
    combined:   str


async def build_status_report(store: ChunkStore, manuscript_id: str) -> StatusReport:
    """Snapshot of the manuscript, its chunks and its latest job."""
    manuscript = await store.get_manuscript(manuscript_id)
    chunks     = await store.list_chunks(manuscript_id)
    job        = await store.latest_job(manuscript_id)

    by_status = {status: 0 for status in ChunkStatus}
    for chunk in chunks:
        by_status[chunk.status] += 1

    attempts = (
        await store.list_attempts(job.id, limit=RECENT_ATTEMPTS_WINDOW) if job else []
    )

    return StatusReport(
        manuscript=manuscript,
        job=job,
        chunks=chunks,
        chunks_by_status=by_status,
        progress=(by_status[ChunkStatus.COMPLETED] / len(chunks) * 100) if chunks else 0.0,
        provider_stats=summarize_attempts(attempts),
        provider_health=provider_health(attempts),
    )


async def collect_results(store: ChunkStore, manuscript_id: str) -> ManuscriptResults:
    manuscript = await store.get_manuscript(manuscript_id)
    completed = [
        chunk for chunk in await store.list_chunks(manuscript_id)
        if chunk.status == ChunkStatus.COMPLETED and chunk.response is not None
    ]
    return ManuscriptResults(
        manuscript=manuscript,
        chunks=completed,
        combined=RESULT_SEPARATOR.join(chunk.response for chunk in completed),
    )
