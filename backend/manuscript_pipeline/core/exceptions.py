"""
Exception hierarchy for the manuscript pipeline.

Propagation rules:
  ProviderError      — recorded on a failed attempt, never raised out of
                       the FallbackOrchestrator.
  ChunkStoreError    — raised by the persistence capability; job-fatal when
                       it escapes the per-chunk scope.
  JobCancelledError  — job-wide cancellation, handled like any job-fatal error.
  JobStateError      — run requested for a finished or already-running job.
  IngestionError     — rejected manuscript input; surfaced to the caller.
"""

from __future__ import annotations


class ManuscriptPipelineError(RuntimeError):
    """Base exception for all pipeline errors."""


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class ProviderError(ManuscriptPipelineError):
    """A completion provider failed to produce a usable response."""


class EmptyResponseError(ProviderError):
    """The provider returned an empty or whitespace-only completion."""

    def __init__(self, message: str = "Empty response from AI") -> None:
        super().__init__(message)


class ProviderConfigurationError(ProviderError):
    """A provider slot is missing credentials or has an unsupported kind."""


class ProcessingCancelledError(ProviderError):
    """Cancellation was observed while an attempt or backoff was in flight."""

    def __init__(self, message: str = "Processing cancelled") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Persistence errors
# ---------------------------------------------------------------------------

class ChunkStoreError(ManuscriptPipelineError):
    """The chunk/job persistence capability failed."""


class ManuscriptNotFoundError(ChunkStoreError):
    def __init__(self, manuscript_id: str) -> None:
        super().__init__(f"Manuscript not found: {manuscript_id}")
        self.manuscript_id = manuscript_id


class JobNotFoundError(ChunkStoreError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Processing job not found: {job_id}")
        self.job_id = job_id


# ---------------------------------------------------------------------------
# Job errors
# ---------------------------------------------------------------------------

class JobAlreadyRunningError(ManuscriptPipelineError):
    def __init__(self, manuscript_id: str) -> None:
        super().__init__(f"Manuscript is already being processed: {manuscript_id}")
        self.manuscript_id = manuscript_id


class JobCancelledError(ManuscriptPipelineError):
    def __init__(self, message: str = "Job cancelled") -> None:
        super().__init__(message)


class JobStateError(ManuscriptPipelineError):
    """The job cannot be run from its current state."""

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"Processing job {job_id} cannot run: {reason}")
        self.job_id = job_id
        self.reason = reason


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class IngestionError(ManuscriptPipelineError):
    """The manuscript could not be accepted for processing."""


class EmptyManuscriptError(IngestionError):
    def __init__(self, filename: str) -> None:
        super().__init__(f"File is empty: {filename}")
        self.filename = filename


class UnsupportedFileTypeError(IngestionError):
    def __init__(self, filename: str, mime_type: str) -> None:
        super().__init__(
            f"Unsupported file type: {mime_type}. Please upload .txt or .md files."
        )
        self.filename  = filename
        self.mime_type = mime_type
