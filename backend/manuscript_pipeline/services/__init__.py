"""Manuscript ingestion."""

from manuscript_pipeline.services.ingestion import (
    IngestionResult,
    ManuscriptIngestionService,
    decode_manuscript,
)

__all__ = ["IngestionResult", "ManuscriptIngestionService", "decode_manuscript"]
