"""
Manuscript Processing Package
══════════════════════════════

  chunking.py   Size-bounded, overlap-aware manuscript chunker

The chunker is pure (no I/O); ingestion and job tracking build on its
Chunk records.
"""

from manuscript_pipeline.processing.chunking import (
    Chunk,
    ChunkOptions,
    ChunkValidation,
    ManuscriptChunker,
    ProcessingEstimate,
    chunk_manuscript,
    normalize_text,
)

__all__ = [
    "Chunk",
    "ChunkOptions",
    "ChunkValidation",
    "ManuscriptChunker",
    "ProcessingEstimate",
    "chunk_manuscript",
    "normalize_text",
]
