"""
Manuscript Ingestion Service

Turns raw manuscript text into a persisted manuscript and its chunks:
  1. Validate the file type (plain text or markdown only)
  2. Reject blank content
  3. Chunk the text with the configured ChunkOptions
  4. Run advisory validation on every chunk and log what it flags
  5. Persist the manuscript (status=pending) and its pending chunk records
  6. Return a structured IngestionResult

Extraction from binary formats (PDF, DOCX) is not handled here; callers
pass text, or bytes that decode_manuscript() can turn into text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from manuscript_pipeline.core.exceptions import EmptyManuscriptError, UnsupportedFileTypeError
from manuscript_pipeline.processing.chunking import (
    ChunkOptions,
    ManuscriptChunker,
    ProcessingEstimate,
    count_words,
)
from manuscript_pipeline.storage.base import ChunkRecord, ChunkStore, Manuscript

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"text/plain", "text/markdown"})
ALLOWED_EXTENSIONS    = frozenset({".txt", ".md"})


@dataclass
class ChunkSummary:
    index:      int
    char_count: int
    word_count: int
    issues:     list[str] = field(default_factory=list)


@dataclass
class IngestionResult:
    manuscript: Manuscript
    chunks:     list[ChunkSummary]
    estimate:   ProcessingEstimate

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def validation_issues(self) -> dict[int, list[str]]:
        """Chunk index → issues, only for chunks that were flagged."""
        return {c.index: c.issues for c in self.chunks if c.issues}


def decode_manuscript(data: bytes) -> str:
    """Decode uploaded bytes as UTF-8, falling back to Latin-1."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("decode_manuscript: not valid UTF-8, decoding as latin-1")
        return data.decode("latin-1")


def _get_extension(filename: str) -> str:
    parts = filename.rsplit(".", 1)
    return f".{parts[-1].lower()}" if len(parts) == 2 else ""


def is_supported(filename: str, mime_type: str) -> bool:
    base_type = mime_type.split(";", 1)[0].strip().lower()
    return base_type in ALLOWED_CONTENT_TYPES or _get_extension(filename) in ALLOWED_EXTENSIONS


class ManuscriptIngestionService:
    """
    Usage::

        service = ManuscriptIngestionService(store, ChunkOptions.from_settings(settings))
        result  = await service.ingest_text("novel.txt", text)
        job     = await tracker.start_job(result.manuscript.id)
    """

    def __init__(self, store: ChunkStore, options: ChunkOptions | None = None) -> None:
        self._store   = store
        self._chunker = ManuscriptChunker(options)

    async def ingest_text(
        self,
        filename:  str,
        text:      str,
        mime_type: str = "text/plain",
    ) -> IngestionResult:
        """
        Raises:
            UnsupportedFileTypeError: neither the MIME type nor the extension is text.
            EmptyManuscriptError:     the text is empty or whitespace-only.
        """
        if not is_supported(filename, mime_type):
            raise UnsupportedFileTypeError(filename, mime_type)
        if not text.strip():
            raise EmptyManuscriptError(filename)

        chunks = self._chunker.chunk(text)

        summaries: list[ChunkSummary] = []
        for chunk in chunks:
            validation = self._chunker.validate_chunk(chunk)
            if not validation.valid:
                logger.warning(
                    "Ingestion | file=%s chunk_index=%d issues=%s",
                    filename, chunk.index, "; ".join(validation.issues),
                )
            summaries.append(ChunkSummary(
                index=chunk.index,
                char_count=chunk.char_count,
                word_count=chunk.word_count,
                issues=validation.issues,
            ))

        manuscript = Manuscript(
            filename=filename,
            mime_type=mime_type,
            size_bytes=len(text.encode("utf-8", errors="surrogatepass")),
            word_count=count_words(text),
        )
        records = [
            ChunkRecord(manuscript_id=manuscript.id, index=chunk.index, content=chunk.content)
            for chunk in chunks
        ]
        manuscript = await self._store.create_manuscript(manuscript, records)

        estimate = ManuscriptChunker.estimate_processing_time(len(chunks))
        logger.info(
            "Ingestion | manuscript=%s file=%s words=%d chunks=%d estimate=%dm%02ds",
            manuscript.id, filename, manuscript.word_count, len(chunks),
            estimate.minutes, estimate.seconds,
        )
        return IngestionResult(manuscript=manuscript, chunks=summaries, estimate=estimate)
