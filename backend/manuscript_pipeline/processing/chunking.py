"""
Manuscript Chunker  —  Size-Bounded Text Segmentation
══════════════════════════════════════════════════════

Splits a manuscript into ordered chunks small enough for a single completion
request, with a controlled overlap so each request sees the tail of the
previous one.

Normalization
─────────────
  1. Collapse every whitespace run to a single space and strip the ends.
  2. Re-insert paragraph breaks after sentence-ending periods
     (". " → ".\\n\\n"). Source line breaks are not preserved.

Break-point selection
─────────────────────
  For a chunk starting at `start` whose unique content begins at `cursor`
  (cursor - start == overlap), the search window is [cursor, start + max).
  The cut goes, in priority order:

    1. just after the last paragraph break "\\n\\n" in the window
       (skipped when preserve_paragraphs is False)
    2. just after the last ". ", "! " or "? " in the window
    3. just after the last "\\n" in the window
    4. at the last space at or before the window boundary
    5. exactly at the window boundary (unbroken run)

  When the rest of the text fits in the window it becomes the final chunk.
  Every cut lies strictly after `cursor`, so the loop always terminates.

Overlap
───────
  Chunk i > 0 re-includes up to `overlap_size` characters before its unique
  content, never reaching further back than the start of chunk i-1. The
  re-included length is kept on the chunk as `overlap_chars`, so
  "".join(c.unique_content for c in chunks) reconstructs the normalized text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from manuscript_pipeline.core.config import Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_CHUNK_SIZE = 15_000   # ~4000 tokens
DEFAULT_OVERLAP_SIZE   = 500      # ~150 tokens

PARAGRAPH_BREAK  = "\n\n"
SENTENCE_ENDINGS = (". ", "! ", "? ")
LINE_BREAK       = "\n"

MIN_WORDS_PER_CHUNK       = 10
SECONDS_PER_CHUNK_ESTIMATE = 30   # one provider round-trip including retries

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Options and result types
# ---------------------------------------------------------------------------

class ChunkOptions(BaseModel):
    """Chunker configuration; invalid values raise pydantic.ValidationError."""

    model_config = ConfigDict(frozen=True)

    max_chunk_size:      int  = Field(DEFAULT_MAX_CHUNK_SIZE, gt=0)
    overlap_size:        int  = Field(DEFAULT_OVERLAP_SIZE, ge=0)
    preserve_paragraphs: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChunkOptions":
        return cls(
            max_chunk_size=settings.chunk_max_size,
            overlap_size=settings.chunk_overlap_size,
            preserve_paragraphs=settings.chunk_preserve_paragraphs,
        )


@dataclass(frozen=True)
class Chunk:
    """
    One immutable segment of the normalized manuscript.

    content = normalized[start:end]; the first `overlap_chars` characters
    repeat the end of the previous chunk.
    """
    index:         int     # 0-based, dense; defines processing order
    content:       str
    start:         int     # offset into the normalized text
    end:           int
    overlap_chars: int = 0

    @property
    def id(self) -> str:
        return f"chunk_{self.index}"

    @property
    def char_count(self) -> int:
        return len(self.content)

    @property
    def word_count(self) -> int:
        return count_words(self.content)

    @property
    def unique_content(self) -> str:
        return self.content[self.overlap_chars:]


@dataclass
class ChunkValidation:
    """Advisory diagnostics for one chunk — never blocks chunk creation."""
    valid:  bool
    issues: list[str] = field(default_factory=list)


class ProcessingEstimate(NamedTuple):
    minutes: int
    seconds: int


# ---------------------------------------------------------------------------
# Core chunker
# ---------------------------------------------------------------------------

class ManuscriptChunker:
    """
    Deterministic, stateless manuscript chunker.

    Usage:
        chunker = ManuscriptChunker(ChunkOptions(max_chunk_size=8000))
        chunks  = chunker.chunk(raw_text)
        issues  = [chunker.validate_chunk(c) for c in chunks]

    `chunk()` is total over strings: empty or all-whitespace input yields [].
    """

    def __init__(self, options: ChunkOptions | None = None) -> None:
        self._options = options or ChunkOptions()
        self._max_size = self._options.max_chunk_size
        # An overlap as large as the window would leave no room for new text
        self._overlap = min(self._options.overlap_size, self._max_size - 1)
        if self._overlap != self._options.overlap_size:
            logger.debug(
                "ManuscriptChunker | overlap clamped from %d to %d (max_chunk_size=%d)",
                self._options.overlap_size, self._overlap, self._max_size,
            )

    @property
    def options(self) -> ChunkOptions:
        return self._options

    def chunk(self, text: str) -> list[Chunk]:
        """
        Split `text` into ordered chunks.

        Returns:
            list of Chunk with index 0..N-1 covering the normalized text.
        """
        normalized = normalize_text(text)
        if not normalized:
            logger.warning("ManuscriptChunker: empty text, no chunks produced")
            return []

        chunks: list[Chunk] = []
        cursor     = 0   # first character not yet covered by any chunk
        prev_start = 0

        while cursor < len(normalized):
            start = cursor if not chunks else max(prev_start, cursor - self._overlap)
            end   = self._find_break_point(normalized, start, cursor)

            chunks.append(Chunk(
                index=len(chunks),
                content=normalized[start:end],
                start=start,
                end=end,
                overlap_chars=cursor - start,
            ))
            prev_start = start
            cursor     = end

        logger.info(
            "ManuscriptChunker | chars=%d chunks=%d avg_chars=%.0f",
            len(normalized), len(chunks),
            sum(c.char_count for c in chunks) / len(chunks),
        )
        return chunks

    # ------------------------------------------------------------------
    # Break-point search
    # ------------------------------------------------------------------

    def _find_break_point(self, text: str, start: int, cursor: int) -> int:
        """
        Return the exclusive end offset of the chunk that starts at `start`.

        The result is always in (cursor, start + max_chunk_size].
        """
        limit = start + self._max_size
        if limit >= len(text):
            return len(text)

        if self._options.preserve_paragraphs:
            pos = text.rfind(PARAGRAPH_BREAK, cursor, limit)
            if pos != -1:
                return pos + len(PARAGRAPH_BREAK)

        best = max(text.rfind(ending, cursor, limit) for ending in SENTENCE_ENDINGS)
        if best != -1:
            return best + 2

        pos = text.rfind(LINE_BREAK, cursor, limit)
        if pos != -1:
            return pos + 1

        # Word boundary: the space itself opens the next chunk
        pos = text.rfind(" ", cursor + 1, limit + 1)
        if pos != -1:
            return pos

        return limit

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def validate_chunk(self, chunk: Chunk) -> ChunkValidation:
        """Flag oversized, empty, or near-empty chunks."""
        issues: list[str] = []

        if chunk.char_count > self._options.max_chunk_size + self._options.overlap_size:
            issues.append("Chunk exceeds maximum size")

        if chunk.char_count == 0:
            issues.append("Chunk is empty")

        if chunk.word_count < MIN_WORDS_PER_CHUNK:
            issues.append("Chunk has too few words")

        return ChunkValidation(valid=not issues, issues=issues)

    @staticmethod
    def estimate_processing_time(chunk_count: int) -> ProcessingEstimate:
        total_seconds = max(0, chunk_count) * SECONDS_PER_CHUNK_ESTIMATE
        return ProcessingEstimate(minutes=total_seconds // 60, seconds=total_seconds % 60)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalize_text(text: str) -> str:
    """Collapse whitespace, then turn every ". " into a paragraph break."""
    collapsed = _WHITESPACE_RE.sub(" ", text).strip()
    return collapsed.replace(". ", "." + PARAGRAPH_BREAK)


def count_words(text: str) -> int:
    return len(text.split())


def chunk_manuscript(text: str, options: ChunkOptions | None = None) -> list[Chunk]:
    """Chunk `text` with a throwaway chunker."""
    return ManuscriptChunker(options).chunk(text)
