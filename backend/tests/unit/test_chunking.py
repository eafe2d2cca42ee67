"""
Unit Tests — ManuscriptChunker
══════════════════════════════
Coverage targets:
  ✅ Normalization (whitespace collapse, sentence → paragraph breaks)
  ✅ Empty / whitespace-only input → no chunks
  ✅ Concatenated unique content reconstructs the normalized text
  ✅ Chunk length never exceeds max_chunk_size
  ✅ Leading overlap equals the previous chunk's tail
  ✅ Break priority: paragraph → sentence → word boundary → hard cut
  ✅ Oversized overlap is clamped and still terminates
  ✅ Adversarial input: unbroken runs, !/? only, one-character windows
  ✅ validate_chunk issue strings
  ✅ Processing-time estimate
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from manuscript_pipeline.processing.chunking import (
    Chunk,
    ChunkOptions,
    ManuscriptChunker,
    chunk_manuscript,
    normalize_text,
)

PROSE = (
    "It was late in the season when the boats came back. The harbour master "
    "counted them twice! Nobody believed the count at first? Rain fell on the "
    "nets and the nets were folded anyway. Somewhere a bell rang for the tide.\n\n"
    "The second part of the story begins with a letter that nobody opened. "
    "It sat on the mantel for three winters, gathering soot and speculation. "
    "When it was finally read the news inside was already old."
) * 4

OPTION_GRID = [
    ChunkOptions(max_chunk_size=80,  overlap_size=0),
    ChunkOptions(max_chunk_size=80,  overlap_size=20),
    ChunkOptions(max_chunk_size=120, overlap_size=60, preserve_paragraphs=False),
    ChunkOptions(max_chunk_size=300, overlap_size=50),
    ChunkOptions(max_chunk_size=15,  overlap_size=5),
]


# ─────────────────────────────────────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestNormalizeText:

    def test_collapses_whitespace_and_strips(self):
        assert normalize_text("  a \t b\n\n\nc  ") == "a b c"

    def test_sentence_end_becomes_paragraph_break(self):
        assert normalize_text("Hello   world.  This is\n\n a test.") == (
            "Hello world.\n\nThis is a test."
        )

    def test_other_punctuation_left_alone(self):
        assert normalize_text("Stop! Go? Now") == "Stop! Go? Now"


# ─────────────────────────────────────────────────────────────────────────────
# Chunking properties
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestChunkProperties:

    @pytest.mark.parametrize("text", ["", "   ", "\n\t\n"])
    def test_blank_input_yields_no_chunks(self, text):
        assert ManuscriptChunker().chunk(text) == []

    def test_short_text_is_single_chunk(self):
        chunks = ManuscriptChunker().chunk("Short text here.")

        assert len(chunks) == 1
        assert chunks[0].id == "chunk_0"
        assert chunks[0].content == "Short text here."
        assert chunks[0].overlap_chars == 0
        assert (chunks[0].start, chunks[0].end) == (0, len("Short text here."))

    @pytest.mark.parametrize("options", OPTION_GRID)
    def test_unique_content_reconstructs_normalized_text(self, options):
        chunks = ManuscriptChunker(options).chunk(PROSE)

        assert "".join(c.unique_content for c in chunks) == normalize_text(PROSE)

    @pytest.mark.parametrize("options", OPTION_GRID)
    def test_indices_dense_and_offsets_consistent(self, options):
        normalized = normalize_text(PROSE)
        chunks = ManuscriptChunker(options).chunk(PROSE)

        assert [c.index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.content == normalized[chunk.start:chunk.end]

    @pytest.mark.parametrize("options", OPTION_GRID)
    def test_chunks_within_max_size(self, options):
        chunks = ManuscriptChunker(options).chunk(PROSE)

        assert all(0 < c.char_count <= options.max_chunk_size for c in chunks)

    @pytest.mark.parametrize("options", OPTION_GRID)
    def test_overlap_matches_previous_tail(self, options):
        chunks = ManuscriptChunker(options).chunk(PROSE)

        assert chunks[0].overlap_chars == 0
        for prev, cur in zip(chunks, chunks[1:]):
            assert cur.overlap_chars <= options.overlap_size
            if cur.overlap_chars:
                assert cur.content[:cur.overlap_chars] == prev.content[-cur.overlap_chars:]

    def test_default_overlap_applied_on_long_text(self):
        chunks = ManuscriptChunker(ChunkOptions(max_chunk_size=200, overlap_size=30)).chunk(PROSE)

        assert len(chunks) > 2
        assert all(c.overlap_chars == 30 for c in chunks[1:])

    def test_word_and_char_counts_derive_from_content(self):
        chunk = Chunk(index=3, content="one two  three", start=0, end=14)

        assert chunk.id == "chunk_3"
        assert chunk.char_count == 14
        assert chunk.word_count == 3


# ─────────────────────────────────────────────────────────────────────────────
# Adversarial input
# ─────────────────────────────────────────────────────────────────────────────

ADVERSARIAL_CASES = [
    pytest.param("x" * 500, ChunkOptions(max_chunk_size=50, overlap_size=10), id="unbroken-run"),
    pytest.param("Wait! Why? No! " * 40, ChunkOptions(max_chunk_size=30, overlap_size=5), id="bang-question-only"),
    pytest.param("word " * 200, ChunkOptions(max_chunk_size=7, overlap_size=3), id="tiny-word-window"),
    pytest.param(PROSE, ChunkOptions(max_chunk_size=1, overlap_size=0), id="single-char-window"),
    pytest.param(PROSE, ChunkOptions(max_chunk_size=1, overlap_size=5), id="single-char-window-clamped"),
    pytest.param(PROSE, ChunkOptions(max_chunk_size=2, overlap_size=1), id="two-char-window"),
    pytest.param("ü" * 100 + ". " + "ß" * 100, ChunkOptions(max_chunk_size=9, overlap_size=4), id="non-ascii-runs"),
]


@pytest.mark.unit
class TestAdversarialInput:

    @pytest.mark.parametrize("text, options", ADVERSARIAL_CASES)
    def test_invariants_hold(self, text, options):
        normalized = normalize_text(text)
        chunks = ManuscriptChunker(options).chunk(text)

        assert "".join(c.unique_content for c in chunks) == normalized
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert all(0 < c.char_count <= options.max_chunk_size for c in chunks)
        for prev, cur in zip(chunks, chunks[1:]):
            assert cur.start > prev.start
            assert cur.overlap_chars <= min(options.overlap_size, options.max_chunk_size - 1)
            if cur.overlap_chars:
                assert cur.content[:cur.overlap_chars] == prev.content[-cur.overlap_chars:]

    def test_long_unbroken_run_is_hard_cut(self):
        chunks = ManuscriptChunker(ChunkOptions(max_chunk_size=50, overlap_size=0)).chunk("x" * 120)

        assert [c.char_count for c in chunks] == [50, 50, 20]


# ─────────────────────────────────────────────────────────────────────────────
# Break-point priority
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestBreakPoints:

    TEXT = "Alpha beta. Gamma delta! Epsilon zeta eta theta iota kappa lambda mu."

    def test_paragraph_break_preferred(self):
        chunks = ManuscriptChunker(ChunkOptions(max_chunk_size=40, overlap_size=0)).chunk(self.TEXT)

        assert chunks[0].content == "Alpha beta.\n\n"

    def test_sentence_break_when_paragraphs_not_preserved(self):
        options = ChunkOptions(max_chunk_size=40, overlap_size=0, preserve_paragraphs=False)
        chunks = ManuscriptChunker(options).chunk(self.TEXT)

        assert chunks[0].content == "Alpha beta.\n\nGamma delta! "

    def test_word_boundary_fallback(self):
        chunks = ManuscriptChunker(ChunkOptions(max_chunk_size=12, overlap_size=0)).chunk(
            "aaaa bbbb cccc dddd"
        )

        assert [c.content for c in chunks] == ["aaaa bbbb", " cccc dddd"]

    def test_hard_cut_on_unbroken_run(self):
        chunks = ManuscriptChunker(ChunkOptions(max_chunk_size=10, overlap_size=0)).chunk("x" * 25)

        assert [c.char_count for c in chunks] == [10, 10, 5]

    def test_hard_cut_with_overlap(self):
        chunks = ManuscriptChunker(ChunkOptions(max_chunk_size=10, overlap_size=3)).chunk("x" * 25)

        assert [(c.start, c.end) for c in chunks] == [(0, 10), (7, 17), (14, 24), (21, 25)]
        assert [c.overlap_chars for c in chunks] == [0, 3, 3, 3]

    def test_overlap_larger_than_window_is_clamped(self):
        options = ChunkOptions(max_chunk_size=10, overlap_size=50)
        chunks = ManuscriptChunker(options).chunk("x" * 25)

        assert "".join(c.unique_content for c in chunks) == "x" * 25
        assert all(c.char_count <= 10 for c in chunks)
        assert all(c.overlap_chars <= 9 for c in chunks)


# ─────────────────────────────────────────────────────────────────────────────
# Options, validation, estimate
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestChunkerHelpers:

    def test_defaults(self):
        options = ChunkOptions()

        assert options.max_chunk_size == 15_000
        assert options.overlap_size == 500
        assert options.preserve_paragraphs is True

    @pytest.mark.parametrize("kwargs", [{"max_chunk_size": 0}, {"overlap_size": -1}])
    def test_invalid_options_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            ChunkOptions(**kwargs)

    def test_validate_empty_chunk(self):
        result = ManuscriptChunker().validate_chunk(Chunk(index=0, content="", start=0, end=0))

        assert result.valid is False
        assert result.issues == ["Chunk is empty", "Chunk has too few words"]

    def test_validate_oversized_chunk(self):
        chunker = ManuscriptChunker(ChunkOptions(max_chunk_size=10, overlap_size=5))
        result = chunker.validate_chunk(Chunk(index=0, content="a" * 20, start=0, end=20))

        assert "Chunk exceeds maximum size" in result.issues
        assert "Chunk has too few words" in result.issues

    def test_validate_healthy_chunk(self):
        content = "one two three four five six seven eight nine ten"
        result = ManuscriptChunker().validate_chunk(
            Chunk(index=0, content=content, start=0, end=len(content))
        )

        assert result.valid is True
        assert result.issues == []

    @pytest.mark.parametrize("count, expected", [(0, (0, 0)), (1, (0, 30)), (5, (2, 30)), (4, (2, 0))])
    def test_estimate_processing_time(self, count, expected):
        estimate = ManuscriptChunker.estimate_processing_time(count)

        assert (estimate.minutes, estimate.seconds) == expected

    def test_chunk_manuscript_matches_chunker(self):
        options = ChunkOptions(max_chunk_size=100, overlap_size=10)

        assert chunk_manuscript(PROSE, options) == ManuscriptChunker(options).chunk(PROSE)
