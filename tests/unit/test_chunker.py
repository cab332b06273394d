"""Tests for the sentence-aware text chunker."""
import pytest

from ragengine.errors import ChunkingError
from ragengine.rag.chunker import TextChunker, chunk_text

SAMPLE = (
    "Retrieval systems split documents into passages. Each passage is embedded! "
    "Why overlap them? Because answers straddle boundaries. "
    "A verylongtokenwithoutanyspacesthatkeepsgoingandgoingpastthewindow appears here. "
    "Numbers like 3.14 and 2.71 should not end a sentence. Done."
)


def _reconstruct(chunks, overlap_limit):
    rebuilt = chunks[0].content
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.char_start > prev.char_start
        overlap = prev.char_end - cur.char_start
        assert 0 <= overlap <= overlap_limit
        rebuilt += cur.content[overlap:]
    return rebuilt


def test_sentence_boundary_scenario():
    """First chunk ends after 'jumps.', second starts inside the overlap."""
    text = "The quick brown fox jumps. It is sunny today."

    chunks = chunk_text(text, chunk_size=28, chunk_overlap=6)

    assert len(chunks) == 2
    assert chunks[0].content == "The quick brown fox jumps."
    assert chunks[0].char_end == 26
    assert chunks[1].char_start >= chunks[0].char_end - 6
    assert chunks[1].char_start < chunks[0].char_end
    assert "It is sunny today." in chunks[1].content


def test_empty_text_yields_no_chunks():
    assert chunk_text("", 128, 16) == []


def test_short_text_is_one_chunk():
    text = "Short enough."

    chunks = chunk_text(text, 128, 16)

    assert len(chunks) == 1
    assert chunks[0].content == text
    assert (chunks[0].char_start, chunks[0].char_end) == (0, len(text))


def test_text_exactly_chunk_size_is_one_chunk():
    text = "x" * 64
    assert len(chunk_text(text, 64, 8)) == 1


@pytest.mark.parametrize(
    "size,overlap",
    [(10, 10), (10, 11), (0, 0), (10, -1)],
)
def test_invalid_configuration_raises(size, overlap):
    with pytest.raises(ChunkingError):
        TextChunker(chunk_size=size, chunk_overlap=overlap)


def test_chunking_error_is_value_error():
    with pytest.raises(ValueError):
        chunk_text("abc", 5, 5)


@pytest.mark.parametrize(
    "size,overlap",
    [(20, 0), (20, 5), (32, 31), (40, 10), (64, 16), (100, 0)],
)
def test_chunk_invariants(size, overlap):
    chunks = chunk_text(SAMPLE, size, overlap)

    assert chunks
    for index, chunk in enumerate(chunks):
        assert chunk.chunk_index == index
        assert len(chunk.content) <= size
        assert SAMPLE[chunk.char_start : chunk.char_end] == chunk.content
    assert chunks[0].char_start == 0
    assert chunks[-1].char_end == len(SAMPLE)
    assert _reconstruct(chunks, overlap) == SAMPLE


def test_long_token_falls_back_to_hard_cut():
    text = "a" * 50

    chunks = chunk_text(text, 20, 5)

    assert [len(c.content) for c in chunks[:-1]] == [20] * (len(chunks) - 1)
    assert _reconstruct(chunks, 5) == text


def test_whitespace_boundary_without_terminator():
    text = "alpha beta gamma delta epsilon zeta eta theta"

    chunks = chunk_text(text, 20, 0)

    # cut lands before a space, never inside a word
    for chunk in chunks[:-1]:
        assert text[chunk.char_end].isspace()


def test_decimal_point_is_not_a_sentence_end():
    text = "Pi is close to 3.14159265 but the ratio continues."

    chunks = chunk_text(text, 20, 0)

    assert all(not c.content.endswith("3.") for c in chunks)


def test_terminator_outside_lookback_is_ignored():
    # "Hi." sits at the start of the window, far outside the last 20%
    text = "Hi. " + "word " * 10

    chunks = chunk_text(text, 30, 0)

    assert chunks[0].char_end > 3


def test_overlap_never_exceeds_configured_value():
    text = "One. Two. Three. Four. Five. Six. Seven. Eight. Nine. Ten. " * 5

    chunks = chunk_text(text, 30, 8)

    for prev, cur in zip(chunks, chunks[1:]):
        assert prev.char_end - cur.char_start <= 8


def test_chunk_stats():
    chunker = TextChunker(chunk_size=40, chunk_overlap=10)
    chunks = chunker.chunk_text(SAMPLE)

    stats = chunker.get_chunk_stats(chunks)

    assert stats["chunk_count"] == len(chunks)
    assert stats["max_chunk_size"] <= 40
    assert stats["overlap"] == 10
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
