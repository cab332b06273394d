"""Text chunking with overlap for the RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies.
Chunks are exact slices of the source text, so offsets always satisfy
``text[chunk.char_start:chunk.char_end] == chunk.content``.
"""
from dataclasses import dataclass
from typing import List, Optional

import structlog

from ragengine import config
from ragengine.errors import ChunkingError

logger = structlog.get_logger()

SENTENCE_TERMINATORS = ".!?"


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
        sentence_lookback: float = 0.2,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
            sentence_lookback: Fraction of the window, counted back from its end,
                searched for a sentence terminator

        Raises:
            ChunkingError: If the size/overlap combination is invalid
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.sentence_lookback = sentence_lookback

        # Validate parameters
        if self.chunk_size <= 0:
            raise ChunkingError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ChunkingError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ChunkingError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects in document order
        """
        if not text:
            return []

        text_length = len(text)

        # Handle text shorter than chunk size
        if text_length <= self.chunk_size:
            return [
                TextChunk(
                    content=text,
                    char_start=0,
                    char_end=text_length,
                    chunk_index=0,
                )
            ]

        chunks = []
        start = 0

        while True:
            window_end = start + self.chunk_size

            if window_end >= text_length:
                end = text_length
            else:
                end = self._find_cut(text, start, window_end)

            chunks.append(
                TextChunk(
                    content=text[start:end],
                    char_start=start,
                    char_end=end,
                    chunk_index=len(chunks),
                )
            )

            if end >= text_length:
                break

            # Overlap is measured from the actual cut, not the nominal window end
            start = end - self.chunk_overlap

        logger.debug(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
        )

        return chunks

    def _find_cut(self, text: str, start: int, window_end: int) -> int:
        """Pick the end offset for the window ``text[start:window_end]``.

        Prefers a sentence terminator near the end of the window, then a
        whitespace boundary, then the hard window boundary. Any cut must leave
        the next window starting after ``start``.
        """
        min_cut = start + self.chunk_overlap + 1
        lookback = max(1, int(self.chunk_size * self.sentence_lookback))

        sentence_cut = self._sentence_boundary(text, max(start, window_end - lookback), window_end)
        if sentence_cut is not None and sentence_cut >= min_cut:
            return sentence_cut

        for pos in range(window_end - 1, min_cut - 1, -1):
            if text[pos].isspace():
                return pos

        return window_end

    @staticmethod
    def _sentence_boundary(text: str, lo: int, window_end: int) -> Optional[int]:
        # A terminator only counts when followed by whitespace, so "3.14"
        # and "e.g.x" are not split.
        for pos in range(window_end - 1, lo - 1, -1):
            if text[pos] in SENTENCE_TERMINATORS and text[pos + 1].isspace():
                return pos + 1
        return None

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def chunk_text(text: str, chunk_size: int, chunk_overlap: int) -> List[TextChunk]:
    """Chunk text with an explicit size and overlap (convenience function).

    Args:
        text: Text to chunk
        chunk_size: Maximum chunk length in characters
        chunk_overlap: Characters shared by adjacent chunks

    Returns:
        List of TextChunk objects

    Raises:
        ChunkingError: If ``chunk_overlap >= chunk_size``
    """
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).chunk_text(text)
