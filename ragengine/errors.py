"""Exception hierarchy for the RAG engine."""


class RAGEngineError(Exception):
    """Base class for all engine errors."""


class LoadError(RAGEngineError):
    """A document could not be read (missing, unreadable, unsupported type)."""


class ExtractionError(RAGEngineError):
    """The external text extractor failed or is not installed."""


class ChunkingError(RAGEngineError, ValueError):
    """Invalid chunk size / overlap configuration."""


class EmbeddingError(RAGEngineError):
    """An embedding request failed."""


class EmbeddingNetworkError(EmbeddingError):
    """Transport failure or non-2xx response from the embedding service."""


class EmbeddingTimeoutError(EmbeddingError):
    """The embedding request did not complete within its timeout."""


class EmbeddingParseError(EmbeddingError):
    """The embedding service answered with something that is not a vector."""


class QueryError(RAGEngineError):
    """Query-time embedding or search failed."""


class VectorIndexError(RAGEngineError):
    """Vector dimension does not match the index dimension."""
