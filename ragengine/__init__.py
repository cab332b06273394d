"""Document indexing and retrieval engine for retrieval-augmented chat."""
from ragengine.config import RAGSettings
from ragengine.embedding_client import EmbeddingClient, EmbeddingCompletion
from ragengine.errors import (
    ChunkingError,
    EmbeddingError,
    EmbeddingNetworkError,
    EmbeddingParseError,
    EmbeddingTimeoutError,
    ExtractionError,
    LoadError,
    QueryError,
    RAGEngineError,
    VectorIndexError,
)
from ragengine.rag.engine import RAGEngine
from ragengine.rag.models import DocumentHandle, IngestionStatus

__version__ = "0.1.0"

__all__ = [
    "RAGEngine",
    "RAGSettings",
    "EmbeddingClient",
    "EmbeddingCompletion",
    "DocumentHandle",
    "IngestionStatus",
    "RAGEngineError",
    "LoadError",
    "ExtractionError",
    "ChunkingError",
    "EmbeddingError",
    "EmbeddingNetworkError",
    "EmbeddingTimeoutError",
    "EmbeddingParseError",
    "QueryError",
    "VectorIndexError",
]
