"""Engine configuration with sensible defaults.

Defaults come from environment variables; ``RAGSettings`` is the immutable
object handed to the engine.
"""
import os

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Embedding service (Ollama-compatible)
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
MAX_CONCURRENT_EMBEDDINGS = int(os.getenv("MAX_CONCURRENT_EMBEDDINGS", "4"))

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "512"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "50"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))

# Vector index: "auto" (faiss when installed), "faiss" or "exact"
INDEX_BACKEND = os.getenv("INDEX_BACKEND", "auto")

# Re-ingesting a path replaces its previous chunks instead of duplicating them
REPLACE_EXISTING_DOCUMENTS = os.getenv("REPLACE_EXISTING_DOCUMENTS", "false").lower() in (
    "1",
    "true",
    "yes",
)

# Text extraction for non-plain formats
EXTRACTION_TIMEOUT = float(os.getenv("EXTRACTION_TIMEOUT", "30.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class RAGSettings(BaseModel):
    """Immutable engine settings, validated on construction."""

    model_config = ConfigDict(frozen=True)

    base_url: str = OLLAMA_BASE_URL
    embedding_model: str = Field(default=EMBEDDING_MODEL, min_length=1)
    embedding_timeout: float = Field(default=EMBEDDING_TIMEOUT, gt=0)
    max_concurrent_embeddings: int = Field(default=MAX_CONCURRENT_EMBEDDINGS, ge=1, le=64)
    chunk_size: int = Field(default=CHUNK_SIZE, ge=128, le=2048)
    chunk_overlap: int = Field(default=CHUNK_OVERLAP, ge=0, le=512)
    top_k: int = Field(default=RETRIEVAL_TOP_K, ge=1, le=10)
    index_backend: str = Field(default=INDEX_BACKEND, pattern="^(auto|faiss|exact)$")
    replace_existing_documents: bool = REPLACE_EXISTING_DOCUMENTS
    extraction_timeout: float = Field(default=EXTRACTION_TIMEOUT, gt=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "RAGSettings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )
        return self
