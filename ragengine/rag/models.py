"""Documents, chunks and the status objects the engine reports."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class IngestionStatus(str, Enum):
    """Lifecycle of a document inside the engine."""

    PENDING = "pending"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            IngestionStatus.COMPLETED,
            IngestionStatus.PARTIALLY_COMPLETED,
            IngestionStatus.FAILED,
            IngestionStatus.CANCELLED,
        )


@dataclass
class Chunk:
    """A slice of a document; the embedding slot is filled on arrival."""

    chunk_id: int
    document_id: int
    content: str
    char_start: int
    char_end: int
    embedding: Optional[List[float]] = None
    embedding_failed: bool = False
    error: Optional[str] = None


@dataclass
class Document:
    """A source file and the chunks produced from it."""

    document_id: int
    path: Path
    generation: int
    ingested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    chunk_ids: List[int] = field(default_factory=list)
    status: IngestionStatus = IngestionStatus.PENDING
    outstanding: int = 0
    embedded_count: int = 0
    failed_chunk_count: int = 0
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        """Move to a terminal state once no embedding is outstanding."""
        if self.failed_chunk_count:
            self.status = IngestionStatus.PARTIALLY_COMPLETED
        else:
            self.status = IngestionStatus.COMPLETED

    def handle(self) -> "DocumentHandle":
        return DocumentHandle(
            document_id=self.document_id,
            path=self.path,
            status=self.status,
            chunk_count=len(self.chunk_ids),
            embedded_count=self.embedded_count,
            failed_chunk_count=self.failed_chunk_count,
            error=self.error,
        )


@dataclass(frozen=True)
class DocumentHandle:
    """Snapshot of a document's ingestion outcome."""

    document_id: Optional[int]
    path: Path
    status: IngestionStatus
    chunk_count: int = 0
    embedded_count: int = 0
    failed_chunk_count: int = 0
    error: Optional[str] = None


@dataclass
class DirectoryIngestionReport:
    """Per-file outcomes of a directory ingestion."""

    directory: Path
    documents: List[DocumentHandle] = field(default_factory=list)

    @property
    def succeeded(self) -> List[DocumentHandle]:
        return [d for d in self.documents if d.status != IngestionStatus.FAILED]

    @property
    def failed(self) -> List[DocumentHandle]:
        return [d for d in self.documents if d.status == IngestionStatus.FAILED]

    @property
    def errors(self) -> Dict[Path, str]:
        return {d.path: d.error for d in self.failed}

    @property
    def files_processed(self) -> int:
        return len(self.succeeded)

    @property
    def files_failed(self) -> int:
        return len(self.failed)

    @property
    def chunks_embedded(self) -> int:
        return sum(d.embedded_count for d in self.documents)

    @property
    def chunks_failed(self) -> int:
        return sum(d.failed_chunk_count for d in self.documents)


@dataclass
class RetrievalResult:
    """A single retrieved chunk with its similarity score."""

    chunk_id: int
    content: str
    source: Path
    score: float
    char_start: int
    char_end: int


class EventKind(str, Enum):
    DOCUMENT_INGESTED = "document_ingested"
    INGESTION_PROGRESS = "ingestion_progress"
    INGESTION_ERROR = "ingestion_error"
    EMBEDDING_GENERATED = "embedding_generated"
    EMBEDDING_FAILED = "embedding_failed"
    CONTEXT_RETRIEVED = "context_retrieved"
    QUERY_ERROR = "query_error"
    DOCUMENTS_CLEARED = "documents_cleared"


@dataclass(frozen=True)
class EngineEvent:
    kind: EventKind
    path: Optional[Path] = None
    data: Dict[str, Any] = field(default_factory=dict)
