"""RAG engine: ingestion and retrieval over an in-memory vector index.

Orchestrates:
- Document loading and text extraction
- Text chunking with stable sequence numbers
- Concurrent embedding generation
- Vector index updates and top-K retrieval
- Cancellation of in-flight work through a generation counter
"""
import asyncio
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import structlog

from ragengine.config import RAGSettings
from ragengine.embedding_client import EmbeddingClient, EmbeddingCompletion
from ragengine.errors import (
    EmbeddingError,
    ExtractionError,
    LoadError,
    QueryError,
    RAGEngineError,
    VectorIndexError,
)
from ragengine.rag.chunker import TextChunker
from ragengine.rag.loader import CommandLineExtractor, DocumentLoader, TextExtractor
from ragengine.rag.models import (
    Chunk,
    DirectoryIngestionReport,
    Document,
    DocumentHandle,
    EngineEvent,
    EventKind,
    IngestionStatus,
    RetrievalResult,
)
from ragengine.rag.vector_index import VectorIndex, create_vector_index

logger = structlog.get_logger()

PathLike = Union[str, Path]
EventListener = Callable[[EngineEvent], None]


class RAGEngine:
    """Document indexing and retrieval engine."""

    def __init__(
        self,
        settings: Optional[RAGSettings] = None,
        embedding_client: Optional[EmbeddingClient] = None,
        extractor: Optional[TextExtractor] = None,
        index: Optional[VectorIndex] = None,
    ):
        """Initialize the engine.

        Args:
            settings: Engine settings (defaults from environment)
            embedding_client: Client used for chunk and query embeddings
            extractor: Text extractor for PDF / DOC / DOCX files
            index: Vector index (created from ``settings.index_backend`` if omitted)
        """
        self.settings = settings or RAGSettings()
        self.embedding_client = embedding_client or EmbeddingClient.from_settings(self.settings)
        self.loader = DocumentLoader(
            extractor or CommandLineExtractor(timeout=self.settings.extraction_timeout)
        )
        self.chunker = TextChunker(
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
        )
        self._index = index if index is not None else create_vector_index(self.settings.index_backend)

        # Documents, chunks and the index only change while holding this lock
        self._lock = threading.RLock()
        self._documents: Dict[int, Document] = {}
        self._chunks: Dict[int, Chunk] = {}
        self._next_document_id = 0
        self._next_chunk_id = 0
        self._generation = 0

        self._listeners: List[EventListener] = []

        self.stats = {
            "files_processed": 0,
            "files_failed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
            "embeddings_failed": 0,
            "stale_embeddings_discarded": 0,
            "queries": 0,
            "queries_failed": 0,
        }

        logger.info(
            "rag_engine_initialized",
            embedding_model=self.settings.embedding_model,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            index_backend=self._index.backend_name,
        )

    # Events

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    def _emit(self, kind: EventKind, path: Optional[Path] = None, **data) -> None:
        event = EngineEvent(kind=kind, path=path, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("event_listener_failed", kind=kind.value)

    # Ingestion

    async def ingest_document(self, path: PathLike) -> DocumentHandle:
        """Ingest a single document.

        Loads the text, chunks it, embeds every chunk concurrently and inserts
        each vector into the index as it arrives. Returns once every embedding
        request has resolved.

        Args:
            path: Path to the document

        Returns:
            DocumentHandle describing the outcome

        Raises:
            LoadError: If the file cannot be read
            ExtractionError: If text extraction fails
        """
        path = Path(path)
        logger.info("ingesting_file", path=str(path))
        generation = self._generation

        try:
            loaded = await self.loader.load(path)
        except (LoadError, ExtractionError) as e:
            with self._lock:
                self.stats["files_failed"] += 1
            logger.error(
                "file_ingestion_failed",
                path=str(path),
                error=str(e),
                error_type=type(e).__name__,
            )
            self._emit(
                EventKind.INGESTION_ERROR,
                path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        with self._lock:
            if generation != self._generation:
                logger.info("file_ingestion_cancelled", path=str(path), stage="loading")
                return DocumentHandle(
                    document_id=None,
                    path=path,
                    status=IngestionStatus.CANCELLED,
                )

            if self.settings.replace_existing_documents:
                self._remove_by_path(path)

            document = Document(
                document_id=self._next_document_id,
                path=path,
                generation=self._generation,
                metadata=loaded.metadata,
            )
            self._next_document_id += 1
            self._documents[document.document_id] = document

            document.status = IngestionStatus.CHUNKING
            text_chunks = self.chunker.chunk_text(loaded.text)

            # Sequence numbers are fixed here, before any network I/O
            for text_chunk in text_chunks:
                chunk = Chunk(
                    chunk_id=self._next_chunk_id,
                    document_id=document.document_id,
                    content=text_chunk.content,
                    char_start=text_chunk.char_start,
                    char_end=text_chunk.char_end,
                )
                self._next_chunk_id += 1
                self._chunks[chunk.chunk_id] = chunk
                document.chunk_ids.append(chunk.chunk_id)

            document.outstanding = len(text_chunks)
            document.status = IngestionStatus.EMBEDDING
            self.stats["chunks_created"] += len(text_chunks)
            pending = [
                (chunk_id, text_chunk.content)
                for chunk_id, text_chunk in zip(document.chunk_ids, text_chunks)
            ]

        logger.info(
            "document_chunked",
            path=str(path),
            chunk_count=len(pending),
            generation=generation,
        )

        requests = [
            asyncio.ensure_future(self.embedding_client.request(chunk_id, generation, text))
            for chunk_id, text in pending
        ]

        try:
            for next_completion in asyncio.as_completed(requests):
                completion = await next_completion
                self._apply_completion(document, completion)
        except BaseException as e:
            with self._lock:
                if not document.status.is_terminal:
                    document.status = IngestionStatus.CANCELLED
                    document.error = f"Ingestion interrupted: {type(e).__name__}"
            logger.warning(
                "file_ingestion_interrupted",
                path=str(path),
                outstanding=document.outstanding,
                error_type=type(e).__name__,
            )
            raise
        finally:
            for request in requests:
                if not request.done():
                    request.cancel()

        with self._lock:
            if document.status == IngestionStatus.EMBEDDING:
                document.finish()
                self.stats["files_processed"] += 1
            handle = document.handle()

        if handle.status == IngestionStatus.CANCELLED:
            logger.info("file_ingestion_cancelled", path=str(path))
        else:
            logger.info(
                "file_ingested",
                path=str(path),
                status=handle.status.value,
                chunks_created=handle.chunk_count,
                chunks_failed=handle.failed_chunk_count,
            )
            self._emit(
                EventKind.DOCUMENT_INGESTED,
                path,
                status=handle.status.value,
                chunk_count=handle.chunk_count,
                failed_chunk_count=handle.failed_chunk_count,
            )

        return handle

    def _apply_completion(self, document: Document, completion: EmbeddingCompletion) -> None:
        """Write an embedding result into its chunk slot."""
        error = None

        with self._lock:
            chunk = self._chunks.get(completion.chunk_id)
            if completion.generation != self._generation or chunk is None:
                self.stats["stale_embeddings_discarded"] += 1
                logger.debug(
                    "stale_embedding_discarded",
                    chunk_id=completion.chunk_id,
                    generation=completion.generation,
                    current_generation=self._generation,
                )
                return

            document.outstanding -= 1

            if completion.ok:
                try:
                    self._index.insert(chunk.chunk_id, completion.vector)
                except VectorIndexError as e:
                    error = e
                else:
                    chunk.embedding = completion.vector
                    document.embedded_count += 1
                    self.stats["embeddings_generated"] += 1
            else:
                error = completion.error

            if error is not None:
                chunk.embedding_failed = True
                chunk.error = str(error)
                document.failed_chunk_count += 1
                self.stats["embeddings_failed"] += 1

            done = document.embedded_count + document.failed_chunk_count
            total = len(document.chunk_ids)

        if error is not None:
            logger.warning(
                "chunk_embedding_failed",
                path=str(document.path),
                chunk_id=completion.chunk_id,
                error=str(error),
                error_type=type(error).__name__,
            )
            self._emit(
                EventKind.EMBEDDING_FAILED,
                document.path,
                chunk_id=completion.chunk_id,
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            self._emit(
                EventKind.EMBEDDING_GENERATED,
                document.path,
                chunk_id=completion.chunk_id,
                dimension=completion.dimension,
            )

        self._emit(EventKind.INGESTION_PROGRESS, document.path, current=done, total=total)

    async def ingest_directory(
        self, path: PathLike, recursive: bool = True
    ) -> DirectoryIngestionReport:
        """Ingest every supported file under a directory.

        A file that fails is recorded in the report; the rest still run.

        Args:
            path: Directory to scan
            recursive: Descend into subdirectories

        Returns:
            DirectoryIngestionReport with one handle per file

        Raises:
            LoadError: If the directory does not exist
        """
        directory = Path(path)
        if not directory.is_dir():
            raise LoadError(f"Directory does not exist: {directory}")

        pattern = "**/*" if recursive else "*"
        files = sorted(
            p for p in directory.glob(pattern) if p.is_file() and self.loader.is_supported(p)
        )

        logger.info("ingesting_directory", directory=str(directory), file_count=len(files))

        handles = await asyncio.gather(*(self._ingest_reported(f) for f in files))
        report = DirectoryIngestionReport(directory=directory, documents=list(handles))

        logger.info(
            "directory_ingested",
            directory=str(directory),
            files_processed=report.files_processed,
            files_failed=report.files_failed,
            chunks_embedded=report.chunks_embedded,
        )

        return report

    async def _ingest_reported(self, path: Path) -> DocumentHandle:
        try:
            return await self.ingest_document(path)
        except RAGEngineError as e:
            return DocumentHandle(
                document_id=None,
                path=path,
                status=IngestionStatus.FAILED,
                error=str(e),
            )

    # Retrieval

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Retrieve the chunks most similar to a query.

        Args:
            query: User query text
            top_k: Number of results (default from settings)

        Returns:
            RetrievalResult objects, best first. Empty when the index is empty.

        Raises:
            QueryError: If the query cannot be embedded or searched
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return []

        top_k = self.settings.top_k if top_k is None else top_k
        if top_k < 1:
            raise QueryError(f"top_k must be at least 1, got {top_k}")

        if len(self._index) == 0:
            logger.info("empty_index_no_results")
            return []

        with self._lock:
            self.stats["queries"] += 1

        try:
            query_embedding = await self.embedding_client.embed(query)
        except EmbeddingError as e:
            raise self._query_failed(query, e) from e

        with self._lock:
            try:
                hits = self._index.search(query_embedding, top_k)
            except VectorIndexError as e:
                raise self._query_failed(query, e) from e

            results = []
            for chunk_id, score in hits:
                chunk = self._chunks.get(chunk_id)
                if chunk is None:
                    continue
                results.append(
                    RetrievalResult(
                        chunk_id=chunk_id,
                        content=chunk.content,
                        source=self._documents[chunk.document_id].path,
                        score=score,
                        char_start=chunk.char_start,
                        char_end=chunk.char_end,
                    )
                )

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )
        self._emit(
            EventKind.CONTEXT_RETRIEVED,
            count=len(results),
            contexts=[result.content for result in results],
        )

        return results

    def _query_failed(self, query: str, error: Exception) -> QueryError:
        with self._lock:
            self.stats["queries_failed"] += 1
        logger.error(
            "retrieval_failed",
            error=str(error),
            error_type=type(error).__name__,
            query_preview=query[:100],
        )
        self._emit(EventKind.QUERY_ERROR, error=str(error), error_type=type(error).__name__)
        return QueryError(f"Retrieval failed: {error}")

    async def retrieve_context(self, query: str, top_k: Optional[int] = None) -> List[str]:
        """Retrieve chunk texts for a query, most similar first.

        Raises:
            QueryError: If the query cannot be embedded or searched
        """
        results = await self.retrieve(query, top_k=top_k)
        return [result.content for result in results]

    # Removal

    def clear_documents(self) -> None:
        """Drop every document, chunk and vector.

        Embeddings still in flight belong to the previous generation and are
        discarded when they arrive.
        """
        with self._lock:
            self._generation += 1
            document_count = len(self._documents)
            chunk_count = len(self._chunks)
            for document in self._documents.values():
                if not document.status.is_terminal:
                    document.status = IngestionStatus.CANCELLED
            self._documents.clear()
            self._chunks.clear()
            self._index.clear()
            generation = self._generation

        logger.info(
            "documents_cleared",
            documents=document_count,
            chunks=chunk_count,
            generation=generation,
        )
        self._emit(EventKind.DOCUMENTS_CLEARED, generation=generation)

    def remove_document(self, path: PathLike) -> int:
        """Remove every document ingested from ``path``.

        Returns:
            Number of documents removed
        """
        with self._lock:
            removed = self._remove_by_path(Path(path))
        if removed:
            logger.info("document_removed", path=str(path), documents=removed)
        return removed

    def _remove_by_path(self, path: Path) -> int:
        matches = [d for d in self._documents.values() if d.path == path]
        for document in matches:
            for chunk_id in document.chunk_ids:
                self._chunks.pop(chunk_id, None)
                self._index.remove(chunk_id)
            if not document.status.is_terminal:
                document.status = IngestionStatus.CANCELLED
            del self._documents[document.document_id]
        return len(matches)

    # Statistics

    def get_document_count(self) -> int:
        return len(self._documents)

    def get_chunk_count(self) -> int:
        """Number of chunks that are embedded and searchable."""
        return len(self._index)

    def get_embedding_dimension(self) -> Optional[int]:
        return self._index.dimension

    def get_document(self, document_id: int) -> Optional[DocumentHandle]:
        with self._lock:
            document = self._documents.get(document_id)
            return document.handle() if document else None

    def list_documents(self) -> List[DocumentHandle]:
        with self._lock:
            return [d.handle() for d in self._documents.values()]

    def get_stats(self) -> dict:
        """Get counters and current sizes."""
        with self._lock:
            return {
                **self.stats,
                "document_count": len(self._documents),
                "chunk_count": len(self._index),
                "embedding_dimension": self._index.dimension,
                "generation": self._generation,
                "index_backend": self._index.backend_name,
            }
