"""In-memory vector index for semantic search.

Handles:
- Runtime embedding dimension detection (first insert wins)
- Cosine similarity via L2-normalized vectors
- Exact numpy backend, plus a faiss backend when faiss is installed
"""
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ragengine.errors import VectorIndexError

try:
    import faiss
except ImportError:  # faiss-cpu is optional at runtime
    faiss = None

logger = structlog.get_logger()

BACKENDS = ("auto", "faiss", "exact")


def faiss_available() -> bool:
    return faiss is not None


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


def _rank(ids: np.ndarray, scores: np.ndarray, top_k: int) -> List[Tuple[int, float]]:
    # Descending score, ascending id on ties
    order = np.lexsort((ids, -scores))[:top_k]
    return [(int(ids[i]), float(scores[i])) for i in order]


class VectorIndex(ABC):
    """Store of (id, vector) pairs with top-K cosine search.

    All operations hold the index lock, so a search never sees a
    half-inserted vector.
    """

    backend_name = "abstract"

    def __init__(self):
        self.dimension: Optional[int] = None
        self._lock = threading.RLock()

    def _prepare(self, vector: Sequence[float], what: str) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float32).reshape(-1)
        if array.size == 0:
            raise VectorIndexError(f"Empty {what} vector")
        if self.dimension is not None and array.shape[0] != self.dimension:
            raise VectorIndexError(
                f"{what.capitalize()} dimension mismatch: expected {self.dimension}, "
                f"got {array.shape[0]}"
            )
        return _normalize(array)

    def insert(self, vector_id: int, vector: Sequence[float]) -> None:
        """Insert or replace the vector stored under ``vector_id``.

        Raises:
            VectorIndexError: If the dimension does not match the index
        """
        with self._lock:
            normalized = self._prepare(vector, "embedding")
            if self.dimension is None:
                self.dimension = normalized.shape[0]
                self._on_dimension_established(self.dimension)
                logger.info(
                    "vector_index_dimension_established",
                    backend=self.backend_name,
                    dimension=self.dimension,
                )
            self._insert(int(vector_id), normalized)

    def search(self, query: Sequence[float], top_k: int) -> List[Tuple[int, float]]:
        """Return up to ``top_k`` (id, score) pairs, best first.

        Raises:
            VectorIndexError: If the query dimension does not match the index
        """
        with self._lock:
            top_k = min(top_k, len(self))
            if top_k <= 0:
                return []
            normalized = self._prepare(query, "query")
            return self._search(normalized, top_k)

    def remove(self, vector_id: int) -> bool:
        with self._lock:
            return self._remove(int(vector_id))

    def clear(self) -> None:
        """Drop every vector. The established dimension is kept."""
        with self._lock:
            self._clear()

    def __contains__(self, vector_id: int) -> bool:
        with self._lock:
            return self._contains(int(vector_id))

    def _on_dimension_established(self, dimension: int) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int: ...

    @abstractmethod
    def _insert(self, vector_id: int, vector: np.ndarray) -> None: ...

    @abstractmethod
    def _search(self, query: np.ndarray, top_k: int) -> List[Tuple[int, float]]: ...

    @abstractmethod
    def _remove(self, vector_id: int) -> bool: ...

    @abstractmethod
    def _clear(self) -> None: ...

    @abstractmethod
    def _contains(self, vector_id: int) -> bool: ...


class BruteForceIndex(VectorIndex):
    """Exact search scoring every stored vector (O(N·D))."""

    backend_name = "exact"

    def __init__(self):
        super().__init__()
        self._vectors: Dict[int, np.ndarray] = {}
        self._ids: Optional[np.ndarray] = None
        self._matrix: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self._vectors)

    def _insert(self, vector_id: int, vector: np.ndarray) -> None:
        self._vectors[vector_id] = vector
        self._matrix = None

    def _search(self, query: np.ndarray, top_k: int) -> List[Tuple[int, float]]:
        if self._matrix is None:
            self._ids = np.fromiter(self._vectors.keys(), dtype=np.int64, count=len(self._vectors))
            self._matrix = np.vstack(list(self._vectors.values()))
        scores = self._matrix @ query
        return _rank(self._ids, scores, top_k)

    def _remove(self, vector_id: int) -> bool:
        if self._vectors.pop(vector_id, None) is None:
            return False
        self._matrix = None
        return True

    def _clear(self) -> None:
        self._vectors.clear()
        self._ids = None
        self._matrix = None

    def _contains(self, vector_id: int) -> bool:
        return vector_id in self._vectors


class FaissIndex(VectorIndex):
    """faiss-backed index (inner product over normalized vectors)."""

    backend_name = "faiss"

    def __init__(self):
        if faiss is None:
            raise RuntimeError("faiss is not installed")
        super().__init__()
        self.index = None

    def __len__(self) -> int:
        return 0 if self.index is None else int(self.index.ntotal)

    def _on_dimension_established(self, dimension: int) -> None:
        self._reset(dimension)

    def _reset(self, dimension: int) -> None:
        # IndexIDMap2 keeps our chunk ids as labels and supports removal
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))

    def _insert(self, vector_id: int, vector: np.ndarray) -> None:
        ids = np.array([vector_id], dtype=np.int64)
        if self._contains(vector_id):
            self.index.remove_ids(ids)
        self.index.add_with_ids(vector.reshape(1, -1), ids)

    def _search(self, query: np.ndarray, top_k: int) -> List[Tuple[int, float]]:
        query = query.reshape(1, -1)
        distances, labels = self.index.search(query, top_k)
        ids = labels[0]
        scores = distances[0]

        if top_k < len(self):
            # Pull in everything tied with the k-th score so ties resolve by id
            boundary = float(scores[-1])
            lims, range_scores, range_ids = self.index.range_search(query, boundary - 1e-6)
            ids = range_ids[lims[0] : lims[1]]
            scores = range_scores[lims[0] : lims[1]]

        return _rank(np.asarray(ids, dtype=np.int64), np.asarray(scores), top_k)

    def _remove(self, vector_id: int) -> bool:
        if self.index is None:
            return False
        removed = self.index.remove_ids(np.array([vector_id], dtype=np.int64))
        return removed > 0

    def _clear(self) -> None:
        if self.dimension is not None:
            self._reset(self.dimension)

    def _contains(self, vector_id: int) -> bool:
        if self.index is None or self.index.ntotal == 0:
            return False
        ids = faiss.vector_to_array(self.index.id_map)
        return bool(np.any(ids == vector_id))


def create_vector_index(backend: str = "auto") -> VectorIndex:
    """Create a vector index for the requested backend.

    ``auto`` and ``faiss`` use faiss when it can be imported and fall back to
    the exact backend otherwise.

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend not in BACKENDS:
        raise ValueError(f"Unknown index backend {backend!r}, expected one of {BACKENDS}")

    if backend in ("auto", "faiss"):
        if faiss_available():
            index = FaissIndex()
        else:
            if backend == "faiss":
                logger.warning("faiss_unavailable_falling_back", backend="exact")
            index = BruteForceIndex()
    else:
        index = BruteForceIndex()

    logger.info("vector_index_created", requested=backend, backend=index.backend_name)
    return index
