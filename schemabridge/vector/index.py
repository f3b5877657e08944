"""
Vector index interface and the default in-memory implementation.
The index is append-only: exemplars are never removed by the engine.
"""

import threading
from abc import ABC, abstractmethod
from typing import List, Tuple

import numpy as np

from .types import VectorRecord, QueryResult


def normalize(vector) -> np.ndarray:
    """L2-normalize a vector as float32; zero vectors are returned unchanged."""
    array = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = np.linalg.norm(array)
    if norm == 0:
        return array
    return array / norm


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the store."""
        pass

    @abstractmethod
    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for similar vectors and return results, most similar first."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """
    In-memory cosine-similarity store with copy-on-write snapshots.

    Writers serialize on a lock and publish a new (ids, matrix) tuple;
    readers grab the current tuple without locking, so searches never wait
    on appends and always see a consistent snapshot.
    """

    def __init__(self):
        self._write_lock = threading.Lock()
        self._snapshot: Tuple[Tuple[str, ...], np.ndarray, Tuple[dict, ...]] = ((), np.zeros((0, 0), dtype=np.float32), ())

    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the store."""
        self.batch_add([record])

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        valid = [r for r in records if r.vector is not None and len(r.vector) > 0]
        if not valid:
            return

        rows = np.vstack([normalize(r.vector) for r in valid])

        with self._write_lock:
            ids, matrix, metadata = self._snapshot
            if matrix.size and matrix.shape[1] != rows.shape[1]:
                raise ValueError(f"Vector dimension {rows.shape[1]} does not match expected dimension {matrix.shape[1]}")

            new_matrix = rows if not matrix.size else np.vstack([matrix, rows])
            self._snapshot = (
                ids + tuple(r.id for r in valid),
                new_matrix,
                metadata + tuple(dict(r.metadata) for r in valid),
            )

    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        ids, matrix, metadata = self._snapshot
        if not ids or top_k <= 0:
            return []

        query = normalize(query_vector)
        if not np.any(query):
            # Return empty results if query vector is zero
            return []
        if query.shape[0] != matrix.shape[1]:
            raise ValueError(f"Query dimension {query.shape[0]} does not match index dimension {matrix.shape[1]}")

        scores = matrix @ query

        # Highest score first; among equal scores the later insertion first
        positions = np.arange(len(ids))
        order = np.lexsort((-positions, -scores))[:top_k]

        return [
            QueryResult(id=ids[i], score=float(scores[i]), metadata=metadata[i])
            for i in order
        ]

    def clear(self) -> None:
        """Clear all records from the store."""
        with self._write_lock:
            self._snapshot = ((), np.zeros((0, 0), dtype=np.float32), ())

    def __len__(self) -> int:
        return len(self._snapshot[0])
