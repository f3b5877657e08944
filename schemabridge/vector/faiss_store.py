"""
FAISS-backed vector index for larger knowledge bases.
"""

import threading
from typing import List

import faiss
import numpy as np

from .types import VectorRecord, QueryResult
from .index import IVectorStore, normalize


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore."""

    def __init__(self, dimension: int = 384):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the vectors (default: 384 for hash embeddings)
        """
        self.dimension = dimension

        # Flat inner-product index over normalized vectors == cosine similarity
        self.index = faiss.IndexFlatIP(dimension)

        # FAISS row -> exemplar id; rows are never removed
        self.vector_id_map: List[str] = []
        self.metadata: List[dict] = []

        # FAISS indexes are not safe for concurrent add + search
        self._lock = threading.Lock()

    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the FAISS store."""
        self.batch_add([record])

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the FAISS store."""
        vectors_to_add = []
        valid_records = []

        for record in records:
            if record.vector is None or len(record.vector) == 0:
                continue
            if len(record.vector) != self.dimension:
                raise ValueError(f"Vector dimension {len(record.vector)} does not match expected dimension {self.dimension}")

            vector = normalize(record.vector)
            if not np.any(vector):  # Zero vectors carry no direction
                continue
            vectors_to_add.append(vector)
            valid_records.append(record)

        if not vectors_to_add:
            return

        batch_vectors = np.vstack(vectors_to_add).astype(np.float32)

        with self._lock:
            self.index.add(batch_vectors)
            self.vector_id_map.extend(r.id for r in valid_records)
            self.metadata.extend(dict(r.metadata) for r in valid_records)

    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        query = normalize(query_vector)
        if not np.any(query) or top_k <= 0:
            return []

        with self._lock:
            if not self.index.ntotal:
                return []
            scores, indices = self.index.search(query.reshape(1, -1), min(top_k, self.index.ntotal))
            id_map = list(self.vector_id_map)
            metadata = list(self.metadata)

        results = []
        for score, vector_index in zip(scores[0], indices[0]):
            if vector_index < 0 or vector_index >= len(id_map):
                continue
            results.append(QueryResult(
                id=id_map[vector_index],
                score=float(score),
                metadata=metadata[vector_index]
            ))
        return results

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        with self._lock:
            self.index = faiss.IndexFlatIP(self.dimension)
            self.vector_id_map = []
            self.metadata = []

    def __len__(self) -> int:
        return len(self.vector_id_map)
