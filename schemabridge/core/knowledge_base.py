"""
Knowledge Base - append-only store of exemplars plus their embeddings.

SQLite is the durable record; the vector index is a rebuildable overlay used
for similarity lookups. An append commits to SQLite before the vector index
sees it, so a crash can lose index entries (recovered by rebuild_index) but
never corrupt a stored exemplar.
"""

import json
import sqlite3
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from . import config
from .db import get_db, init_db
from .errors import ExemplarNotFound, RetrievalError
from .schema import Exemplar
from ..vector.index import IVectorStore
from ..vector.types import VectorRecord
from util.logging import logger

_COLUMNS = (
    "id, ts, mode, outcome, source, schema_version, confidence, error_reason, "
    "consumer_request, server_request, response, server_response, embedding"
)

# Extra candidates pulled from the index so equal-distance ties can be ordered by recency
_OVERFETCH = 4

# Ids per SELECT ... IN (...), below the SQLite host parameter limit
_SQL_BATCH = 500


def _dump(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value, ensure_ascii=False, default=str)


def _load(text: Optional[str]) -> Any:
    return None if text is None else json.loads(text)


def _row_to_exemplar(row: Tuple) -> Exemplar:
    (exemplar_id, ts, mode, outcome, source, schema_version, confidence, error_reason,
     consumer_request, server_request, response, server_response, embedding) = row
    return Exemplar(
        id=exemplar_id,
        timestamp=datetime.fromisoformat(ts),
        mode=mode,
        outcome=outcome,
        source=source,
        schema_version=schema_version,
        confidence=confidence,
        error_reason=error_reason,
        consumer_request=_load(consumer_request),
        server_request=_load(server_request),
        response=_load(response),
        server_response=_load(server_response),
        embedding=_load(embedding) or [],
    )


class KnowledgeBase:
    """
    Exemplar store with a similarity index.

    Appends are serialized by a writer lock; queries read the vector index
    snapshot and open their own SQLite connection, so they never wait on it.
    """

    def __init__(self, db_path: Optional[str] = None, vector_store: Optional[IVectorStore] = None,
                 dimension: Optional[int] = None):
        self.db_path = db_path or config.DB_PATH
        self.vector_store = vector_store if vector_store is not None else config.get_vector_store(dimension)
        self._write_lock = threading.Lock()

        try:
            init_db(self.db_path)
        except sqlite3.Error as e:
            raise RetrievalError(f"Failed to initialize knowledge base: {e}") from e

    def append(self, exemplar: Exemplar) -> str:
        """
        Durably store an exemplar and index its embedding.

        Returns:
            Exemplar id

        Raises:
            RetrievalError: SQLite write failed (store_unavailable)
        """
        row = (
            exemplar.id,
            exemplar.timestamp.isoformat(),
            exemplar.mode,
            exemplar.outcome,
            exemplar.source,
            exemplar.schema_version,
            exemplar.confidence,
            exemplar.error_reason,
            _dump(exemplar.consumer_request),
            _dump(exemplar.server_request),
            _dump(exemplar.response),
            _dump(exemplar.server_response),
            _dump(list(exemplar.embedding)),
        )

        with self._write_lock:
            try:
                with get_db(self.db_path) as conn:
                    conn.execute(f"INSERT INTO exemplars ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", row)
                    conn.commit()
            except sqlite3.Error as e:
                logger.log_exemplar(exemplar.id, exemplar.mode, exemplar.outcome, exemplar.source, status="failed")
                raise RetrievalError(f"Failed to append exemplar: {e}") from e

            if exemplar.embedding:
                try:
                    self.vector_store.add(VectorRecord(
                        id=exemplar.id,
                        vector=np.asarray(exemplar.embedding, dtype=np.float32),
                        metadata={"mode": exemplar.mode, "outcome": exemplar.outcome, "source": exemplar.source}
                    ))
                except (ValueError, RuntimeError) as e:
                    # Stored in SQLite, missing from the index until a rebuild
                    logger.log_operation("knowledge_base.index_add", "failed", {
                        "exemplar_id": exemplar.id,
                        "error": str(e),
                    })

        logger.log_exemplar(exemplar.id, exemplar.mode, exemplar.outcome, exemplar.source)
        return exemplar.id

    def query_by_embedding(self, vector, k: int,
                           accept: Optional[Callable[[Exemplar], bool]] = None) -> Iterator[Tuple[Exemplar, float]]:
        """
        Nearest exemplars to ``vector`` as (exemplar, cosine distance).

        Single-pass generator. Order: ascending distance, then most recent
        timestamp, then id, so repeated queries over an unchanged store
        return the same sequence. ``accept`` filters candidates before the
        cut to ``k``; the index window widens until ``k`` exemplars pass or
        the index is exhausted.
        """
        if k <= 0:
            return

        query = np.asarray(vector, dtype=np.float32)
        fetch = k * _OVERFETCH
        while True:
            hits = self.vector_store.search(query, top_k=fetch)
            if not hits:
                return
            distances = {hit.id: hit.distance for hit in hits}
            exemplars = self._fetch_many(list(distances))
            if accept is not None:
                exemplars = [e for e in exemplars if accept(e)]
            if len(exemplars) >= k or len(hits) < fetch:
                break
            fetch *= 2

        ranked = sorted(
            exemplars,
            key=lambda e: (round(distances[e.id], 9), -e.timestamp.timestamp(), e.id)
        )
        for exemplar in ranked[:k]:
            yield exemplar, distances[exemplar.id]

    def _fetch_many(self, ids: List[str]) -> List[Exemplar]:
        exemplars = []
        try:
            with get_db(self.db_path) as conn:
                for start in range(0, len(ids), _SQL_BATCH):
                    batch = ids[start:start + _SQL_BATCH]
                    placeholders = ",".join("?" for _ in batch)
                    cursor = conn.execute(f"SELECT {_COLUMNS} FROM exemplars WHERE id IN ({placeholders})", batch)
                    exemplars.extend(_row_to_exemplar(row) for row in cursor.fetchall())
        except sqlite3.Error as e:
            raise RetrievalError(f"Failed to read exemplars: {e}") from e
        return exemplars

    def get(self, exemplar_id: str) -> Exemplar:
        """
        Raises:
            ExemplarNotFound: no exemplar with this id
            RetrievalError: store unavailable
        """
        try:
            with get_db(self.db_path) as conn:
                row = conn.execute(f"SELECT {_COLUMNS} FROM exemplars WHERE id = ?", (exemplar_id,)).fetchone()
        except sqlite3.Error as e:
            raise RetrievalError(f"Failed to read exemplar: {e}") from e

        if row is None:
            raise ExemplarNotFound(exemplar_id)
        return _row_to_exemplar(row)

    @staticmethod
    def _filters(mode: Optional[str], outcome: Optional[str]) -> Tuple[str, List[Any]]:
        clauses, params = [], []
        if mode:
            clauses.append("mode = ?")
            params.append(mode)
        if outcome:
            clauses.append("outcome = ?")
            params.append(outcome)
        return (" WHERE " + " AND ".join(clauses)) if clauses else "", params

    def list(self, offset: int = 0, limit: int = 50, mode: Optional[str] = None,
             outcome: Optional[str] = None) -> List[Exemplar]:
        """Newest-first page of exemplars."""
        where, params = self._filters(mode, outcome)
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.execute(
                    f"SELECT {_COLUMNS} FROM exemplars{where} ORDER BY seq DESC LIMIT ? OFFSET ?",
                    params + [limit, offset]
                )
                return [_row_to_exemplar(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RetrievalError(f"Failed to list exemplars: {e}") from e

    def count(self, mode: Optional[str] = None, outcome: Optional[str] = None) -> int:
        where, params = self._filters(mode, outcome)
        try:
            with get_db(self.db_path) as conn:
                return conn.execute(f"SELECT COUNT(*) FROM exemplars{where}", params).fetchone()[0]
        except sqlite3.Error as e:
            raise RetrievalError(f"Failed to count exemplars: {e}") from e

    def since(self, timestamp: Optional[datetime], mode: Optional[str] = None,
              limit: Optional[int] = None) -> List[Exemplar]:
        """Exemplars logged after ``timestamp`` (oldest first)."""
        where, params = self._filters(mode, None)
        if timestamp is not None:
            where += (" AND" if where else " WHERE") + " ts > ?"
            params.append(timestamp.isoformat())

        query = f"SELECT {_COLUMNS} FROM exemplars{where} ORDER BY seq ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with get_db(self.db_path) as conn:
                return [_row_to_exemplar(row) for row in conn.execute(query, params).fetchall()]
        except sqlite3.Error as e:
            raise RetrievalError(f"Failed to read exemplars since {timestamp}: {e}") from e

    def latest(self, mode: Optional[str] = None) -> Optional[Exemplar]:
        page = self.list(offset=0, limit=1, mode=mode)
        return page[0] if page else None

    def rebuild_index(self, batch_size: int = 500) -> int:
        """
        Reload the vector index from SQLite.

        Returns:
            Number of vectors indexed
        """
        indexed = 0
        with self._write_lock:
            self.vector_store.clear()
            try:
                with get_db(self.db_path) as conn:
                    cursor = conn.execute(
                        "SELECT id, mode, outcome, source, embedding FROM exemplars ORDER BY seq ASC"
                    )
                    while True:
                        rows = cursor.fetchmany(batch_size)
                        if not rows:
                            break

                        records = []
                        for exemplar_id, mode, outcome, source, embedding in rows:
                            vector = _load(embedding)
                            if not vector:
                                continue
                            records.append(VectorRecord(
                                id=exemplar_id,
                                vector=np.asarray(vector, dtype=np.float32),
                                metadata={"mode": mode, "outcome": outcome, "source": source}
                            ))
                        self.vector_store.batch_add(records)
                        indexed += len(records)
            except sqlite3.Error as e:
                raise RetrievalError(f"Failed to rebuild vector index: {e}") from e

        logger.log_operation("knowledge_base.rebuild_index", "success", {"indexed": indexed})
        return indexed

    def get_stats(self) -> Dict[str, Any]:
        return {
            "exemplars": self.count(),
            "indexed": len(self.vector_store),
            "vector_store": self.vector_store.__class__.__name__,
        }
