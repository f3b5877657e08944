"""
Retrieval Engine - nearest prior exemplars for an incoming consumer request.
"""

from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core import config
from ..core.errors import RetrievalError
from ..core.knowledge_base import KnowledgeBase
from ..core.schema import Exemplar, SUCCESS
from ..core.timeouts import call_with_timeout
from ..vector.embeddings import IEmbeddingProvider

# Exemplar sources backed by a real server response
GROUNDED_SOURCES = ("server", "reconciled")


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked exemplars with their cosine distances, nearest first."""
    matches: Tuple[Tuple[Exemplar, float], ...] = ()

    @property
    def exemplars(self) -> List[Exemplar]:
        return [exemplar for exemplar, _ in self.matches]

    @property
    def distances(self) -> List[float]:
        return [distance for _, distance in self.matches]

    @property
    def nearest_distance(self) -> Optional[float]:
        return self.matches[0][1] if self.matches else None

    def __len__(self) -> int:
        return len(self.matches)


def _usable(exemplar: Exemplar, modes: Optional[Iterable[str]], schema_version: Optional[str]) -> bool:
    # Errors, placeholders and the engine's own predictions are never grounding data
    if exemplar.outcome != SUCCESS or exemplar.source not in GROUNDED_SOURCES or exemplar.response is None:
        return False
    if modes is not None and exemplar.mode not in modes:
        return False
    if schema_version is not None and exemplar.schema_version != schema_version:
        return False
    return True


class RetrievalEngine:
    """Embeds requests and ranks knowledge base exemplars against them."""

    def __init__(self, knowledge_base: KnowledgeBase, embedder: IEmbeddingProvider,
                 top_k: int = None, max_distance: float = None, timeout: float = None):
        self.knowledge_base = knowledge_base
        self.embedder = embedder
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.max_distance = config.RETRIEVAL_MAX_DISTANCE if max_distance is None else max_distance
        self.timeout = timeout if timeout is not None else config.EMBEDDING_TIMEOUT_SEC

    def embed(self, payload: Dict[str, Any]) -> List[float]:
        """
        Embedding of a consumer request, bounded by the embedding timeout.

        Raises:
            RetrievalError: embedding capability failed or timed out
        """
        try:
            return list(call_with_timeout(self.embedder.embed, payload, timeout=self.timeout))
        except FuturesTimeoutError as e:
            raise RetrievalError(f"Embedding timed out after {self.timeout}s",
                                 reason=RetrievalError.EMBEDDING_UNAVAILABLE) from e
        except Exception as e:
            raise RetrievalError(f"Embedding failed: {e}", reason=RetrievalError.EMBEDDING_UNAVAILABLE) from e

    def search(self, payload: Dict[str, Any], k: int = None, max_distance: float = None,
               modes: Optional[Iterable[str]] = None, schema_version: Optional[str] = None,
               vector: Optional[List[float]] = None) -> RetrievalResult:
        """
        Nearest usable exemplars within ``max_distance``.

        Args:
            payload: Consumer request
            k: Maximum matches
            max_distance: Cosine distance cut-off
            modes: Restrict to exemplars logged under these modes
            schema_version: Restrict to exemplars of this consumer schema version
            vector: Precomputed embedding of ``payload``

        Returns:
            RetrievalResult ordered by distance, then recency, then id
        """
        k = k or self.top_k
        max_distance = self.max_distance if max_distance is None else max_distance
        modes = tuple(modes) if modes is not None else None
        if vector is None:
            vector = self.embed(payload)

        matches = []
        candidates = self.knowledge_base.query_by_embedding(
            vector, k, accept=lambda exemplar: _usable(exemplar, modes, schema_version)
        )
        for exemplar, distance in candidates:
            if distance > max_distance:
                break
            matches.append((exemplar, distance))

        return RetrievalResult(matches=tuple(matches))

    def find_similar(self, payload: Dict[str, Any], k: int = None, max_distance: float = None,
                     modes: Optional[Iterable[str]] = None) -> List[Exemplar]:
        """Nearest exemplars first; empty when nothing is within ``max_distance``."""
        return self.search(payload, k=k, max_distance=max_distance, modes=modes).exemplars
