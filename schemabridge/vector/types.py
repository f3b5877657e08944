"""
Vector index records - the embedding side of knowledge base exemplars.
"""

from typing import Dict
import numpy as np
from dataclasses import dataclass, field


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Exemplar identifier the vector belongs to"""

    vector: np.ndarray
    """Embedding of the consumer request"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Additional metadata associated with the vector"""


@dataclass
class QueryResult:
    """Represents a search result from vector store."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match (-1..1)"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Metadata associated with the matched record"""

    @property
    def distance(self) -> float:
        """Cosine distance (0 = identical direction)."""
        return max(0.0, 1.0 - float(self.score))
