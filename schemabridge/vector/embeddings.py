"""
Embedding capability - turns consumer request payloads into vectors.
The engine only depends on IEmbeddingProvider; concrete providers are wiring.
"""

from abc import ABC, abstractmethod
import hashlib
import json
import re
from typing import Any, List

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def payload_text(payload: Any) -> str:
    """Canonical text form of a payload used as embedding input."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    def embed(self, payload: Any) -> List[float]:
        """Embed a request payload via its canonical text form."""
        return self.embed_text(payload_text(payload))


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic feature-hashing embedding provider.

    Tokens (field names, value words and field=value pairs) are hashed into
    signed buckets, so identical payloads embed identically and payloads that
    share fields and values land close together. No model download needed,
    which makes it the default for tests and dummy deployments.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def _tokens(self, text: str) -> List[str]:
        try:
            payload = json.loads(text)
        except (ValueError, TypeError):
            return _TOKEN_RE.findall(_CAMEL_RE.sub(" ", text).lower())

        tokens: List[str] = []
        self._collect(payload, "", tokens)
        return tokens

    def _collect(self, value: Any, path: str, tokens: List[str]):
        if isinstance(value, dict):
            for key, item in value.items():
                key_path = f"{path}.{key}" if path else str(key)
                tokens.append(f"k:{key_path}")
                self._collect(item, key_path, tokens)
        elif isinstance(value, list):
            for item in value:
                self._collect(item, path, tokens)
        else:
            text = str(value)
            tokens.append(f"kv:{path}={text.strip().lower()}")
            tokens.extend(f"w:{word}" for word in _TOKEN_RE.findall(_CAMEL_RE.sub(" ", text).lower()))

    def embed_text(self, text: str) -> List[float]:
        """Generate deterministic embedding vector using token hashing."""
        vector = [0.0] * self.dimension

        for token in self._tokens(text):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        return vector

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension
