"""
Vector layer - embeddings and the similarity index behind the knowledge base.
"""

# Package initialization for vector module
from .index import IVectorStore, SimpleInMemoryVectorStore
from .types import VectorRecord, QueryResult
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding

__all__ = [
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'VectorRecord',
    'QueryResult',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding'
]
