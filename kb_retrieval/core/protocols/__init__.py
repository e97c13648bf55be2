"""Protocol interfaces for dependency injection."""
from .embedder import EmbedderProtocol
from .vector_store import CollectionProtocol, VectorIndexProtocol
from .reranker import RerankerProtocol

__all__ = [
    "EmbedderProtocol",
    "CollectionProtocol",
    "VectorIndexProtocol",
    "RerankerProtocol",
]
