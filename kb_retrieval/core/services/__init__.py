"""Business services."""
from .collection_registry import TenantCollectionRegistry
from .embedding_gateway import EmbeddingGateway
from .keyword_search import KeywordSearcher
from .search_service import SearchService
from .semantic_search import SemanticSearcher

__all__ = [
    "EmbeddingGateway",
    "KeywordSearcher",
    "SearchService",
    "SemanticSearcher",
    "TenantCollectionRegistry",
]
