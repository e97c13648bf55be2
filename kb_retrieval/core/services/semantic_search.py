"""Semantic search - nearest-neighbour retrieval over a tenant collection."""

import logging
from typing import Optional

from ..errors import InvalidSearchOptions, SearchError
from ..models.document import SearchCandidate
from ..models.search import MetadataFilter
from ..protocols.vector_store import CollectionProtocol
from .collection_registry import TenantCollectionRegistry
from .embedding_gateway import EmbeddingGateway

logger = logging.getLogger(__name__)


class SemanticSearcher:
    """Embeds the query and asks the tenant collection for its neighbours."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        registry: TenantCollectionRegistry,
        overfetch: int = 2,
        provider: Optional[str] = None,
    ):
        """Initialize searcher.

        Args:
            gateway: Embedding gateway.
            registry: Tenant collection registry.
            overfetch: Neighbours requested per result slot, leaving room for
                threshold and date filtering without another round trip.
            provider: Preferred embedding provider.
        """
        self._gateway = gateway
        self._registry = registry
        self._overfetch = max(1, overfetch)
        self._provider = provider

    async def search(
        self,
        tenant_id: str,
        query: str,
        k: int,
        filter: Optional[MetadataFilter] = None,
        min_similarity: Optional[float] = None,
    ) -> list[SearchCandidate]:
        """Return up to ``k`` nearest chunks with ``distance = 1 - similarity``.

        Args:
            tenant_id: Tenant whose collection is searched.
            query: Natural-language query.
            k: Maximum number of candidates.
            filter: Metadata restriction.
            min_similarity: Drop candidates below this similarity.

        Raises:
            InvalidSearchOptions: ``k`` is not positive.
            SearchError: Embedding, collection or index failure.
        """
        if k <= 0:
            raise InvalidSearchOptions(f"k must be a positive integer, got {k}")
        filter = filter or MetadataFilter()

        query_embedding = await self._gateway.embed(query, provider=self._provider)
        collection = await self._registry.get_collection(tenant_id)

        n_results = k * self._overfetch
        total: Optional[int] = None
        while True:
            raw = await self._query(collection, tenant_id, query_embedding, n_results, filter)
            results = self._accept(raw, tenant_id, filter, min_similarity)
            if (
                filter.date_range is None
                or len(results) >= k
                or len(raw) < n_results
                or self._below_threshold(raw[-1], min_similarity)
            ):
                break

            # The date range is checked client-side, so widen until k chunks
            # survive it or the collection is exhausted.
            if total is None:
                try:
                    total = await collection.count()
                except Exception as e:
                    raise SearchError(f"Vector index count failed: {e}") from e
            if n_results >= total:
                break
            n_results = min(n_results * 2, total)
            logger.debug(f"Widening semantic query for tenant {tenant_id} to {n_results} neighbours")

        results.sort(key=lambda c: c.distance)
        logger.debug(f"Semantic search: {len(raw)} neighbours, {len(results)} kept for tenant {tenant_id}")
        return results[:k]

    @staticmethod
    async def _query(
        collection: CollectionProtocol,
        tenant_id: str,
        query_embedding: list[float],
        n_results: int,
        filter: MetadataFilter,
    ) -> list[SearchCandidate]:
        try:
            return await collection.query(
                query_embedding=query_embedding,
                n_results=n_results,
                where=filter.to_where(),
            )
        except Exception as e:
            logger.error(f"Semantic search failed for tenant {tenant_id}: {e}")
            raise SearchError(f"Vector index query failed: {e}") from e

    @staticmethod
    def _below_threshold(candidate: SearchCandidate, min_similarity: Optional[float]) -> bool:
        """Whether the farthest neighbour already misses the threshold."""
        if min_similarity is None:
            return False
        return 1.0 - min(max(candidate.distance, 0.0), 1.0) < min_similarity

    @staticmethod
    def _accept(
        raw: list[SearchCandidate],
        tenant_id: str,
        filter: MetadataFilter,
        min_similarity: Optional[float],
    ) -> list[SearchCandidate]:
        results = []
        for candidate in raw:
            if candidate.tenant_id is not None and candidate.tenant_id != tenant_id:
                logger.warning(
                    f"Dropping chunk {candidate.id} of tenant {candidate.tenant_id} "
                    f"from collection of tenant {tenant_id}"
                )
                continue
            if not filter.matches(candidate.metadata):
                continue

            # Cosine distance spans [0, 2]; anti-correlated vectors count as no similarity.
            candidate = candidate.with_distance(min(max(candidate.distance, 0.0), 1.0))
            if min_similarity is not None and candidate.similarity < min_similarity:
                continue
            results.append(candidate)
        return results
