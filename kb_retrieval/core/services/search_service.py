"""Search service - strategy dispatch over semantic, keyword and hybrid retrieval."""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Mapping, Optional, TypeVar

from ..errors import InvalidSearchOptions, SearchError
from ..models.document import RankedResult, SearchCandidate, SearchResponse
from ..models.search import MetadataFilter, SearchOptions, SearchStrategy
from ..protocols.reranker import RerankerProtocol
from ..strategies.fusion import ResultFusion
from .collection_registry import TenantCollectionRegistry
from .keyword_search import KeywordSearcher
from .semantic_search import SemanticSearcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OPTIONS = SearchOptions(
    strategy=SearchStrategy.HYBRID,
    k=5,
    semantic_weight=0.7,
    keyword_weight=0.3,
    enable_reranking=True,
    timeout=10.0,
)


class SearchService:
    """Public entry point of the retrieval engine.

    Dispatches to one of three strategies:

    * semantic: nearest neighbours, similarity threshold, top ``k``.
    * keyword: lexical scan, top ``k``, no threshold.
    * hybrid: both branches concurrently over a ``3 * k`` pool, fusion,
      reranking, similarity threshold, top ``k``. A failed semantic branch
      degrades the query to keyword results instead of failing it.
    """

    def __init__(
        self,
        registry: TenantCollectionRegistry,
        semantic_searcher: SemanticSearcher,
        keyword_searcher: KeywordSearcher,
        fusion: ResultFusion,
        reranker: RerankerProtocol,
        defaults: SearchOptions = DEFAULT_OPTIONS,
        semantic_min_similarity: float = 0.7,
        hybrid_min_similarity: float = 0.6,
        hybrid_candidate_multiplier: int = 3,
        hybrid_threshold_slack: float = 0.1,
    ):
        """Initialize search service.

        Args:
            registry: Tenant collection registry.
            semantic_searcher: Semantic searcher.
            keyword_searcher: Keyword searcher.
            fusion: Result fusion.
            reranker: Reranker applied to fused hybrid results.
            defaults: Values for options the caller leaves unset.
            semantic_min_similarity: Default threshold for semantic strategy.
            hybrid_min_similarity: Default threshold for hybrid strategy.
            hybrid_candidate_multiplier: Candidate pool per result slot in hybrid mode.
            hybrid_threshold_slack: How far below the hybrid threshold the
                semantic branch pre-filters.
        """
        self._registry = registry
        self._semantic = semantic_searcher
        self._keyword = keyword_searcher
        self._fusion = fusion
        self._reranker = reranker
        self._defaults = defaults.merged_with(DEFAULT_OPTIONS)
        self._semantic_min_similarity = semantic_min_similarity
        self._hybrid_min_similarity = hybrid_min_similarity
        self._candidate_multiplier = max(1, hybrid_candidate_multiplier)
        self._threshold_slack = hybrid_threshold_slack

    async def advanced_search(
        self,
        tenant_id: str,
        query: str,
        options: SearchOptions | Mapping[str, Any] | None = None,
    ) -> list[RankedResult]:
        """Ranked results for ``query`` within ``tenant_id``, best first."""
        response = await self.search(tenant_id, query, options)
        return response.results

    async def search(
        self,
        tenant_id: str,
        query: str,
        options: SearchOptions | Mapping[str, Any] | None = None,
    ) -> SearchResponse:
        """Search a tenant's knowledge base.

        Args:
            tenant_id: Tenant to search.
            query: Natural-language query.
            options: Search options or a mapping of calling-layer option keys.

        Returns:
            Search response with results, degraded flag, context and sources.

        Raises:
            InvalidSearchOptions: Options rejected before any network call.
            SearchError: The selected strategy failed (hybrid: both branches).
        """
        opts = self._resolve(tenant_id, query, options)
        strategy = opts.strategy

        if strategy is SearchStrategy.SEMANTIC:
            response = await self._semantic_search(tenant_id, query, opts)
        elif strategy is SearchStrategy.KEYWORD:
            response = await self._keyword_search(tenant_id, query, opts)
        else:
            response = await self._hybrid_search(tenant_id, query, opts)

        response.context = self._format_context(response.results)
        response.sources = self._get_unique_sources(response.results)
        return response

    async def document_count(self, tenant_id: str) -> int:
        collection = await self._registry.get_collection(tenant_id)
        try:
            return await collection.count()
        except Exception as e:
            raise SearchError(f"Failed to count documents for tenant {tenant_id}: {e}") from e

    async def documents_by_agent(self, tenant_id: str, agent_id: str) -> list[SearchCandidate]:
        """All chunks of a tenant scoped to one agent."""
        collection = await self._registry.get_collection(tenant_id)
        agent_filter = MetadataFilter(agent_id=agent_id)
        try:
            chunks = await collection.get(where=agent_filter.to_where())
        except Exception as e:
            raise SearchError(f"Failed to get documents for agent {agent_id}: {e}") from e
        return [c for c in chunks if c.tenant_id in (None, tenant_id)]

    def _resolve(
        self,
        tenant_id: str,
        query: str,
        options: SearchOptions | Mapping[str, Any] | None,
    ) -> SearchOptions:
        if not tenant_id:
            raise InvalidSearchOptions("tenant_id is required")
        if not query or not query.strip():
            raise InvalidSearchOptions("Query is required")

        if options is None:
            options = SearchOptions()
        elif not isinstance(options, SearchOptions):
            options = SearchOptions.from_mapping(options)

        opts = options.merged_with(self._defaults)
        if not isinstance(opts.strategy, SearchStrategy):
            opts = replace(opts, strategy=SearchStrategy.parse(opts.strategy))
        if opts.min_similarity is None and opts.strategy is not SearchStrategy.KEYWORD:
            opts = replace(
                opts,
                min_similarity=(
                    self._semantic_min_similarity
                    if opts.strategy is SearchStrategy.SEMANTIC
                    else self._hybrid_min_similarity
                ),
            )
        opts.validate()
        return opts

    async def _semantic_search(self, tenant_id: str, query: str, opts: SearchOptions) -> SearchResponse:
        candidates = await self._bounded(
            self._semantic.search(
                tenant_id, query, opts.k, opts.filter, min_similarity=opts.min_similarity
            ),
            opts.timeout,
            "semantic",
        )
        results = [c for c in candidates if c.similarity >= opts.min_similarity][: opts.k]
        self._log_search(tenant_id, query, opts, results, semantic=len(candidates))
        return SearchResponse(results=results, strategy=opts.strategy.value)

    async def _keyword_search(self, tenant_id: str, query: str, opts: SearchOptions) -> SearchResponse:
        candidates = await self._bounded(
            self._keyword.search(tenant_id, query, opts.k, opts.filter),
            opts.timeout,
            "keyword",
        )
        results = candidates[: opts.k]
        self._log_search(tenant_id, query, opts, results, keyword=len(candidates))
        return SearchResponse(results=results, strategy=opts.strategy.value)

    async def _hybrid_search(self, tenant_id: str, query: str, opts: SearchOptions) -> SearchResponse:
        pool = opts.k * self._candidate_multiplier
        semantic_threshold = max(0.0, opts.min_similarity - self._threshold_slack)

        semantic, keyword = await asyncio.gather(
            self._bounded(
                self._semantic.search(
                    tenant_id, query, pool, opts.filter, min_similarity=semantic_threshold
                ),
                opts.timeout,
                "semantic",
            ),
            self._bounded(
                self._keyword.search(tenant_id, query, pool, opts.filter),
                opts.timeout,
                "keyword",
            ),
            return_exceptions=True,
        )
        for outcome in (semantic, keyword):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        if isinstance(semantic, Exception) and isinstance(keyword, Exception):
            logger.error(
                f"Hybrid search failed for tenant {tenant_id}: "
                f"semantic: {semantic}; keyword: {keyword}"
            )
            raise SearchError(
                f"Hybrid search failed: semantic: {semantic}; keyword: {keyword}"
            ) from semantic

        if isinstance(semantic, Exception):
            logger.warning(
                f"Degraded search for tenant {tenant_id}: semantic branch failed "
                f"({type(semantic).__name__}: {semantic}), returning keyword results"
            )
            results = keyword[: opts.k]
            self._log_search(tenant_id, query, opts, results, keyword=len(keyword))
            return SearchResponse(
                results=results,
                strategy=opts.strategy.value,
                degraded=True,
                failed_branches=["semantic"],
            )

        failed_branches = []
        if isinstance(keyword, Exception):
            logger.warning(
                f"Degraded search for tenant {tenant_id}: keyword branch failed "
                f"({type(keyword).__name__}: {keyword}), fusing semantic results only"
            )
            failed_branches.append("keyword")
            keyword = []

        fused = self._fusion.combine(semantic, keyword, opts.semantic_weight, opts.keyword_weight)
        ranked: list[SearchCandidate] = list(fused)
        if opts.enable_reranking:
            ranked = self._reranker.rerank(ranked, query, len(ranked))

        results = [r for r in ranked if r.similarity >= opts.min_similarity][: opts.k]
        self._log_search(
            tenant_id, query, opts, results, semantic=len(semantic), keyword=len(keyword)
        )
        return SearchResponse(
            results=results,
            strategy=opts.strategy.value,
            degraded=bool(failed_branches),
            failed_branches=failed_branches,
        )

    @staticmethod
    async def _bounded(call: Awaitable[T], timeout: Optional[float], branch: str) -> T:
        """Await a branch under the caller's timeout."""
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            raise SearchError(f"{branch} search timed out after {timeout}s") from e

    @staticmethod
    def _log_search(
        tenant_id: str,
        query: str,
        opts: SearchOptions,
        results: list[RankedResult],
        semantic: Optional[int] = None,
        keyword: Optional[int] = None,
    ) -> None:
        counts = ", ".join(
            f"{name}={count}"
            for name, count in (("semantic", semantic), ("keyword", keyword))
            if count is not None
        )
        logger.info(
            f"{opts.strategy.value.capitalize()} search for tenant {tenant_id}: "
            f"{counts}, returned {len(results)}/{opts.k} for '{query[:100]}'"
        )

    def _format_context(self, results: list[RankedResult]) -> str:
        """Format results as context for LLM."""
        if not results:
            return ""

        parts = []
        for i, r in enumerate(results, 1):
            parts.append(f"[{i}] {r.file_name}:\n{r.text}")

        return "\n\n".join(parts)

    def _get_unique_sources(self, results: list[RankedResult]) -> list[str]:
        """Get unique source filenames."""
        seen = set()
        sources = []
        for r in results:
            if r.file_name not in seen:
                seen.add(r.file_name)
                sources.append(r.file_name)
        return sources
