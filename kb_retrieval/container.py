import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    """Factory registry for the retrieval engine's components.

    Singletons are built on first resolve and owned by the container, which
    closes the ones holding network clients in ``aclose``.
    """

    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_types: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Type the component is resolved by.
            factory: Zero-argument builder.
            singleton: Whether to build once and cache.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_types.add(interface)
        else:
            self._singleton_types.discard(interface)
        self._singletons.pop(interface, None)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        try:
            factory = self._factories[interface]
        except KeyError:
            raise KeyError(f"No factory registered for {interface.__name__}") from None

        instance = factory()
        if interface in self._singleton_types:
            self._singletons[interface] = instance
        return instance

    async def aclose(self) -> None:
        """Close built singletons exposing ``aclose`` and drop them."""
        singletons = list(self._singletons.items())
        self._singletons.clear()
        for interface, instance in singletons:
            close = getattr(instance, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning(f"Failed to close {interface.__name__}: {e}")

    def reset(self) -> None:
        """Drop cached singletons without closing them (for testing)."""
        self._singletons.clear()


container = Container()


def build_embedding_providers(settings: Settings) -> dict[str, Any]:
    """Instantiate every embedding provider the settings can support.

    OpenAI and Gemini need an API key; the local model is always available.
    """
    from .infrastructure.embeddings import GeminiEmbedder, OpenAIEmbedder
    from .infrastructure.embeddings.sentence_transformer import (
        SentenceTransformerEmbedder,
    )

    providers: dict[str, Any] = {}
    if settings.openai_api_key:
        providers["openai"] = OpenAIEmbedder(
            api_key=settings.openai_api_key,
            model=settings.openai_embedding_model,
            batch_size=settings.embedding_batch_size,
        )
    if settings.gemini_api_key:
        providers["gemini"] = GeminiEmbedder(
            api_key=settings.gemini_api_key,
            model=settings.gemini_embedding_model,
        )
    providers["local"] = SentenceTransformerEmbedder(settings.local_embedding_model)
    return providers


def configure_container(settings: Settings) -> Container:
    """Configure container with all dependencies.

    Args:
        settings: Application settings.

    Returns:
        Configured container.
    """
    from .core.models.search import SearchOptions, SearchStrategy
    from .core.protocols.reranker import RerankerProtocol
    from .core.protocols.vector_store import VectorIndexProtocol
    from .core.services.collection_registry import TenantCollectionRegistry
    from .core.services.embedding_gateway import EmbeddingGateway
    from .core.services.keyword_search import KeywordSearcher
    from .core.services.search_service import SearchService
    from .core.services.semantic_search import SemanticSearcher
    from .core.strategies.fusion import ResultFusion
    from .core.strategies.scoring import (
        FileTypeBoost,
        FirstChunkBoost,
        HeuristicReranker,
        PassageLengthBoost,
        RecencyBoost,
    )
    from .infrastructure.vector_stores.chroma_store import ChromaVectorIndex

    container.register(
        EmbeddingGateway,
        lambda: EmbeddingGateway(
            providers=build_embedding_providers(settings),
            primary=settings.embedding_primary_provider,
            preferred=settings.embedding_preferred_provider,
        ),
        singleton=True,
    )

    container.register(
        VectorIndexProtocol,
        lambda: ChromaVectorIndex(
            host=settings.chroma_host,
            port=settings.chroma_port,
            tenant=settings.chroma_tenant,
            database=settings.chroma_database,
        ),
        singleton=True,
    )

    container.register(
        TenantCollectionRegistry,
        lambda: TenantCollectionRegistry(
            index=container.resolve(VectorIndexProtocol),
            prefix=settings.collection_prefix,
        ),
        singleton=True,
    )

    container.register(
        SemanticSearcher,
        lambda: SemanticSearcher(
            gateway=container.resolve(EmbeddingGateway),
            registry=container.resolve(TenantCollectionRegistry),
            overfetch=settings.search_semantic_overfetch,
        ),
        singleton=True,
    )

    container.register(
        KeywordSearcher,
        lambda: KeywordSearcher(container.resolve(TenantCollectionRegistry)),
        singleton=True,
    )

    container.register(
        RerankerProtocol,
        lambda: HeuristicReranker(
            rules=[
                FileTypeBoost(settings.rerank_pdf_boost),
                FirstChunkBoost(settings.rerank_first_chunk_boost),
                RecencyBoost(settings.rerank_recent_boost, days=settings.rerank_recent_days),
                PassageLengthBoost(
                    settings.rerank_optimal_length_boost,
                    min_length=settings.rerank_min_length,
                    max_length=settings.rerank_max_length,
                ),
            ]
        ),
        singleton=True,
    )

    container.register(
        SearchService,
        lambda: SearchService(
            registry=container.resolve(TenantCollectionRegistry),
            semantic_searcher=container.resolve(SemanticSearcher),
            keyword_searcher=container.resolve(KeywordSearcher),
            fusion=ResultFusion(),
            reranker=container.resolve(RerankerProtocol),
            defaults=SearchOptions(
                strategy=SearchStrategy.parse(settings.search_default_strategy),
                k=settings.search_default_k,
                semantic_weight=settings.search_semantic_weight,
                keyword_weight=settings.search_keyword_weight,
                enable_reranking=settings.search_enable_reranking,
                timeout=settings.search_timeout,
            ),
            semantic_min_similarity=settings.search_semantic_min_similarity,
            hybrid_min_similarity=settings.search_hybrid_min_similarity,
            hybrid_candidate_multiplier=settings.search_hybrid_candidate_multiplier,
            hybrid_threshold_slack=settings.search_hybrid_threshold_slack,
        ),
        singleton=True,
    )

    logger.info("Container configured")
    return container
