"""Tests for strategy dispatch, degradation and option handling."""

import asyncio
from datetime import timedelta

import pytest

from kb_retrieval.core.errors import EmbeddingUnavailable, InvalidSearchOptions, SearchError
from kb_retrieval.core.models.search import DateRange, MetadataFilter, SearchOptions, SearchStrategy
from kb_retrieval.core.services.embedding_gateway import EmbeddingGateway
from kb_retrieval.core.services.keyword_search import KeywordSearcher
from kb_retrieval.core.services.search_service import SearchService
from kb_retrieval.core.services.semantic_search import SemanticSearcher
from kb_retrieval.core.strategies.fusion import ResultFusion
from kb_retrieval.core.strategies.scoring import HeuristicReranker
from tests.conftest import NOW, FakeEmbedder, make_chunk

QUERY = "reset vpn password"


@pytest.fixture
def knowledge_base(index):
    collection = index.collection("tenant_acme")
    collection.add_chunk(
        make_chunk(
            "vpn-reset",
            "To reset the VPN password open the portal and reset it.",
            chunk_index=0,
            file_type="pdf",
            uploaded_at=NOW - timedelta(days=3),
        ),
        similarity=0.95,
    )
    collection.add_chunk(make_chunk("vpn-install", "Install the VPN client from the software center."), 0.90)
    collection.add_chunk(make_chunk("password-policy", "Password policy: rotate every 90 days."), 0.55)
    collection.add_chunk(make_chunk("kitchen", "Kitchen rules and coffee machine usage."), 0.20)
    collection.add_chunk(make_chunk("wifi", "Guest wifi password is posted at reception."), 0.30)
    index.collection("tenant_globex").add_chunk(
        make_chunk("globex-vpn", "To reset the VPN password open the portal and reset it.", tenant_id="globex"),
        similarity=0.99,
    )
    return collection


def build_service(registry, embedder, **kwargs) -> SearchService:
    gateway = EmbeddingGateway({embedder.name: embedder}, primary=embedder.name)
    return SearchService(
        registry=registry,
        semantic_searcher=SemanticSearcher(gateway, registry),
        keyword_searcher=KeywordSearcher(registry),
        fusion=ResultFusion(),
        reranker=HeuristicReranker(clock=lambda: NOW),
        **kwargs,
    )


def assert_well_formed(results, k):
    assert len(results) <= k
    distances = [r.distance for r in results]
    assert distances == sorted(distances)
    ids = [r.id for r in results]
    assert len(ids) == len(set(ids))


@pytest.mark.asyncio
async def test_hybrid_is_default_strategy(knowledge_base, service):
    response = await service.search("acme", QUERY)

    assert response.strategy == "hybrid"
    assert not response.degraded
    assert response.results[0].id == "vpn-reset"
    assert_well_formed(response.results, 5)
    assert all(r.similarity >= 0.6 for r in response.results)


@pytest.mark.asyncio
async def test_hybrid_consensus_hit_outranks_semantic_only(knowledge_base, service):
    results = await service.advanced_search("acme", QUERY, SearchOptions(enable_reranking=False))

    ids = [r.id for r in results]
    assert ids[0] == "vpn-reset"
    assert "kitchen" not in ids


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [1, 2, 3, 10])
async def test_results_never_exceed_k(knowledge_base, service, k):
    for strategy in SearchStrategy:
        results = await service.advanced_search(
            "acme", QUERY, SearchOptions(strategy=strategy, k=k, min_similarity=0.0)
        )
        assert_well_formed(results, k)


@pytest.mark.asyncio
async def test_hybrid_requests_expanded_pool(knowledge_base, service):
    await service.search("acme", QUERY, SearchOptions(k=2))

    # 3 * k candidates, over-fetched 2x by the semantic searcher.
    assert knowledge_base.queries[-1]["n_results"] == 12


@pytest.mark.asyncio
async def test_semantic_strategy_applies_threshold(knowledge_base, service):
    results = await service.advanced_search("acme", QUERY, {"strategy": "semantic", "k": 5})

    assert [r.id for r in results] == ["vpn-reset", "vpn-install"]
    assert all(0 <= r.distance <= 1 for r in results)


@pytest.mark.asyncio
async def test_keyword_strategy_has_no_threshold(knowledge_base, service):
    results = await service.advanced_search("acme", "password", {"strategy": "keyword"})

    ids = {r.id for r in results}
    assert ids == {"vpn-reset", "password-policy", "wifi"}
    assert any(r.similarity < 0.6 for r in results)
    assert all(0 <= r.distance <= 1 for r in results)


@pytest.mark.asyncio
async def test_search_is_tenant_isolated(knowledge_base, service):
    for strategy in SearchStrategy:
        results = await service.advanced_search(
            "acme", QUERY, SearchOptions(strategy=strategy, min_similarity=0.0)
        )
        assert "globex-vpn" not in {r.id for r in results}
        assert all(r.tenant_id == "acme" for r in results)


@pytest.mark.asyncio
async def test_degraded_mode_returns_keyword_results(knowledge_base, registry, caplog):
    service = build_service(registry, FakeEmbedder("openai", fail=ConnectionError("provider outage")))
    keyword_only = await KeywordSearcher(registry).search("acme", QUERY, k=5)

    response = await service.search("acme", QUERY)

    assert response.degraded
    assert response.failed_branches == ["semantic"]
    assert [r.id for r in response.results] == [r.id for r in keyword_only]
    assert response.results
    assert "Degraded search" in caplog.text


@pytest.mark.asyncio
async def test_keyword_branch_failure_keeps_semantic_results(knowledge_base, service):
    async def broken_get(where=None):
        raise ConnectionError("scan failed")

    knowledge_base.get = broken_get

    response = await service.search("acme", QUERY)

    assert response.degraded
    assert response.failed_branches == ["keyword"]
    assert response.results[0].id == "vpn-reset"


@pytest.mark.asyncio
async def test_both_branches_failing_raises(knowledge_base, service):
    knowledge_base.fail_with = ConnectionError("index unreachable")

    with pytest.raises(SearchError):
        await service.search("acme", QUERY)


@pytest.mark.asyncio
async def test_semantic_strategy_failure_propagates(knowledge_base, registry):
    service = build_service(registry, FakeEmbedder("openai", fail=ConnectionError("outage")))

    with pytest.raises(EmbeddingUnavailable):
        await service.search("acme", QUERY, {"strategy": "semantic"})


@pytest.mark.asyncio
async def test_hybrid_branches_run_concurrently(knowledge_base, service):
    semantic_started = asyncio.Event()
    keyword_started = asyncio.Event()
    original_query, original_get = knowledge_base.query, knowledge_base.get

    async def query(*args, **kwargs):
        semantic_started.set()
        await asyncio.wait_for(keyword_started.wait(), 1.0)
        return await original_query(*args, **kwargs)

    async def get(*args, **kwargs):
        keyword_started.set()
        await asyncio.wait_for(semantic_started.wait(), 1.0)
        return await original_get(*args, **kwargs)

    knowledge_base.query = query
    knowledge_base.get = get

    response = await service.search("acme", QUERY)

    assert not response.degraded
    assert response.results


@pytest.mark.asyncio
async def test_semantic_timeout_degrades_hybrid(knowledge_base, registry):
    class SlowEmbedder(FakeEmbedder):
        async def embed(self, text):
            await asyncio.sleep(1.0)
            return await super().embed(text)

    service = build_service(registry, SlowEmbedder("openai"))

    response = await service.search("acme", QUERY, SearchOptions(timeout=0.05))

    assert response.degraded
    assert response.failed_branches == ["semantic"]


@pytest.mark.asyncio
async def test_timeout_in_single_strategy_raises(knowledge_base, service):
    knowledge_base.delay = 1.0

    with pytest.raises(SearchError, match="timed out"):
        await service.search("acme", QUERY, SearchOptions(strategy=SearchStrategy.KEYWORD, timeout=0.05))


@pytest.mark.asyncio
async def test_cancellation_propagates(knowledge_base, service):
    knowledge_base.delay = 1.0
    task = asyncio.create_task(service.search("acme", QUERY))
    await asyncio.sleep(0.01)

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "options",
    [
        {"k": 0},
        {"k": -3},
        {"semanticWeight": 1.5},
        {"keywordWeight": -0.1},
        {"minSimilarity": 2},
        {"strategy": "fuzzy"},
        {"dateRange": "not json"},
        {"dateRange": {"start": "yesterday", "end": "2026-01-01"}},
        {"dateRange": {"start": "2026-02-01", "end": "2026-01-01"}},
        {"enableReranking": "maybe"},
    ],
)
async def test_invalid_options_rejected_before_any_call(index, embedder, service, options):
    with pytest.raises(InvalidSearchOptions):
        await service.search("acme", QUERY, options)

    assert embedder.calls == []
    assert index.create_calls == []


@pytest.mark.asyncio
async def test_blank_query_rejected(service):
    with pytest.raises(InvalidSearchOptions):
        await service.search("acme", "   ")


@pytest.mark.asyncio
async def test_options_mapping_with_date_range(knowledge_base, service):
    date_range = {"start": (NOW - timedelta(days=7)).isoformat(), "end": NOW.isoformat()}

    results = await service.advanced_search(
        "acme", "vpn", {"strategy": "keyword", "nResults": "3", "dateRange": date_range}
    )

    assert [r.id for r in results] == ["vpn-reset"]


@pytest.mark.asyncio
async def test_response_context_and_sources(knowledge_base, service):
    response = await service.search("acme", QUERY)

    assert response.context.startswith("[1] doc-1.pdf:\nTo reset the VPN password")
    assert response.sources[0] == "doc-1.pdf"
    assert len(response.sources) == len(set(response.sources))


@pytest.mark.asyncio
async def test_service_defaults_are_configurable(knowledge_base, registry, embedder):
    service = build_service(
        registry,
        embedder,
        defaults=SearchOptions(strategy=SearchStrategy.KEYWORD, k=1),
    )

    response = await service.search("acme", "password")

    assert response.strategy == "keyword"
    assert len(response.results) == 1


@pytest.mark.asyncio
async def test_document_count_and_agent_documents(index, service):
    collection = index.collection("tenant_acme")
    collection.add_chunk(make_chunk("a", "x", agent_id="agent-1"))
    collection.add_chunk(make_chunk("b", "y", agent_id="agent-2"))

    assert await service.document_count("acme") == 2
    documents = await service.documents_by_agent("acme", "agent-1")
    assert [d.id for d in documents] == ["a"]


def test_metadata_filter_where_clause():
    assert MetadataFilter().to_where() is None
    assert MetadataFilter(agent_id="a1").to_where() == {"agentId": "a1"}
    assert MetadataFilter(agent_id="a1", file_type="pdf").to_where() == {
        "$and": [{"agentId": "a1"}, {"fileType": "pdf"}]
    }
    date_only = MetadataFilter(date_range=DateRange("2026-01-01", "2026-02-01"))
    assert date_only.to_where() is None
    assert date_only.matches({"uploadedAt": "2026-01-15T10:00:00Z"})
    assert not date_only.matches({"uploadedAt": "2026-03-01T00:00:00Z"})


@pytest.mark.asyncio
@pytest.mark.parametrize("strategy", ["semantic", "hybrid"])
async def test_date_range_finds_in_range_chunk_behind_closer_ones(index, service, strategy):
    collection = index.collection("tenant_acme")
    for i in range(10):
        collection.add_chunk(make_chunk(f"old-{i}", "Archived VPN notes."), similarity=0.95)
    collection.add_chunk(
        make_chunk("recent", "Current VPN reset guide.", uploaded_at=NOW - timedelta(days=2)),
        similarity=0.85,
    )
    date_range = {"start": (NOW - timedelta(days=7)).isoformat(), "end": NOW.isoformat()}

    results = await service.advanced_search(
        "acme", "vpn reset", {"strategy": strategy, "k": 1, "dateRange": date_range}
    )

    assert [r.id for r in results] == ["recent"]
