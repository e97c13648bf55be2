"""Shared fakes for the retrieval engine's collaborators."""

import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from kb_retrieval.core.models.document import DocumentChunk, SearchCandidate
from kb_retrieval.core.services.collection_registry import TenantCollectionRegistry
from kb_retrieval.core.services.embedding_gateway import EmbeddingGateway
from kb_retrieval.core.services.keyword_search import KeywordSearcher
from kb_retrieval.core.services.search_service import SearchService
from kb_retrieval.core.services.semantic_search import SemanticSearcher
from kb_retrieval.core.strategies.fusion import ResultFusion
from kb_retrieval.core.strategies.scoring import HeuristicReranker

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
QUERY_VECTOR = [1.0, 0.0]


def vector_for(similarity: float) -> list[float]:
    """2-d unit vector whose cosine with QUERY_VECTOR equals ``similarity``."""
    return [similarity, math.sqrt(max(0.0, 1.0 - similarity ** 2))]


def make_chunk(
    chunk_id: str,
    text: str,
    tenant_id: str = "acme",
    chunk_index: int = 1,
    file_type: str = "txt",
    uploaded_at: Optional[datetime] = None,
    agent_id: Optional[str] = None,
    document_id: str = "doc-1",
) -> DocumentChunk:
    return DocumentChunk(
        id=chunk_id,
        tenant_id=tenant_id,
        document_id=document_id,
        text=text,
        chunk_index=chunk_index,
        total_chunks=5,
        file_name=f"{document_id}.{file_type}",
        file_type=file_type,
        uploaded_at=(uploaded_at or NOW - timedelta(days=365)).isoformat(),
        agent_id=agent_id,
    )


def _matches(where: Optional[dict[str, Any]], metadata: dict[str, Any]) -> bool:
    if not where:
        return True
    if "$and" in where:
        return all(_matches(clause, metadata) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


class InMemoryCollection:
    """Collection fake: cosine distance over stored 2-d vectors."""

    def __init__(self, name: str):
        self.name = name
        self.records: list[tuple[DocumentChunk, list[float]]] = []
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0
        self.queries: list[dict[str, Any]] = []
        self.gets: list[Optional[dict[str, Any]]] = []

    def add_chunk(self, chunk: DocumentChunk, similarity: float = 0.0) -> None:
        self.records.append((chunk, vector_for(similarity)))

    async def query(self, query_embedding, n_results=5, where=None):
        self.queries.append({"n_results": n_results, "where": where})
        await asyncio.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with

        hits = []
        for chunk, vector in self.records:
            metadata = chunk.to_metadata()
            if not _matches(where, metadata):
                continue
            dot = sum(a * b for a, b in zip(query_embedding, vector))
            norm = math.hypot(*query_embedding) * math.hypot(*vector)
            hits.append(SearchCandidate(chunk.id, chunk.text, metadata, 1.0 - dot / norm))
        hits.sort(key=lambda c: c.distance)
        return hits[:n_results]

    async def get(self, where=None):
        self.gets.append(where)
        await asyncio.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with
        return [
            SearchCandidate(chunk.id, chunk.text, chunk.to_metadata(), 0.0)
            for chunk, _ in self.records
            if _matches(where, chunk.to_metadata())
        ]

    async def count(self):
        return len(self.records)


class FakeIndex:
    """Vector index fake counting collection creations."""

    def __init__(self):
        self.collections: dict[str, InMemoryCollection] = {}
        self.create_calls: list[str] = []
        self.fail_create: Optional[Exception] = None
        self.create_delay = 0.0

    def collection(self, name: str) -> InMemoryCollection:
        return self.collections.setdefault(name, InMemoryCollection(name))

    async def get_or_create_collection(self, name, metadata=None):
        self.create_calls.append(name)
        await asyncio.sleep(self.create_delay)
        if self.fail_create:
            raise self.fail_create
        return self.collection(name)

    async def delete_collection(self, name):
        self.collections.pop(name, None)

    async def list_collections(self):
        return list(self.collections)

    async def heartbeat(self):
        return None


class FakeEmbedder:
    """Embedding provider fake."""

    def __init__(self, name: str, vector=None, fail: Optional[Exception] = None, supports_batch: bool = True):
        self.name = name
        self.model = f"{name}-model"
        self.supports_batch = supports_batch
        self.vector = vector or list(QUERY_VECTOR)
        self.fail = fail
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    async def embed(self, text):
        self.calls.append(text)
        if self.fail:
            raise self.fail
        return list(self.vector)

    async def embed_batch(self, texts):
        self.batch_calls.append(list(texts))
        if self.fail:
            raise self.fail
        return [list(self.vector) for _ in texts]


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def registry(index):
    return TenantCollectionRegistry(index)


@pytest.fixture
def embedder():
    return FakeEmbedder("openai")


@pytest.fixture
def gateway(embedder):
    return EmbeddingGateway({"openai": embedder}, primary="openai")


@pytest.fixture
def reranker():
    return HeuristicReranker(clock=lambda: NOW)


@pytest.fixture
def service(registry, gateway, reranker):
    return SearchService(
        registry=registry,
        semantic_searcher=SemanticSearcher(gateway, registry),
        keyword_searcher=KeywordSearcher(registry),
        fusion=ResultFusion(),
        reranker=reranker,
    )
