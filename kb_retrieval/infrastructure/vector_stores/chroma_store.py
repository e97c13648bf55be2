import logging
from typing import Any, Optional

import httpx

from kb_retrieval.core.models.document import SearchCandidate

logger = logging.getLogger(__name__)


class ChromaCollection:
    """Handle to one ChromaDB collection."""

    def __init__(self, client: httpx.AsyncClient, collections_url: str, name: str, collection_id: str):
        self._client = client
        self._url = f"{collections_url}/{collection_id}"
        self.name = name
        self.id = collection_id

    async def query(
        self,
        query_embedding: list[float],
        n_results: int = 5,
        where: Optional[dict[str, Any]] = None,
    ) -> list[SearchCandidate]:
        """Search by embedding."""
        payload: dict[str, Any] = {
            "query_embeddings": [query_embedding],
            "n_results": n_results,
            "include": ["documents", "metadatas", "distances"],
        }
        if where:
            payload["where"] = where

        resp = await self._client.post(f"{self._url}/query", json=payload)
        resp.raise_for_status()
        data = resp.json()

        ids = (data.get("ids") or [[]])[0] or []
        documents = (data.get("documents") or [[]])[0] or []
        metadatas = (data.get("metadatas") or [[]])[0] or []
        distances = (data.get("distances") or [[]])[0] or []

        results = []
        for i, chunk_id in enumerate(ids):
            results.append(
                SearchCandidate(
                    id=chunk_id,
                    text=documents[i] if i < len(documents) and documents[i] else "",
                    metadata=metadatas[i] if i < len(metadatas) and metadatas[i] else {},
                    distance=float(distances[i]) if i < len(distances) else 0.0,
                )
            )
        return results

    async def get(self, where: Optional[dict[str, Any]] = None) -> list[SearchCandidate]:
        """Fetch chunks matching a metadata filter."""
        payload: dict[str, Any] = {"include": ["documents", "metadatas"]}
        if where:
            payload["where"] = where

        resp = await self._client.post(f"{self._url}/get", json=payload)
        resp.raise_for_status()
        data = resp.json()

        ids = data.get("ids") or []
        documents = data.get("documents") or []
        metadatas = data.get("metadatas") or []

        return [
            SearchCandidate(
                id=chunk_id,
                text=documents[i] if i < len(documents) and documents[i] else "",
                metadata=metadatas[i] if i < len(metadatas) and metadatas[i] else {},
                distance=0.0,
            )
            for i, chunk_id in enumerate(ids)
        ]

    async def count(self) -> int:
        """Get chunk count."""
        resp = await self._client.get(f"{self._url}/count")
        resp.raise_for_status()
        return int(resp.json())


class ChromaVectorIndex:
    """Vector index using ChromaDB HTTP API."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8000,
        tenant: str = "default_tenant",
        database: str = "default_database",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize ChromaDB client.

        Args:
            host: ChromaDB host.
            port: ChromaDB port.
            tenant: Chroma tenant name.
            database: Database name.
            timeout: HTTP timeout in seconds.
            client: Preconfigured HTTP client (tests inject a mock transport).
        """
        self._base_url = f"http://{host}:{port}/api/v2"
        self._tenant = tenant
        self._database = database
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def _collections_url(self) -> str:
        return f"{self._base_url}/tenants/{self._tenant}/databases/{self._database}/collections"

    async def get_or_create_collection(
        self, name: str, metadata: Optional[dict[str, Any]] = None
    ) -> ChromaCollection:
        """Get or create collection."""
        resp = await self._client.post(
            self._collections_url,
            json={
                "name": name,
                "metadata": {"hnsw:space": "cosine", **(metadata or {})},
                "get_or_create": True,
            },
        )
        resp.raise_for_status()
        collection_id = resp.json()["id"]
        logger.info(f"Opened collection: {name}")
        return ChromaCollection(self._client, self._collections_url, name, collection_id)

    async def delete_collection(self, name: str) -> None:
        resp = await self._client.delete(f"{self._collections_url}/{name}")
        resp.raise_for_status()

    async def list_collections(self) -> list[str]:
        resp = await self._client.get(self._collections_url)
        resp.raise_for_status()
        return [col["name"] for col in resp.json()]

    async def heartbeat(self) -> None:
        resp = await self._client.get(f"{self._base_url}/heartbeat")
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()
