"""Tenant collection registry - per-tenant isolated collections."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from ..errors import CollectionUnavailable
from ..protocols.vector_store import CollectionProtocol, VectorIndexProtocol

logger = logging.getLogger(__name__)


class TenantCollectionRegistry:
    """Maps tenant ids to collection handles, materializing them on first use.

    Handles are cached for the lifetime of the registry. Creation is guarded by
    one lock per tenant, so concurrent first lookups for the same tenant issue
    a single get-or-create call while other tenants proceed independently.
    """

    def __init__(self, index: VectorIndexProtocol, prefix: str = "tenant_"):
        """Initialize registry.

        Args:
            index: Vector index holding the collections.
            prefix: Namespace prefix of tenant collection names.
        """
        self._index = index
        self._prefix = prefix
        self._collections: dict[str, CollectionProtocol] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def collection_name(self, tenant_id: str) -> str:
        return f"{self._prefix}{tenant_id}"

    @asynccontextmanager
    async def _tenant_lock(self, tenant_id: str):
        """Hold the tenant's lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        self._lock_users[tenant_id] = self._lock_users.get(tenant_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[tenant_id] -= 1
            if not self._lock_users[tenant_id]:
                del self._lock_users[tenant_id]
                del self._locks[tenant_id]

    async def get_collection(self, tenant_id: str) -> CollectionProtocol:
        """Get the tenant's collection, creating it when absent.

        Raises:
            CollectionUnavailable: The index is unreachable or creation failed.
        """
        collection = self._collections.get(tenant_id)
        if collection is not None:
            return collection

        async with self._tenant_lock(tenant_id):
            collection = self._collections.get(tenant_id)
            if collection is not None:
                return collection

            name = self.collection_name(tenant_id)
            try:
                collection = await self._index.get_or_create_collection(
                    name,
                    metadata={
                        "description": f"Knowledge base collection for tenant {tenant_id}",
                        "created_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
            except Exception as e:
                logger.error(f"Failed to get or create collection {name}: {e}")
                raise CollectionUnavailable(f"Collection {name} unavailable: {e}") from e

            self._collections[tenant_id] = collection
            logger.info(f"Collection ready for tenant {tenant_id}: {name}")
            return collection

    async def delete_collection(self, tenant_id: str) -> None:
        """Drop the tenant's collection and its cache entry."""
        name = self.collection_name(tenant_id)
        async with self._tenant_lock(tenant_id):
            try:
                await self._index.delete_collection(name)
            except Exception as e:
                logger.error(f"Failed to delete collection {name}: {e}")
                raise CollectionUnavailable(f"Failed to delete collection {name}: {e}") from e
            finally:
                self._collections.pop(tenant_id, None)

        logger.info(f"Deleted collection for tenant {tenant_id}")

    async def list_collections(self) -> list[str]:
        try:
            return await self._index.list_collections()
        except Exception as e:
            raise CollectionUnavailable(f"Failed to list collections: {e}") from e

    async def health_check(self) -> dict:
        """Heartbeat the index and report status with latency in ms."""
        start = time.perf_counter()
        try:
            await self._index.heartbeat()
        except Exception as e:
            logger.error(f"Vector index health check failed: {e}")
            return {"status": "unhealthy", "timestamp": datetime.now(timezone.utc), "error": str(e)}

        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc),
            "latency": round((time.perf_counter() - start) * 1000, 2),
        }
