"""Vector index protocols for dependency injection."""
from typing import Any, Optional, Protocol, runtime_checkable

from ..models.document import SearchCandidate


@runtime_checkable
class CollectionProtocol(Protocol):
    """Handle to one logical document collection."""

    name: str

    async def query(
        self,
        query_embedding: list[float],
        n_results: int = 5,
        where: Optional[dict[str, Any]] = None,
    ) -> list[SearchCandidate]:
        """Nearest-neighbour search.

        Args:
            query_embedding: Query vector.
            n_results: Number of neighbours to return.
            where: Metadata equality filter.

        Returns:
            Candidates ordered by ascending distance.
        """
        ...

    async def get(self, where: Optional[dict[str, Any]] = None) -> list[SearchCandidate]:
        """Fetch every chunk matching ``where`` (distance 0)."""
        ...

    async def count(self) -> int:
        """Get chunk count."""
        ...


@runtime_checkable
class VectorIndexProtocol(Protocol):
    """Protocol for the vector database holding tenant collections."""

    async def get_or_create_collection(
        self, name: str, metadata: Optional[dict[str, Any]] = None
    ) -> CollectionProtocol:
        """Return the named collection, creating it when absent."""
        ...

    async def delete_collection(self, name: str) -> None:
        """Drop the named collection."""
        ...

    async def list_collections(self) -> list[str]:
        """Names of all collections."""
        ...

    async def heartbeat(self) -> None:
        """Raise if the index is unreachable."""
        ...
