"""Reranker protocol for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.document import RankedResult, SearchCandidate


@runtime_checkable
class RerankerProtocol(Protocol):
    """Protocol for reranking service."""

    def rerank(
        self,
        results: list[SearchCandidate],
        query: str,
        k: int,
    ) -> list[RankedResult]:
        """Rerank search results by relevance.

        Args:
            results: Fused results, best first.
            query: User query.
            k: Number of results to keep.

        Returns:
            At most ``k`` results sorted by ascending distance.
        """
        ...
