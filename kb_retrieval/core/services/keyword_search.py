"""Keyword search - lexical term-overlap scoring over a tenant collection."""

import logging
import math
import re
from typing import Optional

from ..errors import InvalidSearchOptions, SearchError
from ..models.document import SearchCandidate
from ..models.search import MetadataFilter
from .collection_registry import TenantCollectionRegistry

logger = logging.getLogger(__name__)

EXACT_MATCH_WEIGHT = 2.0
PARTIAL_MATCH_WEIGHT = 0.5
MIN_TERM_LENGTH = 3


def tokenize(query: str) -> list[str]:
    """Lowercase whitespace-separated terms longer than two characters."""
    return [term for term in query.lower().split() if len(term) >= MIN_TERM_LENGTH]


def keyword_score(text: str, terms: list[str]) -> float:
    """Length-normalized term-overlap score in ``[0, 1]``.

    Whole-word occurrences of a term weigh 2, other substring occurrences 0.5.
    The raw sum is divided by ``ln(len(text) + 1) * len(terms)`` and capped at 1.
    """
    if not terms:
        return 0.0

    doc_text = text.lower()
    score = 0.0
    for term in terms:
        escaped = re.escape(term)
        exact = len(re.findall(rf"\b{escaped}\b", doc_text, flags=re.ASCII))
        substring = len(re.findall(escaped, doc_text))
        score += EXACT_MATCH_WEIGHT * exact + PARTIAL_MATCH_WEIGHT * (substring - exact)

    if score <= 0:
        return 0.0
    return min(1.0, score / (math.log(len(doc_text) + 1) * len(terms)))


class KeywordSearcher:
    """Scans every filtered chunk of a tenant and ranks by keyword score.

    Deterministic and index-free: ties keep the collection's return order.
    """

    def __init__(self, registry: TenantCollectionRegistry):
        self._registry = registry

    async def search(
        self,
        tenant_id: str,
        query: str,
        k: int,
        filter: Optional[MetadataFilter] = None,
    ) -> list[SearchCandidate]:
        """Return up to ``k`` chunks with ``distance = 1 - normalizedScore``.

        No matching chunk is an empty list, not an error.

        Raises:
            InvalidSearchOptions: ``k`` is not positive.
            SearchError: Collection or index failure.
        """
        if k <= 0:
            raise InvalidSearchOptions(f"k must be a positive integer, got {k}")
        filter = filter or MetadataFilter()

        terms = tokenize(query)
        if not terms:
            return []

        collection = await self._registry.get_collection(tenant_id)
        try:
            chunks = await collection.get(where=filter.to_where())
        except Exception as e:
            logger.error(f"Keyword search failed for tenant {tenant_id}: {e}")
            raise SearchError(f"Vector index scan failed: {e}") from e

        scored: list[tuple[float, SearchCandidate]] = []
        for chunk in chunks:
            if chunk.tenant_id is not None and chunk.tenant_id != tenant_id:
                continue
            if not filter.matches(chunk.metadata):
                continue

            score = keyword_score(chunk.text, terms)
            if score > 0:
                scored.append((score, chunk.with_distance(1.0 - score)))

        scored.sort(key=lambda item: item[0], reverse=True)
        logger.debug(f"Keyword search: {len(scored)}/{len(chunks)} chunks matched for tenant {tenant_id}")
        return [candidate for _, candidate in scored[:k]]
