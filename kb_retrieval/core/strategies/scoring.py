"""Heuristic reranking: metadata boost rules and the reranker applying them."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..models.document import RankedResult, SearchCandidate

logger = logging.getLogger(__name__)


class BoostRule(ABC):
    """Multiplicative boost applied to a result's similarity."""

    def __init__(self, multiplier: float):
        self.multiplier = multiplier

    @abstractmethod
    def applies(self, result: SearchCandidate, now: datetime) -> bool:
        """Whether the boost holds for ``result``."""
        ...


class FileTypeBoost(BoostRule):
    """Boost chunks of a given file type (PDFs by default)."""

    def __init__(self, multiplier: float = 1.10, file_type: str = "pdf"):
        super().__init__(multiplier)
        self._file_type = file_type

    def applies(self, result: SearchCandidate, now: datetime) -> bool:
        file_type = result.file_type
        return file_type is not None and file_type.lower().lstrip(".") == self._file_type


class FirstChunkBoost(BoostRule):
    """Boost the opening chunk of a document; it often carries the summary."""

    def __init__(self, multiplier: float = 1.05):
        super().__init__(multiplier)

    def applies(self, result: SearchCandidate, now: datetime) -> bool:
        return result.chunk_index == 0


class RecencyBoost(BoostRule):
    """Boost documents uploaded within the last ``days`` days."""

    def __init__(self, multiplier: float = 1.02, days: int = 30):
        super().__init__(multiplier)
        self._window = timedelta(days=days)

    def applies(self, result: SearchCandidate, now: datetime) -> bool:
        uploaded_at = result.uploaded_at
        return uploaded_at is not None and now - uploaded_at < self._window


class PassageLengthBoost(BoostRule):
    """Boost passages strictly between ``min_length`` and ``max_length`` chars."""

    def __init__(self, multiplier: float = 1.03, min_length: int = 100, max_length: int = 2000):
        super().__init__(multiplier)
        self._min_length = min_length
        self._max_length = max_length

    def applies(self, result: SearchCandidate, now: datetime) -> bool:
        return self._min_length < len(result.text) < self._max_length


def default_boost_rules() -> list[BoostRule]:
    return [FileTypeBoost(), FirstChunkBoost(), RecencyBoost(), PassageLengthBoost()]


class HeuristicReranker:
    """Rerank by compounding metadata boosts on each result's similarity.

    The boosted similarity becomes ``distance = 1 - boosted`` without clamping,
    so a distance can drop below zero; ordering uses the raw number.
    Any internal error returns the input truncated to ``k`` instead.
    """

    def __init__(
        self,
        rules: Optional[list[BoostRule]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize reranker.

        Args:
            rules: Boost rules, applied in order.
            clock: Source of "now" for the recency boost.
        """
        self._rules = default_boost_rules() if rules is None else rules
        self._clock = clock

    def rerank(
        self,
        results: list[SearchCandidate],
        query: str,
        k: int,
    ) -> list[RankedResult]:
        try:
            now = self._clock()
            reranked = []
            for result in results:
                score = result.similarity
                for rule in self._rules:
                    if rule.applies(result, now):
                        score *= rule.multiplier
                reranked.append(result.with_distance(1.0 - score))

            reranked.sort(key=lambda r: r.distance)
            return reranked[:k]

        except Exception:
            logger.exception("Re-ranking failed, returning results unreranked")
            return list(results[:k])
