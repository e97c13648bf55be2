"""Weighted rank-blended fusion of semantic and keyword candidates."""

import logging

from ..models.document import FusedResult, SearchCandidate

logger = logging.getLogger(__name__)

SIMILARITY_SHARE = 0.8
POSITION_SHARE = 0.2


class ResultFusion:
    """Merge two ranked candidate lists into one deduplicated list.

    Each list contributes ``(0.8 * similarity + 0.2 * position) * weight`` per
    candidate, where ``position = 1 - index / len(list)``. Semantic and keyword
    distances are not on a common scale, so rank carries part of the score.
    Chunks found by both lists get the two contributions added, not averaged.
    The blend constants are a product choice and must stay fixed.
    """

    def combine(
        self,
        semantic: list[SearchCandidate],
        keyword: list[SearchCandidate],
        semantic_weight: float,
        keyword_weight: float,
    ) -> list[FusedResult]:
        """Fuse candidate lists; weights are taken as given.

        Args:
            semantic: Semantic candidates, best first.
            keyword: Keyword candidates, best first.
            semantic_weight: Weight of the semantic contribution.
            keyword_weight: Weight of the keyword contribution.

        Returns:
            Results sorted by descending combined score with
            ``distance = 1 - combined_score``.
        """
        scores: dict[str, float] = {}
        candidates: dict[str, SearchCandidate] = {}

        for candidates_list, weight in ((semantic, semantic_weight), (keyword, keyword_weight)):
            for chunk_id, partial in self._partial_scores(candidates_list, weight):
                if chunk_id in scores:
                    scores[chunk_id] += partial
                else:
                    scores[chunk_id] = partial
            for candidate in candidates_list:
                candidates.setdefault(candidate.id, candidate)

        fused = [
            FusedResult(
                id=chunk_id,
                text=candidates[chunk_id].text,
                metadata=candidates[chunk_id].metadata,
                distance=1.0 - score,
                combined_score=score,
            )
            for chunk_id, score in scores.items()
        ]
        fused.sort(key=lambda r: r.combined_score, reverse=True)

        if logger.isEnabledFor(logging.DEBUG):
            overlap = len(semantic) + len(keyword) - len(fused)
            logger.debug(f"Fusion: {len(semantic)} semantic + {len(keyword)} keyword -> {len(fused)} ({overlap} shared)")

        return fused

    @staticmethod
    def _partial_scores(candidates: list[SearchCandidate], weight: float):
        total = len(candidates)
        seen = set()
        for index, candidate in enumerate(candidates):
            if candidate.id in seen:
                continue
            seen.add(candidate.id)
            position = 1.0 - (index / total)
            yield candidate.id, (SIMILARITY_SHARE * candidate.similarity + POSITION_SHARE * position) * weight
