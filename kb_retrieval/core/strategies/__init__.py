"""Fusion and reranking strategies."""
from .fusion import ResultFusion
from .scoring import (
    BoostRule,
    FileTypeBoost,
    FirstChunkBoost,
    HeuristicReranker,
    PassageLengthBoost,
    RecencyBoost,
)

__all__ = [
    "ResultFusion",
    "BoostRule",
    "FileTypeBoost",
    "FirstChunkBoost",
    "HeuristicReranker",
    "PassageLengthBoost",
    "RecencyBoost",
]
