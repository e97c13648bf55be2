"""Domain models."""
from .document import (
    DocumentChunk,
    FusedResult,
    RankedResult,
    SearchCandidate,
    SearchResponse,
)
from .search import DateRange, MetadataFilter, SearchOptions, SearchStrategy

__all__ = [
    "DocumentChunk",
    "FusedResult",
    "RankedResult",
    "SearchCandidate",
    "SearchResponse",
    "DateRange",
    "MetadataFilter",
    "SearchOptions",
    "SearchStrategy",
]
