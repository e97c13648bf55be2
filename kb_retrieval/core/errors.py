"""Retrieval error taxonomy.

``retryable`` tells the calling layer how to surface an error: retryable
errors map to a service error, the rest to a client error.
"""


class RetrievalError(Exception):
    """Base class for all retrieval errors."""

    retryable = False


class InvalidSearchOptions(RetrievalError, ValueError):
    """Search options rejected before any network call."""


class SearchError(RetrievalError):
    """Index query or search branch failure."""

    retryable = True


class EmbeddingUnavailable(SearchError):
    """All embedding providers exhausted."""


class CollectionUnavailable(SearchError):
    """Vector index unreachable or collection creation failed."""
