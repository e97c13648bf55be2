"""Document domain models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Metadata keys as written by the ingestion pipeline.
TENANT_ID = "tenantId"
AGENT_ID = "agentId"
DOCUMENT_ID = "documentId"
FILE_NAME = "fileName"
FILE_TYPE = "fileType"
UPLOADED_AT = "uploadedAt"
CHUNK_INDEX = "chunkIndex"
TOTAL_CHUNKS = "totalChunks"
SOURCE = "source"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Returns None for missing or unparseable values.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class DocumentChunk:
    """Immutable passage of a tenant document, as indexed."""
    id: str
    tenant_id: str
    document_id: str
    text: str
    chunk_index: int
    total_chunks: int
    file_name: str
    file_type: str
    uploaded_at: str
    agent_id: Optional[str] = None

    def to_metadata(self) -> dict[str, Any]:
        """Metadata record stored alongside the chunk in the index."""
        metadata: dict[str, Any] = {
            TENANT_ID: self.tenant_id,
            DOCUMENT_ID: self.document_id,
            FILE_NAME: self.file_name,
            FILE_TYPE: self.file_type,
            UPLOADED_AT: self.uploaded_at,
            CHUNK_INDEX: self.chunk_index,
            TOTAL_CHUNKS: self.total_chunks,
            SOURCE: self.file_name,
        }
        if self.agent_id is not None:
            metadata[AGENT_ID] = self.agent_id
        return metadata


@dataclass(frozen=True)
class SearchCandidate:
    """Per-query retrieval hit. Lower distance is better."""
    id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    distance: float = 0.0

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance

    @property
    def tenant_id(self) -> Optional[str]:
        return self.metadata.get(TENANT_ID)

    @property
    def file_name(self) -> str:
        return str(self.metadata.get(FILE_NAME) or self.metadata.get(SOURCE) or "Unknown")

    @property
    def file_type(self) -> Optional[str]:
        value = self.metadata.get(FILE_TYPE)
        return str(value) if value is not None else None

    @property
    def chunk_index(self) -> Optional[int]:
        value = self.metadata.get(CHUNK_INDEX)
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    @property
    def uploaded_at(self) -> Optional[datetime]:
        return parse_timestamp(self.metadata.get(UPLOADED_AT))

    def with_distance(self, distance: float) -> "SearchCandidate":
        return SearchCandidate(
            id=self.id, text=self.text, metadata=self.metadata, distance=distance
        )


@dataclass(frozen=True)
class FusedResult(SearchCandidate):
    """Candidate carrying the weighted fusion score (higher is better)."""
    combined_score: float = 0.0


# Final caller-facing type: same shape as a candidate, ordered best-first.
RankedResult = SearchCandidate


@dataclass
class SearchResponse:
    """Search response for the calling layer."""
    results: list[RankedResult]
    strategy: str
    degraded: bool = False
    failed_branches: list[str] = field(default_factory=list)
    context: str = ""
    sources: list[str] = field(default_factory=list)
