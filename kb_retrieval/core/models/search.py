"""Search option models and metadata filters."""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from ..errors import InvalidSearchOptions
from .document import AGENT_ID, FILE_TYPE, UPLOADED_AT, parse_timestamp


class SearchStrategy(Enum):
    """Retrieval strategy."""
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: "SearchStrategy | str") -> "SearchStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise InvalidSearchOptions(
                f"Invalid strategy {value!r}. Must be one of: {valid}"
            ) from None


@dataclass(frozen=True)
class DateRange:
    """Inclusive upload-date range with ISO-8601 bounds."""
    start: str
    end: str

    @property
    def start_at(self) -> datetime:
        return self._parse(self.start, "start")

    @property
    def end_at(self) -> datetime:
        return self._parse(self.end, "end")

    @staticmethod
    def _parse(value: str, name: str) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise InvalidSearchOptions(f"Invalid dateRange {name}: {value!r}")
        return parsed

    def validate(self) -> None:
        if self.start_at > self.end_at:
            raise InvalidSearchOptions(
                f"Invalid dateRange: start {self.start} is after end {self.end}"
            )

    def contains(self, value: Any) -> bool:
        uploaded = parse_timestamp(value)
        if uploaded is None:
            return False
        return self.start_at <= uploaded <= self.end_at


@dataclass(frozen=True)
class MetadataFilter:
    """Metadata restriction: agent and file type equality, upload-date range."""
    agent_id: Optional[str] = None
    file_type: Optional[str] = None
    date_range: Optional[DateRange] = None

    @property
    def is_empty(self) -> bool:
        return self.agent_id is None and self.file_type is None and self.date_range is None

    def to_where(self) -> Optional[dict[str, Any]]:
        """Chroma ``where`` clause for the equality part of the filter.

        The date range is not pushed to the index: Chroma range operators only
        accept numbers, so ``matches`` applies it to the returned rows.
        """
        clauses = []
        if self.agent_id is not None:
            clauses.append({AGENT_ID: self.agent_id})
        if self.file_type is not None:
            clauses.append({FILE_TYPE: self.file_type})

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        if self.agent_id is not None and metadata.get(AGENT_ID) != self.agent_id:
            return False
        if self.file_type is not None and metadata.get(FILE_TYPE) != self.file_type:
            return False
        if self.date_range is not None and not self.date_range.contains(
            metadata.get(UPLOADED_AT)
        ):
            return False
        return True


@dataclass(frozen=True)
class SearchOptions:
    """Options accepted by ``SearchService.search``.

    ``None`` means "use the service default" for every tunable field.
    """
    strategy: Optional[SearchStrategy] = None
    k: Optional[int] = None
    filter: MetadataFilter = field(default_factory=MetadataFilter)
    min_similarity: Optional[float] = None
    semantic_weight: Optional[float] = None
    keyword_weight: Optional[float] = None
    enable_reranking: Optional[bool] = None
    timeout: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SearchOptions":
        """Build options from the calling layer's camelCase or snake_case keys."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        strategy = pick("strategy")
        date_range = pick("dateRange", "date_range")
        if isinstance(date_range, str):
            try:
                date_range = json.loads(date_range)
            except json.JSONDecodeError:
                raise InvalidSearchOptions("Invalid dateRange format") from None
        if date_range is not None and not isinstance(date_range, DateRange):
            if not isinstance(date_range, Mapping) or "start" not in date_range or "end" not in date_range:
                raise InvalidSearchOptions("Invalid dateRange format")
            date_range = DateRange(start=str(date_range["start"]), end=str(date_range["end"]))

        try:
            k = pick("k", "nResults", "n_results")
            min_similarity = pick("minSimilarity", "min_similarity")
            semantic_weight = pick("semanticWeight", "semantic_weight")
            keyword_weight = pick("keywordWeight", "keyword_weight")
            timeout = pick("timeout")
            options = cls(
                strategy=SearchStrategy.parse(strategy) if strategy is not None else None,
                k=int(k) if k is not None else None,
                filter=MetadataFilter(
                    agent_id=pick("agentId", "agent_id"),
                    file_type=pick("fileType", "file_type"),
                    date_range=date_range,
                ),
                min_similarity=float(min_similarity) if min_similarity is not None else None,
                semantic_weight=float(semantic_weight) if semantic_weight is not None else None,
                keyword_weight=float(keyword_weight) if keyword_weight is not None else None,
                enable_reranking=_parse_bool(pick("enableReranking", "enable_reranking")),
                timeout=float(timeout) if timeout is not None else None,
            )
        except InvalidSearchOptions:
            raise
        except (TypeError, ValueError) as e:
            raise InvalidSearchOptions(f"Invalid search options: {e}") from e

        return options

    def merged_with(self, defaults: "SearchOptions") -> "SearchOptions":
        """Fill unset fields from ``defaults``."""
        updates = {
            name: getattr(defaults, name)
            for name in (
                "strategy",
                "k",
                "min_similarity",
                "semantic_weight",
                "keyword_weight",
                "enable_reranking",
                "timeout",
            )
            if getattr(self, name) is None
        }
        return replace(self, **updates)

    def validate(self) -> None:
        """Reject malformed options. Raises InvalidSearchOptions."""
        if self.k is not None and (isinstance(self.k, bool) or self.k <= 0):
            raise InvalidSearchOptions(f"k must be a positive integer, got {self.k}")

        for name in ("min_similarity", "semantic_weight", "keyword_weight"):
            value = getattr(self, name)
            if value is not None and not 0.0 <= value <= 1.0:
                raise InvalidSearchOptions(f"{name} must be within [0, 1], got {value}")

        if self.timeout is not None and self.timeout <= 0:
            raise InvalidSearchOptions(f"timeout must be positive, got {self.timeout}")

        if self.filter.date_range is not None:
            self.filter.date_range.validate()


def _parse_bool(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    raise InvalidSearchOptions(f"Invalid boolean value: {value!r}")
