"""Shared typed models for the enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Generic, Literal, TypeVar

BookmarkSource = Literal["twitter", "linkedin", "eagle"]
Provider = Literal["openai", "anthropic"]
Task = Literal["intent", "context", "category"]
Step = Literal["intent", "context", "category", "connections"]
ConnectionType = Literal[
    "same_author", "shared_topic", "semantic_similarity", "temporal_proximity"
]

BOOKMARK_SOURCES: tuple[str, ...] = ("twitter", "linkedin", "eagle")
CATEGORIES: tuple[str, ...] = ("Inspo", "Leads/Markets", "Tutorials")
DEFAULT_CATEGORY = "Inspo"
CONNECTION_TYPES: tuple[str, ...] = (
    "same_author",
    "shared_topic",
    "semantic_similarity",
    "temporal_proximity",
)
ENRICHMENT_STEPS: tuple[str, ...] = ("intent", "context", "category", "connections")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Bookmark:
    """Raw bookmark record as handed over by the storage layer."""

    id: str
    source: BookmarkSource
    source_id: str
    url: str
    author: str
    content: str
    bookmarked_at: datetime
    author_url: str | None = None
    enrichment_version: str | None = None


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True, slots=True)
class ModelConfig:
    provider: Provider
    model: str
    max_output_tokens: int
    temperature: float


@dataclass(frozen=True, slots=True)
class Completion:
    """Raw text and usage returned by a provider."""

    text: str
    usage: TokenUsage


@dataclass(frozen=True, slots=True)
class TaskResult(Generic[T]):
    """Uniform envelope returned by every task module."""

    data: T
    usage: TokenUsage
    model: str
    provider: Provider
    cost: float


@dataclass(frozen=True, slots=True)
class IntentResult:
    intent: str
    confidence: float


@dataclass(frozen=True, slots=True)
class ContextResult:
    primary_topic: str
    key_themes: tuple[str, ...] = ()
    author_bio: str | None = None
    company: str | None = None


@dataclass(frozen=True, slots=True)
class CategoryResult:
    category: str
    confidence: float
    reasoning: str | None = None


@dataclass(frozen=True, slots=True)
class Connection:
    bookmark_id_1: str
    bookmark_id_2: str
    connection_type: ConnectionType
    strength_score: float

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.bookmark_id_1, self.bookmark_id_2, self.connection_type)


@dataclass(frozen=True, slots=True)
class TopicSignals:
    """Subset of enrichment output used for connection scoring."""

    primary_topic: str | None = None
    key_themes: tuple[str, ...] = ()
    category: str | None = None


@dataclass(frozen=True, slots=True)
class EnrichedBookmark:
    bookmark: Bookmark
    metadata: TopicSignals | None = None


@dataclass(frozen=True, slots=True)
class BookmarkMetadata:
    """Enrichment record persisted per bookmark (upserted on bookmark_id)."""

    bookmark_id: str
    intent: str | None = None
    author_bio: str | None = None
    company: str | None = None
    primary_topic: str | None = None
    key_themes: tuple[str, ...] | None = None
    category: str | None = None
    category_confidence: float | None = None
    enrichment_quality_score: float | None = None


@dataclass(frozen=True, slots=True)
class EnrichmentLog:
    bookmarks_processed: int
    tokens_used: int
    cost: float
    model_used: str
    enrichment_type: str
    timestamp: datetime | None = None


@dataclass(frozen=True, slots=True)
class EnrichmentProgress:
    total_bookmarks: int
    completed: int
    current_step: Step
    estimated_time_remaining_ms: int
    estimated_cost: float
    current_cost: float


ProgressCallback = Callable[[EnrichmentProgress], Any]


@dataclass(frozen=True, slots=True)
class BatchError:
    bookmark_id: str
    error: str


@dataclass(frozen=True, slots=True)
class BatchEnrichmentResult:
    total_bookmarks: int
    successful: int
    failed: int
    total_cost: float
    total_tokens: int
    execution_time_ms: int
    category_distribution: dict[str, int] = field(default_factory=dict)
    connections_detected: int = 0
    errors: list[BatchError] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class BatchItemOutcome(Generic[T]):
    """Per-bookmark outcome of a `*_batch` task run: a result or an error."""

    bookmark_id: str
    result: TaskResult[T] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None
