"""
Domain Data Models
==================
Pydantic v2 schema definitions for the broker:
- Requests, routing decisions and cached responses
- Learned user patterns and their embeddings
- Vector store documents and cost records

Architecture: Domain-Driven Design + Value Objects
"""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from core.enums import CacheTier, Complexity, PatternType, Provider

# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all mutable models."""

    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=False,
        arbitrary_types_allowed=True,
    )


class FrozenModelConfig(BaseModel):
    """Base configuration for immutable value objects."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)


# =============================================================================
# REQUEST MODELS
# =============================================================================


class RequestPreferences(FrozenModelConfig):
    """Optional caller preferences that influence routing."""

    preferred_model: Optional[str] = None
    language: Optional[str] = None


class ContentRequest(FrozenModelConfig):
    """
    Immutable content generation request.

    Used both to derive the cache key and to classify complexity. ``purpose``,
    ``format`` and ``tone`` stay plain strings so learned defaults can carry
    values the API layer does not enumerate.
    """

    request_id: str = Field(default_factory=lambda: uuid4().hex)
    content: str = Field(..., min_length=1)
    purpose: str = Field(default="value")
    format: str = Field(default="insight")
    tone: str = Field(default="professional")
    target_audience: str = Field(default="business professionals")
    enable_research: bool = Field(default=False)
    url_reference: Optional[str] = None
    template_id: Optional[str] = None
    user_id: str = Field(default="anonymous")
    session_id: Optional[str] = None
    preferences: Optional[RequestPreferences] = None
    patterns: tuple[str, ...] = Field(default=())
    keywords: tuple[str, ...] = Field(default=())

    @property
    def needs_research(self) -> bool:
        """Research runs when explicitly enabled or a URL is referenced."""
        return self.enable_research or bool(self.url_reference)

    @property
    def language(self) -> Optional[str]:
        return self.preferences.language if self.preferences else None


class Classification(FrozenModelConfig):
    """Classifier output."""

    complexity: Complexity
    estimated_tokens: int = Field(..., ge=0)
    score: int = Field(..., ge=0)


class RouteDecision(FrozenModelConfig):
    """Per-request routing outcome. Never persisted."""

    cache_hit: bool
    cache_key: str
    complexity: Optional[Complexity] = None
    estimated_tokens: int = 0
    provider: Optional[Provider] = None
    cache_tier: CacheTier = CacheTier.NONE
    ttl_seconds: int = 0


# =============================================================================
# COLLABORATOR RESULTS
# =============================================================================


class ContentVariants(BaseModelConfig):
    """Three length variants plus the one presented to the caller."""

    short: str
    medium: str
    long: str
    selected: str = ""

    def model_post_init(self, __context: Any) -> None:
        if not self.selected:
            self.selected = self.medium

    def as_tuple(self) -> tuple[str, str, str]:
        return self.short, self.medium, self.long


class ResearchSource(BaseModelConfig):
    title: str
    url: Optional[str] = None
    excerpt: Optional[str] = None
    credibility: float = Field(default=0.5, ge=0.0, le=1.0)


class ResearchResult(BaseModelConfig):
    """Output of the research collaborator."""

    sources: list[ResearchSource] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)


class GenerationResult(BaseModelConfig):
    """Output of the generation collaborator."""

    content: ContentVariants
    tokens_used: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    provider: Provider
    model: Optional[str] = None


# =============================================================================
# RESPONSE MODELS
# =============================================================================


class ResponseMetadata(BaseModelConfig):
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    tokens_used: int = Field(default=0, ge=0)
    cache_hit: bool = False
    cache_tier: CacheTier = CacheTier.NONE
    provider: Optional[Provider] = None
    model: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    complexity: Optional[Complexity] = None
    research_used: bool = False
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class ContentResponse(BaseModelConfig):
    """
    Result of a processed request. This is the cached value.

    Cached copies are stored as JSON (``model_dump(mode="json")``) so the same
    payload can live in process memory, Redis, or the durable table.
    """

    content: ContentVariants
    sources: list[ResearchSource] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    quality_score: float = Field(..., ge=0.0, le=1.0)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


# =============================================================================
# PATTERN MODELS
# =============================================================================


class PatternData(BaseModelConfig):
    """
    Typed attribute record stored on a UserPattern.

    Known attributes are fields; anything else a caller attaches lives in
    ``extra`` so unknown keys survive a round-trip through storage.
    """

    purpose: Optional[str] = None
    format: Optional[str] = None
    tone: Optional[str] = None
    target_audience: Optional[str] = None
    language: Optional[str] = None
    engagement: int = Field(default=0, ge=0)
    character_range: Optional[tuple[int, int]] = None
    structure: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    posting_time: Optional[int] = Field(default=None, ge=0, le=23)
    hashtag_count: int = Field(default=0, ge=0)
    emoji_usage: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_storage(cls, raw: dict[str, Any]) -> "PatternData":
        known = set(cls.model_fields) - {"extra"}
        extra = dict(raw.get("extra") or {})
        extra.update({k: v for k, v in raw.items() if k not in known and k != "extra"})
        return cls(**{k: v for k, v in raw.items() if k in known}, extra=extra)

    def embedding_text(self) -> str:
        """Text projection used to embed the pattern."""
        parts = [self.purpose, self.format, self.tone, self.target_audience, *self.keywords]
        return " ".join(p for p in parts if p)


class UserPattern(BaseModelConfig):
    """A learned, reinforceable observation about what works for a user."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    pattern_type: PatternType
    pattern_data: PatternData
    confidence_score: float = Field(..., ge=0.0, le=0.95)
    sample_size: int = Field(default=1, ge=1)
    last_reinforced: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field
    @property
    def weight(self) -> float:
        """Vote weight used when aggregating defaults."""
        return self.confidence_score * self.sample_size


class SimilarityMatch(BaseModelConfig):
    """Ranked pattern match with explanation."""

    pattern: UserPattern
    similarity_score: float
    confidence: float
    reasons: list[str] = Field(default_factory=list)

    @property
    def weighted_score(self) -> float:
        return self.similarity_score * self.confidence


class EngagementMetrics(BaseModelConfig):
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    total: Optional[int] = Field(default=None, ge=0)

    @property
    def total_engagement(self) -> int:
        if self.total:
            return self.total
        return self.likes + self.comments + self.shares


class SmartDefaults(BaseModelConfig):
    purpose: Optional[str] = None
    format: Optional[str] = None
    tone: Optional[str] = None
    target_audience: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=0.95)
    patterns_used: int = Field(default=0, ge=0)


class Recommendations(BaseModelConfig):
    """Personalization output for a draft request."""

    similar_patterns: list[SimilarityMatch] = Field(default_factory=list)
    defaults: SmartDefaults = Field(default_factory=SmartDefaults)
    suggested_purpose: Optional[str] = None
    suggested_format: Optional[str] = None
    suggested_tone: Optional[str] = None
    suggested_audience: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ContentAnalysis(BaseModelConfig):
    character_count: int
    word_count: int
    character_range: tuple[int, int]
    structure: list[str]
    hashtag_count: int
    has_emojis: bool
    keywords: list[str]
    reading_time_minutes: int
    predicted_engagement: int


# =============================================================================
# VECTOR STORE MODELS
# =============================================================================


class VectorDocument(BaseModelConfig):
    """Row stored in the pattern_embeddings table."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    pattern_id: str
    user_id: Optional[str] = None
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("embedding")
    @classmethod
    def validate_embedding(cls, v: list[float]) -> list[float]:
        if not v:
            raise ValueError("Embedding cannot be empty")
        return v


class VectorSearchResult(BaseModelConfig):
    pattern_id: str
    user_id: Optional[str] = None
    similarity: float
    metadata: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# COST MODELS
# =============================================================================


class ProcessingRecord(BaseModelConfig):
    """Cost event emitted after a generated (non-cached) response."""

    user_id: str
    tokens_used: int = Field(..., ge=0)
    processing_time_ms: float = Field(..., ge=0.0)
    provider: Provider
    model: Optional[str] = None
    complexity: Optional[Complexity] = None
    recorded_at: datetime = Field(default_factory=datetime.utcnow)


__all__ = [
    "BaseModelConfig",
    "RequestPreferences",
    "ContentRequest",
    "Classification",
    "RouteDecision",
    "ContentVariants",
    "ResearchSource",
    "ResearchResult",
    "GenerationResult",
    "ResponseMetadata",
    "ContentResponse",
    "PatternData",
    "UserPattern",
    "SimilarityMatch",
    "EngagementMetrics",
    "SmartDefaults",
    "Recommendations",
    "ContentAnalysis",
    "VectorDocument",
    "VectorSearchResult",
    "ProcessingRecord",
]
