"""
System Constants & Invariants
==============================
Immutable domain constants defining classification scoring, cache tiering,
quality bands and pattern-learning arithmetic.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass
from typing import Final

# =============================================================================
# REQUEST CLASSIFICATION
# =============================================================================


@dataclass(frozen=True)
class ClassifierWeights:
    """Additive scoring weights for request complexity."""

    LONG_CONTENT_CHARS: int = 500
    MEDIUM_CONTENT_CHARS: int = 200
    LONG_CONTENT_POINTS: int = 2
    MEDIUM_CONTENT_POINTS: int = 1
    RESEARCH_POINTS: int = 2
    URL_REFERENCE_POINTS: int = 1
    TEMPLATE_POINTS: int = 1
    PATTERN_HINT_POINTS: int = 1
    THOUGHT_LEADERSHIP_POINTS: int = 1

    COMPLEX_THRESHOLD: int = 5
    MEDIUM_THRESHOLD: int = 2


CLASSIFIER_WEIGHTS: Final = ClassifierWeights()


@dataclass(frozen=True)
class TokenEstimates:
    """Token estimate bases per complexity tier."""

    SIMPLE_BASE: int = 300
    MEDIUM_BASE: int = 600
    COMPLEX_BASE: int = 1000
    RESEARCH_SURCHARGE: int = 500
    # short + medium + long variants
    VARIANT_MULTIPLIER: int = 3


TOKEN_ESTIMATES: Final = TokenEstimates()


# =============================================================================
# CACHE TIERING
# =============================================================================


@dataclass(frozen=True)
class CacheTtlPolicy:
    """Multipliers applied to a tier's base TTL."""

    RESEARCH_MULTIPLIER: float = 0.5
    TEMPLATE_MULTIPLIER: float = 2.0
    URL_HASH_LENGTH: int = 12
    KEY_DELIMITER: str = "|"


CACHE_TTL_POLICY: Final = CacheTtlPolicy()


# =============================================================================
# QUALITY SCORING
# =============================================================================


@dataclass(frozen=True)
class QualityBands:
    """Target character ranges for the three length variants."""

    BASE_SCORE: float = 0.7
    BAND_BONUS: float = 0.1
    MAX_SCORE: float = 1.0

    SHORT_RANGE: tuple[int, int] = (300, 500)
    MEDIUM_RANGE: tuple[int, int] = (800, 1200)
    LONG_RANGE: tuple[int, int] = (1500, 2500)


QUALITY_BANDS: Final = QualityBands()


# =============================================================================
# PATTERN LEARNING
# =============================================================================


@dataclass(frozen=True)
class PatternLearningConstants:
    """Confidence arithmetic for learned user patterns."""

    CONFIDENCE_CAP: float = 0.95
    REINFORCEMENT_BASE: float = 0.5
    REINFORCEMENT_STEP: float = 0.1
    INITIAL_CONFIDENCE: float = 0.6
    INITIAL_SAMPLE_SIZE: int = 1

    DEFAULTS_PATTERN_LIMIT: int = 3
    DEFAULTS_WEIGHT_NORMALIZER: float = 10.0

    RECOMMENDATION_MIN_CONFIDENCE: float = 0.6
    RECOMMENDATION_MAX_RESULTS: int = 5
    RECOMMENDATION_KEYWORDS: int = 5

    HIGH_ENGAGEMENT_REASON: int = 1000
    CHARACTER_BUCKET_SIZE: int = 200
    WORDS_PER_MINUTE: int = 200


PATTERN_LEARNING: Final = PatternLearningConstants()


# =============================================================================
# EVENT NAMES
# =============================================================================


@dataclass(frozen=True)
class EventNames:
    REQUEST_RECEIVED: str = "request:received"
    REQUEST_CLASSIFIED: str = "request:classified"
    REQUEST_COMPLETED: str = "request:completed"
    REQUEST_FAILED: str = "request:failed"
    CACHE_HIT: str = "cache:hit"
    CACHE_MISS: str = "cache:miss"
    CACHE_CLEANED: str = "cache:cleaned"
    PATTERN_CREATED: str = "pattern:created"
    PATTERN_REINFORCED: str = "pattern:reinforced"
    SIMILARITY_SEARCH: str = "similarity:search"
    DEFAULTS_GENERATED: str = "defaults:generated"
    LEARNING_ERROR: str = "learning:error"


EVENTS: Final = EventNames()


__all__ = [
    "CLASSIFIER_WEIGHTS",
    "TOKEN_ESTIMATES",
    "CACHE_TTL_POLICY",
    "QUALITY_BANDS",
    "PATTERN_LEARNING",
    "EVENTS",
]
