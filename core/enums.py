"""
Domain Enumerations
===================
String enums for JSON serialization compatibility and storage without
integer mapping fragility.
"""

from enum import Enum, IntEnum


class Complexity(str, Enum):
    """Request complexity tier produced by the classifier."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"

    @property
    def rank(self) -> int:
        """Ordinal position for monotonic comparisons."""
        return {Complexity.SIMPLE: 0, Complexity.MEDIUM: 1, Complexity.COMPLEX: 2}[self]


class CacheTier(str, Enum):
    """
    Response cache tiers, fastest first.

    L1 is process-local, L2 is shared (Redis), L3 is the durable store.
    """

    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    NONE = "none"


class Provider(str, Enum):
    """Generation providers the router can select."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Purpose(str, Enum):
    THOUGHT_LEADERSHIP = "thought-leadership"
    QUESTION = "question"
    VALUE = "value"
    AUTHORITY = "authority"


class ContentFormat(str, Enum):
    STORY = "story"
    INSIGHT = "insight"
    LIST = "list"
    HOWTO = "howto"
    QUESTION = "question"


class Tone(str, Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    FRIENDLY = "friendly"
    AUTHORITATIVE = "authoritative"


class PatternType(str, Enum):
    """Kinds of learned user patterns."""

    SUCCESSFUL_POST = "successful_post"
    TEMPLATE = "template"
    STYLE_PREFERENCE = "style_preference"


class StructureTag(str, Enum):
    """Structural signals detected in generated content."""

    HOOK = "hook"
    STORY = "story"
    LESSON = "lesson"
    CTA = "cta"
    LIST = "list"
    GENERIC = "generic"


class GatewayState(str, Enum):
    """Lifecycle of a request inside the gateway."""

    RECEIVED = "received"
    CLASSIFIED = "classified"
    RESEARCHING = "researching"
    GENERATING = "generating"
    SCORING = "scoring"
    CACHING = "caching"
    DONE = "done"
    FAILED = "failed"


class ErrorSeverity(IntEnum):
    """
    Error severity levels for alerting and logging.

    IntEnum enables severity comparisons (>=, <=).
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def should_alert(self) -> bool:
        return self >= ErrorSeverity.ERROR


__all__ = [
    "Complexity",
    "CacheTier",
    "Provider",
    "Purpose",
    "ContentFormat",
    "Tone",
    "PatternType",
    "StructureTag",
    "GatewayState",
    "ErrorSeverity",
]
