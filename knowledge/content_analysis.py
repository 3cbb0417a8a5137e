"""
Content Analysis - Derived Signals for Pattern Learning
=======================================================

Heuristics applied to generated post text:
- Character-length bucket (200-character ranges)
- Structural tags (hook, story, lesson, cta, list; ``generic`` otherwise)
- Hashtag count and emoji presence
- Keyword extraction, reading time and an engagement estimate

All functions are pure.
"""

import math
import re
from collections import Counter
from typing import List, Tuple

from config.constants import PATTERN_LEARNING
from core.enums import StructureTag
from core.models import ContentAnalysis

HASHTAG_PATTERN = re.compile(r"#\w+")
EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F]|[\U0001F300-\U0001F5FF]|[\U0001F680-\U0001F6FF]"
    "|[\U0001F1E0-\U0001F1FF]|[\u2600-\u26FF]|[\u2700-\u27BF]"
)
LIST_LINE_PATTERN = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+")

STOP_WORDS = frozenset(
    {
        "the", "is", "at", "which", "on", "a", "an", "and", "or", "but",
        "in", "with", "to", "for", "of", "as", "by", "that", "this",
        "it", "from", "be", "are", "was", "were", "been", "have", "has",
        "your", "you", "what", "when", "they", "their", "will", "just",
    }
)

IDEAL_LENGTH = 1300
BASE_ENGAGEMENT = 500


def character_range(content: str) -> Tuple[int, int]:
    """Bucket ``len(content)`` into ``[lower, lower + 200)``."""
    size = PATTERN_LEARNING.CHARACTER_BUCKET_SIZE
    lower = (len(content) // size) * size
    return lower, lower + size


def _lines(content: str) -> List[str]:
    return [line for line in content.split("\n") if line.strip()]


def detect_structure(content: str) -> List[str]:
    """
    Structural tags recorded on learned patterns.

    hook: first line asks a question; story: any line mentions "story" or
    "when"; lesson: "lesson" or "learned"; cta: last line has a pointer
    emoji or asks for comments.
    """
    lines = _lines(content)
    tags: List[str] = []

    if lines:
        if "?" in lines[0]:
            tags.append(StructureTag.HOOK.value)
        if any("story" in line or "when" in line for line in lines):
            tags.append(StructureTag.STORY.value)
        if any("lesson" in line or "learned" in line for line in lines):
            tags.append(StructureTag.LESSON.value)
        if "\U0001F449" in lines[-1] or "comment" in lines[-1]:
            tags.append(StructureTag.CTA.value)

    return tags or [StructureTag.GENERIC.value]


def describe_structure(content: str) -> List[str]:
    """Broader, case-insensitive structure reading used for content analysis."""
    lines = _lines(content)
    if not lines:
        return [StructureTag.GENERIC.value]

    text = content.lower()
    first, last = lines[0].lower(), lines[-1].lower()
    tags: List[str] = []

    if "?" in first or "imagine" in first or "what if" in first:
        tags.append(StructureTag.HOOK.value)
    if "story" in text or "when i" in text or "once" in text:
        tags.append(StructureTag.STORY.value)
    if "lesson" in text or "learned" in text or "insight" in text:
        tags.append(StructureTag.LESSON.value)
    if any(marker in last for marker in ("comment", "share", "\U0001F449", "what do you think")):
        tags.append(StructureTag.CTA.value)
    if sum(1 for line in lines if LIST_LINE_PATTERN.match(line)) >= 2:
        tags.append(StructureTag.LIST.value)

    return tags or [StructureTag.GENERIC.value]


def count_hashtags(content: str) -> int:
    return len(HASHTAG_PATTERN.findall(content))


def has_emojis(content: str) -> bool:
    return EMOJI_PATTERN.search(content) is not None


def extract_keywords(content: str, limit: int = 10) -> List[str]:
    """Most frequent non-stop-words longer than three characters."""
    words = [
        w
        for w in re.split(r"\W+", content.lower())
        if len(w) > 3 and w not in STOP_WORDS and not w.isdigit()
    ]
    return [word for word, _ in Counter(words).most_common(limit)]


def reading_time_minutes(content: str) -> int:
    words = len(content.split())
    return math.ceil(words / PATTERN_LEARNING.WORDS_PER_MINUTE)


def predict_engagement(content: str) -> int:
    """
    Heuristic engagement estimate clamped to [100, 5000].

    Rewards lengths near 1300 characters, 2-4 hashtags, emojis, questions,
    hooks, stories and calls to action.
    """
    score = float(BASE_ENGAGEMENT)
    score *= max(0.5, 1 - abs(len(content) - IDEAL_LENGTH) / IDEAL_LENGTH)

    hashtags = count_hashtags(content)
    if 2 <= hashtags <= 4:
        score *= 1.2
    elif hashtags > 4:
        score *= 0.9

    if has_emojis(content):
        score *= 1.1

    questions = content.count("?")
    if questions:
        score *= 1 + questions * 0.1

    structure = describe_structure(content)
    if StructureTag.HOOK.value in structure:
        score *= 1.15
    if StructureTag.STORY.value in structure:
        score *= 1.1
    if StructureTag.CTA.value in structure:
        score *= 1.2

    return round(max(100.0, min(5000.0, score)))


def analyze_content(content: str) -> ContentAnalysis:
    return ContentAnalysis(
        character_count=len(content),
        word_count=len(content.split()),
        character_range=character_range(content),
        structure=describe_structure(content),
        hashtag_count=count_hashtags(content),
        has_emojis=has_emojis(content),
        keywords=extract_keywords(content),
        reading_time_minutes=reading_time_minutes(content),
        predicted_engagement=predict_engagement(content),
    )


__all__ = [
    "analyze_content",
    "character_range",
    "count_hashtags",
    "describe_structure",
    "detect_structure",
    "extract_keywords",
    "has_emojis",
    "predict_engagement",
    "reading_time_minutes",
]
