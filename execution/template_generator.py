"""
Template Generator: Offline Generation and Research Collaborators

Deterministic stand-ins for the model-backed collaborators. Output is built
from the request's topic, tone and research insights, then fitted into the
short/medium/long character bands, so identical requests always produce
identical variants. Used in development when no model is wired and in tests.
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from config.constants import QUALITY_BANDS, QualityBands
from core.enums import Provider, Tone
from core.models import (
    ContentRequest,
    ContentVariants,
    GenerationResult,
    ResearchResult,
    ResearchSource,
)
from knowledge.content_analysis import extract_keywords

CHARS_PER_TOKEN = 4
TOPIC_MAX_CHARS = 120

TONE_OPENERS: Dict[str, str] = {
    Tone.PROFESSIONAL.value: "Here is what I have learned about {topic}.",
    Tone.CASUAL.value: "Quick thought on {topic}.",
    Tone.FRIENDLY.value: "Let's talk about {topic} for a minute.",
    Tone.AUTHORITATIVE.value: "Most teams get {topic} wrong.",
}

BODY_SENTENCES: Tuple[str, ...] = (
    "The teams that do this well start with a clear outcome for {audience}.",
    "They measure what changes instead of what gets shipped.",
    "Small experiments beat big plans when the ground is still moving.",
    "Every decision should be easy to explain to a new colleague.",
    "Feedback loops matter more than any single tool choice.",
    "The hard part is rarely the technology; it is the habits around it.",
    "Write down what you expect to happen, then compare it with what did.",
    "Consistency compounds faster than intensity.",
)

CLOSING = "What has your experience been? Share it in the comments."


def _topic(content: str) -> str:
    first_line = content.strip().splitlines()[0] if content.strip() else content
    topic = first_line.strip().rstrip(".!?")
    if len(topic) > TOPIC_MAX_CHARS:
        topic = topic[:TOPIC_MAX_CHARS].rsplit(" ", 1)[0]
    return topic


def fit_to_band(sentences: List[str], band: Tuple[int, int]) -> str:
    """
    Join sentences, cycling through them until the text reaches the band.

    Text that overshoots the upper bound is cut back to it.
    """
    low, high = band
    parts: List[str] = []
    length = 0
    index = 0
    while length < low:
        parts.append(sentences[index % len(sentences)])
        length = len(" ".join(parts))
        index += 1

    text = " ".join(parts)
    if len(text) > high:
        text = text[: high - 3].rstrip() + "..."
    return text


class TemplateContentGenerator:
    """ContentGenerator that composes variants from fixed sentence templates."""

    def __init__(self, provider: Provider = Provider.OPENAI, bands: QualityBands = QUALITY_BANDS):
        self.provider = provider
        self.bands = bands
        self.model = f"template-{provider.value}"

    def _sentences(self, request: ContentRequest, research: Optional[ResearchResult]) -> List[str]:
        topic = _topic(request.content)
        opener = TONE_OPENERS.get(request.tone, TONE_OPENERS[Tone.PROFESSIONAL.value])
        sentences = [opener.format(topic=topic)]

        if research:
            sentences.extend(f"{insight.rstrip('.')}." for insight in research.insights)

        sentences.extend(s.format(audience=request.target_audience) for s in BODY_SENTENCES)
        sentences.append(CLOSING)
        return sentences

    async def generate(
        self,
        request: ContentRequest,
        research: Optional[ResearchResult] = None,
    ) -> GenerationResult:
        """
        Build short, medium and long variants for ``request``.

        Args:
            request: The request being fulfilled
            research: Optional research output; its insights are woven in

        Returns:
            GenerationResult tagged with this generator's provider
        """
        sentences = self._sentences(request, research)
        variants = ContentVariants(
            short=fit_to_band(sentences, self.bands.SHORT_RANGE),
            medium=fit_to_band(sentences, self.bands.MEDIUM_RANGE),
            long=fit_to_band(sentences, self.bands.LONG_RANGE),
        )

        tokens = sum(len(v) for v in variants.as_tuple()) // CHARS_PER_TOKEN
        logger.debug(f"Template generation for {request.request_id}: {tokens} tokens")

        return GenerationResult(
            content=variants,
            tokens_used=tokens,
            confidence=0.8,
            provider=self.provider,
            model=self.model,
        )


class TemplateResearchProvider:
    """ResearchProvider that derives insights from the request's own keywords."""

    def __init__(self, max_insights: int = 3):
        self.max_insights = max_insights

    async def research(self, request: ContentRequest) -> ResearchResult:
        keywords = list(request.keywords) or extract_keywords(request.content, limit=self.max_insights)
        insights = [
            f"Recent discussion of {keyword} focuses on practical results"
            for keyword in keywords[: self.max_insights]
        ]

        sources = []
        if request.url_reference:
            sources.append(
                ResearchSource(
                    title="Referenced article",
                    url=request.url_reference,
                    excerpt=_topic(request.content),
                    credibility=0.8,
                )
            )

        return ResearchResult(
            sources=sources,
            insights=insights,
            tokens_used=sum(len(i) for i in insights) // CHARS_PER_TOKEN,
        )


__all__ = ["TemplateContentGenerator", "TemplateResearchProvider", "fit_to_band"]
