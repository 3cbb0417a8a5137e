"""
Request Classifier

Additive, threshold-based complexity scoring. Pure and deterministic: the
same request always yields the same Classification.
"""

from config.constants import CLASSIFIER_WEIGHTS, TOKEN_ESTIMATES, ClassifierWeights, TokenEstimates
from core.enums import Complexity, Purpose
from core.exceptions import ClassificationError
from core.models import Classification, ContentRequest


class RequestClassifier:
    """
    Scores a request and maps the score onto a complexity tier.

    Score contributions:
        content longer than 500 chars    +2  (else longer than 200: +1)
        research enabled                 +2
        URL reference                    +1
        template id                      +1
        prior pattern hints              +1
        thought-leadership purpose       +1

    Tiers: score >= 5 complex, >= 2 medium, otherwise simple.
    """

    def __init__(
        self,
        weights: ClassifierWeights = CLASSIFIER_WEIGHTS,
        tokens: TokenEstimates = TOKEN_ESTIMATES,
    ):
        self._w = weights
        self._tokens = tokens

    def score(self, request: ContentRequest) -> int:
        w = self._w
        score = 0

        length = len(request.content)
        if length > w.LONG_CONTENT_CHARS:
            score += w.LONG_CONTENT_POINTS
        elif length > w.MEDIUM_CONTENT_CHARS:
            score += w.MEDIUM_CONTENT_POINTS

        if request.enable_research:
            score += w.RESEARCH_POINTS
        if request.url_reference:
            score += w.URL_REFERENCE_POINTS
        if request.template_id:
            score += w.TEMPLATE_POINTS
        if request.patterns:
            score += w.PATTERN_HINT_POINTS
        if request.purpose == Purpose.THOUGHT_LEADERSHIP.value:
            score += w.THOUGHT_LEADERSHIP_POINTS

        return score

    def complexity_for(self, score: int) -> Complexity:
        if score >= self._w.COMPLEX_THRESHOLD:
            return Complexity.COMPLEX
        if score >= self._w.MEDIUM_THRESHOLD:
            return Complexity.MEDIUM
        return Complexity.SIMPLE

    def estimate_tokens(self, request: ContentRequest, complexity: Complexity) -> int:
        base = {
            Complexity.SIMPLE: self._tokens.SIMPLE_BASE,
            Complexity.MEDIUM: self._tokens.MEDIUM_BASE,
            Complexity.COMPLEX: self._tokens.COMPLEX_BASE,
        }[complexity]
        if request.needs_research:
            base += self._tokens.RESEARCH_SURCHARGE
        return base * self._tokens.VARIANT_MULTIPLIER

    def classify(self, request: ContentRequest) -> Classification:
        """
        Classify a request.

        Raises:
            ClassificationError: If scoring produced a negative score or
                non-positive token estimate
        """
        score = self.score(request)
        if score < 0:
            raise ClassificationError(f"Negative complexity score: {score}")

        complexity = self.complexity_for(score)
        tokens = self.estimate_tokens(request, complexity)
        if tokens <= 0:
            raise ClassificationError(f"Non-positive token estimate: {tokens}")

        return Classification(complexity=complexity, estimated_tokens=tokens, score=score)


def classify(request: ContentRequest) -> Classification:
    return RequestClassifier().classify(request)


__all__ = ["RequestClassifier", "classify"]
