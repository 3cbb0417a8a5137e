"""
Request Classifier Unit Tests

Validates additive complexity scoring:
- Tier thresholds (simple / medium / complex)
- Token estimates per tier with the research surcharge
- Determinism and monotonicity
- Invariant enforcement (ClassificationError)
"""

import pytest

from config.constants import ClassifierWeights
from core.enums import Complexity
from core.exceptions import ClassificationError
from optimization.request_classifier import RequestClassifier, classify

LONG_CONTENT = "word " * 120  # 600 chars
MEDIUM_CONTENT = "word " * 50  # 250 chars


@pytest.fixture
def classifier() -> RequestClassifier:
    return RequestClassifier()


@pytest.mark.unit
def test_short_value_request_is_simple(classifier, request_factory):
    request = request_factory(content="Short note about teams", purpose="value")

    result = classifier.classify(request)

    assert result.score == 0
    assert result.complexity == Complexity.SIMPLE
    assert result.estimated_tokens == 300 * 3


@pytest.mark.unit
def test_thought_leadership_alone_stays_simple(classifier, request_factory):
    request = request_factory(content="Short note about teams")

    result = classifier.classify(request)

    assert result.score == 1
    assert result.complexity == Complexity.SIMPLE


@pytest.mark.unit
def test_medium_content_with_template_is_medium(classifier, request_factory):
    request = request_factory(content=MEDIUM_CONTENT, purpose="value", template_id="tpl-1")

    result = classifier.classify(request)

    assert result.score == 2
    assert result.complexity == Complexity.MEDIUM
    assert result.estimated_tokens == 600 * 3


@pytest.mark.unit
def test_long_researched_request_with_url_is_complex(classifier, request_factory):
    request = request_factory(
        content=LONG_CONTENT,
        purpose="value",
        enable_research=True,
        url_reference="https://example.com/article",
    )

    result = classifier.classify(request)

    assert result.score == 5
    assert result.complexity == Complexity.COMPLEX
    assert result.estimated_tokens == (1000 + 500) * 3


@pytest.mark.unit
def test_url_reference_adds_research_surcharge(classifier, request_factory):
    request = request_factory(
        content="Short note", purpose="value", url_reference="https://example.com"
    )

    result = classifier.classify(request)

    assert result.complexity == Complexity.SIMPLE
    assert result.estimated_tokens == (300 + 500) * 3


@pytest.mark.unit
def test_pattern_hints_contribute_one_point(classifier, request_factory):
    request = request_factory(content="Short note", purpose="value", patterns=("pattern-1",))

    assert classifier.score(request) == 1


@pytest.mark.unit
def test_classification_is_deterministic(classifier, request_factory):
    request = request_factory(content=LONG_CONTENT, enable_research=True)

    assert classifier.classify(request) == classifier.classify(request)
    assert classify(request) == classifier.classify(request)


@pytest.mark.unit
@pytest.mark.parametrize(
    "extra",
    [
        {"enable_research": True},
        {"url_reference": "https://example.com"},
        {"template_id": "tpl"},
        {"patterns": ("p1",)},
        {"content": LONG_CONTENT},
    ],
)
def test_adding_a_signal_never_lowers_complexity(classifier, request_factory, extra):
    base = request_factory(content="Short note", purpose="value")
    enriched = base.model_copy(update=extra)

    assert (
        classifier.classify(enriched).complexity.rank >= classifier.classify(base).complexity.rank
    )


@pytest.mark.unit
def test_negative_score_raises_classification_error(request_factory):
    classifier = RequestClassifier(weights=ClassifierWeights(RESEARCH_POINTS=-5))
    request = request_factory(content="Short note", purpose="value", enable_research=True)

    with pytest.raises(ClassificationError):
        classifier.classify(request)
