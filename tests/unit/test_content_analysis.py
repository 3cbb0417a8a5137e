"""
Content Analysis Unit Tests

Pure heuristics over post text: buckets, structure tags, hashtags, emojis,
keywords, reading time and the engagement estimate.
"""

import pytest

from knowledge.content_analysis import (
    analyze_content,
    character_range,
    count_hashtags,
    describe_structure,
    detect_structure,
    extract_keywords,
    has_emojis,
    predict_engagement,
    reading_time_minutes,
)


@pytest.mark.unit
@pytest.mark.parametrize("length, expected", [(0, (0, 200)), (199, (0, 200)), (450, (400, 600))])
def test_character_range_buckets(length, expected):
    assert character_range("x" * length) == expected


@pytest.mark.unit
def test_detect_structure_tags():
    post = "What changed this year?\nIt started when we shipped weekly\nThe lesson: small steps\nDrop a comment below"

    assert detect_structure(post) == ["hook", "story", "lesson", "cta"]


@pytest.mark.unit
def test_detect_structure_defaults_to_generic():
    assert detect_structure("Plain statement.") == ["generic"]
    assert detect_structure("") == ["generic"]


@pytest.mark.unit
def test_describe_structure_recognises_lists_case_insensitively():
    post = "Imagine a calmer week\n1. Plan\n2. Focus\n3. Review\nShare yours"

    assert describe_structure(post) == ["hook", "cta", "list"]


@pytest.mark.unit
def test_hashtags_and_emojis():
    assert count_hashtags("Ship it #ai #ml and #data") == 3
    assert has_emojis("Launch day \U0001F680")
    assert not has_emojis("No pictures here")


@pytest.mark.unit
def test_extract_keywords_by_frequency():
    text = "Python python PYTHON rust rust java and the with"

    assert extract_keywords(text) == ["python", "rust", "java"]
    assert extract_keywords(text, limit=1) == ["python"]


@pytest.mark.unit
def test_reading_time_rounds_up():
    assert reading_time_minutes("word " * 201) == 2
    assert reading_time_minutes("") == 0


@pytest.mark.unit
def test_ideal_length_with_hashtags_scores_above_base():
    tags = " #ai #ml #data"
    post = "x" * (1300 - len(tags)) + tags

    assert predict_engagement(post) == 600


@pytest.mark.unit
@pytest.mark.parametrize("post", ["", "x" * 10000, "Why? " * 300 + "#a #b #c \U0001F680 comment"])
def test_predicted_engagement_is_clamped(post):
    assert 100 <= predict_engagement(post) <= 5000


@pytest.mark.unit
def test_analyze_content_combines_signals():
    post = "Lessons learned shipping weekly #engineering \U0001F680"

    analysis = analyze_content(post)

    assert analysis.character_count == len(post)
    assert analysis.word_count == 6
    assert analysis.hashtag_count == 1
    assert analysis.has_emojis is True
    assert "lesson" in analysis.structure
    assert "shipping" in analysis.keywords
