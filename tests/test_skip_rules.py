from __future__ import annotations

import pytest

from htmltr.skip_rules import PatternRule, SkipClassifier


@pytest.mark.parametrize(
    "text",
    [
        "12345",
        " 2024-01-15 ",
        "(1, 2, 3)",
        "https://example.com/a?b=c",
        '{"a": 1}',
        "[1, 2, 3]",
        "API_KEY",
        "get_value(x)",
        "$1",
        "```\nprint('hi')\n```",
        "",
        "   \n\t",
    ],
)
def test_whole_match_is_skipped(text):
    assert SkipClassifier().should_skip(text)


@pytest.mark.parametrize(
    "text",
    [
        "Hello world",
        "Visit https://example.com today",
        "Call get_value(x) to read it",
        "The API_KEY must be set",
        "Price: 12 dollars",
    ],
)
def test_partial_match_is_translated(text):
    assert not SkipClassifier().should_skip(text)


def test_matching_rule_reports_rule_name():
    classifier = SkipClassifier()
    assert classifier.matching_rule("12345") == "numeric"
    assert classifier.matching_rule("   ") == "blank"
    assert classifier.matching_rule("$2") == "placeholder"
    assert classifier.matching_rule("Plain words") is None


def test_extra_rules_extend_allowlist():
    classifier = SkipClassifier([PatternRule(name="version", pattern=r"v\d+(?:\.\d+)+", flags="I")])
    assert classifier.should_skip("V1.2.3")
    assert not classifier.should_skip("v1.2.3 released")
    assert not SkipClassifier().should_skip("v1.2.3")
