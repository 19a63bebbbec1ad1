from __future__ import annotations

import logging

import pytest

from core.rules.models import ReplaceRule, SourceKind
from core.rules.parser import parse_extract_rules, parse_replace_rules
from core.utils.errors import PatternCompileError


def test_parse_single_extract_rule() -> None:
    rules = parse_extract_rules("title text \\btitle\\b\n")

    assert list(rules) == ["title"]
    rule = rules["title"]
    assert rule.field == "title"
    assert rule.source is SourceKind.TEXT
    assert rule.pattern.pattern == "\\btitle\\b"
    assert rule.pattern.search("A TITLE page") is not None


@pytest.mark.parametrize(
    ("token", "expected"),
    [("html", SourceKind.HTML), ("HTML", SourceKind.HTML), ("Text", SourceKind.TEXT)],
)
def test_parse_source_is_case_insensitive(token: str, expected: SourceKind) -> None:
    rules = parse_extract_rules(f"field {token} abc")

    assert rules["field"].source is expected


def test_parse_unknown_source_is_kept_as_unknown() -> None:
    rules = parse_extract_rules("field body abc")

    assert rules["field"].source is SourceKind.UNKNOWN
    assert rules["field"].raw_source == "body"


def test_parse_skips_comments_and_blank_lines() -> None:
    text = """
# a comment
   # indented comment

author html <meta\\s+name="author"
"""

    rules = parse_extract_rules(text)

    assert list(rules) == ["author"]


def test_parse_skips_malformed_lines_and_keeps_valid_ones(
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="parsefilter.rules")
    text = "short text\nok text \\d+\ntoo many tokens here now\n"

    rules = parse_extract_rules(text)

    assert list(rules) == ["ok"]
    messages = [record.getMessage() for record in caplog.records]
    assert any("line 1" in message for message in messages)
    assert any("line 3" in message for message in messages)


def test_parse_tokens_split_on_any_whitespace() -> None:
    rules = parse_extract_rules("price\t text   \\$\\d+")

    assert rules["price"].pattern.pattern == "\\$\\d+"


def test_parse_duplicate_field_last_definition_wins() -> None:
    rules = parse_extract_rules("year text \\d{2}\nyear html \\d{4}\n")

    assert len(rules) == 1
    assert rules["year"].source is SourceKind.HTML
    assert rules["year"].pattern.pattern == "\\d{4}"


def test_parse_preserves_definition_order() -> None:
    rules = parse_extract_rules("b text b\na text a\nc text c\n")

    assert list(rules) == ["b", "a", "c"]


def test_parse_invalid_pattern_raises_with_location() -> None:
    with pytest.raises(PatternCompileError) as exc_info:
        parse_extract_rules("good text ok\nbad text (unclosed\n")

    assert exc_info.value.field == "bad"
    assert exc_info.value.line_number == 2
    assert exc_info.value.pattern == "(unclosed"


def test_parse_replace_rule_collects_terms_in_order() -> None:
    rules, terms = parse_replace_rules("phone text (\\d{3})-(\\d{4}) XXX YYYY\n")

    rule = rules["phone"]
    assert isinstance(rule, ReplaceRule)
    assert rule.terms == ("XXX", "YYYY")
    assert terms == {"phone": ("XXX", "YYYY")}


def test_parse_replace_rule_allows_zero_terms() -> None:
    rules, terms = parse_replace_rules("plain text \\d+\n")

    assert rules["plain"].terms == ()
    assert terms["plain"] == ()


def test_parse_replace_skips_lines_with_fewer_than_three_tokens() -> None:
    rules, terms = parse_replace_rules("broken text\nkept html (a) b\n")

    assert list(rules) == ["kept"]
    assert list(terms) == ["kept"]


def test_parse_replace_duplicate_field_overwrites_terms() -> None:
    rules, terms = parse_replace_rules("f text (a) X\nf text (b)(c) Y Z\n")

    assert rules["f"].pattern.pattern == "(b)(c)"
    assert terms["f"] == ("Y", "Z")


def test_parse_replace_does_not_validate_term_arity() -> None:
    rules, _ = parse_replace_rules("f text abc X Y Z\n")

    assert rules["f"].pattern.groups == 0
    assert rules["f"].terms == ("X", "Y", "Z")
