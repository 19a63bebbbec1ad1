"""Line-oriented rule parser.

Extraction rule lines: ``<field> <html|text> <pattern>``
Replace rule lines:    ``<field> <html|text> <pattern> <term>...``

Blank lines and lines starting with ``#`` are ignored. Malformed lines are
logged and skipped; an invalid pattern fails the whole parse.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from core.rules.models import ExtractRule, ReplaceRule, SourceKind
from core.utils.errors import PatternCompileError

logger = logging.getLogger("parsefilter.rules")

_EXTRACT_TOKEN_COUNT = 3
_MIN_REPLACE_TOKEN_COUNT = 3


def parse_extract_rules(text: str) -> dict[str, ExtractRule]:
    """Parse extraction rules keyed by field name.

    Args:
        text: Rule configuration text.

    Returns:
        Rules in definition order; a later line for the same field replaces the
        earlier one.

    Raises:
        PatternCompileError: a rule pattern is not a valid regular expression.
    """

    rules: dict[str, ExtractRule] = {}
    for line_number, tokens in _iter_rule_lines(text):
        if len(tokens) != _EXTRACT_TOKEN_COUNT:
            _log_invalid_line("extract", line_number, tokens)
            continue

        field, source, regex = tokens
        rules[field] = ExtractRule(
            field=field,
            source=SourceKind.parse(source),
            pattern=_compile(field, regex, line_number),
            raw_source=source,
        )
    return rules


def parse_replace_rules(text: str) -> tuple[dict[str, ReplaceRule], dict[str, tuple[str, ...]]]:
    """Parse replace rules and their ordered replacement terms.

    Tokens after the pattern become the term list; term ``i`` replaces the text
    captured by group ``i + 1``. Zero terms is allowed.
    """

    rules: dict[str, ReplaceRule] = {}
    terms_by_field: dict[str, tuple[str, ...]] = {}
    for line_number, tokens in _iter_rule_lines(text):
        if len(tokens) < _MIN_REPLACE_TOKEN_COUNT:
            _log_invalid_line("replace", line_number, tokens)
            continue

        field, source, regex = tokens[:3]
        terms = tuple(tokens[3:])
        rules[field] = ReplaceRule(
            field=field,
            source=SourceKind.parse(source),
            pattern=_compile(field, regex, line_number),
            raw_source=source,
            terms=terms,
        )
        terms_by_field[field] = terms
    return rules, terms_by_field


def _iter_rule_lines(text: str) -> Iterator[tuple[int, list[str]]]:
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        yield line_number, line.split()


def _compile(field: str, regex: str, line_number: int) -> re.Pattern[str]:
    try:
        return re.compile(regex, re.IGNORECASE)
    except re.error as exc:
        raise PatternCompileError(
            f"Invalid pattern for field '{field}' on line {line_number}: {exc}",
            field=field,
            pattern=regex,
            line_number=line_number,
        ) from exc


def _log_invalid_line(kind: str, line_number: int, tokens: list[str]) -> None:
    logger.warning(
        "invalid %s rule on line %d (%d tokens): %s",
        kind,
        line_number,
        len(tokens),
        " ".join(tokens),
    )
