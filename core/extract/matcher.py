"""Match a rule against source text and serialize distinct matches."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from core.rules.models import ExtractRule
from core.utils.errors import GroupIndexError

logger = logging.getLogger("parsefilter.extract")

MATCH_SEPARATOR = ";"


def extract_matches(
    source: str | None,
    rule: ExtractRule,
    *,
    replace: bool = False,
    terms: Sequence[str] | None = None,
) -> str:
    """Return distinct matches of ``rule`` in ``source`` joined by ``;``.

    Values keep first-seen order. With ``replace`` set, the text captured by
    group ``i + 1`` is replaced literally by ``terms[i]`` inside each match
    before deduplication. A match whose terms reference a missing group is
    logged and dropped. Zero-width matches contribute nothing.
    """

    if not source:
        return ""

    replacement_terms = tuple(terms or ()) if replace else ()
    values: dict[str, None] = {}
    for match in rule.pattern.finditer(source):
        value = match.group(0)
        if replacement_terms:
            try:
                value = rewrite_match(match, replacement_terms, field=rule.field)
            except GroupIndexError as exc:
                logger.warning("%s (match skipped: %r)", exc, match.group(0))
                continue
        if value:
            values.setdefault(value, None)

    return MATCH_SEPARATOR.join(values)


def rewrite_match(match: re.Match[str], terms: Sequence[str], *, field: str = "") -> str:
    """Substitute captured groups of one match with positional terms.

    Substitutions run in term order on the progressively rewritten text.
    Groups that did not participate or captured nothing are left alone.
    """

    group_count = match.re.groups
    value = match.group(0)
    for index, term in enumerate(terms, start=1):
        if index > group_count:
            raise GroupIndexError(
                f"Replace rule '{field}' has {len(terms)} terms but pattern has "
                f"{group_count} groups",
                field=field,
                group_index=index,
                group_count=group_count,
            )
        captured = match.group(index)
        if not captured:
            continue
        value = value.replace(captured, term)
    return value
